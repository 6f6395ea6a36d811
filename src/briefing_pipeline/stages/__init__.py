"""
Pipeline stages.

Each stage reads the output of the previous one (or none) and returns new text or audio.
Stages never touch the job store; the runner persists their output.
"""
