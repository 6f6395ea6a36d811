"""
Company research briefings produced by a background, multi-stage generation pipeline.
"""

__version__ = "0.1.0"
