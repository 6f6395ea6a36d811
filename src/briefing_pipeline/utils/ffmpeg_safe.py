from __future__ import annotations

import hashlib
import subprocess
from contextlib import suppress
from pathlib import Path

from briefing_pipeline.errors import FFmpegError
from briefing_pipeline.utils.io import atomic_write_text, ensure_dir

# flags that make ffmpeg read or write files we did not name
_FORBIDDEN_FLAGS = frozenset({"-filter_script", "-filter_script:v", "-filter_script:a", "-stats_file"})
_STDERR_TAIL = 4000

__all__ = ["FFmpegError", "run_ffmpeg", "encode_pcm_to_mp3"]


def _keep_logs(log_dir: Path | None, argv: list[str], stderr: str) -> None:
    """<log_dir>/<hash>.cmd.txt and .stderr.log, one pair per distinct command line."""
    if log_dir is None:
        return
    cmd = " ".join(argv)
    key = hashlib.sha256(cmd.encode("utf-8", errors="replace")).hexdigest()[:16]
    ensure_dir(log_dir)
    atomic_write_text(log_dir / f"{key}.cmd.txt", cmd + "\n")
    atomic_write_text(log_dir / f"{key}.stderr.log", stderr)


def run_ffmpeg(
    argv: list[str],
    *,
    timeout_s: int | None = None,
    log_dir: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    """
    Run ffmpeg from an argv list, never through a shell.

    Nonzero exit, timeout or a missing binary all become FFmpegError; the message
    carries the tail of stderr when there is one.
    """
    bad = [a for a in argv if a in _FORBIDDEN_FLAGS]
    if bad:
        raise FFmpegError(f"Forbidden ffmpeg flag: {bad[0]}")

    stderr = ""
    try:
        proc = subprocess.run(argv, check=True, capture_output=True, text=True, timeout=timeout_s)
        stderr = proc.stderr or ""
        return proc
    except subprocess.TimeoutExpired as ex:
        raise FFmpegError(f"ffmpeg timed out after {timeout_s}s") from ex
    except subprocess.CalledProcessError as ex:
        stderr = str(ex.stderr or "")
        raise FFmpegError(
            f"ffmpeg failed (exit={ex.returncode})\nstderr_tail={stderr[-_STDERR_TAIL:]}"
        ) from ex
    except OSError as ex:
        raise FFmpegError(f"ffmpeg could not be started: {ex}") from ex
    finally:
        with suppress(OSError):
            _keep_logs(log_dir, argv, stderr)


def encode_pcm_to_mp3(
    *,
    src: Path,
    dst: Path,
    ffmpeg_bin: str = "ffmpeg",
    sample_rate: int = 24000,
    channels: int = 1,
    bitrate: str = "128k",
    timeout_s: int = 120,
    log_dir: Path | None = None,
) -> Path:
    """Raw signed 16-bit little-endian PCM in, MP3 (libmp3lame) out."""
    if not src.is_file() or src.stat().st_size == 0:
        raise FFmpegError(f"PCM input missing or empty: {src}")
    ensure_dir(dst.parent)

    raw_input = ["-f", "s16le", "-ar", str(int(sample_rate)), "-ac", str(int(channels))]
    mp3_output = ["-codec:a", "libmp3lame", "-b:a", str(bitrate)]
    argv = [str(ffmpeg_bin), "-y", *raw_input, "-i", str(src), *mp3_output, str(dst)]

    run_ffmpeg(argv, timeout_s=timeout_s, log_dir=log_dir)
    if not dst.is_file() or dst.stat().st_size == 0:
        raise FFmpegError(f"ffmpeg produced no output: {dst}")
    return dst
