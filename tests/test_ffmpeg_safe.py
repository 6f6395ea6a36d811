from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from briefing_pipeline.errors import FFmpegError
from briefing_pipeline.utils import ffmpeg_safe
from briefing_pipeline.utils.ffmpeg_safe import encode_pcm_to_mp3, run_ffmpeg


def _pcm(tmp_path: Path) -> Path:
    p = tmp_path / "in.pcm"
    p.write_bytes(b"\x00\x01" * 100)
    return p


def test_encode_builds_raw_pcm_command(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict = {}

    def fake_run(argv, **kw):
        seen["argv"] = argv
        seen["kw"] = kw
        Path(argv[-1]).write_bytes(b"ID3mp3")
        return subprocess.CompletedProcess(argv, 0, "", "")

    monkeypatch.setattr(ffmpeg_safe.subprocess, "run", fake_run)
    dst = encode_pcm_to_mp3(
        src=_pcm(tmp_path),
        dst=tmp_path / "out" / "a.mp3",
        ffmpeg_bin="ffmpeg",
        sample_rate=24000,
        channels=1,
        bitrate="96k",
        timeout_s=30,
        log_dir=tmp_path / "logs",
    )
    assert dst.read_bytes() == b"ID3mp3"
    argv = seen["argv"]
    assert argv[:2] == ["ffmpeg", "-y"]
    assert argv[argv.index("-f") + 1] == "s16le"
    assert argv[argv.index("-ar") + 1] == "24000"
    assert argv[argv.index("-ac") + 1] == "1"
    assert argv[argv.index("-codec:a") + 1] == "libmp3lame"
    assert argv[argv.index("-b:a") + 1] == "96k"
    assert seen["kw"]["timeout"] == 30
    assert "shell" not in seen["kw"]
    assert list((tmp_path / "logs").glob("*.cmd.txt"))


def test_nonzero_exit_carries_stderr(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing(argv, **kw):
        raise subprocess.CalledProcessError(1, argv, output="", stderr="Unknown encoder 'libmp3lame'")

    monkeypatch.setattr(ffmpeg_safe.subprocess, "run", failing)
    with pytest.raises(FFmpegError, match="libmp3lame"):
        encode_pcm_to_mp3(src=_pcm(tmp_path), dst=tmp_path / "a.mp3")


def test_timeout_and_missing_binary(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def slow(argv, **kw):
        raise subprocess.TimeoutExpired(argv, kw.get("timeout"))

    monkeypatch.setattr(ffmpeg_safe.subprocess, "run", slow)
    with pytest.raises(FFmpegError, match="timed out"):
        run_ffmpeg(["ffmpeg", "-version"], timeout_s=1)

    def missing(argv, **kw):
        raise FileNotFoundError(2, "No such file", argv[0])

    monkeypatch.setattr(ffmpeg_safe.subprocess, "run", missing)
    with pytest.raises(FFmpegError, match="could not be started"):
        run_ffmpeg(["ffmpeg-nope", "-version"], timeout_s=1)


def test_empty_input_and_output_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    empty = tmp_path / "empty.pcm"
    empty.write_bytes(b"")
    with pytest.raises(FFmpegError, match="missing or empty"):
        encode_pcm_to_mp3(src=empty, dst=tmp_path / "a.mp3")

    monkeypatch.setattr(
        ffmpeg_safe.subprocess, "run", lambda argv, **kw: subprocess.CompletedProcess(argv, 0, "", "")
    )
    with pytest.raises(FFmpegError, match="no output"):
        encode_pcm_to_mp3(src=_pcm(tmp_path), dst=tmp_path / "b.mp3")


def test_forbidden_flags() -> None:
    with pytest.raises(FFmpegError, match="Forbidden"):
        run_ffmpeg(["ffmpeg", "-filter_script", "x", "out.mp3"])
