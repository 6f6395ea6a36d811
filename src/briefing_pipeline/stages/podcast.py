from __future__ import annotations

import re
import shutil
from contextlib import suppress
from pathlib import Path

from briefing_pipeline.errors import (
    FFmpegError,
    GenerationError,
    JobTimeout,
    SecondaryStageFailure,
)
from briefing_pipeline.generation.client import VoiceSpec
from briefing_pipeline.jobs.context import StageContext
from briefing_pipeline.jobs.models import ArtifactKind
from briefing_pipeline.utils.ffmpeg_safe import encode_pcm_to_mp3
from briefing_pipeline.utils.io import atomic_write_bytes

NAME = "podcast"
HOST = "Host"
ANALYST = "Analyst"
# TTS input limit is generous, but long briefings make rambling scripts.
MAX_SOURCE_CHARS = 12000

_LINE_RE = re.compile(rf"^\s*\**\s*({HOST}|{ANALYST})\s*\**\s*:\s*(.+)$", re.IGNORECASE)


def prompt_for(subject: str, briefing: str) -> str:
    return (
        f"Write a lively, factual podcast script of about 5 minutes discussing '{subject}', "
        f"as a dialogue between two speakers labelled '{HOST}' and '{ANALYST}'. "
        f"Every line must start with '{HOST}:' or '{ANALYST}:'. No stage directions, no "
        "sound effects, no Markdown. Use only facts from this briefing:\n\n"
        + briefing[:MAX_SOURCE_CHARS]
    )


def clean_script(raw: str) -> str:
    """
    Keep only speaker lines, normalizing labels; raises SecondaryStageFailure when
    nothing usable is left.
    """
    lines: list[str] = []
    for ln in str(raw or "").splitlines():
        m = _LINE_RE.match(ln)
        if not m:
            continue
        who = HOST if m.group(1).lower() == HOST.lower() else ANALYST
        text = m.group(2).strip().strip("*").strip()
        if text:
            lines.append(f"{who}: {text}")
    if not lines:
        raise SecondaryStageFailure("podcast script has no speaker lines")
    return "\n".join(lines)


def voice_spec(ctx: StageContext) -> VoiceSpec:
    return VoiceSpec(
        speakers=((HOST, ctx.config.voice_host), (ANALYST, ctx.config.voice_guest)),
        default_voice=ctx.config.voice_host,
    )


def ffmpeg_log_dir(ctx: StageContext) -> Path | None:
    """Outside the scratch dir, which is removed when the stage ends."""
    if ctx.config.log_dir is None:
        return None
    return Path(ctx.config.log_dir) / "ffmpeg" / ctx.job_id


def produce(ctx: StageContext, briefing: str) -> str:
    """
    Narrate the briefing as MP3 and return the artifact location.

    Every failure is re-raised as SecondaryStageFailure so the caller can confine it
    to the audio branch.
    """
    log = ctx.bind_logger(stage=NAME)
    work = ctx.artifacts.work_dir(ctx.job_id)
    try:
        raw = ctx.client.generate_text(
            prompt_for(ctx.subject, briefing),
            model=ctx.config.text_model,
            deadline=ctx.deadline,
        )
        script = clean_script(raw)
        log.info("podcast_script_ready", lines=script.count("\n") + 1, chars=len(script))

        pcm = ctx.client.generate_audio(
            script,
            voice_spec(ctx),
            model=ctx.config.tts_model,
            deadline=ctx.deadline,
        )
        pcm_path = atomic_write_bytes(work / "podcast.pcm", pcm)
        mp3_path = work / "podcast.mp3"
        encode_pcm_to_mp3(
            src=pcm_path,
            dst=mp3_path,
            ffmpeg_bin=ctx.config.ffmpeg_bin,
            sample_rate=ctx.config.pcm_sample_rate,
            channels=ctx.config.pcm_channels,
            bitrate=ctx.config.mp3_bitrate,
            timeout_s=int(ctx.deadline.cap(ctx.config.ffmpeg_timeout_s)) or 1,
            log_dir=ffmpeg_log_dir(ctx),
        )
        location = ctx.artifacts.location_for(ctx.job_id, ctx.subject, ArtifactKind.AUDIO.value)
        ctx.artifacts.write_bytes(location, mp3_path.read_bytes())
    except SecondaryStageFailure:
        raise
    except (GenerationError, FFmpegError, JobTimeout, OSError) as ex:
        raise SecondaryStageFailure(f"{type(ex).__name__}: {ex}") from ex
    finally:
        with suppress(Exception):
            shutil.rmtree(work)
    log.info("podcast_published", location=location, pcm_bytes=len(pcm))
    return location
