from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from briefing_pipeline.config import get_settings


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """
    Everything the dispatcher, runner and stages need, resolved once at startup.

    Runtime components take this explicitly instead of reading settings/env themselves.
    """

    data_dir: Path
    jobs_db: Path
    concurrency: int = 2
    # ffmpeg command/stderr logs go under <log_dir>/ffmpeg/<job_id>; None disables them
    log_dir: Path | None = None

    # wall-clock ceilings (seconds)
    job_timeout_s: float = 15 * 60
    generation_timeout_s: float = 180.0
    ffmpeg_timeout_s: int = 120

    # retries
    generation_attempts: int = 3
    retry_base_s: float = 1.0
    retry_cap_s: float = 8.0
    section_attempts: int = 2
    cb_fail_threshold: int = 5
    cb_cooldown_s: float = 60.0

    # models / voices
    text_model: str = "gemini-2.5-flash"
    research_model: str = "gemini-2.5-pro"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    voice_host: str = "Kore"
    voice_guest: str = "Puck"

    # audio
    ffmpeg_bin: str = "ffmpeg"
    pcm_sample_rate: int = 24000
    pcm_channels: int = 1
    mp3_bitrate: str = "128k"

    result_preview_chars: int = 2000


def get_pipeline_config() -> PipelineConfig:
    s = get_settings()
    state_dir = s.public.resolved_state_dir()
    return PipelineConfig(
        data_dir=Path(s.data_dir).resolve(),
        jobs_db=state_dir / str(s.jobs_db_name or "jobs.db"),
        concurrency=max(1, int(s.jobs_concurrency)),
        log_dir=Path(s.log_dir).resolve(),
        job_timeout_s=max(1.0, float(s.job_timeout_s)),
        generation_timeout_s=max(1.0, float(s.generation_timeout_s)),
        ffmpeg_timeout_s=max(1, int(s.ffmpeg_timeout_s)),
        generation_attempts=max(1, int(s.generation_attempts)),
        retry_base_s=max(0.0, float(s.retry_base_s)),
        retry_cap_s=max(0.0, float(s.retry_cap_s)),
        section_attempts=max(1, int(s.section_attempts)),
        cb_fail_threshold=max(1, int(s.cb_fail_threshold)),
        cb_cooldown_s=max(0.0, float(s.cb_cooldown_sec)),
        text_model=str(s.text_model),
        research_model=str(s.research_model),
        tts_model=str(s.tts_model),
        voice_host=str(s.tts_voice_host),
        voice_guest=str(s.tts_voice_guest),
        ffmpeg_bin=str(s.ffmpeg_bin),
        pcm_sample_rate=max(8000, int(s.pcm_sample_rate)),
        pcm_channels=max(1, int(s.pcm_channels)),
        mp3_bitrate=str(s.mp3_bitrate),
        result_preview_chars=max(0, int(s.result_preview_chars)),
    )
