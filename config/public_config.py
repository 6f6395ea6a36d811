from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_app_root() -> Path:
    """APP_ROOT, else the working directory. Data and log dirs default to live under it."""
    env = os.environ.get("APP_ROOT")
    if env:
        return Path(env).resolve()
    return Path.cwd().resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- core paths ---
    app_root: Path = Field(default_factory=_default_app_root, alias="APP_ROOT")
    # Artifact root: briefing/ and podcast/ live underneath.
    data_dir: Path | None = Field(default=None, alias="BRIEFING_DATA_DIR")  # <app_root>/data
    log_dir: Path | None = Field(default=None, alias="BRIEFING_LOG_DIR")  # <app_root>/logs
    # Runtime-only state directory (jobs DB). If unset, defaults to "<BRIEFING_DATA_DIR>/_state".
    state_dir: Path | None = Field(default=None, alias="BRIEFING_STATE_DIR")
    jobs_db_name: str = Field(default="jobs.db", alias="BRIEFING_JOBS_DB_NAME")

    # --- logging ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="LOG_BACKUP_COUNT")

    # --- web ---
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")  # comma-separated

    # --- job execution ---
    jobs_concurrency: int = Field(default=2, alias="JOBS_CONCURRENCY")
    job_timeout_s: int = Field(default=15 * 60, alias="JOB_TIMEOUT_S")
    result_preview_chars: int = Field(default=2000, alias="RESULT_PREVIEW_CHARS")

    # --- generation service ---
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta", alias="GEMINI_BASE_URL"
    )
    text_model: str = Field(default="gemini-2.5-flash", alias="TEXT_MODEL")
    research_model: str = Field(default="gemini-2.5-pro", alias="RESEARCH_MODEL")
    tts_model: str = Field(default="gemini-2.5-flash-preview-tts", alias="TTS_MODEL")
    tts_voice_host: str = Field(default="Kore", alias="TTS_VOICE_HOST")
    tts_voice_guest: str = Field(default="Puck", alias="TTS_VOICE_GUEST")
    generation_timeout_s: float = Field(default=180.0, alias="GENERATION_TIMEOUT_S")
    generation_attempts: int = Field(default=3, alias="GENERATION_ATTEMPTS")
    retry_base_s: float = Field(default=1.0, alias="RETRY_BASE_S")
    retry_cap_s: float = Field(default=8.0, alias="RETRY_CAP_S")
    section_attempts: int = Field(default=2, alias="SECTION_ATTEMPTS")

    # --- circuit breaker ---
    cb_fail_threshold: int = Field(default=5, alias="CB_FAIL_THRESHOLD")
    cb_cooldown_sec: float = Field(default=60.0, alias="CB_COOLDOWN_SEC")

    # --- audio ---
    ffmpeg_bin: str = Field(default="ffmpeg", alias="FFMPEG_BIN")
    ffmpeg_timeout_s: int = Field(default=120, alias="FFMPEG_TIMEOUT_S")
    pcm_sample_rate: int = Field(default=24000, alias="PCM_SAMPLE_RATE")
    pcm_channels: int = Field(default=1, alias="PCM_CHANNELS")
    mp3_bitrate: str = Field(default="128k", alias="MP3_BITRATE")

    @model_validator(mode="after")
    def _default_dirs(self) -> PublicConfig:
        if self.data_dir is None:
            self.data_dir = self.app_root / "data"
        if self.log_dir is None:
            self.log_dir = self.app_root / "logs"
        return self

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in (self.cors_origins or "").split(",") if o.strip()]

    def resolved_state_dir(self) -> Path:
        return Path(self.state_dir or (Path(self.data_dir) / "_state")).resolve()
