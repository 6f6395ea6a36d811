from __future__ import annotations

import logging
import re
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

import structlog

from briefing_pipeline.config import get_settings
from config.settings import ConfigError

MASK = "***REDACTED***"

job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_loading_settings: ContextVar[bool] = ContextVar("loading_settings", default=False)


@contextmanager
def bind_job(job_id: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with `job_id`."""
    token = job_id_var.set(str(job_id))
    try:
        yield
    finally:
        job_id_var.reset(token)


# (pattern, replacement); the generation endpoint takes its key as ?key=...
_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)([?&]key=)[^&\s]+"), rf"\1{MASK}"),
    (re.compile(r"\bAIza[0-9A-Za-z_\-]{20,}\b"), MASK),
    (re.compile(r"(?i)\bBearer\s+[A-Za-z0-9_\-\.=]+"), f"Bearer {MASK}"),
    (
        re.compile(
            r"(?i)\b(gemini_api_key|app_secret_key|x-api-key|api_key|token|secret|password)\b"
            r"\s*[=:]\s*[^\s,;]+"
        ),
        rf"\1={MASK}",
    ),
)

# configured values shorter than this are not masked literally
_MIN_LITERAL = 8


def _secret_literals() -> list[str]:
    if _loading_settings.get():
        # settings are being built and are logging about themselves
        return []
    token = _loading_settings.set(True)
    try:
        sec = get_settings().secret
    except ConfigError:
        return []
    finally:
        _loading_settings.reset(token)
    out = []
    for v in (sec.gemini_api_key, sec.app_secret_key):
        raw = v.get_secret_value() if v is not None else ""
        if len(raw) >= _MIN_LITERAL and raw not in out:
            out.append(raw)
    return out


def redact(s: str) -> str:
    """Mask configured secrets and anything shaped like a credential."""
    for lit in _secret_literals():
        s = s.replace(lit, MASK)
    for pat, repl in _RULES:
        s = pat.sub(repl, s)
    return s


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in event_dict.items():
        if isinstance(v, str):
            event_dict[k] = redact(v)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, var in (("job_id", job_id_var), ("request_id", request_id_var)):
        val = var.get()
        if val:
            event_dict.setdefault(key, val)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "event" in event_dict:
        event_dict.setdefault("msg", event_dict.pop("event"))
    return event_dict


# Shared by structlog loggers and plain stdlib records (uvicorn, sqlitedict)
_CHAIN = [
    structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
    structlog.stdlib.add_log_level,
    add_contextvars,
    redact_event,
    structlog.processors.format_exc_info,
    rename_event_to_msg,
]


def _handlers(log_path: Path) -> list[logging.Handler]:
    s = get_settings()
    fmt = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_CHAIN,
    )
    log_path.parent.mkdir(parents=True, exist_ok=True)
    to_file = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=int(s.log_max_bytes),
        backupCount=int(s.log_backup_count),
        encoding="utf-8",
    )
    # stdout belongs to CLI output
    to_console = logging.StreamHandler(sys.stderr)
    for h in (to_file, to_console):
        h.setFormatter(fmt)
    return [to_file, to_console]


def _configure() -> structlog.stdlib.BoundLogger:
    s = get_settings()
    root = logging.getLogger()
    root.setLevel(str(s.log_level).upper())
    if getattr(root, "_briefing_configured", False):
        return structlog.get_logger("briefing_pipeline")

    root.handlers.clear()
    for h in _handlers(Path(s.log_dir) / "app.log"):
        root.addHandler(h)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            *_CHAIN,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    root._briefing_configured = True
    return structlog.get_logger("briefing_pipeline")


logger = _configure()


def set_log_level(level: str) -> None:
    """Change filtering on the root logger and its handlers; formatting is untouched."""
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)
