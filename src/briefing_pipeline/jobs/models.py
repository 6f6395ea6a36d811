from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from briefing_pipeline.errors import ValidationError

RUNNING_PREFIX = "running:"


class JobStatus(str, Enum):
    QUEUED = "queued"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETE.value, JobStatus.FAILED.value})


class AudioStatus(str, Enum):
    DISABLED = "disabled"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


AUDIO_FINAL_STATUSES = frozenset({AudioStatus.READY.value, AudioStatus.FAILED.value})


class ArtifactKind(str, Enum):
    PRIMARY = "primary"
    AUDIO = "audio"


def running(stage: str) -> str:
    return f"{RUNNING_PREFIX}{stage}"


def is_running(status: str) -> bool:
    return str(status).startswith(RUNNING_PREFIX)


def is_terminal(status: str) -> bool:
    return str(status) in TERMINAL_STATUSES


def now_utc() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class JobInput:
    subject: str
    role_hint: str = ""
    wants_audio: bool = False

    @classmethod
    def build(cls, subject: Any, role_hint: Any = None, wants_audio: Any = False) -> JobInput:
        """Normalize raw request values; raises ValidationError for a missing subject."""
        subj = " ".join(str(subject or "").split())
        if not subj:
            raise ValidationError("subject is required")
        if len(subj) > 200:
            raise ValidationError("subject must be at most 200 characters")
        hint = " ".join(str(role_hint or "").split())
        if len(hint) > 200:
            raise ValidationError("role_hint must be at most 200 characters")
        return cls(subject=subj, role_hint=hint, wants_audio=bool(wants_audio))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> JobInput:
        return cls(
            subject=str(d.get("subject") or ""),
            role_hint=str(d.get("role_hint") or ""),
            wants_audio=bool(d.get("wants_audio", False)),
        )


@dataclass(slots=True)
class JobRecord:
    id: str
    status: str
    input: JobInput
    created_at: str
    updated_at: str
    progress_log: list[str] = field(default_factory=list)
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "input": self.input.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "progress_log": list(self.progress_log),
            "result": dict(self.result),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> JobRecord:
        dd = dict(d)
        st = dd.get("status") or JobStatus.QUEUED.value
        if isinstance(st, JobStatus):
            st = st.value
        return cls(
            id=str(dd["id"]),
            status=str(st),
            input=JobInput.from_dict(dict(dd.get("input") or {})),
            created_at=str(dd.get("created_at") or ""),
            updated_at=str(dd.get("updated_at") or ""),
            progress_log=list(dd.get("progress_log") or []),
            result=dict(dd.get("result") or {}),
            error=dd.get("error"),
        )


@dataclass(frozen=True, slots=True)
class JobUpdate:
    """
    Partial change applied atomically by JobStore.update.

    - status: new status (None keeps the current one)
    - log: entries appended to progress_log, in order
    - result: merged into result; None values are ignored, keys are never removed
    - error: set the error message (primary failure only)
    """

    status: str | None = None
    log: tuple[str, ...] = ()
    result: dict[str, Any] | None = None
    error: str | None = None
