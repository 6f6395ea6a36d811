from __future__ import annotations

import threading
from pathlib import Path

from sqlitedict import SqliteDict  # type: ignore

from briefing_pipeline.errors import InvalidTransition, JobNotFound
from briefing_pipeline.jobs.models import (
    AUDIO_FINAL_STATUSES,
    JobInput,
    JobRecord,
    JobStatus,
    JobUpdate,
    is_terminal,
    new_id,
    now_utc,
)


def _apply(raw: dict, change: JobUpdate) -> dict:
    """
    Pure merge of `change` into a stored record dict; raises InvalidTransition.
    """
    cur_status = str(raw.get("status") or "")
    result = dict(raw.get("result") or {})

    if is_terminal(cur_status):
        if change.status is not None and change.status != cur_status:
            raise InvalidTransition(f"job {raw.get('id')} is {cur_status}; cannot move to {change.status}")
        if change.error is not None:
            raise InvalidTransition(f"job {raw.get('id')} is {cur_status}; cannot set error")
        if change.result and cur_status == JobStatus.FAILED.value:
            raise InvalidTransition(f"job {raw.get('id')} failed; result is frozen")

    cur_audio = result.get("audio_status")
    new_audio = (change.result or {}).get("audio_status")
    if new_audio is not None and cur_audio in AUDIO_FINAL_STATUSES and new_audio != cur_audio:
        raise InvalidTransition(f"job {raw.get('id')} audio is {cur_audio}; cannot move to {new_audio}")

    if change.result:
        for k, v in change.result.items():
            if v is not None:
                result[str(k)] = v

    if change.error is not None and result.get("primary_artifact_location"):
        raise InvalidTransition(
            f"job {raw.get('id')} already delivered its primary artifact; cannot set error"
        )
    if change.status == JobStatus.COMPLETE.value and not result.get("primary_artifact_location"):
        raise InvalidTransition(f"job {raw.get('id')} cannot complete without a primary artifact")

    out = dict(raw)
    if change.status is not None:
        out["status"] = str(change.status)
    if change.log:
        out["progress_log"] = list(raw.get("progress_log") or []) + [str(x) for x in change.log]
    out["result"] = result
    if change.error is not None:
        out["error"] = str(change.error)
    out["updated_at"] = now_utc()
    return out


class JobStore:
    """
    Durable job records keyed by id.

    Every operation opens its own SqliteDict handle (autocommit), so records survive
    process restarts and reads always see the last committed write.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _jobs(self) -> SqliteDict:
        # one handle per call; SQLite handles must not cross threads
        return SqliteDict(str(self.db_path), tablename="jobs", autocommit=True)

    def create(self, job_input: JobInput) -> str:
        now = now_utc()
        with self._lock, self._jobs() as db:
            jid = new_id()
            while jid in db:
                jid = new_id()
            rec = JobRecord(
                id=jid,
                status=JobStatus.QUEUED.value,
                input=job_input,
                created_at=now,
                updated_at=now,
            )
            db[jid] = rec.to_dict()
        return jid

    def get(self, id: str) -> JobRecord:
        with self._lock, self._jobs() as db:
            raw = db.get(str(id))
        if raw is None:
            raise JobNotFound(id)
        return JobRecord.from_dict(raw)

    def update(self, id: str, change: JobUpdate) -> JobRecord:
        with self._lock, self._jobs() as db:
            raw = db.get(str(id))
            if raw is None:
                raise JobNotFound(id)
            new = _apply(dict(raw), change)
            db[str(id)] = new
        return JobRecord.from_dict(new)

    def list(self, limit: int = 100, status: str | None = None) -> list[JobRecord]:
        """
        Newest first. `status` matches exactly, or as a prefix when it ends with ':'
        (e.g. "running:").
        """
        with self._lock, self._jobs() as db:
            items = list(db.values())

        jobs = [JobRecord.from_dict(v) for v in items]
        if status:
            if status.endswith(":"):
                jobs = [j for j in jobs if j.status.startswith(status)]
            else:
                jobs = [j for j in jobs if j.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[: max(0, int(limit))]
