from __future__ import annotations

import hmac

from fastapi import HTTPException, Request, status

from briefing_pipeline.config import get_settings
from briefing_pipeline.jobs.queue import JobQueue
from briefing_pipeline.jobs.status import StatusReporter


def get_queue(request: Request) -> JobQueue:
    q = getattr(request.app.state, "job_queue", None)
    if q is None:
        raise HTTPException(status_code=500, detail="Job queue not initialized")
    return q


def get_reporter(request: Request) -> StatusReporter:
    r = getattr(request.app.state, "status_reporter", None)
    if r is None:
        raise HTTPException(status_code=500, detail="Status reporter not initialized")
    return r


def configured_api_key() -> str:
    sec = get_settings().secret.app_secret_key
    return sec.get_secret_value() if sec else ""


def require_api_key(request: Request) -> None:
    expected = configured_api_key()
    if not expected:
        # open mode; a warning is logged once at boot
        return
    got = request.headers.get("x-api-key") or ""
    if not hmac.compare_digest(got.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
