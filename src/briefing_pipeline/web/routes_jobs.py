from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from briefing_pipeline.errors import ArtifactNotFound, DispatchError, JobNotFound, ValidationError
from briefing_pipeline.jobs.models import ArtifactKind, JobInput, JobStatus
from briefing_pipeline.jobs.queue import JobQueue
from briefing_pipeline.jobs.status import StatusReporter
from briefing_pipeline.storage.artifacts import media_type
from briefing_pipeline.utils.log import logger
from briefing_pipeline.web.deps import get_queue, get_reporter, require_api_key

router = APIRouter(prefix="/api/jobs", dependencies=[Depends(require_api_key)])


class CreateJobRequest(BaseModel):
    """Accepts both the current field names and the legacy form names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subject: str | None = Field(default=None, validation_alias=AliasChoices("subject", "company_name"))
    role_hint: str | None = Field(default=None, validation_alias=AliasChoices("role_hint", "job_title"))
    wants_audio: bool = Field(
        default=False, validation_alias=AliasChoices("wantsAudio", "wants_audio", "include_podcast")
    )


@router.post("", status_code=status.HTTP_202_ACCEPTED)
def create_job(body: CreateJobRequest, queue: JobQueue = Depends(get_queue)) -> dict[str, Any]:
    try:
        job_input = JobInput.build(body.subject, body.role_hint, body.wants_audio)
    except ValidationError as ex:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(ex)) from ex
    try:
        job_id = queue.submit(job_input)
    except DispatchError as ex:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(ex)) from ex
    return {"id": job_id, "status": JobStatus.QUEUED.value}


@router.get("/{id}")
def get_job(id: str, reporter: StatusReporter = Depends(get_reporter)) -> dict[str, Any]:
    try:
        return reporter.status(id)
    except JobNotFound as ex:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(ex)) from ex


@router.get("/{id}/artifacts/{kind}")
def get_artifact(id: str, kind: str, reporter: StatusReporter = Depends(get_reporter)) -> Response:
    if kind not in {k.value for k in ArtifactKind}:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown artifact kind: {kind}")
    try:
        data = reporter.artifact(id, kind)
    except (JobNotFound, ArtifactNotFound) as ex:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(ex)) from ex
    except ValueError as ex:
        # recorded location resolves outside the artifact root
        logger.error("artifact_path_rejected", job_id=id, kind=kind, error=str(ex))
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found") from ex
    return Response(content=data, media_type=media_type(kind))
