from __future__ import annotations

from typing import Any

from briefing_pipeline.errors import ArtifactNotFound
from briefing_pipeline.jobs.models import ArtifactKind, AudioStatus, JobStatus
from briefing_pipeline.jobs.store import JobStore
from briefing_pipeline.storage.artifacts import ArtifactStore

# record keys -> names of the public status contract, which the view carries as well
_CONTRACT_RESULT_KEYS = {
    "primary_text": "primaryText",
    "primary_artifact_location": "primaryArtifactLocation",
    "audio_artifact_location": "audioArtifactLocation",
    "audio_status": "audioStatus",
    "audio_error": "audioError",
}

# result key holding the location of each artifact kind
_LOCATION_KEYS = {
    ArtifactKind.PRIMARY.value: "primary_artifact_location",
    ArtifactKind.AUDIO.value: "audio_artifact_location",
}


class StatusReporter:
    """Read-only projections of job records; never writes to the store."""

    def __init__(self, store: JobStore, artifacts: ArtifactStore, base_url: str = "/api/jobs") -> None:
        self.store = store
        self.artifacts = artifacts
        self.base_url = str(base_url).rstrip("/")

    def _download_url(self, job_id: str, kind: str) -> str:
        return f"{self.base_url}/{job_id}/artifacts/{kind}"

    def status(self, id: str) -> dict[str, Any]:
        job = self.store.get(id)
        view = job.to_dict()
        view["input"]["wantsAudio"] = job.input.wants_audio
        for key, alias in _CONTRACT_RESULT_KEYS.items():
            if key in view["result"]:
                view["result"][alias] = view["result"][key]
        if job.status == JobStatus.COMPLETE.value:
            downloads: dict[str, str] = {}
            if job.result.get("primary_artifact_location"):
                downloads[ArtifactKind.PRIMARY.value] = self._download_url(job.id, "primary")
            if job.result.get("audio_status") == AudioStatus.READY.value and job.result.get(
                "audio_artifact_location"
            ):
                downloads[ArtifactKind.AUDIO.value] = self._download_url(job.id, "audio")
            view["downloads"] = downloads
        return view

    def artifact(self, id: str, kind: str) -> bytes:
        """Raw bytes of a persisted artifact; JobNotFound or ArtifactNotFound otherwise."""
        job = self.store.get(id)
        key = _LOCATION_KEYS.get(str(kind))
        if key is None:
            raise ArtifactNotFound(job.id, str(kind))
        location = job.result.get(key)
        if job.status != JobStatus.COMPLETE.value or not location:
            raise ArtifactNotFound(job.id, str(kind))
        if kind == ArtifactKind.AUDIO.value and job.result.get("audio_status") != AudioStatus.READY.value:
            raise ArtifactNotFound(job.id, str(kind))
        if not self.artifacts.exists(str(location)):
            raise ArtifactNotFound(job.id, str(kind))
        return self.artifacts.read_bytes(str(location))
