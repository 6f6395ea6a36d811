from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from briefing_pipeline.generation.client import GenerationClient
from briefing_pipeline.jobs.limits import PipelineConfig
from briefing_pipeline.jobs.models import JobInput
from briefing_pipeline.jobs.watchdog import Deadline
from briefing_pipeline.storage.artifacts import ArtifactStore
from briefing_pipeline.utils.log import logger


@dataclass(frozen=True, slots=True)
class StageContext:
    """
    Job-scoped inputs handed to every stage.

    Stages read from it and return their output; only the runner writes the job record.
    """

    job_id: str
    job_input: JobInput
    client: GenerationClient
    artifacts: ArtifactStore
    config: PipelineConfig
    deadline: Deadline

    @property
    def subject(self) -> str:
        return self.job_input.subject

    def bind_logger(self, **fields: Any):
        return logger.bind(job_id=self.job_id, **fields)
