from __future__ import annotations


class BriefingError(Exception):
    """Base class for every error this package raises on purpose."""


class ValidationError(BriefingError, ValueError):
    """Bad or missing input at submission; no job record is created."""


class DispatchError(BriefingError, RuntimeError):
    """The job was recorded but its execution could not be started."""


class JobNotFound(BriefingError, KeyError):
    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = str(job_id)

    def __str__(self) -> str:
        return f"job not found: {self.job_id}"


class ArtifactNotFound(BriefingError, LookupError):
    def __init__(self, job_id: str, kind: str) -> None:
        super().__init__(f"{kind} artifact not available for job {job_id}")
        self.job_id = str(job_id)
        self.kind = str(kind)


class InvalidTransition(BriefingError, RuntimeError):
    """A store update would move a record backwards or out of a terminal status."""


class GenerationError(BriefingError):
    """Failure raised by the generation client."""


class TransientFailure(GenerationError):
    """Network, timeout or rate-limit class failure; the same request may succeed later."""


class ContentFailure(GenerationError):
    """The service answered, but the answer is unusable (blocked, truncated, empty, malformed)."""


class StageFailure(BriefingError):
    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = str(stage)


class PrimaryPipelineFailure(BriefingError):
    """Terminal: the primary artifact could not be produced; the job moves to failed."""


class SecondaryStageFailure(BriefingError):
    """Non-terminal: confined to the audio branch of a completed job."""


class JobTimeout(BriefingError, TimeoutError):
    """The whole-job wall-clock ceiling was exceeded."""


class FFmpegError(BriefingError, RuntimeError):
    pass
