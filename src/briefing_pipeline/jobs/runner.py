from __future__ import annotations

import time
from contextlib import suppress
from typing import Any

from briefing_pipeline.errors import (
    InvalidTransition,
    PrimaryPipelineFailure,
    SecondaryStageFailure,
    StageFailure,
)
from briefing_pipeline.generation.client import GenerationClient
from briefing_pipeline.jobs.context import StageContext
from briefing_pipeline.jobs.limits import PipelineConfig
from briefing_pipeline.jobs.models import (
    AudioStatus,
    JobRecord,
    JobStatus,
    JobUpdate,
    is_terminal,
    now_utc,
    running,
)
from briefing_pipeline.jobs.store import JobStore
from briefing_pipeline.jobs.watchdog import Deadline
from briefing_pipeline.ops.metrics import (
    audio_outcomes,
    job_errors,
    job_seconds,
    jobs_finished,
    stage_seconds,
    time_hist,
)
from briefing_pipeline.stages import career, podcast, publish, trends
from briefing_pipeline.stages.sections import SECTIONS, Section, SectionResult, write_section
from briefing_pipeline.storage.artifacts import ArtifactStore
from briefing_pipeline.utils.log import bind_job, logger


def _entry(msg: str) -> str:
    return f"[{now_utc()}] {msg}"


class PipelineRunner:
    """
    Executes one job end to end: trends, sections, career, publish, then the optional
    audio branch.

    The runner is the only writer of a job record while it owns the job. Every stage
    output is merged into the record before the next stage starts.
    """

    def __init__(
        self,
        store: JobStore,
        client: GenerationClient,
        artifacts: ArtifactStore,
        config: PipelineConfig,
        *,
        sections: tuple[Section, ...] = SECTIONS,
    ) -> None:
        self.store = store
        self.client = client
        self.artifacts = artifacts
        self.config = config
        self.sections = tuple(sections)

    def _update(self, job_id: str, **kw: Any) -> JobRecord:
        log = kw.pop("log", ())
        if isinstance(log, str):
            log = (log,)
        return self.store.update(job_id, JobUpdate(log=tuple(_entry(x) for x in log), **kw))

    def _enter(self, job_id: str, stage: str, label: str | None = None) -> None:
        self._update(job_id, status=running(stage), log=f"{label or stage}: started")

    def run(self, job_id: str, deadline: Deadline | None = None) -> JobRecord:
        job = self.store.get(job_id)
        if is_terminal(job.status):
            logger.info("job_already_finished", job_id=job_id, status=job.status)
            return job

        ctx = StageContext(
            job_id=job.id,
            job_input=job.input,
            client=self.client,
            artifacts=self.artifacts,
            config=self.config,
            deadline=deadline or Deadline(self.config.job_timeout_s),
        )
        t0 = time.perf_counter()
        with bind_job(job_id), time_hist(job_seconds):
            logger.info("job_started", subject=job.input.subject, wants_audio=job.input.wants_audio)
            try:
                document = self._primary(ctx)
            except InvalidTransition as ex:
                # record was finalized elsewhere (dispatcher timeout); drop this execution
                logger.warning("job_abandoned", error=str(ex))
                return self.store.get(job_id)
            except Exception as ex:
                self._fail(ctx, ex)
                return self.store.get(job_id)

            jobs_finished.labels(status=JobStatus.COMPLETE.value).inc()
            if job.input.wants_audio:
                self._audio(ctx, document)
            logger.info("job_finished", status="complete", elapsed_s=round(time.perf_counter() - t0, 2))
        return self.store.get(job_id)

    # primary pipeline

    def _primary(self, ctx: StageContext) -> str:
        jid = ctx.job_id
        stage = trends.NAME
        try:
            ctx.deadline.check(stage)
            self._enter(jid, stage)
            with time_hist(stage_seconds.labels(stage=stage)):
                report = trends.discover(ctx)
            note = " (generic placeholder)" if report.fallback else ""
            self._update(
                jid,
                result={"industry_sector": report.industry_sector, "trends": list(report.trends)},
                log=f"trends: done, {len(report.trends)} trend(s){note}",
            )

            results: list[SectionResult] = []
            for section in self.sections:
                stage = f"section:{section.slug}"
                ctx.deadline.check(stage)
                self._enter(jid, stage, label=f"section '{section.title}'")
                with time_hist(stage_seconds.labels(stage="section")):
                    res = write_section(ctx, section, report.as_text())
                results.append(res)
                outcome = "done" if res.ok else f"content unavailable after {res.attempts} attempt(s)"
                self._update(
                    jid,
                    result={
                        "sections": [
                            {"title": r.title, "ok": r.ok, "attempts": r.attempts} for r in results
                        ]
                    },
                    log=f"section '{section.title}': {outcome}",
                )
            if results and not any(r.ok for r in results):
                raise StageFailure("sections", "every section is unavailable")

            factual = "".join(r.render() for r in results)
            stage = career.NAME
            ctx.deadline.check(stage)
            self._enter(jid, stage)
            with time_hist(stage_seconds.labels(stage=stage)):
                enrichment = career.enrich(ctx, factual)
            self._update(jid, log=f"career: done, {len(enrichment)} chars")

            stage = publish.NAME
            ctx.deadline.check(stage)
            self._enter(jid, stage)
            document = publish.compose(
                subject=ctx.subject,
                role_hint=ctx.job_input.role_hint,
                trends=report,
                sections=results,
                enrichment=enrichment,
            )
            with time_hist(stage_seconds.labels(stage=stage)):
                location = publish.publish(ctx, document)
        except StageFailure as ex:
            job_errors.labels(stage=ex.stage.split(":", 1)[0]).inc()
            raise PrimaryPipelineFailure(str(ex)) from ex
        except Exception:
            job_errors.labels(stage=stage.split(":", 1)[0]).inc()
            raise

        wants_audio = ctx.job_input.wants_audio
        try:
            self._update(
                jid,
                status=JobStatus.COMPLETE.value,
                result={
                    "primary_artifact_location": location,
                    "primary_text": document[: self.config.result_preview_chars],
                    "primary_chars": len(document),
                    "audio_status": (
                        AudioStatus.PROCESSING.value if wants_audio else AudioStatus.DISABLED.value
                    ),
                },
                log=f"publish: done, briefing saved to {location}",
            )
        except InvalidTransition:
            # nobody will ever reference it
            with suppress(OSError, ValueError):
                self.artifacts.resolve(location).unlink()
            raise
        return document

    def _fail(self, ctx: StageContext, ex: Exception) -> None:
        msg = str(ex) or type(ex).__name__
        logger.error("job_failed", error=msg, error_type=type(ex).__name__)
        try:
            self._update(ctx.job_id, status=JobStatus.FAILED.value, error=msg, log=f"failed: {msg}")
        except InvalidTransition as tex:
            logger.warning("job_fail_not_recorded", error=str(tex))
            return
        jobs_finished.labels(status=JobStatus.FAILED.value).inc()

    # secondary branch

    def _audio(self, ctx: StageContext, document: str) -> None:
        """Never raises: every outcome lands in result.audio_status / audio_error."""
        jid = ctx.job_id
        self._update(jid, log="podcast: started")
        try:
            with time_hist(stage_seconds.labels(stage=podcast.NAME)):
                location = podcast.produce(ctx, document)
        except Exception as ex:
            if not isinstance(ex, SecondaryStageFailure):
                logger.exception("podcast_unexpected_error")
            msg = str(ex) or type(ex).__name__
            job_errors.labels(stage=podcast.NAME).inc()
            audio_outcomes.labels(status=AudioStatus.FAILED.value).inc()
            logger.warning("podcast_failed", error=msg)
            with suppress(InvalidTransition):
                self._update(
                    jid,
                    result={"audio_status": AudioStatus.FAILED.value, "audio_error": msg},
                    log=f"podcast: failed: {msg}",
                )
            return

        try:
            self._update(
                jid,
                result={"audio_artifact_location": location, "audio_status": AudioStatus.READY.value},
                log=f"podcast: done, audio saved to {location}",
            )
        except InvalidTransition as ex:
            # audio already finalized elsewhere (dispatcher timeout); the file is orphaned
            logger.warning("podcast_abandoned", error=str(ex))
            with suppress(OSError, ValueError):
                self.artifacts.resolve(location).unlink()
            return
        audio_outcomes.labels(status=AudioStatus.READY.value).inc()
