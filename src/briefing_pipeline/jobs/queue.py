from __future__ import annotations

import asyncio
from contextlib import suppress

from briefing_pipeline.errors import DispatchError, InvalidTransition, JobNotFound
from briefing_pipeline.jobs.models import (
    AudioStatus,
    JobInput,
    JobStatus,
    JobUpdate,
    is_running,
    now_utc,
)
from briefing_pipeline.jobs.runner import PipelineRunner
from briefing_pipeline.jobs.store import JobStore
from briefing_pipeline.jobs.watchdog import Deadline
from briefing_pipeline.ops.metrics import job_errors, jobs_finished, jobs_submitted
from briefing_pipeline.utils.log import bind_job, logger


class JobQueue:
    """
    In-process worker pool fed by an asyncio.Queue.

    submit() only records the job and enqueues its id; workers run the blocking
    PipelineRunner in a thread under a whole-job wall-clock guard.
    """

    def __init__(
        self,
        store: JobStore,
        runner: PipelineRunner,
        *,
        concurrency: int = 1,
        job_timeout_s: float = 900.0,
    ) -> None:
        self.store = store
        self.runner = runner
        self.concurrency = max(1, int(concurrency))
        self.job_timeout_s = float(job_timeout_s)
        self._q: asyncio.Queue[str] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks) and self._q is not None

    def submit(self, job_input: JobInput) -> str:
        """
        Record a queued job and hand it to the workers without waiting on it.

        Raises ValidationError before anything is recorded, or DispatchError (after
        marking the record failed) when workers are not running.
        """
        job_input = JobInput.build(job_input.subject, job_input.role_hint, job_input.wants_audio)
        job_id = self.store.create(job_input)
        jobs_submitted.inc()
        try:
            if not self.running:
                raise RuntimeError("job queue is not running")
            self._enqueue(job_id)
        except Exception as ex:
            msg = f"dispatch failed: {ex}"
            with suppress(InvalidTransition, JobNotFound):
                self.store.update(
                    job_id,
                    JobUpdate(
                        status=JobStatus.FAILED.value, error=msg, log=(f"[{now_utc()}] {msg}",)
                    ),
                )
            jobs_finished.labels(status=JobStatus.FAILED.value).inc()
            logger.error("dispatch_failed", job_id=job_id, error=str(ex))
            raise DispatchError(msg) from ex
        logger.info("job_submitted", job_id=job_id, subject=job_input.subject)
        return job_id

    def _enqueue(self, job_id: str) -> None:
        """
        Hand `job_id` to the workers from any thread. asyncio.Queue is bound to its loop,
        so callers off the loop thread (sync routes run in a threadpool) go
        through call_soon_threadsafe, which also wakes the loop.
        """
        assert self._q is not None and self._loop is not None
        try:
            on_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            self._q.put_nowait(job_id)
        else:
            self._loop.call_soon_threadsafe(self._q.put_nowait, job_id)

    async def start(self) -> None:
        if self._tasks:
            return
        self._loop = asyncio.get_running_loop()
        self._q = asyncio.Queue()

        # Recover unfinished jobs left by a previous process; they rerun from the start.
        recovered = 0
        for j in reversed(self.store.list(limit=10_000)):
            if j.status == JobStatus.QUEUED.value or is_running(j.status):
                with suppress(InvalidTransition, JobNotFound):
                    self.store.update(
                        j.id,
                        JobUpdate(
                            status=JobStatus.QUEUED.value,
                            log=(f"[{now_utc()}] recovered after restart (was {j.status})",),
                        ),
                    )
                    self._q.put_nowait(j.id)
                    recovered += 1

        for _ in range(self.concurrency):
            self._tasks.append(asyncio.create_task(self._worker()))
        logger.info("job_queue_started", concurrency=self.concurrency, recovered=recovered)

    async def stop(self) -> None:
        for t in self._tasks:
            t.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._q = None
        self._loop = None

    async def join(self) -> None:
        """Wait until every enqueued job has been processed."""
        if self._q is not None:
            await self._q.join()

    async def _worker(self) -> None:
        assert self._q is not None
        q = self._q
        while True:
            job_id = await q.get()
            try:
                await self._run_job(job_id)
            except Exception:
                logger.exception("job_worker_error", job_id=job_id)
            finally:
                q.task_done()

    async def _run_job(self, job_id: str) -> None:
        deadline = Deadline(self.job_timeout_s)
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.runner.run, job_id, deadline),
                timeout=self.job_timeout_s,
            )
        except asyncio.TimeoutError:
            self._on_timeout(job_id)

    def _on_timeout(self, job_id: str) -> None:
        """
        The worker thread cannot be interrupted; finalize the record instead so its late
        writes are rejected by the store.
        """
        msg = f"job exceeded its {self.job_timeout_s:.0f}s ceiling"
        with bind_job(job_id):
            logger.error("job_timeout", timeout_s=self.job_timeout_s)
            job_errors.labels(stage="timeout").inc()
            try:
                job = self.store.get(job_id)
            except JobNotFound:
                return
            try:
                if job.status == JobStatus.COMPLETE.value:
                    if job.result.get("audio_status") == AudioStatus.PROCESSING.value:
                        self.store.update(
                            job_id,
                            JobUpdate(
                                result={"audio_status": AudioStatus.FAILED.value, "audio_error": msg},
                                log=(f"[{now_utc()}] podcast: failed: {msg}",),
                            ),
                        )
                    return
                self.store.update(
                    job_id,
                    JobUpdate(
                        status=JobStatus.FAILED.value, error=msg, log=(f"[{now_utc()}] failed: {msg}",)
                    ),
                )
                jobs_finished.labels(status=JobStatus.FAILED.value).inc()
            except InvalidTransition as ex:
                logger.warning("job_timeout_not_recorded", error=str(ex))
