"""Job Dispatcher — bounded-concurrency batch driver.

Main entry point for generating a batch of images:
  1. Accepts Jobs (from job_builder.build_jobs)
  2. Runs them concurrently, at most C in flight (semaphore)
  3. Each job goes through the RetryController (credential → rate limit → provider)
  4. Completed outputs are handed to the OutputSink
  5. Results are aggregated; only FAILED jobs make the batch an error

Usage:
    dispatcher = JobDispatcher(controller, sink=ImageFileSink("./assets/images"))
    batch = await dispatcher.run_batch(jobs, concurrency=2)
    batch.raise_for_failures()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ytassets.core.metrics import JOBS_FINISHED
from ytassets.dispatch.errors import BatchCancelledError, OutputSinkError
from ytassets.dispatch.output_sink import OutputSink
from ytassets.dispatch.retry_controller import RetryController
from ytassets.dispatch.types import BatchResult, Job, JobResult, JobStatus

logger = logging.getLogger(__name__)

StatusRecorder = Callable[[Job, JobStatus], Awaitable[None]]


class JobDispatcher:
    """Runs batches of generation jobs.

    Integrates:
      - RetryController: per-job credential rotation, rate limiting and retries
      - OutputSink: persistence of completed outputs
      - StatusRecorder: optional hook mirroring job status to an external record
    """

    def __init__(
        self,
        controller: RetryController,
        sink: OutputSink | None = None,
        status_recorder: StatusRecorder | None = None,
        default_concurrency: int | None = None,
    ):
        self.controller = controller
        self.sink = sink
        self.status_recorder = status_recorder
        self.default_concurrency = default_concurrency or controller.config.concurrency

    async def _set_status(self, job: Job, status: JobStatus) -> None:
        job.advance(status)
        if self.status_recorder is None:
            return
        try:
            await self.status_recorder(job, status)
        except Exception as e:
            logger.warning("Failed to record status %s for job %s: %s", status.value, job.id, e)

    async def _run_job(self, job: Job, cancel: asyncio.Event | None) -> JobResult:
        if cancel is not None and cancel.is_set():
            await self._set_status(job, JobStatus.FAILED)
            return JobResult(job_id=job.id, status=JobStatus.FAILED, error=BatchCancelledError("batch cancelled"))

        await self._set_status(job, JobStatus.PROCESSING)
        try:
            result = await self.controller.submit(job, cancel=cancel)
        except Exception as e:
            logger.exception("Job %s crashed", job.id)
            result = JobResult(job_id=job.id, status=JobStatus.FAILED, error=e, final_prompt=job.request.prompt)

        if result.status == JobStatus.COMPLETED and self.sink is not None and result.response is not None:
            # Sink failures are reported, the provider call is not repeated
            try:
                await self.sink.write(job, result.response)
            except OutputSinkError as e:
                self._fail_output(job, result, e)
            except Exception as e:
                self._fail_output(job, result, OutputSinkError(f"processing {job.id} failed: {e}"))

        await self._set_status(job, result.status)
        JOBS_FINISHED.labels(status=result.status.value).inc()
        return result

    @staticmethod
    def _fail_output(job: Job, result: JobResult, error: OutputSinkError) -> None:
        logger.error("Job %s output processing failed: %s", job.id, error)
        result.status = JobStatus.FAILED
        result.error = error

    async def run_batch(
        self,
        jobs: list[Job],
        concurrency: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> BatchResult:
        """Execute all jobs with at most *concurrency* in flight.

        Job failures never abort the batch; inspect the returned BatchResult
        (``.error`` / ``.raise_for_failures()``) for the aggregate outcome.
        Setting *cancel* stops new jobs from starting and interrupts waits.
        """
        if not jobs:
            return BatchResult()

        limit = self.default_concurrency if concurrency is None else concurrency
        if limit < 1:
            raise ValueError("concurrency must be at least 1")
        not_pending = [job.id for job in jobs if job.status != JobStatus.PENDING]
        if not_pending:
            raise ValueError(f"jobs already started: {', '.join(not_pending)}")

        semaphore = asyncio.Semaphore(limit)
        done = 0
        total = len(jobs)

        async def _execute_with_semaphore(job: Job) -> JobResult:
            nonlocal done
            async with semaphore:
                result = await self._run_job(job, cancel)
            done += 1
            logger.info("Request %s %s (%d/%d)", job.id, result.status.value, done, total)
            return result

        # Launch all jobs concurrently (the semaphore bounds in-flight work)
        results = await asyncio.gather(*(_execute_with_semaphore(job) for job in jobs))

        batch = BatchResult(results=list(results))
        self._log_summary(batch, jobs)
        return batch

    @staticmethod
    def _log_summary(batch: BatchResult, jobs: list[Job]) -> None:
        prompts = {job.id: job.request.prompt for job in jobs}
        for r in batch.results:
            if r.status == JobStatus.SKIPPED:
                logger.info("Skipped %s due to content policy violation; prompt was: %s", r.job_id, prompts[r.job_id])
            elif r.status == JobStatus.FAILED:
                logger.error("Failed %s: %s", r.job_id, r.error_message)

        logger.info(
            "Execution summary: total=%d successful=%d skipped(content policy)=%d failed=%d",
            len(batch.results),
            batch.completed,
            batch.skipped,
            batch.failed,
        )
        if batch.skipped and not batch.failed:
            logger.info(
                "%d requests were skipped due to content policy violations. This is normal and expected.",
                batch.skipped,
            )


def create_dispatcher(
    store,
    settings,
    sink: OutputSink | None = None,
    status_recorder: StatusRecorder | None = None,
    client=None,
) -> JobDispatcher:
    """Wire pool, rate limiter, provider client and controller from settings."""
    from ytassets.dispatch.credential_pool import CredentialPool
    from ytassets.dispatch.prompt_transform import SafetyFramingTransform
    from ytassets.dispatch.provider_client import ImageProviderClient
    from ytassets.dispatch.rate_limiter import SlidingWindowRateLimiter
    from ytassets.dispatch.types import DispatchConfig

    config = DispatchConfig.from_settings(settings)
    limiter = (
        SlidingWindowRateLimiter(config.requests_per_minute, window=config.rate_window_seconds)
        if config.requests_per_minute > 0
        else None
    )
    controller = RetryController(
        pool=CredentialPool(store),
        rate_limiter=limiter,
        client=client or ImageProviderClient.from_settings(settings),
        config=config,
        prompt_transform=SafetyFramingTransform(settings.banned_terms_list),
    )
    return JobDispatcher(controller, sink=sink, status_recorder=status_recorder)
