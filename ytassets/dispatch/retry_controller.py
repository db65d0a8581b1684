"""Retry/Backoff Controller — drives one job to a terminal outcome.

Two independent retry budgets per job:
  - infrastructure retries (429 / 5xx / transport): flag the credential,
    back off exponentially, retry with a freshly selected credential
  - content retries (policy refusal): rewrite the prompt and resubmit,
    credential untouched; exhaustion means SKIPPED, not FAILED

Backoff strategy:
  delay = min(initial * multiplier^attempt, max_delay)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ytassets.core.metrics import BACKOFF_DELAY
from ytassets.dispatch.credential_pool import CredentialPool
from ytassets.dispatch.errors import (
    BatchCancelledError,
    ContentPolicyError,
    CredentialExhaustionError,
    NoActiveCredentialError,
    PermanentClientError,
    ProviderResponseError,
    TransientInfraError,
)
from ytassets.dispatch.prompt_transform import PromptTransform, SafetyFramingTransform
from ytassets.dispatch.rate_limiter import SlidingWindowRateLimiter
from ytassets.dispatch.timing import SleepFunc, check_cancelled, interruptible_sleep
from ytassets.dispatch.types import (
    DispatchConfig,
    Job,
    JobResult,
    JobStatus,
    ProviderOutcome,
    ProviderResponse,
)

logger = logging.getLogger(__name__)


class RetryController:
    """Submits a job's request until it completes, fails, or is refused for good.

    Usage:
        controller = RetryController(pool, limiter, client, config)
        result = await controller.submit(job, max_infra_retries=3, max_content_retries=3)
    """

    def __init__(
        self,
        pool: CredentialPool,
        rate_limiter: SlidingWindowRateLimiter | None,
        client: Any,
        config: DispatchConfig | None = None,
        prompt_transform: PromptTransform | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.pool = pool
        self.rate_limiter = rate_limiter
        self.client = client
        self.config = config or DispatchConfig()
        self.prompt_transform = prompt_transform or SafetyFramingTransform()
        self._sleep = sleep

    def calculate_backoff(self, attempt: int) -> float:
        """Delay before infra retry number *attempt* (0-based)."""
        return self.compute_backoff(
            attempt,
            initial=self.config.initial_retry_delay,
            multiplier=self.config.backoff_multiplier,
            max_delay=self.config.max_retry_delay,
        )

    @staticmethod
    def compute_backoff(
        attempt: int,
        initial: float = 2.0,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
    ) -> float:
        """Formula: min(initial * multiplier^attempt, max_delay)."""
        return min(initial * (multiplier**attempt), max_delay)

    async def submit(
        self,
        job: Job,
        max_infra_retries: int | None = None,
        max_content_retries: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> JobResult:
        """Drive *job* to completed / failed / skipped. Never raises for job-level errors."""
        if max_infra_retries is None:
            max_infra_retries = self.config.max_infra_retries
        if max_content_retries is None:
            max_content_retries = self.config.max_content_retries

        original_prompt = job.request.prompt
        log_ctx = {"job_id": job.id, "provider": job.provider}
        request = job.request
        infra_attempt = 0
        content_attempt = 0
        calls = 0

        def result(status: JobStatus, error: Exception | None = None, response: ProviderResponse | None = None):
            return JobResult(
                job_id=job.id,
                status=status,
                error=error,
                attempts=calls,
                content_rewrites=content_attempt,
                final_prompt=request.prompt,
                response=response,
            )

        while True:
            try:
                check_cancelled(cancel)
                credential = await self.pool.get_active(job.provider)
                if self.rate_limiter is not None:
                    await self.rate_limiter.wait(cancel)
                check_cancelled(cancel)
                # Another job may have flagged the key while we waited for a slot
                if not credential.is_active:
                    credential = await self.pool.get_active(job.provider)
            except NoActiveCredentialError as e:
                logger.error("Job %s: %s", job.id, e, extra=log_ctx)
                return result(JobStatus.FAILED, CredentialExhaustionError(e.provider, str(e)))
            except BatchCancelledError as e:
                return result(JobStatus.FAILED, e)

            calls += 1
            response = await self.client.send(request, credential, timeout=self.config.request_timeout)
            outcome = response.outcome

            if outcome == ProviderOutcome.SUCCESS:
                return result(JobStatus.COMPLETED, response=response)

            if outcome.is_transient:
                await self.pool.flag_problematic(
                    credential,
                    f"{outcome.value} (HTTP {response.status_code}): {response.error_message}",
                )
                if infra_attempt >= max_infra_retries:
                    logger.warning("Job %s: giving up after %d infra retries", job.id, infra_attempt, extra=log_ctx)
                    return result(
                        JobStatus.FAILED,
                        TransientInfraError(
                            f"max retry attempts exceeded: {response.error_message}",
                            status_code=response.status_code,
                            error_code=outcome.value,
                        ),
                    )

                delay = self.calculate_backoff(infra_attempt)
                infra_attempt += 1
                BACKOFF_DELAY.observe(delay)
                logger.info(
                    "Job %s: %s, retrying with a new key (attempt %d/%d) in %.1fs",
                    job.id,
                    outcome.value,
                    infra_attempt,
                    max_infra_retries,
                    delay,
                    extra=log_ctx,
                )
                try:
                    await interruptible_sleep(delay, cancel, sleep=self._sleep)
                except BatchCancelledError as e:
                    return result(JobStatus.FAILED, e)
                continue

            if outcome == ProviderOutcome.CONTENT_POLICY:
                if content_attempt >= max_content_retries:
                    logger.info(
                        "Job %s: content policy violation persists after %d rewrites, skipping",
                        job.id,
                        content_attempt,
                        extra=log_ctx,
                    )
                    return result(
                        JobStatus.SKIPPED,
                        ContentPolicyError(
                            f"content policy violation persists after {content_attempt + 1} attempts",
                            status_code=response.status_code,
                            error_code=response.error_reason,
                        ),
                    )

                content_attempt += 1
                request = request.with_prompt(self.prompt_transform(original_prompt, content_attempt))
                logger.info(
                    "Job %s: content retry %d/%d, prompt rewritten to: %s",
                    job.id,
                    content_attempt,
                    max_content_retries,
                    request.prompt,
                    extra=log_ctx,
                )
                continue

            if outcome == ProviderOutcome.INVALID_RESPONSE:
                return result(
                    JobStatus.FAILED,
                    ProviderResponseError(response.error_message, status_code=response.status_code),
                )

            # Other 4xx: likely an authorization/configuration problem with the key
            await self.pool.flag_problematic(
                credential,
                f"HTTP {response.status_code}: {response.error_message}",
            )
            return result(
                JobStatus.FAILED,
                PermanentClientError(response.error_message, status_code=response.status_code),
            )
