"""Error taxonomy for the generation job dispatcher.

  - TransientInfraError: 429 / 5xx / transport failures, retried with backoff
  - ContentPolicyError: provider refused the prompt, retried via prompt rewriting
  - CredentialExhaustionError: no active credential left for a provider
  - PermanentClientError: any other 4xx, never retried
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ytassets.dispatch.types import JobResult, JobStatus


class DispatchError(Exception):
    """Base class for all dispatcher errors."""


class ProviderCallError(DispatchError):
    """A provider call ended with an error outcome."""

    def __init__(self, message: str, status_code: int = 0, error_code: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class TransientInfraError(ProviderCallError):
    """Throttling, server error or transport failure that outlived its retries."""


class PermanentClientError(ProviderCallError):
    """A 4xx response other than 429 or a content-policy refusal."""


class ContentPolicyError(ProviderCallError):
    """The provider refused the prompt content (terminal for the prompt, not the job)."""


class ProviderResponseError(ProviderCallError):
    """A 200 response whose body could not be decoded."""


class CredentialExhaustionError(DispatchError):
    """No active credential is available for a provider."""

    def __init__(self, provider: str, message: str = ""):
        super().__init__(message or f"no active API keys found for provider '{provider}'")
        self.provider = provider


class NoActiveCredentialError(CredentialExhaustionError):
    """Raised by the credential pool when the store has nothing to hand out."""


class OutputSinkError(DispatchError):
    """Persisting a completed job's output failed."""


class BatchCancelledError(DispatchError):
    """The batch cancel signal was set while the job was waiting or pending."""


class InvalidStatusTransition(DispatchError):
    """A job status change that would break the pending → processing → terminal order."""

    def __init__(self, job_id: str, current: JobStatus, new: JobStatus):
        super().__init__(f"job {job_id}: cannot move from {current.value} to {new.value}")
        self.job_id = job_id
        self.current = current
        self.new = new


class BatchFailedError(DispatchError):
    """At least one job in a batch ended failed (content-policy skips do not count)."""

    def __init__(self, failed: list[JobResult]):
        super().__init__(f"encountered {len(failed)} critical errors during concurrent requests")
        self.failed = failed
