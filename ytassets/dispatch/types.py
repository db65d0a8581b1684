"""Core types and DTOs for the generation job dispatcher."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union

from ytassets.dispatch.errors import BatchFailedError, InvalidStatusTransition

ASPECT_RATIO_LANDSCAPE = "IMAGE_ASPECT_RATIO_LANDSCAPE"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ImageTool(str, Enum):
    """Image generation tools; the value doubles as the credential provider tag."""

    WHISK = "whisk"
    IMAGEFX = "imagefx"


class JobStatus(str, Enum):
    """Lifecycle of a generation job. Transitions are forward-only."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # Content refused by provider policy, not an error

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.SKIPPED)


_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.SKIPPED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.SKIPPED: frozenset(),
}


class ProviderOutcome(str, Enum):
    """Classification of a single provider call."""

    SUCCESS = "success"
    THROTTLED = "throttled"  # HTTP 429
    SERVER_ERROR = "server_error"  # HTTP 5xx
    TRANSPORT_ERROR = "transport_error"  # timeout, connection reset, unreadable body
    CONTENT_POLICY = "content_policy"  # PUBLIC_ERROR_UNSAFE_GENERATION
    CLIENT_ERROR = "client_error"  # any other 4xx
    INVALID_RESPONSE = "invalid_response"  # 200 with an undecodable body

    @property
    def is_transient(self) -> bool:
        return self in (
            ProviderOutcome.THROTTLED,
            ProviderOutcome.SERVER_ERROR,
            ProviderOutcome.TRANSPORT_ERROR,
        )


# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------


@dataclass
class Credential:
    """A provider API key plus the usage metadata kept by the credential store."""

    id: str
    secret: str
    provider: str
    is_active: bool = True
    error_count: int = 0
    last_used_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def short_id(self) -> str:
        """Truncated id safe for logs."""
        return self.id[:8] + "..."


# ---------------------------------------------------------------------------
# Request variants: a closed set selected once when the job is built
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WhiskRequest:
    """Whisk generateImage request."""

    tool: ClassVar[ImageTool] = ImageTool.WHISK

    prompt: str
    seed: int
    workflow_id: str = "c1adcfbd-0a10-4476-a265-ee421e26f7ba"
    client_tool: str = "BACKBONE"
    session_id: str = ";1748453848255"
    image_model: str = "IMAGEN_3_5"
    aspect_ratio: str = ASPECT_RATIO_LANDSCAPE
    media_category: str = "MEDIA_CATEGORY_BOARD"

    @property
    def provider(self) -> str:
        return self.tool.value

    def with_prompt(self, prompt: str) -> WhiskRequest:
        return replace(self, prompt=prompt)

    def to_payload(self) -> dict[str, Any]:
        return {
            "clientContext": {
                "workflowId": self.workflow_id,
                "tool": self.client_tool,
                "sessionId": self.session_id,
            },
            "imageModelSettings": {
                "imageModel": self.image_model,
                "aspectRatio": self.aspect_ratio,
            },
            "seed": self.seed,
            "prompt": self.prompt,
            "mediaCategory": self.media_category,
        }


@dataclass(frozen=True)
class ImageFxRequest:
    """ImageFX runImageFx request (single prompt per request)."""

    tool: ClassVar[ImageTool] = ImageTool.IMAGEFX

    prompt: str
    seed: int
    candidates_count: int = 1
    session_id: str = ";1749359707591"
    client_tool: str = "IMAGE_FX"
    model_name_type: str = "IMAGEN_3_1"
    aspect_ratio: str = ASPECT_RATIO_LANDSCAPE

    @property
    def provider(self) -> str:
        return self.tool.value

    def with_prompt(self, prompt: str) -> ImageFxRequest:
        return replace(self, prompt=prompt)

    def to_payload(self) -> dict[str, Any]:
        return {
            "userInput": {
                "candidatesCount": self.candidates_count,
                "prompts": [self.prompt],
                "seed": self.seed,
            },
            "clientContext": {
                "sessionId": self.session_id,
                "tool": self.client_tool,
            },
            "modelInput": {"modelNameType": self.model_name_type},
            "aspectRatio": self.aspect_ratio,
        }


ImageRequest = Union[WhiskRequest, ImageFxRequest]

REQUEST_TYPES: dict[ImageTool, type] = {
    ImageTool.WHISK: WhiskRequest,
    ImageTool.IMAGEFX: ImageFxRequest,
}


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JobTarget:
    """Where a job's output belongs: the visual chunk record it illustrates."""

    record_id: str = ""
    chunk_index: int = 0
    prompt_index: int = 0
    start_time: str = ""  # SRT timestamp, e.g. "00:00:01,500"
    end_time: str = ""


@dataclass
class Job:
    """One unit of work: a request payload plus a target for its result."""

    request: ImageRequest
    target: JobTarget = field(default_factory=JobTarget)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    status: JobStatus = JobStatus.PENDING

    @property
    def provider(self) -> str:
        return self.request.provider

    def advance(self, status: JobStatus) -> None:
        """Move to *status*, refusing any backwards or sideways transition."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.id, self.status, status)
        self.status = status


# ---------------------------------------------------------------------------
# Provider response
# ---------------------------------------------------------------------------


@dataclass
class GeneratedImage:
    """A single generated image from a successful response."""

    encoded_image: str
    seed: int = 0
    media_generation_id: str = ""
    prompt: str = ""


@dataclass
class ProviderResponse:
    """Classified result of one provider call."""

    outcome: ProviderOutcome
    status_code: int = 0
    images: list[GeneratedImage] = field(default_factory=list)
    error_message: str = ""
    error_reason: str = ""  # structured reason code from the error details
    latency_ms: int = 0
    raw: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class JobResult:
    """Final outcome of one job within a batch."""

    job_id: str
    status: JobStatus
    error: Exception | None = None
    attempts: int = 0  # Provider calls made
    content_rewrites: int = 0
    final_prompt: str = ""
    response: ProviderResponse | None = None

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error is not None else ""

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "error": self.error_message,
            "error_type": type(self.error).__name__ if self.error is not None else "",
            "attempts": self.attempts,
            "content_rewrites": self.content_rewrites,
            "final_prompt": self.final_prompt,
        }


@dataclass
class BatchResult:
    """Per-job results of a batch plus the aggregate error flag."""

    results: list[JobResult] = field(default_factory=list)

    def _count(self, status: JobStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def completed(self) -> int:
        return self._count(JobStatus.COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(JobStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(JobStatus.SKIPPED)

    @property
    def failed_results(self) -> list[JobResult]:
        return [r for r in self.results if r.status == JobStatus.FAILED]

    @property
    def error(self) -> BatchFailedError | None:
        """Aggregate error, set only when at least one job failed."""
        failed = self.failed_results
        return BatchFailedError(failed) if failed else None

    def raise_for_failures(self) -> None:
        error = self.error
        if error is not None:
            raise error

    def by_job_id(self) -> dict[str, JobResult]:
        return {r.job_id: r for r in self.results}

    def to_dict(self) -> dict:
        return {
            "total": len(self.results),
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.to_dict() for r in self.results],
        }


# ---------------------------------------------------------------------------
# Dispatch config
# ---------------------------------------------------------------------------


@dataclass
class DispatchConfig:
    """Throughput, retry and timeout parameters for a batch run."""

    concurrency: int = 2  # Max jobs in flight
    requests_per_minute: int = 15  # 0 disables rate limiting
    rate_window_seconds: float = 60.0
    request_timeout: float = 60.0  # Per provider call
    max_infra_retries: int = 3
    max_content_retries: int = 3
    initial_retry_delay: float = 2.0  # Base delay for exponential backoff (seconds)
    backoff_multiplier: float = 2.0
    max_retry_delay: float = 30.0  # Cap on retry delay

    @classmethod
    def from_settings(cls, settings: Any) -> DispatchConfig:
        return cls(
            concurrency=settings.max_concurrency,
            requests_per_minute=settings.requests_per_minute,
            request_timeout=settings.request_timeout,
            max_infra_retries=settings.retry_attempts,
            max_content_retries=settings.max_content_retries,
            initial_retry_delay=settings.initial_retry_delay,
            backoff_multiplier=settings.backoff_multiplier,
            max_retry_delay=settings.max_retry_delay,
        )
