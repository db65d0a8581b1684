import asyncio
import base64
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from ytassets.core.config import settings

# Override settings for tests
settings.fernet_key = "KxJCocbnA3KD20pkgSN3uUZybasKP1X9lAJDX4oLxoQ="  # test-only Fernet key
settings.app_env = "development"

from ytassets.dispatch.credential_pool import CredentialPool  # noqa: E402
from ytassets.dispatch.credential_store import InMemoryCredentialStore  # noqa: E402
from ytassets.dispatch.types import (  # noqa: E402
    Credential,
    GeneratedImage,
    ImageRequest,
    Job,
    JobTarget,
    ProviderOutcome,
    ProviderResponse,
    WhiskRequest,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-bytes"
ENCODED_IMAGE = base64.b64encode(PNG_BYTES).decode()

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_credential(cred_id: str, provider: str = "whisk", minutes_ago: int = 0, **kwargs) -> Credential:
    """Credential whose last use lies *minutes_ago* before a fixed base time."""
    kwargs.setdefault("last_used_at", _BASE_TIME - timedelta(minutes=minutes_ago))
    return Credential(id=cred_id, secret=f"secret-{cred_id}", provider=provider, **kwargs)


def make_job(job_id: str, prompt: str = "a calm lake at dawn", seed: int = 42) -> Job:
    return Job(request=WhiskRequest(prompt=prompt, seed=seed), target=JobTarget(chunk_index=1), id=job_id)


def ok_response(seed: int = 7) -> ProviderResponse:
    return ProviderResponse(
        outcome=ProviderOutcome.SUCCESS,
        status_code=200,
        images=[GeneratedImage(encoded_image=ENCODED_IMAGE, seed=seed, media_generation_id="m1")],
    )


def error_response(outcome: ProviderOutcome, status_code: int, reason: str = "") -> ProviderResponse:
    return ProviderResponse(
        outcome=outcome,
        status_code=status_code,
        error_message=f"request failed with status {status_code}",
        error_reason=reason,
    )


def policy_response() -> ProviderResponse:
    return error_response(ProviderOutcome.CONTENT_POLICY, 400, "PUBLIC_ERROR_UNSAFE_GENERATION")


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


Responder = Callable[[ImageRequest, Credential, int], ProviderResponse]


class FakeProvider:
    """Stand-in for ImageProviderClient that records calls and concurrency."""

    def __init__(self, responder: Responder | None = None, delay: float = 0.0):
        self.responder = responder or (lambda request, credential, n: ok_response())
        self.delay = delay
        self.calls: list[tuple[str, str]] = []  # (prompt, credential id)
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, request: ImageRequest, credential: Credential, timeout: float = 60.0) -> ProviderResponse:
        self.calls.append((request.prompt, credential.id))
        n = len(self.calls)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return self.responder(request, credential, n)
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def two_credentials():
    return [make_credential("cred-a", minutes_ago=10), make_credential("cred-b", minutes_ago=5)]


@pytest.fixture
def store(two_credentials):
    return InMemoryCredentialStore(two_credentials)


@pytest.fixture
def pool(store):
    return CredentialPool(store)
