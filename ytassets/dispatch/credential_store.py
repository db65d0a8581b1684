"""Credential Store — persisted pool of provider API keys.

The dispatcher only needs four operations (find, touch, deactivate, add);
two implementations are provided:
  - InMemoryCredentialStore: process-local, used for env-only runs and tests
  - SqlCredentialStore: SQLAlchemy async over the provider_credentials table,
    secrets encrypted at rest with Fernet
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import func, select, update

from ytassets.core.encryption import decrypt_value, encrypt_value, rotate_value
from ytassets.dispatch.types import Credential
from ytassets.models.credential import ProviderCredential

logger = logging.getLogger(__name__)

# Environment variable → provider tag used when seeding an empty store
SEED_ENV_VARS: dict[str, str] = {
    "API_AUTH_TOKEN": "whisk",
    "IMAGEFX_API_KEY": "imagefx",
    "ELEVENLABS_API_KEY": "elevenlabs",
}


class CredentialStore(Protocol):
    """Source of truth for credentials; serializes conflicting updates itself."""

    async def find_active_least_recently_used(self, provider: str) -> Credential | None: ...

    async def touch_last_used(self, credential_id: str) -> None: ...

    async def deactivate(self, credential_id: str) -> None:
        """Mark inactive and increment the error counter."""
        ...

    async def add(self, provider: str, secret: str) -> Credential: ...

    async def list_all(self) -> list[Credential]: ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryCredentialStore:
    """Dict-backed credential store."""

    def __init__(self, credentials: list[Credential] | None = None):
        self._credentials: dict[str, Credential] = {}
        self._lock = asyncio.Lock()
        for cred in credentials or []:
            self._credentials[cred.id] = cred

    async def find_active_least_recently_used(self, provider: str) -> Credential | None:
        async with self._lock:
            candidates = [c for c in self._credentials.values() if c.is_active and c.provider == provider]
            if not candidates:
                return None
            chosen = min(candidates, key=lambda c: c.last_used_at)
            # Hand out a snapshot so callers never see later store mutations
            return Credential(**vars(chosen))

    async def touch_last_used(self, credential_id: str) -> None:
        async with self._lock:
            cred = self._credentials.get(credential_id)
            if cred is not None:
                cred.last_used_at = datetime.now(timezone.utc)

    async def deactivate(self, credential_id: str) -> None:
        async with self._lock:
            cred = self._credentials.get(credential_id)
            if cred is not None:
                cred.is_active = False
                cred.error_count += 1

    async def reactivate(self, credential_id: str) -> None:
        """External reset of a flagged credential."""
        async with self._lock:
            cred = self._credentials.get(credential_id)
            if cred is not None:
                cred.is_active = True

    async def add(self, provider: str, secret: str) -> Credential:
        cred = Credential(id=uuid.uuid4().hex, secret=secret, provider=provider)
        async with self._lock:
            self._credentials[cred.id] = cred
        return Credential(**vars(cred))

    async def list_all(self) -> list[Credential]:
        async with self._lock:
            return [Credential(**vars(c)) for c in self._credentials.values()]

    def get(self, credential_id: str) -> Credential | None:
        return self._credentials.get(credential_id)


# ---------------------------------------------------------------------------
# SQL store
# ---------------------------------------------------------------------------


def _to_credential(row: Any) -> Credential:
    last_used = row.last_used_at
    if last_used is not None and last_used.tzinfo is None:
        last_used = last_used.replace(tzinfo=timezone.utc)
    created = row.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return Credential(
        id=str(row.id),
        secret=decrypt_value(row.secret_encrypted),
        provider=row.provider,
        is_active=row.is_active,
        error_count=row.error_count,
        last_used_at=last_used,
        created_at=created,
    )


class SqlCredentialStore:
    """Credential store over the provider_credentials table.

    Each operation opens its own session from *session_factory*, so the store
    can be shared by concurrently running jobs.
    """

    def __init__(self, session_factory: Any):
        self._session_factory = session_factory

    async def find_active_least_recently_used(self, provider: str) -> Credential | None:
        stmt = (
            select(ProviderCredential)
            .where(ProviderCredential.is_active.is_(True), ProviderCredential.provider == provider)
            .order_by(ProviderCredential.last_used_at.asc())
            .limit(1)
        )
        async with self._session_factory() as db:
            row = (await db.execute(stmt)).scalar_one_or_none()
            return _to_credential(row) if row is not None else None

    async def touch_last_used(self, credential_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(ProviderCredential)
                .where(ProviderCredential.id == uuid.UUID(credential_id))
                .values(last_used_at=datetime.now(timezone.utc))
            )
            await db.commit()

    async def deactivate(self, credential_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(ProviderCredential)
                .where(ProviderCredential.id == uuid.UUID(credential_id))
                .values(is_active=False, error_count=ProviderCredential.error_count + 1)
            )
            await db.commit()

    async def add(self, provider: str, secret: str) -> Credential:
        now = datetime.now(timezone.utc)
        row = ProviderCredential(
            id=uuid.uuid4(),
            provider=provider,
            secret_encrypted=encrypt_value(secret),
            is_active=True,
            error_count=0,
            last_used_at=now,
            created_at=now,
        )
        async with self._session_factory() as db:
            db.add(row)
            await db.commit()
        logger.info("Added API key for provider: %s", provider)
        return _to_credential(row)

    async def list_all(self) -> list[Credential]:
        async with self._session_factory() as db:
            rows = (await db.execute(select(ProviderCredential).order_by(ProviderCredential.provider))).scalars().all()
            return [_to_credential(r) for r in rows]

    async def rotate_secrets(self) -> int:
        """Re-encrypt every stored secret under the primary FERNET_KEY."""
        async with self._session_factory() as db:
            rows = (await db.execute(select(ProviderCredential))).scalars().all()
            for row in rows:
                row.secret_encrypted = rotate_value(row.secret_encrypted)
            await db.commit()
        logger.info("Re-encrypted %d API keys", len(rows))
        return len(rows)

    async def count(self) -> int:
        async with self._session_factory() as db:
            return (await db.execute(select(func.count()).select_from(ProviderCredential))).scalar_one()


# ---------------------------------------------------------------------------
# Seeding & reporting
# ---------------------------------------------------------------------------


async def seed_credentials_from_env(
    store: CredentialStore,
    env: Mapping[str, str] | None = None,
) -> int:
    """Insert keys from the environment when the store is still empty.

    Returns the number of credentials inserted (0 if the store already had keys).
    Raises ValueError when the store is empty and no key variables are set.
    """
    env = os.environ if env is None else env

    existing = await store.list_all()
    if existing:
        logger.info("API keys already exist (%d found), skipping seed", len(existing))
        return 0

    inserted = 0
    for var, provider in SEED_ENV_VARS.items():
        value = env.get(var, "")
        if value:
            await store.add(provider, value)
            inserted += 1
            logger.info("Seeded %s API key from %s", provider, var)

    if inserted == 0:
        raise ValueError("no API keys found in environment variables")

    logger.info("Successfully seeded %d API keys", inserted)
    return inserted


def format_credential_stats(credentials: list[Credential], now: datetime | None = None) -> str:
    """Render a usage table: provider, status, error count, time since last use."""
    now = now or datetime.now(timezone.utc)
    lines = ["=== API Key Usage Statistics ==="]
    for cred in credentials:
        status = "ACTIVE" if cred.is_active else "INACTIVE"
        idle_minutes = int((now - cred.last_used_at).total_seconds() // 60)
        lines.append(
            f"ID: {cred.short_id} | Provider: {cred.provider} | Status: {status} "
            f"| Errors: {cred.error_count} | Last Used: {idle_minutes}m ago"
        )
    lines.append("=" * 33)
    return "\n".join(lines)
