"""Credential Pool Manager — caches and rotates the active key per provider.

One credential per provider is cached as "current". Failing calls demote the
credential in the store and evict it from the cache, so the next caller
reselects the least-recently-used active key.

Cache reads are lock-free; caching a new selection or evicting takes the lock.
"""

from __future__ import annotations

import asyncio
import logging

from ytassets.core.metrics import CREDENTIALS_FLAGGED
from ytassets.dispatch.credential_store import CredentialStore
from ytassets.dispatch.errors import NoActiveCredentialError
from ytassets.dispatch.types import Credential

logger = logging.getLogger(__name__)


class CredentialPool:
    """Per-provider cache in front of a CredentialStore.

    Usage:
        pool = CredentialPool(store)

        cred = await pool.get_active("whisk")
        ...
        # After a failing call:
        await pool.flag_problematic(cred, "HTTP 429")
    """

    def __init__(self, store: CredentialStore):
        self.store = store
        self._current: dict[str, Credential] = {}
        self._lock = asyncio.Lock()

    def _cached(self, provider: str) -> Credential | None:
        cred = self._current.get(provider)
        if cred is not None and cred.is_active and cred.provider == provider:
            return cred
        return None

    async def get_active(self, provider: str) -> Credential:
        """Return the current credential for *provider*, selecting a new one if needed.

        Raises NoActiveCredentialError when the store has no active key.
        """
        cred = self._cached(provider)
        if cred is not None:
            return cred

        async with self._lock:
            # Another caller may have selected one while we waited
            cred = self._cached(provider)
            if cred is not None:
                return cred

            cred = await self.store.find_active_least_recently_used(provider)
            if cred is None:
                raise NoActiveCredentialError(provider)

            try:
                await self.store.touch_last_used(cred.id)
            except Exception as e:
                logger.warning("Failed to update last_used for key %s: %s", cred.short_id, e)

            self._current[provider] = cred
            logger.info("Selected API key %s for provider %s", cred.short_id, provider)
            return cred

    async def flag_problematic(self, credential: Credential, reason: str) -> None:
        """Deactivate the credential in the store and evict it from the cache.

        Jobs sharing the cached credential see ``is_active`` drop to False.
        Flagging an already inactive credential is a no-op.
        """
        async with self._lock:
            if not credential.is_active:
                logger.debug("API key %s already flagged: %s", credential.short_id, reason)
                return
            credential.is_active = False
            await self.store.deactivate(credential.id)

            cached = self._current.get(credential.provider)
            if cached is not None and cached.id == credential.id:
                cached.is_active = False
                del self._current[credential.provider]

        CREDENTIALS_FLAGGED.labels(provider=credential.provider).inc()
        logger.warning("API key %s flagged as problematic: %s", credential.short_id, reason)

    def current(self, provider: str) -> Credential | None:
        """The cached credential for *provider*, if any."""
        return self._current.get(provider)
