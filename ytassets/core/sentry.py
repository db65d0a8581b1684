"""Sentry error tracking for batch runs.

Enabled only when SENTRY_DSN is set. Events pass through ``scrub_event`` so
provider API keys never leave the process.
"""

import logging

from ytassets.core.config import settings

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = frozenset({"authorization", "secret", "api_key", "api_auth_token", "elevenlabs_api_key", "fernet_key"})
FILTERED = "[Filtered]"


def _scrub(value):
    if isinstance(value, dict):
        return {k: FILTERED if str(k).lower() in SENSITIVE_KEYS else _scrub(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    return value


def scrub_event(event: dict, hint: dict | None = None) -> dict:
    """before_send hook: mask credential values in request data, extras and frame locals."""
    for key in ("request", "extra", "contexts"):
        if key in event:
            event[key] = _scrub(event[key])
    for exc in (event.get("exception") or {}).get("values", []):
        for frame in (exc.get("stacktrace") or {}).get("frames", []):
            if "vars" in frame:
                frame["vars"] = _scrub(frame["vars"])
    return event


def init_sentry() -> bool:
    """Initialize Sentry if SENTRY_DSN is configured. Returns True when enabled."""
    if not settings.sentry_dsn:
        logger.debug("SENTRY_DSN empty, error tracking disabled")
        return False

    import sentry_sdk
    from sentry_sdk.integrations.asyncio import AsyncioIntegration
    from sentry_sdk.integrations.httpx import HttpxIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=scrub_event,
        integrations=[
            AsyncioIntegration(),
            HttpxIntegration(),
            SqlalchemyIntegration(),
        ],
    )
    logger.info("Sentry initialized (env=%s, tool=%s)", settings.app_env, settings.tool)
    return True
