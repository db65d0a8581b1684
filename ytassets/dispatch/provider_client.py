"""Generation provider client — Whisk / ImageFX over HTTP.

Translates a request variant into the provider's JSON protocol, sends it
with the selected credential, and classifies the reply into a
ProviderResponse. HTTP-level failures are reported as outcomes, never raised:

  - 200 + imagePanels payload          → SUCCESS
  - 429                                → THROTTLED
  - 5xx                                → SERVER_ERROR
  - timeout / connection / read errors → TRANSPORT_ERROR
  - error.details[].reason == PUBLIC_ERROR_UNSAFE_GENERATION → CONTENT_POLICY
  - any other 4xx                      → CLIENT_ERROR
  - 200 with an undecodable body       → INVALID_RESPONSE
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from ytassets.core.metrics import PROVIDER_CALLS
from ytassets.dispatch.types import (
    Credential,
    GeneratedImage,
    ImageRequest,
    ImageTool,
    ProviderOutcome,
    ProviderResponse,
)

logger = logging.getLogger(__name__)

UNSAFE_GENERATION_REASON = "PUBLIC_ERROR_UNSAFE_GENERATION"

DEFAULT_ENDPOINTS: dict[ImageTool, str] = {
    ImageTool.WHISK: "https://aisandbox-pa.googleapis.com/v1/whisk:generateImage",
    ImageTool.IMAGEFX: "https://aisandbox-pa.googleapis.com/v1:runImageFx",
}


def error_reasons(body: Any) -> list[str]:
    """Reason codes from a Google-style error payload: {"error": {"details": [{"reason": ...}]}}."""
    if not isinstance(body, dict):
        return []
    error = body.get("error")
    if not isinstance(error, dict):
        return []
    details = error.get("details") or []
    return [d["reason"] for d in details if isinstance(d, dict) and isinstance(d.get("reason"), str)]


def is_unsafe_generation_error(body: Any) -> bool:
    return UNSAFE_GENERATION_REASON in error_reasons(body)


def parse_images(data: dict[str, Any]) -> list[GeneratedImage]:
    """Flatten imagePanels[].generatedImages[] into GeneratedImage objects."""
    images: list[GeneratedImage] = []
    for panel in data.get("imagePanels") or []:
        for img in panel.get("generatedImages") or []:
            images.append(
                GeneratedImage(
                    encoded_image=img.get("encodedImage", ""),
                    seed=int(img.get("seed") or 0),
                    media_generation_id=img.get("mediaGenerationId", ""),
                    prompt=img.get("prompt") or panel.get("prompt", ""),
                )
            )
    return images


def classify_status(status_code: int, body: Any) -> ProviderOutcome:
    """Map a non-200 status code (and its error payload) to an outcome."""
    if status_code == 429:
        return ProviderOutcome.THROTTLED
    if 500 <= status_code < 600:
        return ProviderOutcome.SERVER_ERROR
    if 400 <= status_code < 500 and is_unsafe_generation_error(body):
        return ProviderOutcome.CONTENT_POLICY
    return ProviderOutcome.CLIENT_ERROR


class ImageProviderClient:
    """HTTP client for the image generation tools.

    Usage:
        client = ImageProviderClient(headers={"User-Agent": "..."})
        response = await client.send(request, credential, timeout=60.0)
    """

    def __init__(
        self,
        endpoints: dict[ImageTool, str] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.endpoints = {**DEFAULT_ENDPOINTS, **(endpoints or {})}
        self.headers = headers or {}

    @classmethod
    def from_settings(cls, settings: Any) -> ImageProviderClient:
        return cls(
            endpoints={
                ImageTool.WHISK: settings.whisk_api_url,
                ImageTool.IMAGEFX: settings.imagefx_api_url,
            },
            headers={
                "User-Agent": settings.user_agent,
                "Accept": settings.accept_header,
            },
        )

    async def send(
        self,
        request: ImageRequest,
        credential: Credential,
        timeout: float = 60.0,
    ) -> ProviderResponse:
        url = self.endpoints[request.tool]
        headers = {
            "Content-Type": "application/json",
            "Authorization": credential.secret,
            **self.headers,
        }
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(url, json=request.to_payload(), headers=headers)
        except httpx.TimeoutException:
            response = ProviderResponse(
                outcome=ProviderOutcome.TRANSPORT_ERROR,
                error_message=f"Timeout after {timeout}s",
            )
        except httpx.RequestError as e:
            # Connection failures and body decoding errors alike
            response = ProviderResponse(
                outcome=ProviderOutcome.TRANSPORT_ERROR,
                error_message=f"failed to make request: {e}",
            )
        else:
            response = self._parse(resp)

        response.latency_ms = int((time.monotonic() - start) * 1000)
        PROVIDER_CALLS.labels(tool=request.tool.value, outcome=response.outcome.value).inc()

        if response.outcome == ProviderOutcome.SUCCESS:
            logger.debug(
                "Successfully used API key %s (provider=%s, %d images)",
                credential.short_id,
                credential.provider,
                len(response.images),
            )
        return response

    @staticmethod
    def _parse(resp: httpx.Response) -> ProviderResponse:
        try:
            body: Any = resp.json()
        except ValueError:
            body = None

        if resp.status_code == 200:
            if not isinstance(body, dict):
                return ProviderResponse(
                    outcome=ProviderOutcome.INVALID_RESPONSE,
                    status_code=200,
                    error_message="failed to unmarshal response",
                )
            return ProviderResponse(
                outcome=ProviderOutcome.SUCCESS,
                status_code=200,
                images=parse_images(body),
                raw=body,
            )

        outcome = classify_status(resp.status_code, body)
        reasons = error_reasons(body)
        return ProviderResponse(
            outcome=outcome,
            status_code=resp.status_code,
            error_message=f"request failed with status {resp.status_code}: {resp.text[:500]}",
            error_reason=reasons[0] if reasons else "",
            raw=body if isinstance(body, dict) else {},
        )
