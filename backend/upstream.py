"""
Single-attempt client for the Cloudflare Workers AI REST endpoint.

One `invoke()` is one HTTP call with one account. It either returns the
generated image as base64 text or raises `UpstreamFailure` classified as
rate_limited (worth trying another account) or fatal. Retry policy lives in
router.py, never here.
"""
from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Optional

import httpx

from errors import FailureKind, UpstreamFailure
from normalizer import IMAGE_FIELD_PREFIX
from schemas import Account, GenerationRequest

logger = logging.getLogger("upstream")

# Matched case-insensitively against upstream error text.
RATE_LIMIT_MARKERS = (
    "quota",
    "rate limit",
    "rate-limit",
    "rate_limit",
    "too many requests",
    "daily free allocation",
)

_DIAGNOSTIC_MAX_CHARS = 500


def classify_failure(status_code: Optional[int], message: str) -> FailureKind:
    if status_code == 429:
        return FailureKind.rate_limited
    text = (message or "").lower()
    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return FailureKind.rate_limited
    return FailureKind.fatal


def _failure(status_code: Optional[int], message: str) -> UpstreamFailure:
    return UpstreamFailure(
        message,
        classification=classify_failure(status_code, message),
        status_code=status_code,
    )


# ─── Image extraction ─────────────────────────────────────────────────────────
# Successful responses come in several shapes. Strategies are tried in order;
# the first non-empty string wins.

def _from_result_image(payload: Any) -> Any:
    result = payload.get("result") if isinstance(payload, dict) else None
    return result.get("image") if isinstance(result, dict) else None


def _from_top_level_image(payload: Any) -> Any:
    return payload.get("image") if isinstance(payload, dict) else None


def _from_raw_result(payload: Any) -> Any:
    if isinstance(payload, dict):
        return payload.get("result")
    return payload


IMAGE_EXTRACTORS: tuple[Callable[[Any], Any], ...] = (
    _from_result_image,
    _from_top_level_image,
    _from_raw_result,
)


def extract_image(payload: Any) -> Optional[str]:
    for extractor in IMAGE_EXTRACTORS:
        value = extractor(payload)
        if isinstance(value, str) and value:
            return value
    return None


# ─── Client ───────────────────────────────────────────────────────────────────

def build_form_parts(request: GenerationRequest) -> list[tuple[str, tuple]]:
    """
    Multipart parts for the upstream call. Text fields are sent as parts
    without filename so the body is always multipart/form-data.
    """
    parts: list[tuple[str, tuple]] = [
        ("prompt", (None, request.prompt)),
        ("steps", (None, str(request.steps))),
        ("width", (None, str(request.width))),
        ("height", (None, str(request.height))),
    ]
    if request.seed is not None:
        parts.append(("seed", (None, str(request.seed))))
    for i, blob in enumerate(request.reference_images):
        name = f"{IMAGE_FIELD_PREFIX}{i}"
        parts.append((name, (name, blob, "application/octet-stream")))
    return parts


class UpstreamClient:
    """Performs one generation call per invoke(); holds no per-account state."""

    def __init__(self, base_url: str, model: str, timeout_seconds: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds

    def endpoint_for(self, account: Account) -> str:
        return f"{self.base_url}/accounts/{account.account_id}/ai/run/{self.model}"

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=5.0,
            read=self.timeout_seconds,
            write=self.timeout_seconds,
            pool=5.0,
        )

    async def invoke(self, account: Account, request: GenerationRequest) -> str:
        url = self.endpoint_for(account)
        headers = {"Authorization": f"Bearer {account.token}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                resp = await client.post(url, files=build_form_parts(request), headers=headers)
        except httpx.TimeoutException as exc:
            raise _failure(None, f"Upstream request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise _failure(None, f"Upstream request failed: {exc}") from exc

        if resp.status_code >= 400:
            body = resp.text or ""
            raise UpstreamFailure(
                f"Cloudflare API error ({resp.status_code}): {body[:_DIAGNOSTIC_MAX_CHARS]}",
                classification=classify_failure(resp.status_code, body),
                status_code=resp.status_code,
            )

        content_type = (resp.headers.get("content-type") or "").lower()
        if content_type.startswith("image/"):
            return base64.b64encode(resp.content).decode("ascii")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamFailure(
                "Cloudflare API returned a non-JSON success response",
                classification=FailureKind.fatal,
                status_code=resp.status_code,
            ) from exc

        image = extract_image(payload)
        if image is None:
            logger.warning("upstream_missing_image account=%s status=%s", account.index, resp.status_code)
            raise UpstreamFailure(
                "Cloudflare API response did not contain an image",
                classification=FailureKind.fatal,
                status_code=resp.status_code,
            )
        return image
