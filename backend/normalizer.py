"""
Request normalization.

Turns either inbound encoding into one canonical `GenerationRequest`:
  • form encoding   — text fields plus `input_image_{i}` binary parts
  • document (JSON) — text/number fields plus `images` as data URIs

Rules shared by both encodings:
  1. `prompt` falls back to the legacy `input` field; structured prompts are
     serialized to JSON text, never rejected
  2. steps/width/height fall back to configured defaults when absent or unusable
  3. seed stays None unless supplied; a supplied 0 is kept
  4. at most `max_input_images` reference images survive, extras are dropped
  5. an empty prompt is the only rejection (ValidationError)
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import math
from typing import Any, Mapping, Optional, Union
from urllib.parse import unquote_to_bytes

from config import GatewayConfig
from errors import ValidationError
from schemas import GenerationRequest

logger = logging.getLogger("normalizer")

FormValue = Union[str, bytes]

_FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
IMAGE_FIELD_PREFIX = "input_image_"


def image_field_names(max_input_images: int) -> list[str]:
    return [f"{IMAGE_FIELD_PREFIX}{i}" for i in range(max_input_images)]


def is_form_content_type(content_type: Optional[str]) -> bool:
    value = (content_type or "").lower()
    return any(kind in value for kind in _FORM_CONTENT_TYPES)


# ─── Field coercion ───────────────────────────────────────────────────────────

def _prompt_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (dict, list)):
        # Some callers send structured (JSON) prompts.
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _resolve_prompt(source: Mapping[str, Any]) -> str:
    value = source.get("prompt")
    if value is None or value == "":
        value = source.get("input")
    prompt = _prompt_text(value)
    if not prompt.strip():
        raise ValidationError("Prompt is required")
    return prompt


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                parsed = float(text)
            except ValueError:
                return None
            # "12.5" -> 12, like parseInt
            return int(parsed) if math.isfinite(parsed) else None
    return None


def _positive_or_default(value: Any, default: int) -> int:
    parsed = _parse_int(value)
    if parsed is None or parsed <= 0:
        return default
    return parsed


# ─── Reference images ─────────────────────────────────────────────────────────

def decode_data_uri(value: Any) -> Optional[bytes]:
    """
    Decode a `data:image/...` URI into bytes.
    Returns None for anything that is not a decodable image data URI.
    """
    if not isinstance(value, str) or not value.startswith("data:image"):
        return None
    header, sep, payload = value.partition(",")
    if not sep:
        return None
    try:
        if ";base64" in header:
            data = base64.b64decode("".join(payload.split()), validate=True)
        else:
            data = unquote_to_bytes(payload)
    except (binascii.Error, ValueError):
        return None
    return data or None


def _form_images(fields: Mapping[str, FormValue], max_input_images: int) -> tuple[bytes, ...]:
    images = []
    for name in image_field_names(max_input_images):
        part = fields.get(name)
        # Text values in image slots are not uploads.
        if isinstance(part, bytes) and part:
            images.append(part)
    return tuple(images)


def _document_images(raw: Any, max_input_images: int) -> tuple[bytes, ...]:
    if not isinstance(raw, list):
        return ()
    images = []
    for idx, entry in enumerate(raw[:max_input_images]):
        blob = decode_data_uri(entry)
        if blob is None:
            logger.debug("reference_image_skipped position=%s", idx)
            continue
        images.append(blob)
    if len(raw) > max_input_images:
        logger.debug("reference_images_truncated supplied=%s kept_max=%s", len(raw), max_input_images)
    return tuple(images)


# ─── Entry points ─────────────────────────────────────────────────────────────

def _build(source: Mapping[str, Any], images: tuple[bytes, ...], config: GatewayConfig) -> GenerationRequest:
    prompt = _resolve_prompt(source)
    return GenerationRequest(
        prompt=prompt,
        steps=_positive_or_default(source.get("steps"), config.default_steps),
        width=_positive_or_default(source.get("width"), config.default_width),
        height=_positive_or_default(source.get("height"), config.default_height),
        seed=_parse_int(source.get("seed")),
        reference_images=images,
    )


def normalize_form(fields: Mapping[str, FormValue], config: GatewayConfig) -> GenerationRequest:
    """Normalize form fields; file parts must already be read into bytes."""
    return _build(fields, _form_images(fields, config.max_input_images), config)


def normalize_document(document: Any, config: GatewayConfig) -> GenerationRequest:
    """Normalize a parsed JSON document. Non-object documents carry no prompt."""
    if not isinstance(document, Mapping):
        raise ValidationError("Prompt is required")
    return _build(document, _document_images(document.get("images"), config.max_input_images), config)


def normalize(content_type: Optional[str], payload: Any, config: GatewayConfig) -> GenerationRequest:
    if is_form_content_type(content_type):
        return normalize_form(payload, config)
    return normalize_document(payload, config)
