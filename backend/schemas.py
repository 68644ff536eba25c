"""
Pydantic schemas for the canonical request, accounts and API responses.
Response field names mirror the OpenAI-style images API the gateway exposes.
"""
from __future__ import annotations

import time
import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ─── Core values ──────────────────────────────────────────────────────────────

class GenerationRequest(BaseModel):
    """
    Canonical, encoding-independent generation request.
    Built by the normalizer; immutable afterwards.
    """
    model_config = ConfigDict(frozen=True)

    prompt: str
    steps: int
    width: int
    height: int
    seed: Optional[int] = None  # None = not supplied; 0 is a real seed
    reference_images: tuple[bytes, ...] = ()

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt must not be empty")
        return v


class Account(BaseModel):
    """One upstream credential / account-id pair. `index` is its 1-based slot."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1)
    token: str = Field(..., min_length=1, repr=False)
    account_id: str = Field(..., min_length=1)


class RequestContext(BaseModel):
    """Per-request values threaded from the route through dispatch and assembly."""
    model_config = ConfigDict(frozen=True)

    request_id: str
    created: int
    model: str

    @classmethod
    def new(cls, model: str) -> "RequestContext":
        return cls(request_id=str(uuid.uuid4()), created=int(time.time()), model=model)


# ─── Responses ────────────────────────────────────────────────────────────────

class ImageData(BaseModel):
    b64_json: str
    prompt: str
    revised_prompt: str


class ImageGenerationResponse(BaseModel):
    id: str
    object: Literal["image.generation"] = "image.generation"
    created: int
    model: str
    account_used: int
    data: List[ImageData]


class ModelCard(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str


class ModelsResponse(BaseModel):
    object: Literal["list"] = "list"
    data: List[ModelCard]


class HealthResponse(BaseModel):
    ok: Literal[True] = True
    project: str
    version: str
    model: str
    accounts_configured: int


class ErrorBody(BaseModel):
    message: str
    type: Literal["api_error"] = "api_error"


class ErrorEnvelope(BaseModel):
    error: ErrorBody
