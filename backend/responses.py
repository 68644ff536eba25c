"""
Response assembly: success envelopes and client-facing error text.
"""
from __future__ import annotations

from schemas import ErrorBody, ErrorEnvelope, ImageData, ImageGenerationResponse, RequestContext
from router import Exhausted, Success


def build_generation_response(
    result: Success,
    prompt: str,
    context: RequestContext,
) -> ImageGenerationResponse:
    return ImageGenerationResponse(
        id=context.request_id,
        created=context.created,
        model=context.model,
        account_used=result.account_used,
        data=[
            ImageData(b64_json=result.image_b64, prompt=prompt, revised_prompt=prompt),
        ],
    )


def describe_exhausted(result: Exhausted) -> str:
    if not result.attempted_indices:
        return "No accounts were attempted: the account pool is empty."
    attempted = ", ".join(str(i) for i in result.attempted_indices)
    last = result.last_error.message if result.last_error is not None else "unknown error"
    return (
        f"All accounts are rate limited or out of quota "
        f"(attempted accounts: [{attempted}]). Last error: {last}"
    )


def error_envelope(message: str) -> dict:
    return ErrorEnvelope(error=ErrorBody(message=message)).model_dump()
