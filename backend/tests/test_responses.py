"""
Unit tests for backend/responses.py
"""
import sys
from pathlib import Path

BACKEND = str(Path(__file__).parent.parent)
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from errors import FailureKind, UpstreamFailure  # noqa: E402
from responses import build_generation_response, describe_exhausted, error_envelope  # noqa: E402
from router import Exhausted, Success  # noqa: E402
from schemas import RequestContext  # noqa: E402


def test_success_envelope_shape():
    context = RequestContext(request_id="req-1", created=1700000000, model="@cf/black-forest-labs/flux-2-dev")
    body = build_generation_response(Success(image_b64="ABC123==", account_used=2), "a red fox", context).model_dump()

    assert body == {
        "id": "req-1",
        "object": "image.generation",
        "created": 1700000000,
        "model": "@cf/black-forest-labs/flux-2-dev",
        "account_used": 2,
        "data": [{"b64_json": "ABC123==", "prompt": "a red fox", "revised_prompt": "a red fox"}],
    }


def test_request_context_ids_are_unique():
    first = RequestContext.new("m")
    second = RequestContext.new("m")
    assert first.request_id != second.request_id
    assert first.created > 0


def test_exhausted_description_keeps_attempt_history():
    last = UpstreamFailure("Cloudflare API error (429): daily quota", classification=FailureKind.rate_limited, status_code=429)
    message = describe_exhausted(Exhausted(attempted_indices=(1, 2, 3), last_error=last))
    assert "[1, 2, 3]" in message
    assert "daily quota" in message


def test_exhausted_description_for_empty_pool():
    message = describe_exhausted(Exhausted(attempted_indices=()))
    assert "No accounts were attempted" in message


def test_error_envelope():
    assert error_envelope("Prompt is required") == {
        "error": {"message": "Prompt is required", "type": "api_error"},
    }
