"""
api.py
──────
FastAPI application factory for the gateway.

Routes:
  GET  /health                  — liveness + configured account count (no auth)
  GET  /v1/models               — model list (auth)
  POST /v1/images/generations   — normalize → failover dispatch → envelope (auth)

Every failure leaves as `{"error": {"message": ..., "type": "api_error"}}`.

Local serve:
    uvicorn api:create_app --factory --app-dir backend
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from accounts import AccountPool
from auth import master_key_dependency
from config import IMAGE_MODELS, MODEL_OWNER, PROJECT_NAME, VERSION, GatewayConfig, load_config
from errors import ConfigurationError, ExhaustedPoolError, GatewayError, NotFoundError, ValidationError
from normalizer import image_field_names, is_form_content_type, normalize
from responses import build_generation_response, describe_exhausted, error_envelope
from router import Exhausted, FailoverDispatcher
from schemas import (
    HealthResponse,
    ImageGenerationResponse,
    ModelCard,
    ModelsResponse,
    RequestContext,
)
from upstream import UpstreamClient

logger = logging.getLogger("api")

_UNREADABLE_BODY = "Request body must be valid JSON or multipart/form-data"


# ─── Error helpers ────────────────────────────────────────────────────────────

def _error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_envelope(message), headers=headers)


# ─── Request helpers ──────────────────────────────────────────────────────────

async def _read_form_fields(request: Request, config: GatewayConfig) -> dict[str, Any]:
    """
    Flatten the form into name → str | bytes. Only the reference-image slots
    are read from uploads; other file parts are ignored.
    """
    wanted_images = set(image_field_names(config.max_input_images))
    fields: dict[str, Any] = {}
    try:
        form = await request.form()
    except (StarletteHTTPException, MultiPartException) as exc:
        raise ValidationError(_UNREADABLE_BODY) from exc
    for name, value in form.multi_items():
        if name in fields:
            continue
        if isinstance(value, UploadFile):
            if name in wanted_images:
                fields[name] = await value.read()
            continue
        fields[name] = value
    return fields


async def _read_payload(request: Request, config: GatewayConfig) -> tuple[Optional[str], Any]:
    content_type = request.headers.get("content-type")
    if is_form_content_type(content_type):
        return content_type, await _read_form_fields(request, config)
    body = await request.body()
    try:
        return content_type, json.loads(body) if body else {}
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError(_UNREADABLE_BODY) from exc


# ─── Application factory ──────────────────────────────────────────────────────

def create_app(
    config: Optional[GatewayConfig] = None,
    client: Optional[UpstreamClient] = None,
) -> FastAPI:
    """
    Build and return the configured FastAPI application.
    `config` defaults to the process environment; `client` to a Workers AI
    REST client built from it.
    """
    config = config or load_config()
    client = client or UpstreamClient(
        config.api_base_url,
        config.model,
        timeout_seconds=config.upstream_timeout_seconds,
    )
    dispatcher = FailoverDispatcher(client)
    require_master_key = master_key_dependency(config)

    startup_pool = AccountPool.from_config(config)
    logger.info(
        "gateway_config model=%s accounts=%s auth_enabled=%s",
        config.model,
        startup_pool.indices,
        config.auth_enabled,
    )
    if not startup_pool:
        logger.warning("no upstream accounts configured; generation requests will fail with 500")

    api = FastAPI(
        title=PROJECT_NAME,
        description="Multi-account FLUX.2 image generation gateway",
        version=VERSION,
        docs_url="/docs" if config.enable_docs else None,
        redoc_url="/redoc" if config.enable_docs else None,
    )

    # CORS
    api.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── Exception handlers ────────────────────────────────────────────────────

    @api.exception_handler(GatewayError)
    async def _gateway_error_handler(_: Request, exc: GatewayError):
        return _error_response(exc.status_code, exc.message)

    @api.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(_: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return _error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @api.exception_handler(RequestValidationError)
    async def _validation_exception_handler(_: Request, exc: RequestValidationError):
        return _error_response(status.HTTP_400_BAD_REQUEST, "Request validation failed")

    @api.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_exception path=%s", request.url.path)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Internal server error")

    # ─────────────────────────────────────────────────────────────────────────
    # ROUTES
    # ─────────────────────────────────────────────────────────────────────────

    @api.get("/health", response_model=HealthResponse, tags=["Info"])
    async def health_check():
        return HealthResponse(
            project=PROJECT_NAME,
            version=VERSION,
            model=config.model,
            accounts_configured=len(AccountPool.from_config(config)),
        )

    @api.get("/v1/models", response_model=ModelsResponse, tags=["Info"], dependencies=[Depends(require_master_key)])
    async def list_models():
        context = RequestContext.new(config.model)
        model_ids = IMAGE_MODELS if config.model in IMAGE_MODELS else [config.model]
        return ModelsResponse(
            data=[ModelCard(id=model_id, created=context.created, owned_by=MODEL_OWNER) for model_id in model_ids],
        )

    @api.post(
        "/v1/images/generations",
        response_model=ImageGenerationResponse,
        tags=["Generation"],
        dependencies=[Depends(require_master_key)],
    )
    async def create_image(request: Request):
        context = RequestContext.new(config.model)
        try:
            content_type, payload = await _read_payload(request, config)
            generation = normalize(content_type, payload, config)

            pool = AccountPool.from_config(config)
            if not pool:
                raise ConfigurationError(
                    "No upstream accounts configured. Set CF_API_TOKEN_<n> and CF_ACCOUNT_ID_<n>."
                )

            logger.info(
                "generation_requested request_id=%s accounts=%s steps=%s size=%sx%s images=%s",
                context.request_id,
                pool.indices,
                generation.steps,
                generation.width,
                generation.height,
                len(generation.reference_images),
            )
            result = await dispatcher.dispatch(pool, generation)
            if isinstance(result, Exhausted):
                raise ExhaustedPoolError(describe_exhausted(result), result.attempted_indices)

            logger.info(
                "generation_completed request_id=%s account_used=%s",
                context.request_id,
                result.account_used,
            )
            return build_generation_response(result, generation.prompt, context)
        except GatewayError:
            raise
        except Exception as exc:
            logger.exception("generation_failed request_id=%s", context.request_id)
            raise GatewayError(str(exc) or "Image generation failed") from exc

    @api.api_route(
        "/v1/{path:path}",
        methods=["GET", "POST"],
        include_in_schema=False,
        dependencies=[Depends(require_master_key)],
    )
    async def unknown_v1_route(path: str):
        raise NotFoundError("Not Found")

    return api
