"""
FLUX.2 Gateway — Modal Application
==================================
Deploys the multi-account FastAPI gateway on Modal. No GPU: every generation
is forwarded to Cloudflare Workers AI with one of the configured accounts.

Secrets (one Modal Secret, default name `flux-gateway`):
    API_MASTER_KEY                         — bearer key for /v1/* ("1" disables auth)
    CF_API_TOKEN_1 / CF_ACCOUNT_ID_1       — first upstream account
    ...                                    — up to CF_API_TOKEN_10 / CF_ACCOUNT_ID_10

Deploy:
    modal deploy backend/app.py

Local serve:
    modal serve backend/app.py
"""

import logging
import os
from pathlib import Path

import modal

from config import APP_NAME

# ─── Modal App ────────────────────────────────────────────────────────────────

app = modal.App(APP_NAME)

# ─── Modal Secrets ────────────────────────────────────────────────────────────
# Create via: modal secret create flux-gateway API_MASTER_KEY=... CF_API_TOKEN_1=... CF_ACCOUNT_ID_1=...

gateway_secret = modal.Secret.from_name(os.environ.get("GATEWAY_SECRET_NAME", "flux-gateway"))

# ─── Docker Images ────────────────────────────────────────────────────────────

_base_pkgs = [
    "fastapi>=0.111",
    "uvicorn[standard]",
    "pydantic>=2",
    "python-multipart>=0.0.9",
    "httpx",
]

# API server image (no GPU, lightweight)
api_image = (
    modal.Image.debian_slim(python_version="3.11")
    .pip_install(*_base_pkgs)
    .add_local_dir(str(Path(__file__).parent), remote_path="/root")  # backend/ .py files
)


@app.function(
    image=api_image,
    secrets=[gateway_secret],
    min_containers=int(os.environ.get("API_MIN_CONTAINERS", "0")),
    max_containers=int(os.environ.get("API_MAX_CONTAINERS", "3")),
    timeout=int(os.environ.get("API_FUNCTION_TIMEOUT", "300")),
)
@modal.concurrent(max_inputs=50)
@modal.asgi_app(label="flux-gateway")
def fastapi_app():
    """
    Main ASGI application — all routes live in api.py.
    The label becomes part of the public URL:
      https://<workspace>--flux-gateway.modal.run
    """
    import sys as _sys
    if "/root" not in _sys.path:
        _sys.path.insert(0, "/root")

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    from api import create_app
    from config import load_config

    return create_app(load_config())
