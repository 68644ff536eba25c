"""
Configuration for the FLUX.2 multi-account gateway.
All sensitive values come from Modal Secrets / environment variables.

Module-level constants hold the defaults; `load_config()` snapshots the
environment into one immutable `GatewayConfig` that is passed explicitly to
the account pool, the request normalizer and the authorization check.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

# ─── App identity ──────────────────────────────────────────────────────────────
APP_NAME = "flux-gateway"
PROJECT_NAME = "FLUX.2 Workers AI"
VERSION = "1.0.0"

# ─── Upstream ──────────────────────────────────────────────────────────────────
CF_API_BASE_URL = "https://api.cloudflare.com/client/v4"
FLUX_MODEL_ID = "@cf/black-forest-labs/flux-2-dev"
IMAGE_MODELS = [FLUX_MODEL_ID]
MODEL_OWNER = "cloudflare"

# Timeout per upstream generation call (seconds)
UPSTREAM_TIMEOUT_SECONDS = 120.0

# ─── Generation defaults ───────────────────────────────────────────────────────
DEFAULT_STEPS = 25
DEFAULT_WIDTH = 1024
DEFAULT_HEIGHT = 1024
MAX_INPUT_IMAGES = 4

# ─── Accounts / auth ───────────────────────────────────────────────────────────
MAX_ACCOUNTS = 10
TOKEN_ENV_PREFIX = "CF_API_TOKEN"
ACCOUNT_ID_ENV_PREFIX = "CF_ACCOUNT_ID"

# "1" means auth is not configured: any (or no) bearer credential is accepted.
DEFAULT_MASTER_KEY = "1"


@dataclass(frozen=True)
class GatewayConfig:
    api_master_key: str = DEFAULT_MASTER_KEY
    model: str = FLUX_MODEL_ID
    api_base_url: str = CF_API_BASE_URL
    upstream_timeout_seconds: float = UPSTREAM_TIMEOUT_SECONDS
    default_steps: int = DEFAULT_STEPS
    default_width: int = DEFAULT_WIDTH
    default_height: int = DEFAULT_HEIGHT
    max_input_images: int = MAX_INPUT_IMAGES
    max_accounts: int = MAX_ACCOUNTS
    cors_origins: tuple[str, ...] = ("*",)
    enable_docs: bool = False
    # slot number -> (token, account_id); either side may be missing
    account_slots: Mapping[int, tuple[Optional[str], Optional[str]]] = field(default_factory=dict)

    def __post_init__(self):
        # read-only copy of the caller's slots
        object.__setattr__(self, "account_slots", MappingProxyType(dict(self.account_slots)))

    @property
    def auth_enabled(self) -> bool:
        return self.api_master_key != DEFAULT_MASTER_KEY


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_float(value: Optional[str], default: float) -> float:
    try:
        parsed = float((value or "").strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def read_account_slots(
    environ: Mapping[str, str],
    max_accounts: int = MAX_ACCOUNTS,
) -> dict[int, tuple[Optional[str], Optional[str]]]:
    """
    Collect raw `CF_API_TOKEN_{n}` / `CF_ACCOUNT_ID_{n}` pairs for n in 1..max_accounts.
    Slot 1 falls back to the unsuffixed single-account variables.
    Incomplete slots are kept here; filtering belongs to the account pool.
    """
    slots: dict[int, tuple[Optional[str], Optional[str]]] = {}
    for n in range(1, max_accounts + 1):
        token = environ.get(f"{TOKEN_ENV_PREFIX}_{n}")
        account_id = environ.get(f"{ACCOUNT_ID_ENV_PREFIX}_{n}")
        if n == 1:
            if token is None:
                token = environ.get(TOKEN_ENV_PREFIX)
            if account_id is None:
                account_id = environ.get(ACCOUNT_ID_ENV_PREFIX)
        if token is None and account_id is None:
            continue
        slots[n] = (token, account_id)
    return slots


def load_config(environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Snapshot the process environment (or the given mapping) into a GatewayConfig."""
    env = os.environ if environ is None else environ

    origins = tuple(
        o.strip() for o in (env.get("CORS_ORIGINS") or "").split(",") if o.strip()
    ) or ("*",)

    return GatewayConfig(
        # Empty master key is treated like the unset default.
        api_master_key=(env.get("API_MASTER_KEY") or "").strip() or DEFAULT_MASTER_KEY,
        model=(env.get("CF_FLUX_MODEL") or "").strip() or FLUX_MODEL_ID,
        api_base_url=((env.get("CF_API_BASE_URL") or "").strip() or CF_API_BASE_URL).rstrip("/"),
        upstream_timeout_seconds=_env_float(env.get("UPSTREAM_TIMEOUT_SECONDS"), UPSTREAM_TIMEOUT_SECONDS),
        cors_origins=origins,
        enable_docs=_env_flag(env.get("ENABLE_DOCS")),
        account_slots=read_account_slots(env, MAX_ACCOUNTS),
    )
