"""
Master-key bearer authentication.
The key comes from the API_MASTER_KEY secret; the value "1" means auth is not
configured and every request is accepted (kept for backward compatibility).
"""
import hmac
from typing import Callable, Optional

from fastapi import Security
from fastapi.security import APIKeyHeader

from config import GatewayConfig
from errors import AuthorizationError

_AUTHORIZATION_HEADER = APIKeyHeader(name="Authorization", auto_error=False)


def verify_master_key(authorization: Optional[str], config: GatewayConfig) -> None:
    """
    Raise AuthorizationError unless the header is `Bearer <master key>`.
    Uses constant-time comparison to avoid timing attacks.
    """
    if not config.auth_enabled:
        return
    expected = f"Bearer {config.api_master_key}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise AuthorizationError("Unauthorized")


def master_key_dependency(config: GatewayConfig) -> Callable[..., None]:
    """Build a FastAPI dependency bound to one immutable config value."""

    def _verify(authorization: Optional[str] = Security(_AUTHORIZATION_HEADER)) -> None:
        verify_master_key(authorization, config)

    return _verify
