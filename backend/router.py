"""
FailoverDispatcher — multi-account dispatch with failover.

Rotation rules:
  1. Accounts are tried strictly in pool order (ascending slot index), one at a time
  2. First success wins; later accounts are never called
  3. Rate-limited / quota failure: remember it, move on to the next account
  4. Any other failure: stop immediately and raise it unchanged
  5. Empty pool, or every account rate-limited → Exhausted with the full
     list of attempted slots and the last failure

The dispatcher keeps no state between requests; the pool it receives is an
immutable per-request value.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from accounts import AccountPool
from errors import UpstreamFailure
from schemas import GenerationRequest
from upstream import UpstreamClient

logger = logging.getLogger("router")


@dataclass(frozen=True)
class Success:
    image_b64: str
    account_used: int


@dataclass(frozen=True)
class Exhausted:
    attempted_indices: tuple[int, ...]
    last_error: Optional[UpstreamFailure] = None


DispatchResult = Union[Success, Exhausted]


class FailoverDispatcher:
    """Sequential account failover around a single-attempt UpstreamClient."""

    def __init__(self, client: UpstreamClient):
        self.client = client

    async def dispatch(self, pool: AccountPool, request: GenerationRequest) -> DispatchResult:
        """
        Returns Success or Exhausted.
        Raises the UpstreamFailure of the first fatal attempt, with the
        attempted slot indices attached.
        """
        attempted: list[int] = []
        last_error: Optional[UpstreamFailure] = None

        for account in pool:
            attempted.append(account.index)
            try:
                image = await self.client.invoke(account, request)
            except UpstreamFailure as exc:
                if not exc.rate_limited:
                    exc.attempted_indices = tuple(attempted)
                    logger.error(
                        "dispatch_aborted account=%s status=%s error=%s",
                        account.index,
                        exc.upstream_status,
                        exc.message,
                    )
                    raise
                last_error = exc
                logger.warning(
                    "account_rate_limited account=%s status=%s attempted=%s",
                    account.index,
                    exc.upstream_status,
                    attempted,
                )
                continue

            if len(attempted) > 1:
                logger.info("fallback_success account=%s attempted=%s", account.index, attempted)
            return Success(image_b64=image, account_used=account.index)

        logger.warning("pool_exhausted attempted=%s pool_size=%s", attempted, len(pool))
        return Exhausted(attempted_indices=tuple(attempted), last_error=last_error)
