"""
Upstream account pool built from configuration.

Accounts are not stored anywhere: each request builds its pool from the
immutable `GatewayConfig.account_slots` snapshot, so there is no shared
mutable state between concurrent requests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Mapping, Optional

from config import MAX_ACCOUNTS, GatewayConfig
from schemas import Account

logger = logging.getLogger("accounts")


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


@dataclass(frozen=True)
class AccountPool:
    """Ordered (ascending slot index) set of usable accounts. May be empty."""

    accounts: tuple[Account, ...] = ()

    @classmethod
    def from_slots(
        cls,
        slots: Mapping[int, tuple[Optional[str], Optional[str]]],
        max_accounts: int = MAX_ACCOUNTS,
    ) -> "AccountPool":
        """
        Scan slots 1..max_accounts in order and keep each slot whose token and
        account id are both present and non-blank.
        """
        accounts = []
        for index in range(1, max_accounts + 1):
            token, account_id = slots.get(index, (None, None))
            token, account_id = _clean(token), _clean(account_id)
            if not token or not account_id:
                if token or account_id:
                    logger.warning("account_slot_incomplete slot=%s has_token=%s has_account_id=%s",
                                   index, bool(token), bool(account_id))
                continue
            accounts.append(Account(index=index, token=token, account_id=account_id))
        return cls(accounts=tuple(accounts))

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "AccountPool":
        return cls.from_slots(config.account_slots, max_accounts=config.max_accounts)

    @property
    def indices(self) -> list[int]:
        return [account.index for account in self.accounts]

    def __iter__(self) -> Iterator[Account]:
        return iter(self.accounts)

    def __len__(self) -> int:
        return len(self.accounts)

    def __bool__(self) -> bool:
        return bool(self.accounts)
