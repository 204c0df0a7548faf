"""Committed / verified account state for an identity."""

from __future__ import annotations

import logging
from typing import Optional

from .errors import ErrorCode, StateQueryError, TransportError
from .types import AccountState

logger = logging.getLogger(__name__)


class AccountStateView:
    """Fetches the dual balance; keeps only the most recent result."""

    def __init__(self, transport):
        self.transport = transport
        self._latest: Optional[AccountState] = None

    @property
    def latest(self) -> Optional[AccountState]:
        return self._latest

    async def fetch(self, address: str) -> AccountState:
        try:
            state = await self.transport.fetch_account_state(address)
        except (TransportError, OSError) as e:
            logger.error(f"Account state for {address} unavailable: {e}")
            raise StateQueryError(
                ErrorCode.ACCOUNT_STATE_UNAVAILABLE, f"account state for {address}: {e}"
            ) from e
        if not isinstance(state, AccountState) or state.committed is None or state.verified is None:
            raise StateQueryError(
                ErrorCode.ACCOUNT_STATE_UNAVAILABLE, f"incomplete account state for {address}"
            )
        self._latest = state
        return state

    def balance(self, symbol: str, verified: bool = False) -> int:
        if self._latest is None:
            raise StateQueryError(ErrorCode.ACCOUNT_STATE_UNAVAILABLE, "account state not fetched")
        side = self._latest.verified if verified else self._latest.committed
        return side.get(symbol)
