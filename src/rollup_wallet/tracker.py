"""Finality tracking for submitted operations.

Every operation, whatever its kind, moves through the same machine:

    SUBMITTED -> COMMITTED -> VERIFIED
    SUBMITTED -> FAILED
    COMMITTED -> FAILED

VERIFIED and FAILED are terminal. The tracker only learns about transitions by
polling the operator; a read failure while polling is not evidence that the
operation failed and is retried with backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .config import ClientConfig
from .errors import ErrorCode, TrackingError, TransportError, WalletError
from .types import OperationHandle, OperationReceipt, OperationStatus

logger = logging.getLogger(__name__)

_ALLOWED = {
    OperationStatus.SUBMITTED: frozenset({
        OperationStatus.COMMITTED,
        OperationStatus.VERIFIED,
        OperationStatus.FAILED,
    }),
    OperationStatus.COMMITTED: frozenset({
        OperationStatus.VERIFIED,
        OperationStatus.FAILED,
    }),
    OperationStatus.VERIFIED: frozenset(),
    OperationStatus.FAILED: frozenset(),
}

_TRANSIENT_ERRORS = (TransportError, OSError, asyncio.TimeoutError)


class FinalityTracker:
    """Observes one operation handle from submission to finality."""

    def __init__(
        self,
        transport,
        handle: Optional[OperationHandle],
        *,
        poll_interval: float = 1.0,
        backoff_initial: float = 0.5,
        backoff_max: float = 30.0,
        digest: Optional[str] = None,
    ):
        self.transport = transport
        self.handle = handle
        self.digest = digest
        self.poll_interval = poll_interval
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

        self._receipt = OperationReceipt(OperationStatus.SUBMITTED)
        self._lock = asyncio.Lock()
        self.polls = 0
        self.transient_failures = 0

    @classmethod
    def from_config(
        cls,
        transport,
        handle: OperationHandle,
        config: ClientConfig,
        digest: Optional[str] = None,
    ) -> "FinalityTracker":
        return cls(
            transport,
            handle,
            poll_interval=config.poll_interval,
            backoff_initial=config.backoff_initial,
            backoff_max=config.backoff_max,
            digest=digest,
        )

    @classmethod
    def failed(cls, error: WalletError, digest: Optional[str] = None) -> "FinalityTracker":
        """A tracker for an operation the network never accepted."""
        tracker = cls(None, None, digest=digest)
        tracker._receipt = OperationReceipt(
            OperationStatus.FAILED, reason=str(error), error=error
        )
        return tracker

    def __repr__(self) -> str:
        return f"FinalityTracker(handle={self.handle}, status={self.status.name})"

    @property
    def status(self) -> OperationStatus:
        return self._receipt.status

    @property
    def receipt(self) -> OperationReceipt:
        return self._receipt

    @property
    def is_terminal(self) -> bool:
        return self._receipt.status.is_terminal

    def _advance(self, observed: OperationReceipt) -> None:
        current = self._receipt
        if observed.status == current.status:
            if observed.block_number is not None and current.block_number is None:
                self._receipt = OperationReceipt(current.status, current.reason, observed.block_number)
            return
        if observed.status not in _ALLOWED[current.status]:
            logger.debug(
                f"Ignoring {observed.status.name} for {self.handle}: already {current.status.name}"
            )
            return
        self._receipt = observed
        if observed.status == OperationStatus.FAILED:
            logger.warning(f"Operation {self.handle} failed: {observed.reason}")
        else:
            logger.info(
                f"Operation {self.handle}: {current.status.name} -> {observed.status.name}"
                f" (block {observed.block_number})"
            )

    async def poll(self) -> OperationReceipt:
        """One observation step.

        Raises TrackingError(TRANSIENT_READ) if the status read failed; the
        tracker's state is unchanged in that case.
        """
        if self.is_terminal:
            return self._receipt
        async with self._lock:
            if self.is_terminal:
                return self._receipt
            self.polls += 1
            try:
                observed = await self.transport.poll_status(self.handle)
            except _TRANSIENT_ERRORS as e:
                self.transient_failures += 1
                raise TrackingError(
                    ErrorCode.TRANSIENT_READ, f"status read for {self.handle} failed: {e}"
                ) from e
            self._advance(observed)
        return self._receipt

    async def _observe(self, done: Callable[[OperationStatus], bool]) -> OperationReceipt:
        backoff = self.backoff_initial
        while not done(self.status):
            try:
                await self.poll()
            except TrackingError as e:
                if e.code != ErrorCode.TRANSIENT_READ:
                    raise
                logger.debug(f"{e}; retrying in {backoff:.2f}s")
                await asyncio.sleep(backoff)
                if backoff >= self.backoff_max:
                    logger.warning(f"Status reads for {self.handle} keep failing")
                backoff = min(backoff * 2, self.backoff_max)
                continue
            backoff = self.backoff_initial
            if not done(self.status):
                await asyncio.sleep(self.poll_interval)
        return self._receipt

    async def _await_phase(
        self, done: Callable[[OperationStatus], bool], phase: str, timeout: Optional[float]
    ) -> OperationReceipt:
        if done(self.status):
            return self._receipt
        try:
            return await asyncio.wait_for(self._observe(done), timeout)
        except asyncio.TimeoutError:
            raise TrackingError(
                ErrorCode.TRACKING_TIMEOUT,
                f"{self.handle} not {phase} after {timeout}s; status still {self.status.name}",
            ) from None

    async def await_committed(self, timeout: Optional[float] = None) -> OperationReceipt:
        """Wait until the operation leaves SUBMITTED."""
        return await self._await_phase(
            lambda s: s != OperationStatus.SUBMITTED, "committed", timeout
        )

    async def await_verified(self, timeout: Optional[float] = None) -> OperationReceipt:
        """Wait until the operation is VERIFIED or FAILED."""
        return await self._await_phase(lambda s: s.is_terminal, "verified", timeout)
