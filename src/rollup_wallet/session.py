"""Wallet session: one identity bound to one operator endpoint.

Entry points build and validate an operation before any network I/O; invalid
input raises. Once an operation reaches the signer, every outcome is reported
through the returned FinalityTracker, including rejection at submission.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .account_view import AccountStateView
from .config import NATIVE_TOKEN_ID, ClientConfig
from .encoding import encode_signing_bytes, operation_digest
from .errors import (
    ErrorCode,
    SessionError,
    StateQueryError,
    SubmissionError,
    TransportError,
    ValidationError,
    WalletError,
    err,
)
from .operations import OperationBuilder
from .tokens import TokenLike, TokenRegistry
from .tracker import FinalityTracker
from .transport import ApprovalStatusSource, DepositApprover, L2Transport, Signer
from .types import (
    AccountState,
    Deposit,
    Operation,
    OperationHandle,
    OperationKind,
    OperationStatus,
    SignedOperation,
)

logger = logging.getLogger(__name__)

_TRANSPORT_TO_SUBMISSION = {
    ErrorCode.CONNECTION_FAILED: ErrorCode.NETWORK_UNREACHABLE,
}


def _submission_error(e: Exception) -> WalletError:
    if isinstance(e, TransportError):
        code = _TRANSPORT_TO_SUBMISSION.get(e.code, ErrorCode.SUBMISSION_REJECTED)
    elif isinstance(e, OSError):
        code = ErrorCode.NETWORK_UNREACHABLE
    else:
        code = ErrorCode.SUBMISSION_REJECTED
    return err(code, str(e))


class WalletSession:
    """Use ``await WalletSession.initialize(...)``; the constructor alone does
    not register a signing key and leaves the session not ready."""

    def __init__(
        self,
        signer: Signer,
        transport: L2Transport,
        config: Optional[ClientConfig] = None,
        registry: Optional[TokenRegistry] = None,
        approver: Optional[DepositApprover] = None,
    ):
        self.signer = signer
        self.approver = approver
        self.transport = transport
        self.config = config or ClientConfig()
        self.registry = registry or TokenRegistry()
        self.builder = OperationBuilder(self.registry)
        self.view = AccountStateView(transport)

        self._nonce = 0
        self._ready = False
        self._closed = False
        self._submit_lock = asyncio.Lock()

    @classmethod
    async def initialize(
        cls,
        signer: Signer,
        transport: L2Transport,
        config: Optional[ClientConfig] = None,
        approver: Optional[DepositApprover] = None,
    ) -> "WalletSession":
        """Bind ``signer`` to ``transport`` and make sure its signing key is
        committed on L2 before returning."""
        session = cls(signer, transport, config, approver=approver)
        await session.registry.refresh(transport)
        state = await session.view.fetch(session.address)
        session._nonce = state.committed.nonce

        if session.is_signing_key_set(state):
            logger.info(f"Signing key already set for {session.address}")
        else:
            logger.info(f"Setting signing key for {session.address}")
            tracker = await session.set_signing_key()
            receipt = await tracker.await_committed(timeout=session.config.commit_timeout)
            if receipt.status == OperationStatus.FAILED:
                code = ErrorCode.SUBMISSION_REJECTED
                if isinstance(receipt.error, SubmissionError):
                    code = receipt.error.code
                raise SubmissionError(code, f"signing key not set: {receipt.reason}")

        session._ready = True
        return session

    async def __aenter__(self) -> "WalletSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Tear the session down. Submitted operations keep progressing."""
        if not self._closed:
            self._closed = True
            logger.info(f"Wallet session for {self.address} closed")

    @property
    def address(self) -> str:
        return self.signer.address()

    @property
    def ready(self) -> bool:
        return self._ready and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def next_nonce(self) -> int:
        return self._nonce

    def is_signing_key_set(self, state: AccountState) -> bool:
        return state.committed.pub_key_hash == self.signer.pub_key_hash()

    def _check_open(self) -> None:
        if self._closed:
            raise SessionError(ErrorCode.SESSION_CLOSED, "wallet session is closed")

    async def account_state(self) -> AccountState:
        self._check_open()
        return await self.view.fetch(self.address)

    async def set_signing_key(self, fee: int = 0, fee_token: Optional[TokenLike] = None) -> FinalityTracker:
        self._check_open()
        async with self._submit_lock:
            op = self.builder.set_signing_key(
                account=self.address,
                new_pub_key_hash=self.signer.pub_key_hash(),
                fee_token=fee_token if fee_token is not None else self.config.fee_token,
                nonce=self._nonce,
                fee=fee,
            )
            return await self._submit(op)

    async def deposit(
        self, token: TokenLike, amount: int, to: Optional[str] = None
    ) -> FinalityTracker:
        """Move ``amount`` of ``token`` from L1 into L2 (to this account by default)."""
        self._check_open()
        async with self._submit_lock:
            op = self.builder.deposit(from_l1=self.address, token=token, amount=amount, to_l2=to)
            return await self._submit_ready(op)

    async def withdraw(
        self, token: TokenLike, amount: int, to: Optional[str] = None, fee: int = 0
    ) -> FinalityTracker:
        """Move ``amount`` of ``token`` from L2 back to an L1 address."""
        self._check_open()
        async with self._submit_lock:
            op = self.builder.withdraw(
                from_l2=self.address, token=token, amount=amount, nonce=self._nonce, to_l1=to, fee=fee
            )
            return await self._submit_ready(op)

    async def transfer(
        self, to: str, token: TokenLike, amount: int, fee: int = 0
    ) -> FinalityTracker:
        self._check_open()
        async with self._submit_lock:
            op = self.builder.transfer(
                from_l2=self.address, to_l2=to, token=token, amount=amount, nonce=self._nonce, fee=fee
            )
            return await self._submit_ready(op)

    def _approver(self) -> DepositApprover:
        if self.approver is None:
            raise SessionError(
                ErrorCode.DEPOSIT_APPROVER_NOT_SET, "no L1 deposit approver configured"
            )
        return self.approver

    async def is_deposit_approved(self, token: TokenLike) -> bool:
        """Whether the L1 deposit contract may pull ``token`` from this account.

        The native token never needs an approval.
        """
        self._check_open()
        descriptor = self.registry.resolve(token)
        if descriptor.id == NATIVE_TOKEN_ID:
            return True
        approver = self._approver()
        try:
            return bool(await approver.is_approved(descriptor, self.address))
        except Exception as e:
            logger.error(f"Deposit approval for {descriptor.symbol} unavailable: {e}")
            raise StateQueryError(
                ErrorCode.ACCOUNT_STATE_UNAVAILABLE, f"deposit approval for {descriptor.symbol}: {e}"
            ) from e

    async def approve_deposits(self, token: TokenLike) -> FinalityTracker:
        """Approve L1 deposits of an ERC20 ``token``.

        The approval is an L1 transaction; the returned tracker follows it
        like any other operation and reports submission failures as FAILED.
        """
        self._check_open()
        descriptor = self.registry.resolve(token)
        if descriptor.id == NATIVE_TOKEN_ID:
            raise ValidationError(
                ErrorCode.INVALID_OPERATION, f"{descriptor.symbol} deposits need no approval"
            )
        approver = self._approver()
        async with self._submit_lock:
            try:
                tx_hash = await approver.approve(descriptor, self.address)
            except Exception as e:
                logger.error(f"Approval of {descriptor.symbol} deposits failed: {e}")
                return FinalityTracker.failed(_submission_error(e))
        handle = OperationHandle(str(tx_hash), OperationKind.APPROVE_DEPOSITS)
        logger.info(f"Submitted deposit approval for {descriptor.symbol} as {handle}")
        return FinalityTracker.from_config(ApprovalStatusSource(approver), handle, self.config)

    async def _submit_ready(self, op: Operation) -> FinalityTracker:
        if not self._ready:
            error = SubmissionError(
                ErrorCode.SIGNING_KEY_NOT_SET,
                f"{op.kind.value} needs a committed signing key for {self.address}",
            )
            logger.error(str(error))
            return FinalityTracker.failed(error, digest=operation_digest(op))
        return await self._submit(op)

    async def _submit(self, op: Operation) -> FinalityTracker:
        payload = encode_signing_bytes(op)
        digest = operation_digest(op)

        try:
            signature = await self.signer.sign(payload)
        except Exception as e:
            logger.error(f"Signer refused {op.kind.value} {digest[:16]}: {e}")
            return FinalityTracker.failed(
                SubmissionError(ErrorCode.SIGNATURE_REJECTED, f"signing failed: {e}"), digest
            )

        signed = SignedOperation(operation=op, payload=payload, signature=bytes(signature), digest=digest)
        try:
            handle = await self.transport.submit(signed)
        except Exception as e:
            logger.error(f"Submission of {op.kind.value} {digest[:16]} failed: {e}")
            return FinalityTracker.failed(_submission_error(e), digest)

        if not isinstance(op, Deposit):
            self._nonce += 1
        logger.info(f"Submitted {op.kind.value} {digest[:16]} as {handle}")
        return FinalityTracker.from_config(self.transport, handle, self.config, digest=digest)
