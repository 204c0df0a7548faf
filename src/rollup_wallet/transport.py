"""Signer / transport boundaries and the operator JSON-RPC client."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

import aiohttp

from .config import ClientConfig
from .errors import ErrorCode, TransportError
from .types import (
    AccountState,
    Balances,
    Deposit,
    OperationHandle,
    OperationKind,
    OperationReceipt,
    OperationStatus,
    SetSigningKey,
    SignedOperation,
    TokenDescriptor,
    Transfer,
    Withdraw,
)

logger = logging.getLogger(__name__)


class Signer(Protocol):
    """The end-user identity. Never exposes key material."""

    async def sign(self, payload: bytes) -> bytes:
        ...

    def address(self) -> str:
        ...

    def pub_key_hash(self) -> str:
        """Hash of the L2 signing key this identity wants registered."""
        ...


class L2Transport(Protocol):
    async def submit(self, signed: SignedOperation) -> OperationHandle:
        ...

    async def poll_status(self, handle: OperationHandle) -> OperationReceipt:
        ...

    async def list_tokens(self) -> Sequence[TokenDescriptor]:
        ...

    async def fetch_account_state(self, address: str) -> AccountState:
        ...


# Submits a signed deposit through L1 and returns the priority operation serial id.
L1Submitter = Callable[[SignedOperation], Awaitable[int]]


class DepositApprover(Protocol):
    """L1 side of ERC20 deposits: the deposit contract may only pull a token
    once the owner has approved it."""

    async def is_approved(self, token: TokenDescriptor, owner: str) -> bool:
        ...

    async def approve(self, token: TokenDescriptor, owner: str) -> str:
        """Send the approval transaction and return its L1 hash."""
        ...

    async def poll_approval(self, tx_hash: str) -> OperationReceipt:
        ...


class ApprovalStatusSource:
    """Lets a FinalityTracker follow an L1 approval through ``poll_status``."""

    def __init__(self, approver: DepositApprover):
        self.approver = approver

    async def poll_status(self, handle: OperationHandle) -> OperationReceipt:
        return await self.approver.poll_approval(handle.value)


_TX_TYPES = {
    OperationKind.SET_SIGNING_KEY: "ChangePubKey",
    OperationKind.WITHDRAW: "Withdraw",
    OperationKind.TRANSFER: "Transfer",
}


def operation_to_json(signed: SignedOperation) -> Dict[str, Any]:
    """Operator JSON for an L2-signed operation."""
    op = signed.operation
    if isinstance(op, SetSigningKey):
        body: Dict[str, Any] = {
            "account": op.account,
            "newPkHash": op.new_pub_key_hash,
            "feeToken": op.fee_token.id,
            "fee": str(op.fee),
            "nonce": op.nonce,
        }
    elif isinstance(op, Withdraw):
        body = {
            "from": op.from_l2,
            "to": op.to_l1,
            "token": op.token.id,
            "amount": str(op.amount),
            "fee": str(op.fee),
            "nonce": op.nonce,
        }
    elif isinstance(op, Transfer):
        body = {
            "from": op.from_l2,
            "to": op.to_l2,
            "token": op.token.id,
            "amount": str(op.amount),
            "fee": str(op.fee),
            "nonce": op.nonce,
        }
    else:
        raise TransportError(
            ErrorCode.RPC_ERROR, f"{op.kind.value} is not submitted through the operator"
        )
    body["type"] = _TX_TYPES[op.kind]
    body["signature"] = signed.signature.hex()
    return body


def receipt_from_info(info: Any) -> OperationReceipt:
    """Map operator ``tx_info`` / ``ethop_info`` results to a receipt."""
    if not isinstance(info, dict):
        raise TransportError(ErrorCode.MALFORMED_RESPONSE, "status info must be an object")
    block = info.get("block") or {}
    if not isinstance(block, dict):
        raise TransportError(ErrorCode.MALFORMED_RESPONSE, "status block must be an object")
    block_number = block.get("blockNumber")
    if block_number is not None and (isinstance(block_number, bool) or not isinstance(block_number, int)):
        raise TransportError(ErrorCode.MALFORMED_RESPONSE, f"bad block number {block_number!r}")

    if not info.get("executed"):
        return OperationReceipt(OperationStatus.SUBMITTED)
    if info.get("success") is False:
        return OperationReceipt(
            OperationStatus.FAILED,
            reason=info.get("failReason") or "rejected by operator",
            block_number=block_number,
        )
    if block.get("verified"):
        return OperationReceipt(OperationStatus.VERIFIED, block_number=block_number)
    if block.get("committed"):
        return OperationReceipt(OperationStatus.COMMITTED, block_number=block_number)
    return OperationReceipt(OperationStatus.SUBMITTED, block_number=block_number)


def token_from_json(data: Any) -> TokenDescriptor:
    try:
        return TokenDescriptor(
            id=int(data["id"]),
            symbol=str(data["symbol"]),
            decimals=int(data["decimals"]),
            address=str(data.get("address", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise TransportError(ErrorCode.MALFORMED_RESPONSE, f"bad token entry: {e}") from e


def _balances_from_json(data: Any) -> Balances:
    if not isinstance(data, dict):
        raise TransportError(ErrorCode.MALFORMED_RESPONSE, "account side must be an object")
    try:
        balances = {sym: int(v) for sym, v in (data.get("balances") or {}).items()}
        return Balances(
            balances=balances,
            nonce=int(data.get("nonce", 0)),
            pub_key_hash=data.get("pubKeyHash"),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise TransportError(ErrorCode.MALFORMED_RESPONSE, f"bad balances: {e}") from e


def account_state_from_json(data: Any) -> AccountState:
    if not isinstance(data, dict) or "committed" not in data or "verified" not in data:
        raise TransportError(
            ErrorCode.MALFORMED_RESPONSE, "account info must carry committed and verified state"
        )
    return AccountState(
        address=str(data.get("address", "")),
        committed=_balances_from_json(data["committed"]),
        verified=_balances_from_json(data["verified"]),
        account_id=data.get("id"),
    )


class HttpL2Transport:
    """JSON-RPC 2.0 client for the operator endpoint."""

    def __init__(self, config: ClientConfig, l1_submitter: Optional[L1Submitter] = None):
        self.config = config
        self.l1_submitter = l1_submitter
        self.session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Initialize HTTP session."""
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def __aenter__(self) -> "HttpL2Transport":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def call(self, method: str, params: List[Any]) -> Any:
        if self.session is None:
            raise TransportError(ErrorCode.CONNECTION_FAILED, "transport is not connected")
        request = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with self.session.post(self.config.endpoint, json=request) as resp:
                resp.raise_for_status()
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"{method} failed against {self.config.endpoint}: {e}")
            raise TransportError(ErrorCode.CONNECTION_FAILED, f"{method}: {e}") from e
        except ValueError as e:
            raise TransportError(ErrorCode.MALFORMED_RESPONSE, f"{method}: {e}") from e

        if not isinstance(data, dict):
            raise TransportError(ErrorCode.MALFORMED_RESPONSE, f"{method}: response is not an object")
        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise TransportError(ErrorCode.RPC_ERROR, f"{method}: {message}")
        if "result" not in data:
            raise TransportError(ErrorCode.MALFORMED_RESPONSE, f"{method}: missing result")
        return data["result"]

    async def submit(self, signed: SignedOperation) -> OperationHandle:
        if isinstance(signed.operation, Deposit):
            if self.l1_submitter is None:
                raise TransportError(
                    ErrorCode.RPC_ERROR, "deposits require an L1 submitter"
                )
            try:
                serial_id = await self.l1_submitter(signed)
            except TransportError:
                raise
            except (OSError, asyncio.TimeoutError) as e:
                raise TransportError(ErrorCode.CONNECTION_FAILED, f"L1 deposit: {e}") from e
            except Exception as e:
                raise TransportError(ErrorCode.RPC_ERROR, f"L1 deposit rejected: {e}") from e
            if isinstance(serial_id, bool) or not isinstance(serial_id, int):
                raise TransportError(
                    ErrorCode.MALFORMED_RESPONSE, f"L1 deposit: bad serial id {serial_id!r}"
                )
            return OperationHandle(str(serial_id), OperationKind.DEPOSIT)

        tx_hash = await self.call("tx_submit", [operation_to_json(signed)])
        if not isinstance(tx_hash, str):
            raise TransportError(ErrorCode.MALFORMED_RESPONSE, "tx_submit: hash must be a string")
        return OperationHandle(tx_hash, signed.operation.kind)

    async def poll_status(self, handle: OperationHandle) -> OperationReceipt:
        if handle.kind == OperationKind.DEPOSIT:
            info = await self.call("ethop_info", [int(handle.value)])
        else:
            info = await self.call("tx_info", [handle.value])
        return receipt_from_info(info)

    async def list_tokens(self) -> List[TokenDescriptor]:
        result = await self.call("tokens", [])
        if not isinstance(result, dict):
            raise TransportError(ErrorCode.MALFORMED_RESPONSE, "tokens: expected an object")
        return [token_from_json(entry) for entry in result.values()]

    async def fetch_account_state(self, address: str) -> AccountState:
        return account_state_from_json(await self.call("account_info", [address]))
