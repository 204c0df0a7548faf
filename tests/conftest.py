"""Shared fakes: a scripted operator transport and a recording signer."""

from __future__ import annotations

import itertools
from typing import Optional, Union

import pytest

from rollup_wallet.config import ClientConfig, EMPTY_PUB_KEY_HASH, ZERO_ADDRESS
from rollup_wallet.errors import ErrorCode, TransportError
from rollup_wallet.tokens import TokenRegistry
from rollup_wallet.types import (
    AccountState,
    Balances,
    OperationHandle,
    OperationKind,
    OperationReceipt,
    OperationStatus,
    SignedOperation,
    TokenDescriptor,
)

ALICE = "0x" + "a1" * 20
BOB = "0x6C12a705de85a44EAE07fCfb2932Db9Fd1ca1df6"
ALICE_KEY_HASH = "sync:" + "b2" * 20

ETH = TokenDescriptor(id=0, symbol="ETH", decimals=18, address=ZERO_ADDRESS)
USDC = TokenDescriptor(
    id=2, symbol="USDC", decimals=6, address="0xeb8f08a975ab53e34d8a0330e0d34de942c95926"
)

Step = Union[OperationReceipt, Exception]

SUBMITTED = OperationReceipt(OperationStatus.SUBMITTED)
COMMITTED = OperationReceipt(OperationStatus.COMMITTED, block_number=7)
VERIFIED = OperationReceipt(OperationStatus.VERIFIED, block_number=7)


class RecordingSigner:
    def __init__(self, address: str = ALICE, key_hash: str = ALICE_KEY_HASH, fail: bool = False):
        self._address = address
        self._key_hash = key_hash
        self.fail = fail
        self.payloads: list[bytes] = []

    async def sign(self, payload: bytes) -> bytes:
        if self.fail:
            raise RuntimeError("user rejected the request")
        self.payloads.append(payload)
        return bytes([len(self.payloads)]) * 64

    def address(self) -> str:
        return self._address

    def pub_key_hash(self) -> str:
        return self._key_hash


class ScriptedTransport:
    """In-memory operator.

    Each accepted handle replays a script of receipts (or exceptions) on
    successive ``poll_status`` calls; the last step repeats once exhausted.
    """

    def __init__(
        self,
        tokens: tuple[TokenDescriptor, ...] = (ETH, USDC),
        key_set: bool = True,
        default_script: Optional[list[Step]] = None,
    ):
        self.tokens = list(tokens)
        self.key_committed = key_set
        self.key_hash: Optional[str] = ALICE_KEY_HASH if key_set else EMPTY_PUB_KEY_HASH
        self.default_script = default_script or [SUBMITTED, COMMITTED, VERIFIED]
        self.scripts: dict[str, list[Step]] = {}
        self.submitted: list[SignedOperation] = []
        self.operations: dict[str, SignedOperation] = {}
        self._settled: dict[str, set[str]] = {}
        self.polls: dict[str, int] = {}
        self.committed_balances: dict[str, int] = {"ETH": 0}
        self.verified_balances: dict[str, int] = {"ETH": 0}
        self.nonce = 0
        self.reject_submissions: Optional[Exception] = None
        self.account_error: Optional[Exception] = None
        self._ids = itertools.count(1)

    def script(self, handle: OperationHandle, steps: list[Step]) -> None:
        self.scripts[handle.value] = list(steps)

    async def submit(self, signed: SignedOperation) -> OperationHandle:
        if self.reject_submissions is not None:
            raise self.reject_submissions
        kind = signed.operation.kind
        if kind != OperationKind.SET_SIGNING_KEY and not self.key_committed:
            raise TransportError(ErrorCode.RPC_ERROR, "account signing key is not set")
        self.submitted.append(signed)
        n = next(self._ids)
        handle = OperationHandle(
            str(n) if kind == OperationKind.DEPOSIT else f"sync-tx:{n:064x}", kind
        )
        self.operations[handle.value] = signed
        self.scripts.setdefault(handle.value, list(self.default_script))
        return handle

    async def poll_status(self, handle: OperationHandle) -> OperationReceipt:
        self.polls[handle.value] = self.polls.get(handle.value, 0) + 1
        steps = self.scripts[handle.value]
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, Exception):
            raise step
        if (
            handle.kind == OperationKind.SET_SIGNING_KEY
            and step.status in (OperationStatus.COMMITTED, OperationStatus.VERIFIED)
        ):
            self.key_committed = True
            self.key_hash = ALICE_KEY_HASH
        if handle.kind == OperationKind.DEPOSIT:
            self._settle_deposit(handle, step.status)
        return step

    def _settle_deposit(self, handle: OperationHandle, status: OperationStatus) -> None:
        # Deposits credit the committed side first, the verified side once proven.
        op = self.operations[handle.value].operation
        done = self._settled.setdefault(handle.value, set())
        sides = []
        if status in (OperationStatus.COMMITTED, OperationStatus.VERIFIED):
            sides.append(("committed", self.committed_balances))
        if status == OperationStatus.VERIFIED:
            sides.append(("verified", self.verified_balances))
        for side, balances in sides:
            if side not in done:
                done.add(side)
                balances[op.token.symbol] = balances.get(op.token.symbol, 0) + op.amount

    async def list_tokens(self) -> list[TokenDescriptor]:
        return list(self.tokens)

    async def fetch_account_state(self, address: str) -> AccountState:
        if self.account_error is not None:
            raise self.account_error
        return AccountState(
            address=address,
            committed=Balances(self.committed_balances, nonce=self.nonce, pub_key_hash=self.key_hash),
            verified=Balances(self.verified_balances, nonce=self.nonce, pub_key_hash=self.key_hash),
            account_id=1,
        )


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def signer() -> RecordingSigner:
    return RecordingSigner()


@pytest.fixture
def registry() -> TokenRegistry:
    return TokenRegistry([ETH, USDC])


@pytest.fixture
def fast_config() -> ClientConfig:
    return ClientConfig(
        endpoint="http://operator.test/jsrpc",
        poll_interval=0.0,
        backoff_initial=0.001,
        backoff_max=0.004,
        commit_timeout=2.0,
    )


class ScriptedApprover:
    """L1 approval side: approvals land once their script reaches COMMITTED."""

    def __init__(self, steps: Optional[list[Step]] = None):
        self.approved: set[int] = set()
        self.requests: list[tuple[TokenDescriptor, str]] = []
        self.steps = list(steps or [SUBMITTED, COMMITTED, VERIFIED])
        self.approve_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None
        self._pending: dict[str, TokenDescriptor] = {}

    async def is_approved(self, token: TokenDescriptor, owner: str) -> bool:
        if self.query_error is not None:
            raise self.query_error
        return token.id in self.approved

    async def approve(self, token: TokenDescriptor, owner: str) -> str:
        if self.approve_error is not None:
            raise self.approve_error
        self.requests.append((token, owner))
        tx_hash = "0x" + f"{len(self.requests):064x}"
        self._pending[tx_hash] = token
        return tx_hash

    async def poll_approval(self, tx_hash: str) -> OperationReceipt:
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        if step.status in (OperationStatus.COMMITTED, OperationStatus.VERIFIED):
            self.approved.add(self._pending[tx_hash].id)
        return step


@pytest.fixture
def approver() -> ScriptedApprover:
    return ScriptedApprover()
