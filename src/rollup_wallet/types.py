"""Core types for the rollup wallet.

Operations are a tagged union over the four kinds the operator accepts from
an end-user identity: SetSigningKey, Deposit, Withdraw and Transfer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Mapping, Optional, Union

from .config import MAX_TOKEN_DECIMALS


class OperationKind(Enum):
    SET_SIGNING_KEY = "set_signing_key"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"
    # L1 allowance letting the deposit contract pull an ERC20 token; not signed by the L2 key.
    APPROVE_DEPOSITS = "approve_deposits"


class OperationStatus(IntEnum):
    # Ordered so that forward progress compares greater.
    SUBMITTED = 0
    COMMITTED = 1
    VERIFIED = 2
    FAILED = 3

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.VERIFIED, OperationStatus.FAILED)


@dataclass(frozen=True)
class TokenDescriptor:
    id: int
    symbol: str
    decimals: int
    address: str = ""

    def __post_init__(self) -> None:
        if self.id < 0:
            raise ValueError("token id must be non-negative")
        if not (0 <= self.decimals <= MAX_TOKEN_DECIMALS):
            raise ValueError(f"token decimals must be in [0, {MAX_TOKEN_DECIMALS}]")


@dataclass(frozen=True)
class SetSigningKey:
    account: str
    new_pub_key_hash: str
    fee_token: TokenDescriptor
    fee: int
    nonce: int

    kind = OperationKind.SET_SIGNING_KEY


@dataclass(frozen=True)
class Deposit:
    from_l1: str
    to_l2: str
    token: TokenDescriptor
    amount: int

    kind = OperationKind.DEPOSIT

    @property
    def account(self) -> str:
        return self.from_l1


@dataclass(frozen=True)
class Withdraw:
    from_l2: str
    to_l1: str
    token: TokenDescriptor
    amount: int
    fee: int
    nonce: int

    kind = OperationKind.WITHDRAW

    @property
    def account(self) -> str:
        return self.from_l2


@dataclass(frozen=True)
class Transfer:
    from_l2: str
    to_l2: str
    token: TokenDescriptor
    amount: int
    fee: int
    nonce: int

    kind = OperationKind.TRANSFER

    @property
    def account(self) -> str:
        return self.from_l2


Operation = Union[SetSigningKey, Deposit, Withdraw, Transfer]


@dataclass(frozen=True)
class SignedOperation:
    operation: Operation
    payload: bytes
    signature: bytes
    digest: str


@dataclass(frozen=True)
class OperationHandle:
    """Identifier the operator assigns on acceptance.

    ``value`` is opaque to the wallet; ``kind`` only lets transports route the
    status query (priority operations and L2 transactions are looked up
    differently by the operator).
    """
    value: str
    kind: OperationKind

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class OperationReceipt:
    status: OperationStatus
    reason: Optional[str] = None
    block_number: Optional[int] = None
    error: Optional[Exception] = None


@dataclass(frozen=True)
class Balances:
    balances: Mapping[str, int] = field(default_factory=dict)
    nonce: int = 0
    pub_key_hash: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "balances", MappingProxyType(dict(self.balances)))

    def get(self, symbol: str) -> int:
        return self.balances.get(symbol, 0)


@dataclass(frozen=True)
class AccountState:
    address: str
    committed: Balances
    verified: Balances
    account_id: Optional[int] = None
