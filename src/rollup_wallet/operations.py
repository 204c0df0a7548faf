"""Operation builder: validated, unsigned operations from caller params."""

from __future__ import annotations

from typing import Any, Optional

from .encoding import is_address, is_pub_key_hash
from .errors import ErrorCode, ValidationError
from .packing import AMOUNT_CODEC, FEE_CODEC
from .tokens import TokenLike, TokenRegistry
from .types import (
    Deposit,
    Operation,
    OperationKind,
    SetSigningKey,
    TokenDescriptor,
    Transfer,
    Withdraw,
)

# Kinds that move funds out of an L2 account; a zero amount is meaningless there.
_POSITIVE_AMOUNT_KINDS = frozenset({OperationKind.WITHDRAW, OperationKind.TRANSFER})


def _check_address(name: str, value: Any) -> str:
    if not is_address(value):
        raise ValidationError(ErrorCode.INVALID_ADDRESS, f"{name} is not a valid address: {value!r}")
    return value


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(ErrorCode.INVALID_AMOUNT, f"{name} must be an integer")
    if value < 0:
        raise ValidationError(ErrorCode.INVALID_AMOUNT, f"{name} must be non-negative")
    return value


class OperationBuilder:
    """Turns kind + params into an Operation ready for signing.

    Amounts are rounded down to the closest packable value and fees to the
    closest packable fee. Nothing here touches the network beyond token
    lookups in the (already populated) registry.
    """

    def __init__(self, registry: TokenRegistry):
        self.registry = registry

    def build(self, kind: OperationKind, **params: Any) -> Operation:
        if kind == OperationKind.SET_SIGNING_KEY:
            return self.set_signing_key(**params)
        if kind == OperationKind.DEPOSIT:
            return self.deposit(**params)
        if kind == OperationKind.WITHDRAW:
            return self.withdraw(**params)
        if kind == OperationKind.TRANSFER:
            return self.transfer(**params)
        raise ValidationError(ErrorCode.INVALID_OPERATION, f"unknown operation kind {kind!r}")

    def _token(self, token: TokenLike) -> TokenDescriptor:
        return self.registry.resolve(token)

    def _amount(self, kind: OperationKind, amount: Any) -> int:
        amount = _as_int("amount", amount)
        if kind in _POSITIVE_AMOUNT_KINDS and amount == 0:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, f"{kind.value} amount must be positive")
        return AMOUNT_CODEC.closest_packable(amount)

    def _fee(self, fee: Any) -> int:
        return FEE_CODEC.closest_packable(_as_int("fee", fee))

    def set_signing_key(
        self,
        account: str,
        new_pub_key_hash: str,
        fee_token: TokenLike,
        nonce: int,
        fee: int = 0,
    ) -> SetSigningKey:
        if not is_pub_key_hash(new_pub_key_hash):
            raise ValidationError(
                ErrorCode.INVALID_ADDRESS, f"malformed pub key hash {new_pub_key_hash!r}"
            )
        return SetSigningKey(
            account=_check_address("account", account),
            new_pub_key_hash=new_pub_key_hash,
            fee_token=self._token(fee_token),
            fee=self._fee(fee),
            nonce=_as_int("nonce", nonce),
        )

    def deposit(
        self,
        from_l1: str,
        token: TokenLike,
        amount: int,
        to_l2: Optional[str] = None,
    ) -> Deposit:
        from_l1 = _check_address("from_l1", from_l1)
        return Deposit(
            from_l1=from_l1,
            to_l2=_check_address("to_l2", to_l2 if to_l2 is not None else from_l1),
            token=self._token(token),
            amount=self._amount(OperationKind.DEPOSIT, amount),
        )

    def withdraw(
        self,
        from_l2: str,
        token: TokenLike,
        amount: int,
        nonce: int,
        to_l1: Optional[str] = None,
        fee: int = 0,
    ) -> Withdraw:
        from_l2 = _check_address("from_l2", from_l2)
        return Withdraw(
            from_l2=from_l2,
            to_l1=_check_address("to_l1", to_l1 if to_l1 is not None else from_l2),
            token=self._token(token),
            amount=self._amount(OperationKind.WITHDRAW, amount),
            fee=self._fee(fee),
            nonce=_as_int("nonce", nonce),
        )

    def transfer(
        self,
        from_l2: str,
        to_l2: str,
        token: TokenLike,
        amount: int,
        nonce: int,
        fee: int = 0,
    ) -> Transfer:
        return Transfer(
            from_l2=_check_address("from_l2", from_l2),
            to_l2=_check_address("to_l2", to_l2),
            token=self._token(token),
            amount=self._amount(OperationKind.TRANSFER, amount),
            fee=self._fee(fee),
            nonce=_as_int("nonce", nonce),
        )
