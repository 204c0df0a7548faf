"""Token registry: identifier -> TokenDescriptor."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, localcontext
from types import MappingProxyType
from typing import Iterable, Mapping, Union

from .errors import ErrorCode, TransportError, ValidationError
from .types import TokenDescriptor

logger = logging.getLogger(__name__)

TokenLike = Union[str, int, TokenDescriptor]

_DECIMAL_PRECISION = 120


class _TokenTable:
    """Immutable lookup indexes built from one token list."""

    def __init__(self, tokens: Iterable[TokenDescriptor]):
        by_id: dict[int, TokenDescriptor] = {}
        by_symbol: dict[str, TokenDescriptor] = {}
        by_address: dict[str, TokenDescriptor] = {}
        for token in tokens:
            if token.id in by_id:
                raise ValueError(f"duplicate token id {token.id}")
            if token.symbol in by_symbol:
                raise ValueError(f"duplicate token symbol {token.symbol}")
            address = token.address.lower()
            if address and address in by_address:
                raise ValueError(f"duplicate token address {token.address}")
            by_id[token.id] = token
            by_symbol[token.symbol] = token
            if address:
                by_address[address] = token
        self.by_id: Mapping[int, TokenDescriptor] = MappingProxyType(by_id)
        self.by_symbol: Mapping[str, TokenDescriptor] = MappingProxyType(by_symbol)
        self.by_address: Mapping[str, TokenDescriptor] = MappingProxyType(by_address)


class TokenRegistry:
    """Resolves symbols, L1 contract addresses and ids to descriptors.

    The table is only ever replaced wholesale by ``refresh``; readers keep
    whatever table they started with.
    """

    def __init__(self, tokens: Iterable[TokenDescriptor] = ()):
        self._table = _TokenTable(tokens)

    def __len__(self) -> int:
        return len(self._table.by_id)

    def __iter__(self):
        return iter(sorted(self._table.by_id.values(), key=lambda t: t.id))

    def __contains__(self, identifier: object) -> bool:
        try:
            self.resolve(identifier)  # type: ignore[arg-type]
        except ValidationError:
            return False
        return True

    async def refresh(self, transport) -> None:
        tokens = await transport.list_tokens()
        try:
            table = _TokenTable(tokens)
        except ValueError as e:
            raise TransportError(ErrorCode.MALFORMED_RESPONSE, f"operator token list: {e}") from e
        self._table = table
        logger.info(f"Token registry refreshed: {len(table.by_id)} tokens")

    def resolve(self, identifier: TokenLike) -> TokenDescriptor:
        table = self._table
        if isinstance(identifier, TokenDescriptor):
            known = table.by_id.get(identifier.id)
            if known != identifier:
                raise ValidationError(
                    ErrorCode.UNKNOWN_TOKEN, f"token {identifier.symbol} not registered"
                )
            return known
        if isinstance(identifier, bool):
            raise ValidationError(ErrorCode.UNKNOWN_TOKEN, "invalid token identifier")
        if isinstance(identifier, int):
            token = table.by_id.get(identifier)
        elif isinstance(identifier, str):
            token = table.by_symbol.get(identifier)
            if token is None and identifier.startswith(("0x", "0X")):
                token = table.by_address.get(identifier.lower())
        else:
            token = None
        if token is None:
            raise ValidationError(ErrorCode.UNKNOWN_TOKEN, f"unknown token {identifier!r}")
        return token


def to_base_units(token: TokenDescriptor, value: Union[str, int, Decimal]) -> int:
    """Convert a human amount ("0.1") into the token's smallest unit."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(ErrorCode.INVALID_AMOUNT, f"invalid amount {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError(ErrorCode.INVALID_AMOUNT, f"invalid amount {value!r}")
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        scaled = amount.scaleb(token.decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            ErrorCode.INVALID_AMOUNT,
            f"{value} has more than {token.decimals} decimals for {token.symbol}",
        )
    return int(scaled)


def format_units(token: TokenDescriptor, amount: int) -> str:
    """Render base units as a decimal string without trailing zeros."""
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        text = format(Decimal(int(amount)).scaleb(-token.decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
