"""Packed amount codec.

The operator serializes amounts as ``mantissa * 10^exponent`` in a fixed
number of bits. Quantization always rounds toward zero: a packed amount never
exceeds the amount the caller authorized.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import (
    AMOUNT_EXPONENT_BIT_WIDTH,
    AMOUNT_MANTISSA_BIT_WIDTH,
    FEE_EXPONENT_BIT_WIDTH,
    FEE_MANTISSA_BIT_WIDTH,
    PACKING_BASE,
)
from .errors import ErrorCode, ValidationError


@dataclass(frozen=True)
class PackedForm:
    mantissa: int
    exponent: int
    mantissa_bits: int
    exponent_bits: int

    @property
    def byte_length(self) -> int:
        return (self.mantissa_bits + self.exponent_bits + 7) // 8

    def value(self) -> int:
        return self.mantissa * PACKING_BASE ** self.exponent

    def to_int(self) -> int:
        return (self.mantissa << self.exponent_bits) | self.exponent

    def to_bytes(self) -> bytes:
        """Big-endian; mantissa in the high bits, exponent in the low bits."""
        return self.to_int().to_bytes(self.byte_length, "big", signed=False)

    @classmethod
    def from_bytes(cls, data: bytes, mantissa_bits: int, exponent_bits: int) -> "PackedForm":
        width = (mantissa_bits + exponent_bits + 7) // 8
        if len(data) != width:
            raise ValidationError(ErrorCode.NOT_PACKABLE, f"packed amount must be {width} bytes")
        raw = int.from_bytes(data, "big", signed=False)
        if raw >> (mantissa_bits + exponent_bits):
            raise ValidationError(ErrorCode.NOT_PACKABLE, "packed amount has stray high bits")
        return cls(raw >> exponent_bits, raw & ((1 << exponent_bits) - 1), mantissa_bits, exponent_bits)


class PackedAmountCodec:
    """Mantissa/exponent codec for one field layout."""

    def __init__(self, mantissa_bits: int, exponent_bits: int):
        if mantissa_bits <= 0 or exponent_bits <= 0:
            raise ValueError("field widths must be positive")
        self.mantissa_bits = mantissa_bits
        self.exponent_bits = exponent_bits
        self.max_mantissa = (1 << mantissa_bits) - 1
        self.max_exponent = (1 << exponent_bits) - 1

    def __repr__(self) -> str:
        return f"PackedAmountCodec(M={self.mantissa_bits}, E={self.exponent_bits})"

    @property
    def max_value(self) -> int:
        return self.max_mantissa * PACKING_BASE ** self.max_exponent

    @property
    def byte_length(self) -> int:
        return (self.mantissa_bits + self.exponent_bits + 7) // 8

    def _form(self, mantissa: int, exponent: int) -> PackedForm:
        return PackedForm(mantissa, exponent, self.mantissa_bits, self.exponent_bits)

    def encode(self, amount: int) -> PackedForm:
        """Largest ``m * 10^e <= amount`` with ``m`` and ``e`` in field range."""
        amount = int(amount)
        if amount < 0:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, "amount must be non-negative")
        if amount > self.max_value:
            raise ValidationError(
                ErrorCode.AMOUNT_TOO_LARGE,
                f"amount {amount} exceeds packable maximum {self.max_value}",
            )
        if amount <= self.max_mantissa:
            return self._form(amount, 0)

        # Smallest exponent whose truncated mantissa fits the field.
        exponent = 0
        scale = 1
        while amount // scale > self.max_mantissa:
            exponent += 1
            scale *= PACKING_BASE
        best = self._form(amount // scale, exponent)

        # One step finer, a saturated mantissa can land closer to amount
        # (e.g. amount = 2^M: (2^M - 1) * 10^0 beats 3435973836 * 10^1).
        saturated = self._form(self.max_mantissa, exponent - 1)
        if saturated.value() > best.value():
            return saturated
        return best

    def decode(self, packed: PackedForm) -> int:
        if not (0 <= packed.mantissa <= self.max_mantissa):
            raise ValidationError(ErrorCode.NOT_PACKABLE, "mantissa out of range")
        if not (0 <= packed.exponent <= self.max_exponent):
            raise ValidationError(ErrorCode.NOT_PACKABLE, "exponent out of range")
        return packed.value()

    def closest_packable(self, amount: int) -> int:
        return self.decode(self.encode(amount))

    def is_packable(self, amount: int) -> bool:
        amount = int(amount)
        if amount < 0 or amount > self.max_value:
            return False
        return self.closest_packable(amount) == amount

    def pack(self, amount: int) -> bytes:
        """Serialize an amount that is already in packable form."""
        packed = self.encode(amount)
        if packed.value() != int(amount):
            raise ValidationError(
                ErrorCode.NOT_PACKABLE,
                f"amount {amount} is not packable; closest is {packed.value()}",
            )
        return packed.to_bytes()

    def unpack(self, data: bytes) -> int:
        return self.decode(PackedForm.from_bytes(data, self.mantissa_bits, self.exponent_bits))


AMOUNT_CODEC = PackedAmountCodec(AMOUNT_MANTISSA_BIT_WIDTH, AMOUNT_EXPONENT_BIT_WIDTH)
FEE_CODEC = PackedAmountCodec(FEE_MANTISSA_BIT_WIDTH, FEE_EXPONENT_BIT_WIDTH)


def closest_packable_amount(amount: int) -> int:
    return AMOUNT_CODEC.closest_packable(amount)


def closest_packable_fee(fee: int) -> int:
    return FEE_CODEC.closest_packable(fee)


def is_amount_packable(amount: int) -> bool:
    return AMOUNT_CODEC.is_packable(amount)


def is_fee_packable(fee: int) -> bool:
    return FEE_CODEC.is_packable(fee)
