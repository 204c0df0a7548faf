"""Signing-bytes encoding for wallet operations.

Layout (big-endian):
[type_id:1][account:20][kind fields][token_id:4][amount:5][fee:2][nonce:4]

SetSigningKey writes the 20-byte key hash in place of an amount, and Deposit
(an L1 priority operation) carries no fee or nonce.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from blake3 import blake3

from .config import ADDRESS_BYTES, MAX_NONCE, MAX_TOKEN_ID, PUB_KEY_HASH_BYTES, PUB_KEY_HASH_PREFIX
from .errors import ErrorCode, ValidationError
from .packing import AMOUNT_CODEC, FEE_CODEC
from .types import Deposit, Operation, OperationKind, SetSigningKey, Transfer, Withdraw

OPERATION_TYPE_IDS = {
    OperationKind.DEPOSIT: 1,
    OperationKind.TRANSFER: 5,
    OperationKind.WITHDRAW: 3,
    OperationKind.SET_SIGNING_KEY: 7,
}

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{%d}$" % (2 * ADDRESS_BYTES))
_PUB_KEY_HASH_RE = re.compile(r"^%s[0-9a-fA-F]{%d}$" % (PUB_KEY_HASH_PREFIX, 2 * PUB_KEY_HASH_BYTES))


@dataclass
class Writer:
    buf: bytearray

    def write_u8(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(1, "big", signed=False))

    def write_u32(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(4, "big", signed=False))

    def write_bytes(self, b: bytes) -> None:
        self.buf.extend(b)


def is_address(value: object) -> bool:
    return isinstance(value, str) and _ADDRESS_RE.match(value) is not None


def is_pub_key_hash(value: object) -> bool:
    return isinstance(value, str) and _PUB_KEY_HASH_RE.match(value) is not None


def address_bytes(value: str) -> bytes:
    if not is_address(value):
        raise ValidationError(ErrorCode.INVALID_ADDRESS, f"malformed address {value!r}")
    return bytes.fromhex(value[2:])


def pub_key_hash_bytes(value: str) -> bytes:
    if not is_pub_key_hash(value):
        raise ValidationError(ErrorCode.INVALID_ADDRESS, f"malformed pub key hash {value!r}")
    return bytes.fromhex(value[len(PUB_KEY_HASH_PREFIX):])


def _write_address(w: Writer, value: str) -> None:
    w.write_bytes(address_bytes(value))


def _write_token(w: Writer, token_id: int) -> None:
    if not (0 <= token_id <= MAX_TOKEN_ID):
        raise ValidationError(ErrorCode.INVALID_OPERATION, "token id must fit u32")
    w.write_u32(token_id)


def _write_nonce(w: Writer, nonce: int) -> None:
    if not (0 <= nonce <= MAX_NONCE):
        raise ValidationError(ErrorCode.INVALID_OPERATION, "nonce must fit u32")
    w.write_u32(nonce)


def encode_signing_bytes(op: Operation) -> bytes:
    """Encode the payload the identity signs for ``op``.

    Amounts and fees must already be in packable form; anything else is
    rejected rather than silently rounded.
    """
    kind = getattr(op, "kind", None)
    if kind not in OPERATION_TYPE_IDS:
        raise ValidationError(ErrorCode.INVALID_OPERATION, f"unsupported operation {op!r}")

    w = Writer(bytearray())
    w.write_u8(OPERATION_TYPE_IDS[kind])

    if isinstance(op, SetSigningKey):
        _write_address(w, op.account)
        w.write_bytes(pub_key_hash_bytes(op.new_pub_key_hash))
        _write_token(w, op.fee_token.id)
        w.write_bytes(FEE_CODEC.pack(op.fee))
        _write_nonce(w, op.nonce)
    elif isinstance(op, Deposit):
        _write_address(w, op.from_l1)
        _write_address(w, op.to_l2)
        _write_token(w, op.token.id)
        w.write_bytes(AMOUNT_CODEC.pack(op.amount))
    elif isinstance(op, Withdraw):
        _write_address(w, op.from_l2)
        _write_address(w, op.to_l1)
        _write_token(w, op.token.id)
        w.write_bytes(AMOUNT_CODEC.pack(op.amount))
        w.write_bytes(FEE_CODEC.pack(op.fee))
        _write_nonce(w, op.nonce)
    elif isinstance(op, Transfer):
        _write_address(w, op.from_l2)
        _write_address(w, op.to_l2)
        _write_token(w, op.token.id)
        w.write_bytes(AMOUNT_CODEC.pack(op.amount))
        w.write_bytes(FEE_CODEC.pack(op.fee))
        _write_nonce(w, op.nonce)
    else:
        raise ValidationError(ErrorCode.INVALID_OPERATION, f"unsupported operation {op!r}")

    return bytes(w.buf)


def operation_digest(op: Operation) -> str:
    """BLAKE3-256 of the signing bytes; a local correlation id for ``op``."""
    return blake3(encode_signing_bytes(op)).hexdigest()
