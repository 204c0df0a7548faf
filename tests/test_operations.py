"""Operation builder validation and quantization."""

from __future__ import annotations

import pytest
from conftest import ALICE, ALICE_KEY_HASH, BOB, ETH, USDC

from rollup_wallet.errors import ErrorCode, ValidationError
from rollup_wallet.operations import OperationBuilder
from rollup_wallet.packing import AMOUNT_CODEC
from rollup_wallet.types import Deposit, OperationKind, SetSigningKey, Transfer, Withdraw


@pytest.fixture
def builder(registry) -> OperationBuilder:
    return OperationBuilder(registry)


def test_deposit_defaults_destination_to_sender(builder) -> None:
    op = builder.deposit(from_l1=ALICE, token="ETH", amount=10 ** 17)
    assert isinstance(op, Deposit)
    assert op.kind == OperationKind.DEPOSIT
    assert op.to_l2 == ALICE
    assert op.token == ETH
    assert op.amount == 10 ** 17


def test_transfer_amount_is_quantized_down(builder) -> None:
    amount = AMOUNT_CODEC.max_mantissa * 10 + 7
    op = builder.transfer(from_l2=ALICE, to_l2=BOB, token="ETH", amount=amount, nonce=3)
    assert isinstance(op, Transfer)
    assert op.amount == AMOUNT_CODEC.max_mantissa * 10
    assert op.amount <= amount
    assert AMOUNT_CODEC.is_packable(op.amount)


def test_fee_is_quantized(builder) -> None:
    op = builder.withdraw(from_l2=ALICE, token="USDC", amount=10_000_000, nonce=0, fee=123_456)
    assert isinstance(op, Withdraw)
    assert op.fee == 123_400
    assert op.to_l1 == ALICE
    assert op.token == USDC


@pytest.mark.parametrize("kind", [OperationKind.TRANSFER, OperationKind.WITHDRAW])
def test_zero_amount_rejected_for_outgoing_kinds(builder, kind) -> None:
    params = {"from_l2": ALICE, "token": "ETH", "amount": 0, "nonce": 0}
    if kind == OperationKind.TRANSFER:
        params["to_l2"] = BOB
    with pytest.raises(ValidationError) as exc:
        builder.build(kind, **params)
    assert exc.value.code == ErrorCode.INVALID_AMOUNT


def test_zero_deposit_allowed(builder) -> None:
    op = builder.build(OperationKind.DEPOSIT, from_l1=ALICE, token="ETH", amount=0)
    assert op.amount == 0


@pytest.mark.parametrize("amount", [-1, 1.5, "100", True])
def test_non_integer_or_negative_amount_rejected(builder, amount) -> None:
    with pytest.raises(ValidationError) as exc:
        builder.transfer(from_l2=ALICE, to_l2=BOB, token="ETH", amount=amount, nonce=0)
    assert exc.value.code == ErrorCode.INVALID_AMOUNT


def test_amount_too_large(builder) -> None:
    with pytest.raises(ValidationError) as exc:
        builder.deposit(from_l1=ALICE, token="ETH", amount=AMOUNT_CODEC.max_value + 1)
    assert exc.value.code == ErrorCode.AMOUNT_TOO_LARGE


@pytest.mark.parametrize(
    "to",
    ["0x123", "6C12a705de85a44EAE07fCfb2932Db9Fd1ca1df6", "0x" + "zz" * 20, None],
)
def test_malformed_destination_rejected(builder, to) -> None:
    with pytest.raises(ValidationError) as exc:
        builder.transfer(from_l2=ALICE, to_l2=to, token="ETH", amount=1, nonce=0)
    assert exc.value.code == ErrorCode.INVALID_ADDRESS


def test_unknown_token_rejected(builder) -> None:
    with pytest.raises(ValidationError) as exc:
        builder.deposit(from_l1=ALICE, token="0x" + "00" * 19 + "01", amount=1)
    assert exc.value.code == ErrorCode.UNKNOWN_TOKEN


def test_set_signing_key(builder) -> None:
    op = builder.build(
        OperationKind.SET_SIGNING_KEY,
        account=ALICE,
        new_pub_key_hash=ALICE_KEY_HASH,
        fee_token="ETH",
        nonce=0,
    )
    assert isinstance(op, SetSigningKey)
    assert op.fee == 0
    assert op.fee_token == ETH


def test_set_signing_key_rejects_bad_hash(builder) -> None:
    with pytest.raises(ValidationError) as exc:
        builder.set_signing_key(account=ALICE, new_pub_key_hash="sync:abc", fee_token="ETH", nonce=0)
    assert exc.value.code == ErrorCode.INVALID_ADDRESS


def test_unknown_kind(builder) -> None:
    with pytest.raises(ValidationError) as exc:
        builder.build("swap", from_l2=ALICE)
    assert exc.value.code == ErrorCode.INVALID_OPERATION
