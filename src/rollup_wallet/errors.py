"""Rollup wallet error codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCategory(IntEnum):
    VALIDATION = 0x01
    SUBMISSION = 0x02
    TRACKING = 0x03
    STATE_QUERY = 0x04
    TRANSPORT = 0x05
    SESSION = 0x06
    INTERNAL = 0xFF


class ErrorCode(IntEnum):
    # Validation (caller side, raised before any network I/O)
    UNKNOWN_TOKEN = 0x0100
    INVALID_AMOUNT = 0x0101
    AMOUNT_TOO_LARGE = 0x0102
    INVALID_ADDRESS = 0x0103
    NOT_PACKABLE = 0x0104
    INVALID_OPERATION = 0x0105

    # Submission (encoded into a failed tracker)
    SIGNATURE_REJECTED = 0x0200
    SUBMISSION_REJECTED = 0x0201
    NETWORK_UNREACHABLE = 0x0202
    SIGNING_KEY_NOT_SET = 0x0203

    # Tracking
    TRACKING_TIMEOUT = 0x0300
    TRANSIENT_READ = 0x0301

    # State query
    ACCOUNT_STATE_UNAVAILABLE = 0x0400

    # Transport
    RPC_ERROR = 0x0500
    CONNECTION_FAILED = 0x0501
    MALFORMED_RESPONSE = 0x0502

    # Session
    SESSION_CLOSED = 0x0600
    DEPOSIT_APPROVER_NOT_SET = 0x0601

    # Internal
    INTERNAL_ERROR = 0xFF00

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self >> 8)


@dataclass(frozen=True)
class WalletError(Exception):
    code: ErrorCode
    message: str

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen.
_EXCEPTION_ATTRS = frozenset(("__traceback__", "__context__", "__cause__", "__notes__"))
_frozen_setattr = WalletError.__setattr__


def _wallet_error_setattr(self: WalletError, name: str, value: object) -> None:
    if name in _EXCEPTION_ATTRS:
        object.__setattr__(self, name, value)
    else:
        _frozen_setattr(self, name, value)


WalletError.__setattr__ = _wallet_error_setattr  # type: ignore[method-assign]


class ValidationError(WalletError):
    """Bad caller input; fix the input and retry."""


class SubmissionError(WalletError):
    """The network or signer refused a signed operation."""


class TrackingError(WalletError):
    """Observation of an operation failed; says nothing about its outcome."""


class StateQueryError(WalletError):
    """An account state read failed as a whole."""


class TransportError(WalletError):
    """Raised by transport adapters for I/O and RPC level failures."""


class SessionError(WalletError):
    pass


_CATEGORY_TYPES: dict[ErrorCategory, type[WalletError]] = {
    ErrorCategory.VALIDATION: ValidationError,
    ErrorCategory.SUBMISSION: SubmissionError,
    ErrorCategory.TRACKING: TrackingError,
    ErrorCategory.STATE_QUERY: StateQueryError,
    ErrorCategory.TRANSPORT: TransportError,
    ErrorCategory.SESSION: SessionError,
}


def err(code: ErrorCode, message: str) -> WalletError:
    """Build the exception subclass matching ``code``'s category."""
    cls = _CATEGORY_TYPES.get(code.category, WalletError)
    return cls(code=code, message=message)
