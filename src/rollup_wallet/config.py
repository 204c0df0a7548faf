"""Network constants and client configuration.

Packing widths must stay aligned with the operator's serialized transaction
format: a transaction amount is 5 bytes (35-bit mantissa, 5-bit exponent) and
a fee is 2 bytes (11-bit mantissa, 5-bit exponent).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional, Union

import yaml

# Amount packing
AMOUNT_MANTISSA_BIT_WIDTH = 35
AMOUNT_EXPONENT_BIT_WIDTH = 5
FEE_MANTISSA_BIT_WIDTH = 11
FEE_EXPONENT_BIT_WIDTH = 5
PACKING_BASE = 10

# Tokens
MAX_TOKEN_DECIMALS = 18
NATIVE_TOKEN_ID = 0
NATIVE_TOKEN_SYMBOL = "ETH"
MAX_TOKEN_ID = 0xFFFF_FFFF

# Addresses / keys
ADDRESS_BYTES = 20
ZERO_ADDRESS = "0x" + "00" * ADDRESS_BYTES
PUB_KEY_HASH_BYTES = 20
PUB_KEY_HASH_PREFIX = "sync:"
EMPTY_PUB_KEY_HASH = PUB_KEY_HASH_PREFIX + "00" * PUB_KEY_HASH_BYTES

# Nonces are serialized as u32
MAX_NONCE = 0xFFFF_FFFF

# Operator endpoint
DEFAULT_ENDPOINT = "https://rinkeby-api.zksync.io/jsrpc"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("true", "1", "yes")


@dataclass
class ClientConfig:
    """Settings for a wallet session and its operator transport."""
    endpoint: str = DEFAULT_ENDPOINT
    request_timeout: float = 30.0

    # Finality tracking
    poll_interval: float = 1.0
    backoff_initial: float = 0.5
    backoff_max: float = 30.0

    # Upper bound on waiting for the signing key to commit during initialize
    commit_timeout: Optional[float] = 300.0

    fee_token: str = NATIVE_TOKEN_SYMBOL
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.endpoint = os.environ.get("ROLLUP_ENDPOINT", config.endpoint)
        config.request_timeout = float(
            os.environ.get("ROLLUP_REQUEST_TIMEOUT", config.request_timeout)
        )
        config.poll_interval = float(
            os.environ.get("ROLLUP_POLL_INTERVAL", config.poll_interval)
        )
        config.backoff_max = float(os.environ.get("ROLLUP_BACKOFF_MAX", config.backoff_max))
        config.fee_token = os.environ.get("ROLLUP_FEE_TOKEN", config.fee_token)
        config.verbose = _env_flag("ROLLUP_VERBOSE")

        return config

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ClientConfig":
        """Load configuration from a YAML mapping; unknown keys are rejected."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: config must be a mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ClientConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def override(self, **values: Optional[Any]) -> "ClientConfig":
        """Apply non-None overrides (e.g. CLI flags) in place."""
        for name, value in values.items():
            if value is not None:
                setattr(self, name, value)
        return self
