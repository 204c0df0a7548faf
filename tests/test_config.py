"""Client configuration loading."""

from __future__ import annotations

import pytest

from rollup_wallet.config import DEFAULT_ENDPOINT, ClientConfig


def test_defaults() -> None:
    config = ClientConfig()
    assert config.endpoint == DEFAULT_ENDPOINT
    assert config.fee_token == "ETH"
    assert config.backoff_initial < config.backoff_max


def test_from_env(monkeypatch) -> None:
    monkeypatch.setenv("ROLLUP_ENDPOINT", "http://localhost:3030/jsrpc")
    monkeypatch.setenv("ROLLUP_POLL_INTERVAL", "0.25")
    monkeypatch.setenv("ROLLUP_BACKOFF_MAX", "8")
    monkeypatch.setenv("ROLLUP_FEE_TOKEN", "USDC")
    monkeypatch.setenv("ROLLUP_VERBOSE", "yes")

    config = ClientConfig.from_env()
    assert config.endpoint == "http://localhost:3030/jsrpc"
    assert config.poll_interval == 0.25
    assert config.backoff_max == 8.0
    assert config.fee_token == "USDC"
    assert config.verbose


def test_from_yaml(tmp_path) -> None:
    path = tmp_path / "wallet.yaml"
    path.write_text("endpoint: http://operator.local/jsrpc\ncommit_timeout: 60\nbackoff_max: 4\n")

    config = ClientConfig.from_yaml(path)
    assert config.endpoint == "http://operator.local/jsrpc"
    assert config.commit_timeout == 60
    assert config.backoff_max == 4
    assert config.poll_interval == ClientConfig().poll_interval


def test_empty_yaml_gives_defaults(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert ClientConfig.from_yaml(path) == ClientConfig()


def test_yaml_rejects_unknown_keys(tmp_path) -> None:
    path = tmp_path / "typo.yaml"
    path.write_text("endpiont: http://operator.local/jsrpc\n")
    with pytest.raises(ValueError, match="endpiont"):
        ClientConfig.from_yaml(path)


def test_yaml_must_be_mapping(tmp_path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        ClientConfig.from_yaml(path)


def test_override_skips_none() -> None:
    config = ClientConfig().override(endpoint=None, poll_interval=2.0)
    assert config.endpoint == DEFAULT_ENDPOINT
    assert config.poll_interval == 2.0
