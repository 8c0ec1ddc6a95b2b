# tests/test_chain_config.py
from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

import pytest

from poaledger import env
from poaledger.runtime.chain_config import (
    apply_chain_config_to_env,
    default_chain_config,
    load_chain_config,
    read_chain_config_file,
    validate_chain_config,
)
from poaledger.runtime.ecosystem import build_chain, ecosystem_from_chain


def test_defaults_are_valid(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("POA_CHAIN_CONFIG_PATH", raising=False)
    cfg = load_chain_config()
    assert cfg == default_chain_config()
    assert cfg.mode == "dev"
    assert cfg.db_path == ""
    assert cfg.fee_rate_permille == 5


def test_yaml_file_is_read_and_normalized(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "chain.yaml"
    p.write_text(
        "chain_id: poa-testnet\n"
        "mode: TESTNET\n"
        "api_port: '9001'\n"
        "log_level: debug\n"
        "activation_fee_tolerance_permille: 10\n"
        "genesis_rates:\n"
        "  usd: 5000\n"
        "  eur: 4500\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("POA_CHAIN_CONFIG_PATH", str(p))

    cfg = load_chain_config()
    assert cfg.chain_id == "poa-testnet"
    assert cfg.mode == "testnet"
    assert cfg.api_port == 9001
    assert cfg.log_level == "DEBUG"
    assert cfg.activation_fee_tolerance_permille == 10
    assert cfg.genesis_rates == {"USD": 5000, "EUR": 4500}
    assert cfg.act_rate == default_chain_config().act_rate


def test_empty_yaml_gives_defaults(tmp_path: Path) -> None:
    p = tmp_path / "chain.yaml"
    p.write_text("", encoding="utf-8")
    assert read_chain_config_file(str(p)) == default_chain_config()


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    p = tmp_path / "chain.yaml"
    p.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_chain_config_file(str(p))


@pytest.mark.parametrize(
    "change",
    [
        {"mode": "staging"},
        {"api_port": 0},
        {"fee_rate_permille": 1000},
        {"activation_fee_tolerance_permille": -1},
        {"act_rate": 0},
        {"genesis_owner": "  "},
        {"genesis_rates": {"USD": -1}},
        {"mode": "prod", "db_path": ""},
    ],
)
def test_validation_fails_fast(change) -> None:
    with pytest.raises(ValueError):
        validate_chain_config(replace(default_chain_config(), **change))


def test_apply_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in ("POA_CHAIN_ID", "POA_MODE", "POA_DB_PATH", "POA_API_HOST", "POA_API_PORT", "POA_LOG_LEVEL"):
        monkeypatch.setenv(k, "unset")

    cfg = replace(default_chain_config(), mode="prod", db_path="/var/lib/poa/chain.db", api_port=8080)
    apply_chain_config_to_env(cfg)

    assert os.environ["POA_MODE"] == "prod"
    assert os.environ["POA_DB_PATH"] == "/var/lib/poa/chain.db"
    assert os.environ["POA_API_PORT"] == "8080"
    assert os.environ["POA_CHAIN_ID"] == "poa-dev"


def test_build_chain_bootstraps_then_restores(tmp_path: Path) -> None:
    cfg = replace(
        default_chain_config(),
        db_path=str(tmp_path / "chain.db"),
        genesis_rates={"USD": 5000},
        activation_fee_tolerance_permille=7,
    )

    first = build_chain(cfg)
    eco = ecosystem_from_chain(first)
    assert eco is not None
    assert eco.owner == cfg.genesis_owner
    assert first.view(eco.exchange_rates, "current_rate", currency="USD") == 5000
    assert first.params["activation_fee_tolerance_permille"] == 7

    second = build_chain(cfg)
    assert second.registry_address == first.registry_address
    assert ecosystem_from_chain(second) == eco
    assert len(second.events) == len(first.events)


def test_in_memory_chain_without_db_path() -> None:
    ch = build_chain(replace(default_chain_config(), genesis_rates={"USD": 5000}))
    assert ch.store is None
    assert ecosystem_from_chain(ch) is not None


def test_dotenv_is_loaded_once_and_never_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / ".env"
    p.write_text("POA_DOTENV_SET=from-file\nPOA_DOTENV_KEEP=from-file\n", encoding="utf-8")
    # Registered so monkeypatch removes whatever the loader sets.
    monkeypatch.setenv("POA_DOTENV_SET", "x")
    monkeypatch.delenv("POA_DOTENV_SET")
    monkeypatch.setenv("POA_DOTENV_KEEP", "from-env")
    monkeypatch.setattr(env, "_LOADED", False)

    assert env.load_dotenv_if_present(str(p)) is True
    assert os.environ["POA_DOTENV_SET"] == "from-file"
    assert os.environ["POA_DOTENV_KEEP"] == "from-env"
    assert env.load_dotenv_if_present(str(p)) is False


def test_missing_dotenv_is_not_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(env, "_LOADED", False)
    assert env.load_dotenv_if_present(str(tmp_path / "nope.env")) is False
