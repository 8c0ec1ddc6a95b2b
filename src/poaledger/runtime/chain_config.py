# src/poaledger/runtime/chain_config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from poaledger.ledger.constants import ACT_RATE, ACTIVATION_FEE_TOLERANCE_PERMILLE, FEE_RATE_PERMILLE, PERMILLE

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_rates(v: Any, default: Dict[str, int]) -> Dict[str, int]:
    if not isinstance(v, dict):
        return dict(default)
    return {str(k).strip().upper(): _as_int(r, 0) for k, r in v.items()}


@dataclass(frozen=True)
class ChainConfig:
    chain_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # SQLite file for the snapshot and event log; "" keeps the chain in memory.
    db_path: str

    api_host: str
    api_port: int
    log_level: str

    fee_rate_permille: int
    activation_fee_tolerance_permille: int
    act_rate: int

    genesis_owner: str
    genesis_rates: Dict[str, int] = field(default_factory=dict)


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_chain_config(cfg: ChainConfig) -> None:
    """Fail-fast validation for operator config."""
    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ValueError("chain_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not 0 <= int(cfg.fee_rate_permille) < PERMILLE:
        raise ValueError(f"fee_rate_permille must be 0..999; got: {cfg.fee_rate_permille}")

    if not 0 <= int(cfg.activation_fee_tolerance_permille) < PERMILLE:
        raise ValueError(
            f"activation_fee_tolerance_permille must be 0..999; got: {cfg.activation_fee_tolerance_permille}"
        )

    if int(cfg.act_rate) <= 0:
        raise ValueError(f"act_rate must be > 0; got: {cfg.act_rate}")

    if not isinstance(cfg.genesis_owner, str) or not cfg.genesis_owner.strip():
        raise ValueError("genesis_owner must be a non-empty string")

    for cur, rate in cfg.genesis_rates.items():
        if int(rate) < 0:
            raise ValueError(f"genesis rate for {cur} must be >= 0; got: {rate}")

    if mode == "prod" and not str(cfg.db_path).strip():
        raise ValueError("db_path is required in prod mode")


def default_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id="poa-dev",
        mode="dev",
        db_path="",
        api_host="127.0.0.1",
        api_port=8000,
        log_level="INFO",
        fee_rate_permille=FEE_RATE_PERMILLE,
        activation_fee_tolerance_permille=ACTIVATION_FEE_TOLERANCE_PERMILLE,
        act_rate=ACT_RATE,
        genesis_owner="0x" + "0" * 39 + "1",
        genesis_rates={},
    )


def read_chain_config_file(path: str) -> ChainConfig:
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("chain config must be a YAML mapping")

    d = default_chain_config()
    cfg = ChainConfig(
        chain_id=_as_str(raw.get("chain_id"), d.chain_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=str(raw.get("db_path") or d.db_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).upper(),
        fee_rate_permille=_as_int(raw.get("fee_rate_permille"), d.fee_rate_permille),
        activation_fee_tolerance_permille=_as_int(
            raw.get("activation_fee_tolerance_permille"), d.activation_fee_tolerance_permille
        ),
        act_rate=_as_int(raw.get("act_rate"), d.act_rate),
        genesis_owner=_as_str(raw.get("genesis_owner"), d.genesis_owner),
        genesis_rates=_as_rates(raw.get("genesis_rates"), d.genesis_rates),
    )

    validate_chain_config(cfg)
    return cfg


def load_chain_config(*, config_path: Optional[str] = None) -> ChainConfig:
    p = config_path or os.environ.get("POA_CHAIN_CONFIG_PATH")
    if p:
        return read_chain_config_file(p)

    cfg = default_chain_config()
    validate_chain_config(cfg)
    return cfg


def apply_chain_config_to_env(cfg: ChainConfig) -> None:
    validate_chain_config(cfg)
    os.environ["POA_CHAIN_ID"] = cfg.chain_id
    os.environ["POA_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["POA_DB_PATH"] = cfg.db_path
    os.environ["POA_API_HOST"] = cfg.api_host
    os.environ["POA_API_PORT"] = str(int(cfg.api_port))
    os.environ["POA_LOG_LEVEL"] = cfg.log_level


__all__ = [
    "ChainConfig",
    "apply_chain_config_to_env",
    "default_chain_config",
    "load_chain_config",
    "read_chain_config_file",
    "validate_chain_config",
]
