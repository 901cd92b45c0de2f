# src/annuity/runtime/contract_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from annuity.ledger.constants import CONTRACT_ACCOUNT_ID

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class ContractConfig:
    contract_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file: ledger snapshot, event log, token ledger.
    db_path: str
    # Optional genesis allocation file; "" disables it.
    genesis_path: str

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_contract_config(cfg: ContractConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.contract_id, str) or not cfg.contract_id.strip():
        raise ValueError("contract_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if cfg.genesis_path and not Path(cfg.genesis_path).is_file():
        raise ValueError(f"genesis_path does not exist or is not a file: {cfg.genesis_path!r}")

    if str(cfg.log_level or "").strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_ALLOWED_LOG_LEVELS}; got: {cfg.log_level!r}")


def default_contract_config() -> ContractConfig:
    return ContractConfig(
        contract_id=CONTRACT_ACCOUNT_ID,
        # Production-safe default: never fall into a permissive dev posture silently.
        mode="prod",
        db_path="./data/annuity.db",
        genesis_path="",
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def read_contract_config_file(path: str) -> ContractConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("contract config must be a JSON object")

    d = default_contract_config()

    cfg = ContractConfig(
        contract_id=_as_str(raw.get("contract_id"), d.contract_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        genesis_path=str(raw.get("genesis_path") or d.genesis_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )

    validate_contract_config(cfg)
    return cfg


def load_contract_config(*, config_path: Optional[str] = None) -> ContractConfig:
    p = config_path or os.environ.get("ANNUITY_CONFIG_PATH")
    if p:
        return read_contract_config_file(p)

    d = default_contract_config()
    cfg = ContractConfig(
        contract_id=_as_str(os.environ.get("ANNUITY_CONTRACT_ID"), d.contract_id),
        mode=_as_str(os.environ.get("ANNUITY_MODE"), d.mode).strip().lower(),
        db_path=_as_str(os.environ.get("ANNUITY_DB_PATH"), d.db_path),
        genesis_path=str(os.environ.get("ANNUITY_GENESIS_PATH") or d.genesis_path),
        api_host=_as_str(os.environ.get("ANNUITY_API_HOST"), d.api_host),
        api_port=_as_int(os.environ.get("ANNUITY_API_PORT"), d.api_port),
        log_level=_as_str(os.environ.get("ANNUITY_LOG_LEVEL"), d.log_level).strip().upper(),
    )
    validate_contract_config(cfg)
    return cfg


def apply_contract_config_to_env(cfg: ContractConfig) -> None:
    validate_contract_config(cfg)
    os.environ["ANNUITY_CONTRACT_ID"] = cfg.contract_id
    os.environ["ANNUITY_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["ANNUITY_DB_PATH"] = cfg.db_path
    os.environ["ANNUITY_GENESIS_PATH"] = cfg.genesis_path
    os.environ["ANNUITY_API_HOST"] = cfg.api_host
    os.environ["ANNUITY_API_PORT"] = str(int(cfg.api_port))
    os.environ["ANNUITY_LOG_LEVEL"] = cfg.log_level
