from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from annuity.runtime.contract_config import (
    apply_contract_config_to_env,
    default_contract_config,
    load_contract_config,
    read_contract_config_file,
)
from annuity.runtime.genesis_config import load_genesis

_ENV_KEYS = (
    "ANNUITY_CONFIG_PATH",
    "ANNUITY_CONTRACT_ID",
    "ANNUITY_MODE",
    "ANNUITY_DB_PATH",
    "ANNUITY_GENESIS_PATH",
    "ANNUITY_API_HOST",
    "ANNUITY_API_PORT",
    "ANNUITY_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # setenv first so teardown also removes keys the tests write directly.
    for k in _ENV_KEYS:
        monkeypatch.setenv(k, "")
        monkeypatch.delenv(k)


def test_defaults_are_production_safe() -> None:
    cfg = load_contract_config()
    assert cfg == default_contract_config()
    assert cfg.mode == "prod"
    assert cfg.api_host == "127.0.0.1"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANNUITY_MODE", "DEV")
    monkeypatch.setenv("ANNUITY_API_PORT", "9001")
    monkeypatch.setenv("ANNUITY_LOG_LEVEL", "debug")
    cfg = load_contract_config()
    assert (cfg.mode, cfg.api_port, cfg.log_level) == ("dev", 9001, "DEBUG")


def test_file_config_and_apply_to_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    genesis = tmp_path / "genesis.json"
    genesis.write_text(json.dumps({"balances": {"alice": 5}}), encoding="utf-8")
    p = tmp_path / "contract.json"
    p.write_text(
        json.dumps(
            {
                "contract_id": "ANNUITY-TEST",
                "mode": "testnet",
                "db_path": str(tmp_path / "a.db"),
                "genesis_path": str(genesis),
                "api_port": 8181,
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("ANNUITY_CONFIG_PATH", str(p))

    cfg = load_contract_config()
    assert cfg.contract_id == "ANNUITY-TEST"
    assert cfg.genesis_path == str(genesis)

    apply_contract_config_to_env(cfg)
    assert os.environ["ANNUITY_CONTRACT_ID"] == "ANNUITY-TEST"
    assert os.environ["ANNUITY_API_PORT"] == "8181"
    assert os.environ["ANNUITY_MODE"] == "testnet"


@pytest.mark.parametrize(
    "raw",
    [
        {"mode": "yolo"},
        {"api_port": 70000},
        {"log_level": "LOUD"},
        {"genesis_path": "/definitely/not/here.json"},
    ],
)
def test_invalid_config_fails_fast(tmp_path: Path, raw: dict) -> None:
    p = tmp_path / "contract.json"
    p.write_text(json.dumps(raw), encoding="utf-8")
    with pytest.raises(ValueError):
        read_contract_config_file(str(p))


def test_load_genesis_drops_bad_entries(tmp_path: Path) -> None:
    p = tmp_path / "genesis.json"
    p.write_text(
        json.dumps({"created_at": 1_700_000_000, "balances": {"alice": 10, "": 5, "bob": 0, "carol": "x", "dan": "7"}}),
        encoding="utf-8",
    )
    g = load_genesis(str(p))
    assert g.created_at == 1_700_000_000
    assert g.balances == {"alice": 10, "dan": 7}


def test_load_genesis_reads_signer_keys(tmp_path: Path) -> None:
    p = tmp_path / "genesis.json"
    p.write_text(
        json.dumps({"keys": {"alice": ["ab" * 32, "  ", 7], "bob": "cd", "": ["ef" * 32], "carol": []}}),
        encoding="utf-8",
    )
    g = load_genesis(str(p))
    assert g.keys == {"alice": ["ab" * 32]}


def test_load_genesis_rejects_bad_timestamp(tmp_path: Path) -> None:
    p = tmp_path / "genesis.json"
    p.write_text(json.dumps({"created_at": -1}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_genesis(str(p))

    with pytest.raises(FileNotFoundError):
        load_genesis(str(tmp_path / "missing.json"))
