# src/annuity/runtime/executor_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from annuity.ledger.constants import CONTRACT_ACCOUNT_ID
from annuity.runtime.executor import AnnuityExecutor
from annuity.runtime.genesis_config import load_genesis


@dataclass
class ExecutorBootConfig:
    db_path: str
    contract_id: str
    genesis_path: str


def boot_config_from_env() -> ExecutorBootConfig:
    db_path = os.environ.get("ANNUITY_DB_PATH", "./data/annuity.db")
    contract_id = os.environ.get("ANNUITY_CONTRACT_ID", CONTRACT_ACCOUNT_ID)
    genesis_path = os.environ.get("ANNUITY_GENESIS_PATH", "")

    return ExecutorBootConfig(
        db_path=db_path,
        contract_id=contract_id,
        genesis_path=genesis_path,
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None) -> AnnuityExecutor:
    """
    Build an AnnuityExecutor from an explicit boot config or, if omitted,
    from environment variables.

    `annuity.api.app` calls build_executor() with no args in production.
    The genesis file is read on every boot but only applied to a fresh DB.
    """
    c = cfg or boot_config_from_env()
    genesis = load_genesis(c.genesis_path) if c.genesis_path else None
    return AnnuityExecutor(
        contract_id=c.contract_id,
        db_path=c.db_path,
        genesis=genesis,
    )
