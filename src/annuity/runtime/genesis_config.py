# src/annuity/runtime/genesis_config.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class GenesisConfig:
    # Deployment timestamp (seconds); None means "now" at first boot.
    created_at: Optional[int] = None
    # Initial token allocation minted by the contract at first boot.
    balances: Dict[str, int] = field(default_factory=dict)
    # Ed25519 public keys (hex or base64) allowed to sign for each account.
    keys: Dict[str, List[str]] = field(default_factory=dict)


def load_genesis(path: str) -> GenesisConfig:
    """Load GenesisConfig from a JSON file.

    Supported input shape:
      {
        "created_at": 1700000000,
        "balances": { "alice": 1000, "bob": 250 },
        "keys": { "alice": ["<hex pubkey>"] }
      }

    Entries with empty ids, non-positive amounts or blank keys are dropped.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(str(p))

    with p.open("r", encoding="utf-8") as f:
        obj = json.load(f)

    if not isinstance(obj, dict):
        raise ValueError("genesis config must be a JSON object")

    created_at: Optional[int] = None
    raw_ts = obj.get("created_at")
    if raw_ts is not None:
        created_at = int(raw_ts)
        if created_at <= 0:
            raise ValueError("genesis created_at must be positive")

    balances: Dict[str, int] = {}
    raw_bal = obj.get("balances")
    if isinstance(raw_bal, dict):
        for acct, amt in raw_bal.items():
            a = str(acct or "").strip()
            try:
                n = int(amt)
            except (TypeError, ValueError):
                continue
            if a and n > 0:
                balances[a] = n

    keys: Dict[str, List[str]] = {}
    raw_keys = obj.get("keys")
    if isinstance(raw_keys, dict):
        for acct, pks in raw_keys.items():
            a = str(acct or "").strip()
            if not a or not isinstance(pks, list):
                continue
            clean = [str(pk).strip() for pk in pks if isinstance(pk, str) and pk.strip()]
            if clean:
                keys[a] = clean

    return GenesisConfig(created_at=created_at, balances=balances, keys=keys)
