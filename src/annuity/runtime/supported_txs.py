# src/annuity/runtime/supported_txs.py
"""Tx types implemented by this build.

The apply router rejects anything outside this set with tx_unimplemented.
"""

from __future__ import annotations

from typing import FrozenSet

START_STAKE = "START_STAKE"
START_PAYOUT = "START_PAYOUT"
COLLECT_PAYOUT = "COLLECT_PAYOUT"
INCREASE_BALANCE_AND_STAKE = "INCREASE_BALANCE_AND_STAKE"
FORCE_PAYOUT = "FORCE_PAYOUT"

SUPPORTED_TX_TYPES: FrozenSet[str] = frozenset(
    {
        START_STAKE,
        START_PAYOUT,
        COLLECT_PAYOUT,
        INCREASE_BALANCE_AND_STAKE,
        FORCE_PAYOUT,
    }
)


def is_supported(tx_type: str) -> bool:
    return str(tx_type or "").strip().upper() in SUPPORTED_TX_TYPES
