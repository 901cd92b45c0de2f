# src/annuity/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict

from annuity.runtime.domain_dispatch import apply_tx
from annuity.runtime.errors import ApplyError

Json = Dict[str, Any]


def apply_tx_atomic(state: Json, env: Any) -> Json:
    """Apply a tx with fail-atomic semantics.

    On success:
      - state is updated as if apply_tx() ran directly.

    On ApplyError (or any other failure inside apply):
      - state remains unchanged.
    """

    # Apply on a deep copy to guarantee atomicity.
    snapshot = copy.deepcopy(state)

    meta = apply_tx(snapshot, env)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


def restore_state(state: Json, backup: Json) -> None:
    """Roll `state` back to `backup` in place."""
    state.clear()
    state.update(copy.deepcopy(backup))


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "restore_state", "Json"]
