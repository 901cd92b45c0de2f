# src/annuity/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from annuity.runtime.apply.accounts import apply_accounts
from annuity.runtime.apply.payout import apply_payout
from annuity.runtime.errors import ApplyError
from annuity.runtime.state_invariants import ensure_state
from annuity.runtime.supported_txs import SUPPORTED_TX_TYPES
from annuity.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]
ApplyFn = Callable[[Json, TxEnvelope], Optional[Json]]


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_accounts,
    apply_payout,
)


def apply_tx(state: Json, env: Any) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it.

    Mutates `state` in place; callers that need all-or-nothing semantics use
    domain_apply.apply_tx_atomic().
    """
    ensure_state(state)
    env_norm = TxEnvelope.from_json(env)

    t = str(env_norm.tx_type or "").strip().upper()
    if t not in SUPPORTED_TX_TYPES:
        raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})

    for fn in _APPLIERS:
        meta = fn(state, env_norm)
        if meta is not None:
            return meta

    raise ApplyError("tx_unimplemented", "tx_type_not_claimed", {"tx_type": t})
