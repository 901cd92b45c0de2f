# src/annuity/runtime/apply/payout.py
from __future__ import annotations

"""Payout collection and forced (penalized) payout.

Canon:
  COLLECT_PAYOUT  {}
  FORCE_PAYOUT    {"amount": int > 0, "amount_type": "TO_WALLET" | "FROM_ACCOUNT"}

Forced payout penalty:
  - the shortfall beyond normal release is debited in full
  - only half of the debit is delivered; the other half is forfeited
  - TO_WALLET doubles the debit so the wallet receives the requested amount
  - forfeited tokens are neither transferred nor burned
"""

from enum import Enum
from typing import Any, Dict, Optional

from annuity.ledger.constants import PENALTY_DIVISOR
from annuity.ledger.state import AccountStatus
from annuity.runtime.apply.accounts import enter_payout, require_positive_amount
from annuity.runtime.apply.pool import remove_payout
from annuity.runtime.apply.settlement import Operation, settle_payout
from annuity.runtime.errors import ApplyError
from annuity.runtime.supported_txs import COLLECT_PAYOUT, FORCE_PAYOUT
from annuity.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


class AmountType(str, Enum):
    TO_WALLET = "TO_WALLET"
    FROM_ACCOUNT = "FROM_ACCOUNT"

    @classmethod
    def parse(cls, v: Any) -> "AmountType":
        s = str(v or "").strip().upper()
        try:
            return cls(s)
        except ValueError:
            raise ApplyError("invalid_payload", "bad_amount_type", {"amount_type": v})


def collect_payout(op: Operation) -> int:
    if op.account.status != AccountStatus.PAYOUT:
        raise ApplyError("invalid_state", "not_in_payout", {"account": op.account_id})

    released = settle_payout(op)
    if released == 0:
        raise ApplyError("nothing_to_payout", "nothing_to_payout", {"account": op.account_id})

    op.emit("COLLECT_PAYOUT", amount=int(released))
    return released


def force_payout(op: Operation, amount: Any, amount_type: Any) -> Json:
    amt = require_positive_amount(amount)
    kind = AmountType.parse(amount_type)

    if op.account.status != AccountStatus.PAYOUT:
        enter_payout(op)

    released = settle_payout(op)
    if released >= amt:
        op.emit("FORCE_PAYOUT", amount=int(released), debited=0, forfeited=0)
        return {"released": int(released), "debited": 0, "delivered": int(released), "forfeited": 0}

    extra = amt - released
    if kind == AmountType.TO_WALLET:
        extra *= PENALTY_DIVISOR

    acct = op.account
    if extra > acct.balance:
        raise ApplyError(
            "insufficient_balance",
            "insufficient_balance",
            {"account": op.account_id, "balance": int(acct.balance), "debit": int(extra)},
        )

    acct.balance -= extra
    remove_payout(op.pool, extra)
    acct.last_processed_time = op.now

    paid = extra // PENALTY_DIVISOR
    forfeited = extra - paid
    op.deliver += paid

    delivered = int(released + paid)
    op.emit("FORCE_PAYOUT", amount=delivered, debited=int(extra), forfeited=int(forfeited))
    return {"released": int(released), "debited": int(extra), "delivered": delivered, "forfeited": int(forfeited)}


# ---------------------------------------------------------------------------
# Appliers
# ---------------------------------------------------------------------------


def _apply_collect_payout(state: Json, env: TxEnvelope) -> Json:
    op = Operation.begin(state, env)
    released = collect_payout(op)
    return op.commit(state, COLLECT_PAYOUT, amount=int(released))


def _apply_force_payout(state: Json, env: TxEnvelope) -> Json:
    payload = env.payload if isinstance(env.payload, dict) else {}
    op = Operation.begin(state, env)
    out = force_payout(op, payload.get("amount"), payload.get("amount_type"))
    return op.commit(state, FORCE_PAYOUT, **out)


PAYOUT_TX_TYPES = {
    COLLECT_PAYOUT: _apply_collect_payout,
    FORCE_PAYOUT: _apply_force_payout,
}


def apply_payout(state: Json, env: TxEnvelope) -> Optional[Json]:
    """Apply payout txs. Returns None if tx_type not handled."""
    fn = PAYOUT_TX_TYPES.get(str(env.tx_type or "").strip().upper())
    if fn is None:
        return None
    return fn(state, env)


__all__ = ["AmountType", "apply_payout", "collect_payout", "force_payout"]
