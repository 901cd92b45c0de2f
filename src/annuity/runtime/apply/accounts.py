# src/annuity/runtime/apply/accounts.py
from __future__ import annotations

"""Account state machine: PAYOUT <-> STAKE.

Transitions are the only mutators of Account.status:

  enter_stake   PAYOUT -> STAKE   (settles pending payout first)
  enter_payout  STAKE  -> PAYOUT  (compounds pending interest first)

Canon:
  START_STAKE                 {}
  START_PAYOUT                {}
  INCREASE_BALANCE_AND_STAKE  {"amount": int > 0}
"""

from typing import Any, Dict, Optional

from annuity.ledger.state import AccountStatus
from annuity.runtime.apply.pool import add_payout, add_staking, remove_payout, remove_staking
from annuity.runtime.apply.settlement import Operation, process_staked_amount, settle_payout
from annuity.runtime.errors import ApplyError
from annuity.runtime.supported_txs import INCREASE_BALANCE_AND_STAKE, START_PAYOUT, START_STAKE
from annuity.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    if isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except Exception:
        return int(default)


def require_positive_amount(v: Any) -> int:
    amt = _as_int(v, 0)
    if amt <= 0:
        raise ApplyError("invalid_payload", "amount_must_be_positive", {"amount": v})
    return amt


def enter_stake(op: Operation) -> None:
    acct = op.account
    if acct.status == AccountStatus.STAKE:
        raise ApplyError("invalid_state", "already_staking", {"account": op.account_id})

    settle_payout(op)

    acct.status = AccountStatus.STAKE
    add_staking(op.pool, acct.balance, op.now)
    remove_payout(op.pool, acct.balance)
    op.emit("STATUS_CHANGE", status=int(AccountStatus.STAKE), amount=int(acct.balance))


def enter_payout(op: Operation) -> None:
    acct = op.account
    if acct.status == AccountStatus.PAYOUT:
        raise ApplyError("invalid_state", "already_in_payout", {"account": op.account_id})

    process_staked_amount(op)

    acct.last_staking_balance = acct.balance
    acct.status = AccountStatus.PAYOUT
    remove_staking(op.pool, acct.balance, op.now)
    add_payout(op.pool, acct.balance)
    op.emit("STATUS_CHANGE", status=int(AccountStatus.PAYOUT), amount=int(acct.balance))


def increase_balance_and_stake(op: Operation, amount: Any) -> int:
    amt = require_positive_amount(amount)
    if op.account.status != AccountStatus.STAKE:
        enter_stake(op)

    process_staked_amount(op)

    op.account.balance += amt
    add_staking(op.pool, amt, op.now)
    op.pull += amt
    op.emit("BALANCE_INCREASE", amount=amt, balance=int(op.account.balance))
    return amt


# ---------------------------------------------------------------------------
# Appliers
# ---------------------------------------------------------------------------


def _apply_start_stake(state: Json, env: TxEnvelope) -> Json:
    op = Operation.begin(state, env)
    enter_stake(op)
    return op.commit(state, START_STAKE)


def _apply_start_payout(state: Json, env: TxEnvelope) -> Json:
    op = Operation.begin(state, env)
    enter_payout(op)
    return op.commit(state, START_PAYOUT, last_staking_balance=int(op.account.last_staking_balance))


def _apply_increase_balance_and_stake(state: Json, env: TxEnvelope) -> Json:
    payload = env.payload if isinstance(env.payload, dict) else {}
    op = Operation.begin(state, env)
    amt = increase_balance_and_stake(op, payload.get("amount"))
    return op.commit(state, INCREASE_BALANCE_AND_STAKE, amount=amt)


ACCOUNT_TX_TYPES = {
    START_STAKE: _apply_start_stake,
    START_PAYOUT: _apply_start_payout,
    INCREASE_BALANCE_AND_STAKE: _apply_increase_balance_and_stake,
}


def apply_accounts(state: Json, env: TxEnvelope) -> Optional[Json]:
    """Apply account state-machine txs. Returns None if tx_type not handled."""
    fn = ACCOUNT_TX_TYPES.get(str(env.tx_type or "").strip().upper())
    if fn is None:
        return None
    return fn(state, env)


__all__ = [
    "apply_accounts",
    "enter_payout",
    "enter_stake",
    "increase_balance_and_stake",
    "require_positive_amount",
]
