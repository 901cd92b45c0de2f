# src/annuity/runtime/apply/settlement.py
from __future__ import annotations

"""Per-operation context and the two accrual primitives.

Every operation:
  1) loads the caller's Account and the GlobalPool into an Operation
  2) accrues (process_staked_amount / settle_payout)
  3) applies its transition
  4) commits Account + GlobalPool back into state
  5) hands its token calls to the executor, which runs them after commit

Token movement is never performed here. Deliveries owed to the caller are
summed into a single `deliver` amount so each operation pays out at most once,
and any `transfer_in` is ordered ahead of it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from annuity.ledger import fixed_point as fp
from annuity.ledger.constants import SECONDS_PER_YEAR
from annuity.ledger.interest import accrue_until
from annuity.ledger.state import Account, AccountStatus, GlobalPool, load_account, load_pool, store_account, store_pool
from annuity.runtime.apply.pool import remove_payout
from annuity.runtime.errors import ApplyError
from annuity.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass
class Operation:
    account_id: str
    now: int
    account: Account
    pool: GlobalPool
    events: List[Json] = field(default_factory=list)
    deliver: int = 0
    pull: int = 0

    @classmethod
    def begin(cls, state: Json, env: TxEnvelope) -> "Operation":
        signer = str(env.signer or "").strip()
        if not signer:
            raise ApplyError("invalid_envelope", "missing_signer", {"tx_type": env.tx_type})
        if signer == str(state.get("contract_id") or ""):
            raise ApplyError("forbidden", "contract_cannot_act", {"signer": signer})
        now = int(env.ts or 0)
        if now <= 0:
            raise ApplyError("invalid_envelope", "missing_timestamp", {"tx_type": env.tx_type})
        return cls(
            account_id=signer,
            now=now,
            account=load_account(state, signer),
            pool=load_pool(state),
        )

    def emit(self, event: str, **fields: Any) -> None:
        rec: Json = {"event": event, "account": self.account_id, "ts": self.now}
        rec.update(fields)
        self.events.append(rec)

    def token_calls(self) -> List[Json]:
        # Pull first: the only call that can fail on the caller's funds runs
        # before anything is paid out.
        calls: List[Json] = []
        if self.pull > 0:
            calls.append({"op": "transfer_in", "from": self.account_id, "amount": int(self.pull)})
        if self.deliver > 0:
            calls.append({"op": "deliver", "to": self.account_id, "amount": int(self.deliver)})
        return calls

    def commit(self, state: Json, applied: str, **fields: Any) -> Json:
        store_account(state, self.account_id, self.account)
        store_pool(state, self.pool)
        receipt: Json = {
            "applied": applied,
            "account": self.account_id,
            "ts": self.now,
            "balance": int(self.account.balance),
            "status": int(self.account.status),
            "events": list(self.events),
            "token_calls": self.token_calls(),
        }
        receipt.update(fields)
        return receipt


def process_staked_amount(op: Operation) -> None:
    """Compound the caller's stake up to min(now, end_interest_time)."""
    acct = op.account
    if acct.status != AccountStatus.STAKE:
        return
    acct.balance = accrue_until(
        acct.balance,
        last=acct.last_processed_time,
        now=op.now,
        end=op.pool.end_interest_time,
    )
    acct.last_processed_time = op.now


def releasable(acct: Account, now: int) -> int:
    """Tokens currently releasable from a PAYOUT account.

    The snapshot is released linearly over one year, rounded up. Elapsed time
    is not clamped to the interest cutoff: release continues indefinitely.
    """
    elapsed = max(0, int(now) - acct.last_processed_time)
    if elapsed == 0 or acct.last_staking_balance == 0:
        return 0
    max_release = fp.to_int_ceil(
        fp.mul(
            fp.from_int(acct.last_staking_balance),
            fp.div(fp.from_int(elapsed), fp.from_int(SECONDS_PER_YEAR)),
        )
    )
    return min(acct.balance, max_release)


def settle_payout(op: Operation) -> int:
    """Release what the payout schedule allows; returns the released amount."""
    acct = op.account
    if acct.status != AccountStatus.PAYOUT:
        return 0
    released = releasable(acct, op.now)
    acct.last_processed_time = op.now
    if released > 0:
        acct.balance -= released
        remove_payout(op.pool, released)
        op.deliver += released
    return released
