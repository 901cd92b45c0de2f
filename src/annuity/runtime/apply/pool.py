# src/annuity/runtime/apply/pool.py
from __future__ import annotations

"""Global supply tracker.

total_staking_supply is compounded lazily as one lump, on its own clock
(total_staking_time). It is a reporting approximation, never a sum over
accounts, so it may drift from the per-account total by rounding. Nothing
settles against it.

total_payout_supply is exact: it moves in lockstep with payout balances.
"""

from annuity.ledger.interest import accrue_until
from annuity.ledger.state import GlobalPool
from annuity.runtime.errors import ApplyError


def accrued_staking_supply(pool: GlobalPool, now: int) -> int:
    """Staking total as of `now`, without mutating the pool."""
    return accrue_until(
        pool.total_staking_supply,
        last=pool.total_staking_time,
        now=now,
        end=pool.end_interest_time,
    )


def accrue_pool(pool: GlobalPool, now: int) -> None:
    pool.total_staking_supply = accrued_staking_supply(pool, now)
    pool.total_staking_time = int(now)


def add_staking(pool: GlobalPool, amount: int, now: int) -> None:
    accrue_pool(pool, now)
    pool.total_staking_supply += int(amount)


def remove_staking(pool: GlobalPool, amount: int, now: int) -> None:
    # Saturates: the lump can trail the accounts it approximates.
    accrue_pool(pool, now)
    pool.total_staking_supply = max(0, pool.total_staking_supply - int(amount))


def add_payout(pool: GlobalPool, amount: int) -> None:
    pool.total_payout_supply += int(amount)


def remove_payout(pool: GlobalPool, amount: int) -> None:
    amt = int(amount)
    if amt > pool.total_payout_supply:
        raise ApplyError(
            "invariant_violation",
            "payout_supply_underflow",
            {"total_payout_supply": pool.total_payout_supply, "amount": amt},
        )
    pool.total_payout_supply -= amt
