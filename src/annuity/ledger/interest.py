# src/annuity/ledger/interest.py
from __future__ import annotations

"""Continuous-compounding interest.

Growth follows P * e^(r * t) with r = ln(2) (100% APY) and t in years.
Since e^r == GROWTH_BASE exactly, the engine evaluates GROWTH_BASE ** t,
which keeps a full year an exact doubling.
"""

from annuity.ledger import fixed_point as fp
from annuity.ledger.constants import GROWTH_BASE, SECONDS_PER_YEAR


def interest_rate() -> int:
    """Continuously-compounded annual rate r (fixed-point), i.e. ln(GROWTH_BASE)."""
    return fp.ln(GROWTH_BASE)


def years(seconds: int) -> int:
    return fp.div(fp.from_int(seconds), fp.from_int(SECONDS_PER_YEAR))


def accrue(principal: int, seconds_elapsed: int) -> int:
    """Return ceiling(principal * e^(r * seconds_elapsed / year)).

    Non-positive durations and zero principals are returned unchanged.
    """
    p = int(principal)
    s = int(seconds_elapsed)
    principal_fx = fp.from_int(p)
    if s <= 0 or p == 0:
        return p

    growth = fp.pow(GROWTH_BASE, years(s))
    return fp.to_int_ceil(fp.mul(principal_fx, growth))


def accrual_window(last: int, now: int, end: int) -> int:
    """Seconds of interest owed between `last` and `now`, clamped at the cutoff `end`.

    May be zero or negative; accrue() treats that as a no-op.
    """
    return min(int(now), int(end)) - int(last)


def accrue_until(principal: int, *, last: int, now: int, end: int) -> int:
    return accrue(principal, accrual_window(last, now, end))


def end_interest_time(start: int, supply: int) -> int:
    """Latest timestamp at which staking may still accrue.

    Chosen so that `supply` tokens compounding from `start` until the cutoff
    still fit the fixed-point range.
    """
    headroom = fp.div(fp.MAX_FIXED, fp.from_int(max(int(supply), 1)))
    horizon_years = fp.div(fp.ln(headroom), interest_rate())
    return int(start) + fp.to_int_floor(fp.mul(horizon_years, fp.from_int(SECONDS_PER_YEAR)))
