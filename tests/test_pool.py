from __future__ import annotations

import pytest

from annuity.ledger.constants import SECONDS_PER_YEAR
from annuity.ledger.state import GlobalPool
from annuity.runtime.apply.pool import (
    accrue_pool,
    accrued_staking_supply,
    add_payout,
    add_staking,
    remove_payout,
    remove_staking,
)
from annuity.runtime.errors import ApplyError

T0 = 1_700_000_000
Y = SECONDS_PER_YEAR


def _pool() -> GlobalPool:
    return GlobalPool(total_staking_supply=1000, total_staking_time=T0, end_interest_time=T0 + 2 * Y)


def test_accrued_view_does_not_mutate() -> None:
    p = _pool()
    assert accrued_staking_supply(p, T0 + Y) == 2000
    assert p.total_staking_supply == 1000
    assert p.total_staking_time == T0


def test_accrual_stops_at_cutoff() -> None:
    p = _pool()
    assert accrued_staking_supply(p, T0 + 10 * Y) == 4000
    accrue_pool(p, T0 + 10 * Y)
    assert p.total_staking_supply == 4000
    assert p.total_staking_time == T0 + 10 * Y
    accrue_pool(p, T0 + 20 * Y)
    assert p.total_staking_supply == 4000


def test_add_staking_accrues_first() -> None:
    p = _pool()
    add_staking(p, 500, T0 + Y)
    assert p.total_staking_supply == 2500
    assert p.total_staking_time == T0 + Y


def test_remove_staking_saturates_at_zero() -> None:
    p = _pool()
    remove_staking(p, 10_000, T0)
    assert p.total_staking_supply == 0


def test_payout_supply_is_exact() -> None:
    p = GlobalPool()
    add_payout(p, 300)
    remove_payout(p, 100)
    assert p.total_payout_supply == 200

    with pytest.raises(ApplyError) as e:
        remove_payout(p, 201)
    assert (e.value.code, e.value.reason) == ("invariant_violation", "payout_supply_underflow")
