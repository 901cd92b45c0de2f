from __future__ import annotations

import pytest

from annuity.ledger.constants import CONTRACT_ACCOUNT_ID, SECONDS_PER_YEAR
from annuity.runtime.domain_apply import ApplyError, apply_tx
from annuity.runtime.tx_admission_types import TxEnvelope

T0 = 1_700_000_000
Y = SECONDS_PER_YEAR


def _state(end: int = T0 + 100 * Y) -> dict:
    return {
        "contract_id": CONTRACT_ACCOUNT_ID,
        "created_at": T0,
        "accounts": {},
        "pool": {
            "total_staking_supply": 0,
            "total_staking_time": T0,
            "total_payout_supply": 0,
            "end_interest_time": end,
        },
        "params": {},
    }


def _env(tx_type: str, signer: str, ts: int, **payload) -> TxEnvelope:
    return TxEnvelope(tx_type=tx_type, signer=signer, payload=payload, ts=ts)


def _in_payout(balance: int = 1000, *, end: int = T0 + 100 * Y) -> dict:
    """alice staked `balance` at T0 and entered payout at T0 + Y (balance doubled)."""
    st = _state(end)
    apply_tx(st, _env("INCREASE_BALANCE_AND_STAKE", "alice", T0, amount=balance))
    apply_tx(st, _env("START_PAYOUT", "alice", T0 + Y))
    return st


def test_collect_releases_linearly_over_one_year() -> None:
    st = _in_payout()
    meta = apply_tx(st, _env("COLLECT_PAYOUT", "alice", T0 + Y + Y // 4))
    assert meta["amount"] == 500
    assert meta["balance"] == 1500
    assert meta["token_calls"] == [{"op": "deliver", "to": "alice", "amount": 500}]
    assert meta["events"] == [{"event": "COLLECT_PAYOUT", "account": "alice", "ts": T0 + Y + Y // 4, "amount": 500}]
    assert st["pool"]["total_payout_supply"] == 1500


def test_collect_is_capped_by_balance_and_then_empty() -> None:
    st = _in_payout()
    meta = apply_tx(st, _env("COLLECT_PAYOUT", "alice", T0 + 5 * Y))
    assert meta["amount"] == 2000
    assert meta["balance"] == 0

    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("COLLECT_PAYOUT", "alice", T0 + 6 * Y))
    assert (e.value.code, e.value.reason) == ("nothing_to_payout", "nothing_to_payout")


def test_collect_rounds_up() -> None:
    st = _in_payout()
    # One second of a 2000-token snapshot releases a fraction of a token.
    meta = apply_tx(st, _env("COLLECT_PAYOUT", "alice", T0 + Y + 1))
    assert meta["amount"] == 1


def test_collect_with_no_elapsed_time_is_nothing_to_payout() -> None:
    st = _in_payout()
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("COLLECT_PAYOUT", "alice", T0 + Y))
    assert e.value.reason == "nothing_to_payout"


def test_collect_while_staking_is_rejected() -> None:
    st = _state()
    apply_tx(st, _env("INCREASE_BALANCE_AND_STAKE", "alice", T0, amount=1000))
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("COLLECT_PAYOUT", "alice", T0 + Y))
    assert (e.value.code, e.value.reason) == ("invalid_state", "not_in_payout")


def test_payout_release_ignores_interest_cutoff() -> None:
    # Interest stops one year in; payout release keeps running afterwards.
    end = T0 + Y
    st = _state(end)
    apply_tx(st, _env("INCREASE_BALANCE_AND_STAKE", "alice", T0, amount=1000))

    meta = apply_tx(st, _env("START_PAYOUT", "alice", T0 + 3 * Y))
    assert meta["balance"] == 2000

    meta = apply_tx(st, _env("COLLECT_PAYOUT", "alice", T0 + 3 * Y + Y // 2))
    assert meta["amount"] == 1000


def test_force_payout_from_account_halves_the_debit() -> None:
    st = _state()
    apply_tx(st, _env("INCREASE_BALANCE_AND_STAKE", "alice", T0, amount=1000))

    meta = apply_tx(st, _env("FORCE_PAYOUT", "alice", T0 + Y, amount=500, amount_type="FROM_ACCOUNT"))
    assert meta["released"] == 0
    assert meta["debited"] == 500
    assert meta["delivered"] == 250
    assert meta["forfeited"] == 250
    assert meta["balance"] == 1500
    assert meta["status"] == 0
    assert [e["event"] for e in meta["events"]] == ["STATUS_CHANGE", "FORCE_PAYOUT"]
    assert meta["token_calls"] == [{"op": "deliver", "to": "alice", "amount": 250}]
    assert st["pool"]["total_payout_supply"] == 1500


def test_force_payout_to_wallet_doubles_the_debit() -> None:
    st = _in_payout()
    meta = apply_tx(st, _env("FORCE_PAYOUT", "alice", T0 + Y, amount=500, amount_type="TO_WALLET"))
    assert meta["debited"] == 1000
    assert meta["delivered"] == 500
    assert meta["forfeited"] == 500
    assert meta["balance"] == 1000


def test_force_payout_adds_normal_release_into_one_delivery() -> None:
    st = _in_payout()
    meta = apply_tx(st, _env("FORCE_PAYOUT", "alice", T0 + Y + Y // 4, amount=700, amount_type="FROM_ACCOUNT"))
    assert meta["released"] == 500
    assert meta["debited"] == 200
    assert meta["delivered"] == 600
    assert meta["token_calls"] == [{"op": "deliver", "to": "alice", "amount": 600}]
    assert meta["balance"] == 2000 - 500 - 200


def test_force_payout_within_release_has_no_penalty() -> None:
    st = _in_payout()
    meta = apply_tx(st, _env("FORCE_PAYOUT", "alice", T0 + Y + Y // 2, amount=300, amount_type="TO_WALLET"))
    assert meta["released"] == 1000
    assert meta["debited"] == 0
    assert meta["forfeited"] == 0
    assert meta["delivered"] == 1000


def test_force_payout_insufficient_balance() -> None:
    st = _in_payout()
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("FORCE_PAYOUT", "alice", T0 + Y, amount=1500, amount_type="TO_WALLET"))
    assert (e.value.code, e.value.reason) == ("insufficient_balance", "insufficient_balance")


def test_force_payout_bad_amount_type() -> None:
    st = _in_payout()
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("FORCE_PAYOUT", "alice", T0 + Y, amount=10, amount_type="SIDEWAYS"))
    assert (e.value.code, e.value.reason) == ("invalid_payload", "bad_amount_type")
