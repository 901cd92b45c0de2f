from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict


Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


class AccountStatus(IntEnum):
    """Two-state account status; the persisted/exposed value is the int."""

    PAYOUT = 0
    STAKE = 1

    @classmethod
    def parse(cls, v: Any) -> "AccountStatus":
        try:
            return cls(int(v))
        except Exception:
            return cls.PAYOUT


@dataclass(slots=True)
class Account:
    """Per-identity ledger record.

    A never-touched identity is an all-zero record in PAYOUT.
    """

    balance: int = 0
    last_processed_time: int = 0
    last_staking_balance: int = 0
    status: AccountStatus = AccountStatus.PAYOUT

    @classmethod
    def from_json(cls, j: Any) -> "Account":
        if not isinstance(j, dict):
            return cls()
        return cls(
            balance=_as_int(j.get("balance"), 0),
            last_processed_time=_as_int(j.get("last_processed_time"), 0),
            last_staking_balance=_as_int(j.get("last_staking_balance"), 0),
            status=AccountStatus.parse(j.get("status", 0)),
        )

    def to_json(self) -> Json:
        return {
            "balance": int(self.balance),
            "last_processed_time": int(self.last_processed_time),
            "last_staking_balance": int(self.last_staking_balance),
            "status": int(self.status),
        }


@dataclass(slots=True)
class GlobalPool:
    """Aggregate staking/payout totals.

    total_staking_supply is accrued independently of the accounts (reporting only).
    end_interest_time is fixed at construction.
    """

    total_staking_supply: int = 0
    total_staking_time: int = 0
    total_payout_supply: int = 0
    end_interest_time: int = 0

    @classmethod
    def from_json(cls, j: Any) -> "GlobalPool":
        if not isinstance(j, dict):
            return cls()
        return cls(
            total_staking_supply=_as_int(j.get("total_staking_supply"), 0),
            total_staking_time=_as_int(j.get("total_staking_time"), 0),
            total_payout_supply=_as_int(j.get("total_payout_supply"), 0),
            end_interest_time=_as_int(j.get("end_interest_time"), 0),
        )

    def to_json(self) -> Json:
        return {
            "total_staking_supply": int(self.total_staking_supply),
            "total_staking_time": int(self.total_staking_time),
            "total_payout_supply": int(self.total_payout_supply),
            "end_interest_time": int(self.end_interest_time),
        }


@dataclass(frozen=True, slots=True)
class LedgerView:
    """
    Immutable read-only ledger view used by the executor and API.
    """

    contract_id: str = ""
    created_at: int = 0
    accounts: Dict[str, Any] = field(default_factory=dict)
    pool: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "LedgerView":
        return cls(
            contract_id=str(state.get("contract_id") or ""),
            created_at=_as_int(state.get("created_at"), 0),
            accounts=copy.deepcopy(state.get("accounts", {})) if isinstance(state.get("accounts"), dict) else {},
            pool=copy.deepcopy(state.get("pool", {})) if isinstance(state.get("pool"), dict) else {},
        )

    def get_account(self, account_id: str) -> Account:
        return Account.from_json(self.accounts.get(account_id))

    def get_pool(self) -> GlobalPool:
        return GlobalPool.from_json(self.pool)


def load_account(state: Json, account_id: str) -> Account:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        return Account()
    return Account.from_json(accts.get(account_id))


def store_account(state: Json, account_id: str, acct: Account) -> None:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        accts = {}
        state["accounts"] = accts
    accts[account_id] = acct.to_json()


def load_pool(state: Json) -> GlobalPool:
    return GlobalPool.from_json(state.get("pool"))


def store_pool(state: Json, pool: GlobalPool) -> None:
    state["pool"] = pool.to_json()
