# src/annuity/ledger/token.py
from __future__ import annotations

"""Token-movement collaborator.

The annuity contract does not own the fungible-token ledger; it consumes it
through the TokenLedger interface. Two implementations ship with the node:

  - InMemoryTokenLedger (tests, embedded use)
  - SqliteTokenLedger (annuity.runtime.sqlite_db; persisted alongside the ledger)

Every TokenLedger mutator validates before mutating, so a failing call leaves
the token ledger untouched. `transaction()` groups several calls: if the block
raises, every movement made inside it is undone.

Only the token owner (the annuity contract) may mint.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional, Protocol, Tuple

from annuity.ledger.constants import MAX_UINT256

Json = Dict[str, Any]

# (op, src, dst, amount); op in {"transfer", "mint", "approve"}
TokenHook = Callable[[str, str, str, int], None]


@dataclass
class TokenError(Exception):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


class TokenLedger(Protocol):
    owner: str

    def total_supply(self) -> int: ...

    def balance_of(self, account_id: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, src: str, dst: str, amount: int) -> None: ...

    def approve(self, owner: str, spender: str, amount: int) -> None: ...

    def mint(self, caller: str, to: str, amount: int) -> None: ...

    def transaction(self) -> ContextManager[Any]: ...


def require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TokenError("invalid_amount", "amount_not_int", {"amount": repr(amount)})
    if amount < 0 or amount > MAX_UINT256:
        raise TokenError("invalid_amount", "amount_out_of_range", {"amount": int(amount)})
    return int(amount)


def require_account_id(v: Any, name: str) -> str:
    s = str(v or "").strip()
    if not s:
        raise TokenError("invalid_account", f"missing_{name}")
    return s


class InMemoryTokenLedger:
    """Dict-backed fungible token with a single minting owner.

    `hooks` run after every successful movement and may call back into the
    annuity executor (used to exercise reentrancy).
    """

    def __init__(self, *, owner: str, hooks: Optional[List[TokenHook]] = None) -> None:
        self.owner = require_account_id(owner, "owner")
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0
        self.hooks: List[TokenHook] = list(hooks or [])

    def _fire(self, op: str, src: str, dst: str, amount: int) -> None:
        for hook in list(self.hooks):
            hook(op, src, dst, amount)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryTokenLedger"]:
        """Undo every movement made inside the block if it raises. Nests."""
        balances = dict(self._balances)
        allowances = dict(self._allowances)
        total = self._total_supply
        try:
            yield self
        except BaseException:
            self._balances = balances
            self._allowances = allowances
            self._total_supply = total
            raise

    def total_supply(self) -> int:
        return int(self._total_supply)

    def balance_of(self, account_id: str) -> int:
        return int(self._balances.get(str(account_id), 0))

    def allowance(self, owner: str, spender: str) -> int:
        return int(self._allowances.get((str(owner), str(spender)), 0))

    def transfer(self, src: str, dst: str, amount: int) -> None:
        src = require_account_id(src, "src")
        dst = require_account_id(dst, "dst")
        amt = require_amount(amount)
        have = self.balance_of(src)
        if have < amt:
            raise TokenError("insufficient_funds", "transfer_exceeds_balance", {"account": src, "have": have, "need": amt})
        self._balances[src] = have - amt
        self._balances[dst] = self.balance_of(dst) + amt
        self._fire("transfer", src, dst, amt)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        owner = require_account_id(owner, "owner")
        spender = require_account_id(spender, "spender")
        self._allowances[(owner, spender)] = require_amount(amount)
        self._fire("approve", owner, spender, int(amount))

    def mint(self, caller: str, to: str, amount: int) -> None:
        if str(caller) != self.owner:
            raise TokenError("forbidden", "mint_owner_only", {"caller": str(caller), "owner": self.owner})
        to = require_account_id(to, "to")
        amt = require_amount(amount)
        if self._total_supply + amt > MAX_UINT256:
            raise TokenError("overflow", "total_supply_overflow")
        self._total_supply += amt
        self._balances[to] = self.balance_of(to) + amt
        self._fire("mint", "", to, amt)


class TokenPort:
    """The annuity contract's view of the token ledger.

    Exposes exactly the capabilities the contract consumes: pulling tokens
    into custody, paying out of custody, reading custody, and minting.
    """

    def __init__(self, token: TokenLedger, *, contract_id: str) -> None:
        self.token = token
        self.contract_id = require_account_id(contract_id, "contract_id")

    def transfer_in(self, src: str, amount: int) -> None:
        self.token.transfer(src, self.contract_id, amount)

    def transfer_out(self, dst: str, amount: int) -> None:
        self.token.transfer(self.contract_id, dst, amount)

    def balance_held_by_contract(self) -> int:
        return int(self.token.balance_of(self.contract_id))

    def mint(self, to: str, amount: int) -> None:
        self.token.mint(self.contract_id, to, amount)

    def deliver(self, to: str, amount: int) -> Json:
        """Pay `amount` to `to`, minting whatever custody cannot cover.

        When custody falls short, the recipient also receives an allowance of
        the shortfall over the contract's holdings.
        """
        amt = require_amount(amount)
        if amt == 0:
            return {"transferred": 0, "minted": 0}

        held = self.balance_held_by_contract()
        if held >= amt:
            self.transfer_out(to, amt)
            return {"transferred": amt, "minted": 0}

        shortfall = amt - held
        if held > 0:
            self.transfer_out(to, held)
        self.mint(to, shortfall)
        self.token.approve(self.contract_id, to, shortfall)
        return {"transferred": held, "minted": shortfall}


__all__ = [
    "InMemoryTokenLedger",
    "TokenError",
    "TokenHook",
    "TokenLedger",
    "TokenPort",
    "require_account_id",
    "require_amount",
]
