from __future__ import annotations

import copy
import logging
import threading
import time
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from annuity.ledger.interest import end_interest_time
from annuity.ledger.state import Account, AccountStatus, LedgerView
from annuity.ledger.token import InMemoryTokenLedger, TokenError, TokenLedger, TokenPort
from annuity.runtime import metrics
from annuity.runtime.apply.pool import accrued_staking_supply
from annuity.runtime.contract_config import load_contract_config
from annuity.runtime.domain_apply import ApplyError, apply_tx_atomic, restore_state
from annuity.runtime.event_log import log_event, log_notification
from annuity.runtime.genesis_config import GenesisConfig, load_genesis
from annuity.runtime.sqlite_db import SqliteDB, SqliteLedgerStore, SqliteTokenLedger
from annuity.runtime.supported_txs import (
    COLLECT_PAYOUT,
    FORCE_PAYOUT,
    INCREASE_BALANCE_AND_STAKE,
    START_PAYOUT,
    START_STAKE,
)
from annuity.runtime.tx_admission import admit_tx
from annuity.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]
Clock = Callable[[], int]


def _now_s() -> int:
    return int(time.time())


def _ensure_parent(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _parse_or_none(env: Any) -> Optional[TxEnvelope]:
    try:
        return TxEnvelope.from_json(env)
    except Exception:
        return None


class ExecutorError(RuntimeError):
    pass


class AnnuityExecutor:
    """Runs annuity operations against the ledger and the token collaborator.

    Each operation:
      1) is admitted (shape checks; nonce and signature when signed) and
         stamped with the execution time
      2) is applied fail-atomically to the ledger state
      3) has its token calls run after the state is updated
      4) is persisted (snapshot + events) in the same commit as its token calls

    A failing token call undoes the movements already made, restores the
    pre-operation snapshot and re-raises. No other operation may start while
    one is running its token calls.

    With `db_path=None` the ledger lives in memory only.
    """

    def __init__(
        self,
        *,
        contract_id: str,
        db_path: Optional[str] = None,
        token: Optional[TokenLedger] = None,
        clock: Optional[Clock] = None,
        genesis: Optional[GenesisConfig] = None,
    ) -> None:
        self.contract_id = str(contract_id or "").strip()
        if not self.contract_id:
            raise ExecutorError("contract_id must be a non-empty string")

        self._clock: Clock = clock or _now_s
        self._lock = threading.RLock()
        self._in_flight: Optional[str] = None
        self._log = logging.getLogger("annuity.executor")

        self.db_path = str(db_path) if db_path else ""
        self._db: Optional[SqliteDB] = None
        self._ledger_store: Optional[SqliteLedgerStore] = None
        self._events: List[Json] = []

        if self.db_path:
            _ensure_parent(self.db_path)
            self._db = SqliteDB(path=self.db_path)
            self._db.init_schema()
            self._ledger_store = SqliteLedgerStore(db=self._db)

        if token is None:
            if self._db is not None:
                token = SqliteTokenLedger(db=self._db, owner=self.contract_id)
            else:
                token = InMemoryTokenLedger(owner=self.contract_id)
        self.token: TokenLedger = token
        self.port = TokenPort(self.token, contract_id=self.contract_id)

        # Load or initialize state.
        if self._ledger_store is not None and self._ledger_store.exists():
            self.state = self._ledger_store.read()
        else:
            # Genesis mint and first snapshot land together, so a crash in
            # between cannot mint twice on the next boot.
            with self._commit_scope():
                self.state = self._initial_state(genesis or GenesisConfig())
                self._persist()

        # Fail-closed on contract_id mismatch once state is present.
        st_contract = str(self.state.get("contract_id") or "").strip()
        if st_contract != self.contract_id:
            raise ExecutorError(
                f"contract_id mismatch: db={st_contract!r} executor={self.contract_id!r}. Refuse to start."
            )

    def _initial_state(self, genesis: GenesisConfig) -> Json:
        created_at = int(genesis.created_at or self._clock())

        # Genesis allocation goes out before the cutoff is fixed so it counts
        # toward the supply the cutoff is sized for.
        for acct, amount in sorted(genesis.balances.items()):
            self.port.mint(acct, int(amount))

        supply = int(self.token.total_supply())
        return {
            "contract_id": self.contract_id,
            "created_at": created_at,
            "last_ts": created_at,
            "accounts": {},
            "keys": {acct: list(pks) for acct, pks in sorted(genesis.keys.items())},
            "nonces": {},
            "pool": {
                "total_staking_supply": 0,
                "total_staking_time": created_at,
                "total_payout_supply": 0,
                "end_interest_time": end_interest_time(created_at, supply),
            },
            "params": {"genesis_supply": supply},
        }

    def _persist(self, events: Optional[List[Json]] = None) -> None:
        if self._ledger_store is not None:
            self._ledger_store.write(self.state, events=events)
        elif events:
            self._events.extend(copy.deepcopy(events))

    # ----------------------------
    # Time
    # ----------------------------

    def now(self) -> int:
        """Execution time: the clock, never earlier than the last operation."""
        return max(int(self._clock()), _safe_int(self.state.get("last_ts"), 0))

    # ----------------------------
    # Tx submission
    # ----------------------------

    def submit_tx(self, env: Any) -> Json:
        """Apply one operation on behalf of an already-authenticated caller.

        Returns the receipt. Raises ApplyError on rejection and TokenError when
        a token call fails (ledger and token movements are rolled back first).
        """
        return self._submit(env, signed=False)

    def submit_signed_tx(self, env: Any) -> Json:
        """Apply one operation carrying `nonce` and an Ed25519 `sig` by its signer.

        The nonce must be the signer's next one; it is consumed only when the
        operation commits.
        """
        return self._submit(env, signed=True)

    def _submit(self, env: Any, *, signed: bool) -> Json:
        with self._lock:
            verdict = admit_tx(env, contract_id=self.contract_id, state=self.state, require_sig=signed)
            if not verdict.ok:
                self._reject(_parse_or_none(env), verdict.code, verdict.reason)
                raise ApplyError(verdict.code, verdict.reason, verdict.details)

            e = TxEnvelope.from_json(env)
            if self._in_flight is not None:
                # Nothing may commit on top of an operation whose token calls
                # have not finished: a failure there rolls back the whole ledger.
                self._reject(e, "reentrancy", "operation_in_flight")
                raise ApplyError(
                    "reentrancy",
                    "operation_in_flight",
                    {"account": e.signer, "tx_type": e.tx_type, "in_flight": self._in_flight},
                )

            e = e.with_ts(self.now())
            backup = copy.deepcopy(self.state)

            self._in_flight = e.signer
            try:
                try:
                    receipt = apply_tx_atomic(self.state, e)
                except ApplyError as ex:
                    self._reject(e, ex.code, ex.reason)
                    raise
                self.state["last_ts"] = int(e.ts)
                if signed:
                    self.state.setdefault("nonces", {})[e.signer] = int(e.nonce)
                events = list(receipt.get("events") or [])

                # Ledger effects are applied; outbound calls run last, inside
                # the same commit as the snapshot.
                try:
                    with self._commit_scope():
                        receipt["token_results"] = self._run_token_calls(receipt.get("token_calls") or [])
                        self._persist(events)
                except Exception as ex:
                    restore_state(self.state, backup)
                    metrics.inc_counter("commit_failed_total")
                    log_event(
                        self._log,
                        "commit_failed",
                        level=logging.WARNING,
                        tx_type=e.tx_type,
                        account=e.signer,
                        code=str(getattr(ex, "code", type(ex).__name__)),
                        reason=str(getattr(ex, "reason", ex)),
                    )
                    raise
            finally:
                self._in_flight = None

            self._observe(e, receipt, events)
            return receipt

    @contextmanager
    def _commit_scope(self) -> Iterator[None]:
        """Token movements and the persisted snapshot commit or roll back together."""
        with ExitStack() as stack:
            stack.enter_context(self.token.transaction())
            if self._db is not None:
                stack.enter_context(self._db.write_tx())
            yield

    def _run_token_calls(self, calls: List[Json]) -> List[Json]:
        out: List[Json] = []
        for call in calls:
            op = str(call.get("op") or "")
            amount = int(call.get("amount") or 0)
            if op == "deliver":
                res = self.port.deliver(str(call.get("to") or ""), amount)
                out.append({"op": op, **res})
            elif op == "transfer_in":
                self.port.transfer_in(str(call.get("from") or ""), amount)
                out.append({"op": op, "transferred": amount})
            else:
                raise TokenError("unsupported_call", "unknown_token_op", {"op": op})
            metrics.inc_counter("token_calls_total")
        return out

    def _reject(self, env: Optional[TxEnvelope], code: str, reason: str) -> None:
        metrics.inc_counter("tx_rejected_total")
        log_event(
            self._log,
            "tx_rejected",
            tx_type=env.tx_type if env is not None else "",
            account=env.signer if env is not None else "",
            code=code,
            reason=reason,
        )

    def _observe(self, env: TxEnvelope, receipt: Json, events: List[Json]) -> None:
        metrics.inc_counter("tx_applied_total")
        pool = LedgerView.from_ledger(self.state).get_pool()
        metrics.set_gauge("total_staking_supply", pool.total_staking_supply)
        metrics.set_gauge("total_payout_supply", pool.total_payout_supply)

        log_event(
            self._log,
            "tx_applied",
            tx_type=env.tx_type,
            account=env.signer,
            ts=int(env.ts),
            balance=int(receipt.get("balance") or 0),
            status=int(receipt.get("status") or 0),
        )
        for ev in events:
            log_notification(self._log, ev)

    def _call(self, tx_type: str, signer: str, payload: Optional[Json] = None) -> Json:
        return self.submit_tx({"tx_type": tx_type, "signer": signer, "payload": payload or {}})

    # ----------------------------
    # Operations
    # ----------------------------

    def start_stake(self, account_id: str) -> Json:
        return self._call(START_STAKE, account_id)

    def start_payout(self, account_id: str) -> Json:
        return self._call(START_PAYOUT, account_id)

    def collect_payout(self, account_id: str) -> Json:
        return self._call(COLLECT_PAYOUT, account_id)

    def increase_balance_and_stake(self, account_id: str, amount: int) -> Json:
        return self._call(INCREASE_BALANCE_AND_STAKE, account_id, {"amount": amount})

    def force_payout(self, account_id: str, amount: int, amount_type: str) -> Json:
        return self._call(FORCE_PAYOUT, account_id, {"amount": amount, "amount_type": str(amount_type)})

    # ----------------------------
    # Public accessors
    # ----------------------------

    def read_state(self) -> Json:
        with self._lock:
            return copy.deepcopy(self.state)

    def read_events(self, *, account: Optional[str] = None, limit: int = 100) -> List[Json]:
        if self._ledger_store is not None:
            return self._ledger_store.read_events(account=account, limit=limit)
        lim = max(1, min(int(limit), 1000))
        with self._lock:
            evs = [ev for ev in self._events if not account or ev.get("account") == account]
            return copy.deepcopy(evs[-lim:])

    def _view(self) -> LedgerView:
        with self._lock:
            return LedgerView.from_ledger(self.state)

    def get_account(self, account_id: str) -> Account:
        return self._view().get_account(str(account_id))

    def get_account_balance(self, account_id: str) -> int:
        return int(self.get_account(account_id).balance)

    def get_last_processed_time(self, account_id: str) -> int:
        return int(self.get_account(account_id).last_processed_time)

    def get_last_staking_balance(self, account_id: str) -> int:
        return int(self.get_account(account_id).last_staking_balance)

    def get_status(self, account_id: str) -> AccountStatus:
        return self.get_account(account_id).status

    def get_end_interest_time(self) -> int:
        return int(self._view().get_pool().end_interest_time)

    def get_circulating_supply(self) -> int:
        return int(self.token.total_supply()) - self.port.balance_held_by_contract()

    def get_total_staking_supply(self) -> int:
        return accrued_staking_supply(self._view().get_pool(), self.now())

    def get_total_payout_supply(self) -> int:
        return int(self._view().get_pool().total_payout_supply)

    def get_fully_diluted_supply(self) -> int:
        return self.get_circulating_supply() + self.get_total_staking_supply() + self.get_total_payout_supply()

    # ----------------------------
    # Compatibility / orchestration hooks
    # ----------------------------

    @classmethod
    def from_env(cls) -> "AnnuityExecutor":
        cfg = load_contract_config()
        genesis = load_genesis(cfg.genesis_path) if cfg.genesis_path else None
        return cls(contract_id=cfg.contract_id, db_path=cfg.db_path, genesis=genesis)
