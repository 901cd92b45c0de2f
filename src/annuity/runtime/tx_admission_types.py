from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional


@dataclass(frozen=True)
class TxReject:
    code: str
    reason: str
    details: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TxVerdict:
    ok: bool
    code: str
    reason: str
    details: Optional[Dict[str, Any]] = None

    def __iter__(self) -> Iterator[Any]:
        """Allow `ok, rej = admit_tx(...)` unpacking."""
        if self.ok:
            yield True
            yield None
        else:
            yield False
            yield TxReject(self.code, self.reason, self.details)

    @staticmethod
    def admit() -> "TxVerdict":
        return TxVerdict(True, "ok", "admitted", None)

    @staticmethod
    def reject(code: str, reason: str, details: Optional[Dict[str, Any]] = None) -> "TxVerdict":
        return TxVerdict(False, code, reason, details)


@dataclass(frozen=True)
class TxEnvelope:
    """A single contract call.

    `ts` is the execution timestamp in seconds, stamped by the executor.
    `nonce` and `sig` are only checked for signed submissions.
    """

    tx_type: str
    signer: str
    payload: Dict[str, Any]
    ts: int = 0
    nonce: int = 0
    sig: str = ""

    @staticmethod
    def from_json(j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return TxEnvelope(
            tx_type=str(j.get("tx_type", "")).strip().upper(),
            signer=str(j.get("signer", "")).strip(),
            payload=dict(j.get("payload", {}) or {}),
            ts=int(j.get("ts", 0) or 0),
            nonce=int(j.get("nonce", 0) or 0),
            sig=str(j.get("sig", "") or "").strip(),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "tx_type": self.tx_type,
            "signer": self.signer,
            "payload": self.payload,
            "ts": self.ts,
            "nonce": self.nonce,
            "sig": self.sig,
        }

    def with_ts(self, ts: int) -> "TxEnvelope":
        return TxEnvelope(
            tx_type=self.tx_type,
            signer=self.signer,
            payload=dict(self.payload),
            ts=int(ts),
            nonce=self.nonce,
            sig=self.sig,
        )
