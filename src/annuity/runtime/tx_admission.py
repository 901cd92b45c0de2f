# src/annuity/runtime/tx_admission.py
from __future__ import annotations

"""Admission checks run before a tx reaches apply.

Admission covers shape (supported tx type, signer present, payload schema)
and, for signed submissions, the signer's nonce and Ed25519 signature.
Semantic checks (status, balances, amounts) stay in the apply layer so they
see post-accrual state.
"""

from typing import Any, Dict, Optional

from annuity.runtime.sigverify import verify_tx_signature
from annuity.runtime.supported_txs import is_supported
from annuity.runtime.tx_admission_types import TxEnvelope, TxVerdict
from annuity.runtime.tx_schema import validate_payload

Json = Dict[str, Any]


def expected_nonce(state: Json, signer: str) -> int:
    nonces = state.get("nonces") if isinstance(state, dict) else None
    last = nonces.get(signer, 0) if isinstance(nonces, dict) else 0
    try:
        return int(last) + 1
    except (TypeError, ValueError):
        return 1


def admit_tx(
    env: Any,
    *,
    contract_id: str,
    state: Optional[Json] = None,
    require_sig: bool = False,
) -> TxVerdict:
    try:
        e = TxEnvelope.from_json(env)
    except Exception as ex:
        return TxVerdict.reject("invalid_envelope", "envelope_parse_failed", {"err": str(ex)})

    if not is_supported(e.tx_type):
        return TxVerdict.reject("tx_unimplemented", "tx_type_not_implemented", {"tx_type": e.tx_type})

    if not e.signer:
        return TxVerdict.reject("invalid_envelope", "missing_signer", {"tx_type": e.tx_type})

    if e.signer == str(contract_id):
        return TxVerdict.reject("forbidden", "contract_cannot_act", {"signer": e.signer})

    ok, code, reason, details = validate_payload(tx_type=e.tx_type, payload=e.payload)
    if not ok:
        return TxVerdict.reject(code, reason, details)

    if require_sig:
        st = state if isinstance(state, dict) else {}
        want = expected_nonce(st, e.signer)
        if e.nonce != want:
            return TxVerdict.reject("bad_nonce", "nonce_must_be_next", {"expected": want, "got": e.nonce})
        if not verify_tx_signature(st, e.to_json(), contract_id=contract_id):
            return TxVerdict.reject("bad_sig", "invalid_signature", {"signer": e.signer})

    return TxVerdict.admit()
