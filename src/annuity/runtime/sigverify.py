# src/annuity/runtime/sigverify.py

from __future__ import annotations

import os
from typing import Any, Dict, List

from annuity.crypto.sig import canonical_tx_message, is_pubkey_id, verify_ed25519_signature

Json = Dict[str, Any]


def signer_pubkeys(state: Json, signer: str) -> List[str]:
    """Public keys allowed to sign for `signer`.

    Sources, deduped in order:
      1) state["keys"][signer]: list of hex/base64 pubkeys registered at genesis
      2) the signer id itself when it is a hex Ed25519 public key
    """
    out: List[str] = []
    seen: set[str] = set()

    keys = state.get("keys") if isinstance(state, dict) else None
    registered = keys.get(signer) if isinstance(keys, dict) else None
    if isinstance(registered, list):
        for pk in registered:
            if isinstance(pk, str) and pk.strip() and pk.strip() not in seen:
                seen.add(pk.strip())
                out.append(pk.strip())

    if is_pubkey_id(signer) and signer not in seen:
        out.append(signer)
    return out


def _unsafe_dev_allows_unsigned() -> bool:
    """Unsigned calls are accepted only with ANNUITY_MODE=dev and ANNUITY_UNSAFE_DEV=1."""
    mode = (os.environ.get("ANNUITY_MODE") or "prod").strip().lower()
    unsafe = (os.environ.get("ANNUITY_UNSAFE_DEV") or "").strip()
    return mode == "dev" and unsafe == "1"


def verify_tx_signature(state: Json, tx: Json, *, contract_id: str) -> bool:
    """Verify `tx["sig"]` against the signer's keys. Pure apart from the env check.

    A signer with no keys fails closed unless unsafe dev mode is on.
    """
    if not isinstance(tx, dict):
        return False
    signer = str(tx.get("signer") or "").strip()
    if not signer:
        return False

    keys = signer_pubkeys(state, signer)
    if not keys:
        return _unsafe_dev_allows_unsigned()

    sig = tx.get("sig")
    if not isinstance(sig, str) or not sig.strip():
        return False

    try:
        msg = canonical_tx_message(
            contract_id=contract_id,
            tx_type=str(tx.get("tx_type") or ""),
            signer=signer,
            nonce=int(tx.get("nonce") or 0),
            payload=tx.get("payload"),
        )
    except (TypeError, ValueError):
        return False

    return any(verify_ed25519_signature(message=msg, sig=sig, pubkey=pk) for pk in keys)


__all__ = ["signer_pubkeys", "verify_tx_signature"]
