# src/annuity/crypto/sig.py
from __future__ import annotations

import base64
import json
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]


def decode_key_bytes(s: str) -> bytes:
    """Decode a key or signature given as hex or base64/base64url."""
    s = str(s or "").strip()
    if not s:
        raise ValueError("empty string")
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    try:
        padded = (s + "=" * (-len(s) % 4)).replace("-", "+").replace("_", "/")
        return base64.b64decode(padded, validate=True)
    except Exception as e:
        raise ValueError("not hex or base64") from e


def is_pubkey_id(account_id: str) -> bool:
    """True if `account_id` is itself a hex-encoded Ed25519 public key."""
    s = str(account_id or "").strip()
    if len(s) != 64:
        return False
    try:
        bytes.fromhex(s)
    except ValueError:
        return False
    return True


def canonical_tx_message(*, contract_id: str, tx_type: str, signer: str, nonce: int, payload: Any) -> bytes:
    """Bytes an account signs to authorize one contract call.

    `contract_id` binds the signature to a single deployment.
    """
    obj: Json = {
        "contract_id": str(contract_id),
        "tx_type": str(tx_type or "").strip().upper(),
        "signer": str(signer or "").strip(),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(decode_key_bytes(pubkey))
        key.verify(decode_key_bytes(sig), message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: str) -> str:
    """Sign with a 32-byte Ed25519 seed (hex or base64); returns a hex signature."""
    seed = decode_key_bytes(privkey)
    if len(seed) == 64:
        seed = seed[:32]
    if len(seed) != 32:
        raise ValueError("ed25519 privkey must be a 32-byte seed")
    return Ed25519PrivateKey.from_private_bytes(seed).sign(message).hex()


def pubkey_for(privkey: str) -> str:
    seed = decode_key_bytes(privkey)[:32]
    raw = Ed25519PrivateKey.from_private_bytes(seed).public_key().public_bytes_raw()
    return raw.hex()


def sign_tx_envelope(*, tx: Json, contract_id: str, privkey: str) -> Json:
    """Return a copy of `tx` carrying `sig` over its canonical message."""
    out = dict(tx)
    out["tx_type"] = str(tx.get("tx_type") or "").strip().upper()
    out["signer"] = str(tx.get("signer") or "").strip()
    out["nonce"] = int(tx.get("nonce") or 0)
    out["payload"] = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}
    msg = canonical_tx_message(
        contract_id=contract_id,
        tx_type=out["tx_type"],
        signer=out["signer"],
        nonce=out["nonce"],
        payload=out["payload"],
    )
    out["sig"] = sign_ed25519(message=msg, privkey=privkey)
    return out


__all__ = [
    "canonical_tx_message",
    "decode_key_bytes",
    "is_pubkey_id",
    "pubkey_for",
    "sign_ed25519",
    "sign_tx_envelope",
    "verify_ed25519_signature",
]
