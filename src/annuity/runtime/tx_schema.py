from __future__ import annotations

"""Transaction payload schemas.

Shape checks (types/required keys) run at admission, before apply. Apply-layer
code still enforces semantics (e.g. amount > 0), so these models only reject
payloads that could never be applied.
"""

from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

from annuity.runtime.supported_txs import (
    COLLECT_PAYOUT,
    FORCE_PAYOUT,
    INCREASE_BALANCE_AND_STAKE,
    START_PAYOUT,
    START_STAKE,
)

Json = Dict[str, Any]


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid")


class EmptyPayload(_StrictModel):
    pass


class IncreaseBalanceAndStakePayload(_StrictModel):
    amount: StrictInt


class ForcePayoutPayload(_StrictModel):
    amount: StrictInt
    amount_type: StrictStr


Schema = Type[BaseModel]

_SCHEMA_BY_TX_TYPE: Dict[str, Schema] = {
    START_STAKE: EmptyPayload,
    START_PAYOUT: EmptyPayload,
    COLLECT_PAYOUT: EmptyPayload,
    INCREASE_BALANCE_AND_STAKE: IncreaseBalanceAndStakePayload,
    FORCE_PAYOUT: ForcePayoutPayload,
}


def _schema_for(tx_type: str) -> Optional[Schema]:
    return _SCHEMA_BY_TX_TYPE.get(str(tx_type or "").strip().upper())


def validate_payload(*, tx_type: str, payload: Any) -> Tuple[bool, str, str, Optional[Json]]:
    """Validate payload against its tx schema.

    Returns: (ok, code, reason, details)
    """
    sch = _schema_for(tx_type)
    if sch is None:
        return False, "tx_unimplemented", "tx_type_not_implemented", {"tx_type": str(tx_type)}

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return False, "invalid_payload", "payload_must_be_object", None

    try:
        sch(**payload)
        return True, "", "", None
    except ValidationError as ve:
        errors = [{"loc": list(e.get("loc", ())), "msg": str(e.get("msg", ""))} for e in ve.errors()]
        return False, "invalid_payload", "payload_schema_mismatch", {"errors": errors}
