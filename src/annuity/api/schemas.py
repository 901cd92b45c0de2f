from __future__ import annotations

"""Pydantic request schemas for the public API.

The canonical per-tx payload schemas live in annuity.runtime.tx_schema; this
module only validates the HTTP envelope.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., min_length=1, description="e.g. START_STAKE")
    signer: str = Field(..., min_length=1, description="Calling account id")
    nonce: int = Field(..., ge=1, description="Signer's next nonce")
    sig: str = Field("", description="Ed25519 signature (hex) over the canonical tx message")
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}
