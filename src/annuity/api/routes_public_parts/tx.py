from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from annuity.api.errors import ApiError
from annuity.api.routes_public_parts.common import _details_obj, _executor
from annuity.api.schemas import TxSubmitRequest
from annuity.ledger.fixed_point import FixedPointError
from annuity.ledger.token import TokenError
from annuity.runtime.errors import ApplyError

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
def tx_submit(body: TxSubmitRequest, request: Request) -> Json:
    """Apply one signed contract call synchronously.

    The body must carry the signer's next nonce and an Ed25519 signature over
    the canonical tx message (annuity.crypto.sig.canonical_tx_message).

    Returns:
      { ok, receipt }

    Rejections (ApplyError), token failures (TokenError) and fixed-point
    overflow (FixedPointError) map to 400; the ledger is unchanged in all three.
    """
    ex = _executor(request)
    try:
        receipt = ex.submit_signed_tx(body.model_dump())
    except ApplyError as e:
        raise ApiError.bad_request(e.code, e.reason, _details_obj(e.details))
    except TokenError as e:
        raise ApiError.bad_request(e.code, e.reason, _details_obj(e.details))
    except FixedPointError as e:
        raise ApiError.bad_request(e.code, e.reason, _details_obj(e.details))
    return {"ok": True, "receipt": receipt}
