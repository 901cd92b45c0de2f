from __future__ import annotations

from fastapi import APIRouter, Request

from annuity.api.routes_public_parts.common import _executor

router = APIRouter()


@router.get("/supply")
def supply_get(request: Request):
    ex = _executor(request)
    circulating = int(ex.get_circulating_supply())
    staking = int(ex.get_total_staking_supply())
    payout = int(ex.get_total_payout_supply())
    return {
        "ok": True,
        "end_interest_time": int(ex.get_end_interest_time()),
        "circulating": circulating,
        "total_staking": staking,
        "total_payout": payout,
        "fully_diluted": circulating + staking + payout,
    }
