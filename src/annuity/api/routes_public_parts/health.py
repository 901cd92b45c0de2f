from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    # Must never crash: an unattached executor still reports liveness.
    ex = getattr(request.app.state, "executor", None)
    out: dict[str, object] = {
        "ok": True,
        "service": "annuity-ledger",
        "version": "v1",
        "ts_ms": _now_ms(),
        "executor": ex is not None,
        "contract_id": None,
        "end_interest_time": None,
    }
    if ex is not None:
        out["contract_id"] = str(getattr(ex, "contract_id", "") or "") or None
        out["end_interest_time"] = int(ex.get_end_interest_time())
    return out
