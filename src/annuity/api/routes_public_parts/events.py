from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request

from annuity.api.routes_public_parts.common import _executor, _int_param

router = APIRouter()


@router.get("/events")
def events_list(request: Request, account: Optional[str] = None, limit: Optional[str] = None):
    """Notification log, oldest first. `limit` is clamped to 1..1000."""
    ex = _executor(request)
    acct = (account or "").strip() or None
    items = ex.read_events(account=acct, limit=_int_param(limit, 100))
    return {"ok": True, "account": acct, "count": len(items), "events": items}
