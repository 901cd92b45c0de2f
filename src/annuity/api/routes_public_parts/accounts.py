from __future__ import annotations

from fastapi import APIRouter, Request

from annuity.api.routes_public_parts.common import _executor

router = APIRouter()


@router.get("/accounts/{account}")
def account_get(account: str, request: Request):
    ex = _executor(request)
    acct = ex.get_account(account)
    state = acct.to_json()
    state["status_name"] = acct.status.name
    return {"ok": True, "account": account, "state": state}
