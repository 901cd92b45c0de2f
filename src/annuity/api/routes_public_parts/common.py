from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from annuity.api.errors import ApiError

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        s = str(v).strip()
        if s == "":
            return int(default)
        return int(s)
    except Exception:
        return int(default)


def _details_obj(details: Any) -> Json:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    return {"details": details}
