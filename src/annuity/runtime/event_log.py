from __future__ import annotations

"""One-line JSON records for the executor and the HTTP layer.

Every record carries `ts_ms` and `event`; those two keys are reserved and a
field with the same name cannot overwrite them. Ledger notifications
(STATUS_CHANGE, BALANCE_INCREASE, ...) are logged under their own name with
their fields flattened into the record.
"""

import json
import logging
import time
from typing import Any, Dict, Mapping

Json = Dict[str, Any]

_RESERVED = ("ts_ms", "event")


def _record(event: str, fields: Mapping[str, Any]) -> str:
    rec: Json = {k: v for k, v in fields.items() if k not in _RESERVED}
    rec["ts_ms"] = int(time.time() * 1000)
    rec["event"] = str(event or "unknown")
    # Amounts are unbounded ints; anything else unusual is stringified.
    return json.dumps(rec, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    if logger.isEnabledFor(level):
        logger.log(level, _record(event, fields))


def log_notification(logger: logging.Logger, notification: Mapping[str, Any]) -> None:
    """Log a ledger notification as emitted by the apply layer."""
    name = str(notification.get("event") or "notification")
    log_event(logger, name, **{k: v for k, v in notification.items() if k != "event"})


__all__ = ["log_event", "log_notification"]
