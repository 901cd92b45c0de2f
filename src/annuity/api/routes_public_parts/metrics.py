from __future__ import annotations

from fastapi import APIRouter, Request, Response

from annuity.runtime import metrics as rt_metrics

router = APIRouter()

PROMETHEUS_TEXT = "text/plain; version=0.0.4; charset=utf-8"


def _refresh_supply_gauges(request: Request) -> None:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return
    rt_metrics.set_gauge("circulating_supply", int(ex.get_circulating_supply()))
    rt_metrics.set_gauge("total_staking_supply", int(ex.get_total_staking_supply()))
    rt_metrics.set_gauge("total_payout_supply", int(ex.get_total_payout_supply()))
    rt_metrics.set_gauge("end_interest_time", int(ex.get_end_interest_time()))


@router.get("/metrics")
def metrics_get(request: Request) -> Response:
    """Counters plus supply gauges read at scrape time.

    404 unless ANNUITY_METRICS_ENABLED is set.
    """
    if not rt_metrics.metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    _refresh_supply_gauges(request)
    return Response(content=rt_metrics.format_prometheus(), media_type=PROMETHEUS_TEXT)
