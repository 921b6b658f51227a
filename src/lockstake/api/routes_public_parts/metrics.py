from __future__ import annotations

from fastapi import APIRouter, Request, Response

from lockstake.runtime import metrics as pool_metrics

router = APIRouter()

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """Pool counters plus gauges read from the live pool at scrape time.

    Disabled by default. Enable with:
      LOCKSTAKE_METRICS_ENABLED=1
    """
    if not pool_metrics.metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    ex = getattr(request.app.state, "executor", None)
    if ex is not None:
        ex.engine.publish_gauges()
    return Response(content=pool_metrics.format_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
