"""
Prometheus metrics endpoint.

Public, unauthenticated scrape target exposing the metrics recorded by
``BaseService.measure_operation`` and the scheduling counters.
"""

from fastapi import APIRouter, Response

from ...monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["monitoring"])


@router.get("/prometheus", include_in_schema=False)
async def get_prometheus_metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
