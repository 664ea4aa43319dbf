# backend/booking_payments/routes/monitoring.py
"""
Health and Prometheus endpoints.

Both are public and never touch the processor; ``/metrics`` exposes the
counters and histograms recorded by ``@measure_operation``.
"""

from fastapi import APIRouter, Response

from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.payment_schemas import HealthResponse

router = APIRouter(tags=["monitoring"])


@router.get("/health", response_model=HealthResponse)
def health_check(response: Response) -> HealthResponse:
    response.headers["Cache-Control"] = "no-store"
    return HealthResponse(status="ok")


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
