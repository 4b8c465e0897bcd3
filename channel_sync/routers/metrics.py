"""
Metrics Router - Prometheus Metrics Endpoint

Exposes /metrics endpoint for Prometheus scraping.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ..utils.metrics import format_prometheus_metrics

router = APIRouter(prefix="/metrics", tags=["Metrics"])


@router.get("")
@router.get("/")
async def get_metrics():
    """Reconciliation counters and histograms in Prometheus text format."""
    return PlainTextResponse(
        content=format_prometheus_metrics(),
        media_type="text/plain; charset=utf-8"
    )
