"""
Prometheus metrics endpoint.

GET /metrics
Returns Prometheus-formatted metrics for scraping.
"""
from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse

from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import get_metrics, get_metrics_content_type

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_class=PlainTextResponse)
async def metrics(request: Request):
    """
    Prometheus metrics endpoint.
    
    Returns metrics in Prometheus text format for scraping.
    Includes tier attempts and failures per capability, rate-limit
    rejections, upstream latency and completion token counts.
    """
    try:
        metrics_data = get_metrics()
        return Response(
            content=metrics_data,
            media_type=get_metrics_content_type(request.headers.get("accept")),
        )
    except Exception as e:
        logger.error(
            "metrics_endpoint_error",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return Response(
            content=b"# Error collecting metrics\n",
            media_type=get_metrics_content_type(),
        )

