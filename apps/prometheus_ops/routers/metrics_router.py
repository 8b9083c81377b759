from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus exposition of every counter, gauge and histogram in the process."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
