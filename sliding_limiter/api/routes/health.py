from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from sliding_limiter.core.store_client import get_counter_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check; does not touch the counter store."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check() -> JSONResponse:
    """Readiness check.

    Pings the counter store so load balancers can stop routing to instances
    that cannot reach it.

    Returns:
        200 ``{"status": "ok", "store": <backend>}`` when reachable, else 503.
    """

    store = get_counter_store()
    if store.ping():
        return JSONResponse({"status": "ok", "store": store.backend_name})
    return JSONResponse(
        {"status": "unavailable", "store": store.backend_name},
        status_code=503,
    )
