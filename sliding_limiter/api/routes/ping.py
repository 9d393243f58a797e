from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from sliding_limiter.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Ping"])


@router.get("/ping", dependencies=[Depends(enforce_rate_limit)])
async def ping(request: Request) -> dict:
    """Rate limited echo endpoint.

    Reports the limiter verdict attached to the request, if any (absent when
    limiting is disabled or the store failed open).
    """

    result = getattr(request.state, "rate_limit", None)
    if result is None:
        return {"pong": True}
    return {"pong": True, "limit": result.limit, "remaining": result.remaining}
