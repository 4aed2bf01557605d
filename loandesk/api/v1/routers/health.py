from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from loandesk.core.health import (
    health_payload,
    live_payload,
    ready_payload,
    status_summary_payload,
)
from loandesk.core.limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get(
    "/health/ready",
    summary="Database, Redis and document storage readiness",
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "A dependency check failed"}},
)
@limiter.exempt
async def health_ready():
    payload = await ready_payload()
    if payload["ready"]:
        return payload
    # Non-2xx responses bypass the envelope middleware.
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "code": "service_unavailable",
            "message": "One or more dependency checks failed",
            "data": payload,
            "details": {
                name: check.get("error", "") for name, check in payload["checks"].items() if check.get("status") != "ok"
            },
        },
    )


@router.get("/health", summary="Backward-compatible readiness check")
@limiter.exempt
async def read_health() -> dict:
    return await health_payload()


@router.get("/status/summary", tags=["status"], summary="Service status summary")
@limiter.exempt
async def status_summary() -> dict:
    return await status_summary_payload()
