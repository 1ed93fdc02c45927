"""Health check endpoint."""

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Check Postgres connectivity."""
    try:
        if await request.app.state.postgres.verify_connectivity():
            return {"status": "ok"}
        logger.warning("health.check_failed", reason="database unreachable")
    except Exception as e:
        logger.warning("health.check_failed", error=str(e), error_type=type(e).__name__)
    return JSONResponse(status_code=503, content={"status": "unhealthy"})
