"""Health check endpoints."""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from core.utils.datetime import now, isoformat
from database.engine import check_db

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness check; does not touch dependencies."""
    return HealthResponse(status="healthy", timestamp=isoformat(now()))


@router.get("/ready")
async def readiness_check():
    """Readiness check for load balancers."""
    try:
        await check_db()
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Readiness check failed: {type(e).__name__}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable", "database": "down"},
        )
    return {"status": "ready", "database": "up"}
