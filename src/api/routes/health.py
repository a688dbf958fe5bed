"""Health check endpoints"""

import sys
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from src.plugins.database import DatabaseHandle, get_database
from src.utils.config_loader import get_settings

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model"""

    status: str
    timestamp: datetime
    version: str
    python_version: str
    environment: str


@router.get("/", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check():
    """Basic health check endpoint"""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        python_version=sys.version.split()[0],
        environment=settings.environment.value,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(database: DatabaseHandle = Depends(get_database)):
    """Readiness check, pings the database"""
    db_status = await database.health_check()
    ready = db_status.get("status") == "healthy"

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=jsonable_encoder(
            {
                "status": "ready" if ready else "not_ready",
                "checks": {"database": ready, "database_details": db_status},
                "timestamp": datetime.now(timezone.utc),
            }
        ),
    )


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check():
    """Liveness check"""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc)}
