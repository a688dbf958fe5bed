"""Root endpoint"""

from fastapi import APIRouter, status

from src.utils.config_loader import get_settings

router = APIRouter(tags=["root"])


@router.get("/", status_code=status.HTTP_200_OK)
async def root():
    """Service information"""
    settings = get_settings()
    return {
        "message": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }
