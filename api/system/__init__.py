"""System health endpoint."""

import logging
import os
from typing import Optional

import psutil
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..deps import get_services
from ..services import Services

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["System"])

class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    database_status: str
    cache_status: str
    websocket_connections: int
    memory_rss: Optional[int] = None
    memory_percent: Optional[float] = None

@router.get("/health")
async def get_system_health(services: Services = Depends(get_services)) -> SystemHealth:
    """Get system health status.

    The service is healthy when both the database and the cache answer.
    """
    db_ok = await services.database.ping()
    cache_ok = await services.cache.ping()

    memory_rss = memory_percent = None
    try:
        process = psutil.Process(os.getpid())
        memory_rss = process.memory_info().rss
        memory_percent = round(process.memory_percent(), 2)
    except psutil.Error as e:
        logger.warning(f"Could not read process memory: {e}")

    return SystemHealth(
        status="healthy" if db_ok and cache_ok else "degraded",
        database_status="connected" if db_ok else "unreachable",
        cache_status="connected" if cache_ok else "unreachable",
        websocket_connections=len(services.hub.registry),
        memory_rss=memory_rss,
        memory_percent=memory_percent
    )
