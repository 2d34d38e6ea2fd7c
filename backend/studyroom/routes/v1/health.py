# backend/studyroom/routes/v1/health.py
"""
Health check endpoint for monitoring and load balancer probes.
"""

from datetime import datetime, timezone
import logging
from typing import Dict

from fastapi import APIRouter

from ...core.constants import API_VERSION, BRAND_NAME

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> Dict[str, str]:
    return {
        "status": "healthy",
        "service": f"{BRAND_NAME.lower().replace(' ', '-')}-api",
        "version": API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
