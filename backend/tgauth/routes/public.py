# /tgauth/routes/public.py

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from datetime import datetime

from tgauth.config.settings import settings
from tgauth.utils.dependencies import verify_metrics_access
from tgauth.services.db_service import db_service
from tgauth.services.cache_service import cache_service

# Unauthenticated endpoints: root, health probes and the (optionally
# key-protected) Prometheus metrics.

router = APIRouter()

@router.get("/")
async def root():
    return {"status": "ok"}

@router.get("/health", summary="Basic Health Check")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.utcnow(), "environment": settings.environment}

@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    return {"status": "alive"}

@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check():
    """MongoDB must answer; Redis only when configured."""
    if not await db_service.health_check():
        raise HTTPException(status_code=503, detail="database not ready")
    if cache_service.redis:
        try:
            await cache_service.redis.ping()
        except Exception as e:
            raise HTTPException(status_code=503, detail=f"cache not ready: {e}")
    return {"status": "ready"}

@router.get("/metrics", tags=["Monitoring"])
async def metrics(request: Request, _: bool = Depends(verify_metrics_access)):
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)
