"""
Order Hub — Health endpoint
"""
import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import get_settings
from orderhub.db.database import get_db
from orderhub.realtime.channel import Channel, get_channel

settings = get_settings()
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db), channel: Channel = Depends(get_channel)):
    deps: dict[str, str] = {}
    healthy = True

    # Check database
    try:
        await asyncio.wait_for(db.execute(text("SELECT 1")), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["database"] = "ok"
    except Exception as e:
        deps["database"] = f"error: {str(e)[:100]}"
        healthy = False

    # Check realtime backend (Redis ping or in-memory liveness)
    try:
        ok = await asyncio.wait_for(channel.ping(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps[f"realtime-{channel.backend}"] = "ok" if ok else "closed"
        healthy = healthy and ok
    except Exception as e:
        deps[f"realtime-{channel.backend}"] = f"error: {str(e)[:100]}"
        healthy = False

    return JSONResponse(
        content={
            "status": "healthy" if healthy else "degraded",
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "dependencies": deps,
        },
        status_code=200 if healthy else 503,
    )
