from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from typing import Any

from app.database import engine
from app.ws import manager

router = APIRouter()


@router.get("/redis")
async def redis_health() -> Any:
    """Return Redis connection health. If `REDIS_URL` is not configured, returns status `not_configured`."""
    if not getattr(manager, "redis", None):
        return JSONResponse({"status": "not_configured", "details": "REDIS_URL not set"}, status_code=200)

    try:
        ok = await manager.redis.ping()
        if ok:
            return {"status": "ok", "redis": "connected"}
        else:
            return JSONResponse({"status": "error", "redis": "ping_failed"}, status_code=500)
    except Exception as e:
        return JSONResponse({"status": "error", "error": str(e)}, status_code=500)


@router.get("/db")
async def db_health() -> Any:
    """Check that the message store is reachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok", "db": "connected"}
    except Exception as e:
        return JSONResponse({"status": "error", "error": str(e)}, status_code=503)
