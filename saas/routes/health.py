from fastapi import APIRouter, Request
from sqlalchemy import text

from saas.database import storage_errors

router = APIRouter(tags=["Health"])


@router.get("")
async def health(request: Request) -> dict:
    settings = request.app.state.settings
    return {"status": "ok", "app": settings.app_name, "version": settings.app_version}


@router.get("/db")
async def database_health(request: Request) -> dict:
    """Round-trip a trivial query through the pool."""
    with storage_errors("health_check"):
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    return {"status": "ok", "database": "reachable"}
