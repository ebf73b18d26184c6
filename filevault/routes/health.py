import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.core.deps import get_storage
from filevault.database import get_async_session
from filevault.exceptions import StoreFailure
from filevault.storage.s3 import S3Storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


@router.get("/")
async def root():
    return {"message": "File Vault API is running"}


@router.get("/health")
async def health(
    session: AsyncSession = Depends(get_async_session),
    storage: S3Storage = Depends(get_storage),
):
    started = time.perf_counter()
    entries = []

    check_started = time.perf_counter()
    try:
        result = await session.execute(text("SELECT 1"))
        entries.append({"key": "database", "status": "Healthy", "data": {"result": result.scalar()}})
    except Exception as e:
        logger.exception("Database health check failed")
        entries.append({"key": "database", "status": "Unhealthy", "data": {"errorType": type(e).__name__}})
    entries[-1]["duration"] = round(time.perf_counter() - check_started, 4)

    check_started = time.perf_counter()
    try:
        entries.append({"key": "blob_storage", "status": "Healthy", "data": storage.ping()})
    except StoreFailure as e:
        entries.append({"key": "blob_storage", "status": "Unhealthy", "data": {"error": e.message}})
    entries[-1]["duration"] = round(time.perf_counter() - check_started, 4)

    healthy = all(e["status"] == "Healthy" for e in entries)
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "Healthy" if healthy else "Unhealthy",
            "duration": round(time.perf_counter() - started, 4),
            "checkedAt": datetime.now(timezone.utc).isoformat(),
            "info": entries,
        },
    )
