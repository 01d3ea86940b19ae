import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.config import settings
from marketmate.core.db import get_db

log = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "service": settings.service_name}


@router.get("/health/db")
async def health_db(db: AsyncSession = Depends(get_db)) -> dict:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("health: database unreachable: %s", e)
        raise HTTPException(status_code=503, detail="Database unavailable") from e
    return {"status": "ok", "database": "ok"}
