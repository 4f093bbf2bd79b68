# app/routers/admin.py
# -----------------------------------------------------------------------------
# Analysis history and POI cache maintenance
# -----------------------------------------------------------------------------
import traceback

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db import crud
from app.db.session import get_session

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/logs")
async def get_analysis_logs(
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_session),
):
    logs = await crud.list_analysis_logs(db, limit=limit)
    return [
        {
            "id": x.id,
            "business_type": x.business_type,
            "lat": x.lat,
            "lng": x.lng,
            "radius_km": x.radius_km,
            "cells": x.cells,
            "competitor_count": x.competitor_count,
            "complement_count": x.complement_count,
            "status": x.status,
            "elapsed_ms": x.elapsed_ms,
        }
        for x in logs
    ]


@router.post("/cache/purge")
async def purge_cache(
    ttl_min: int = Query(settings.POI_CACHE_TTL_MIN, ge=0),
    db: AsyncSession = Depends(get_session),
):
    try:
        removed = await crud.purge_expired(db, ttl_min)
        return {"status": "ok", "removed": removed}
    except Exception as e:
        raise HTTPException(500, detail=f"{e}\n{traceback.format_exc()}")
