# app/db/crud.py
# -----------------------------------------------------------------------------
# Read/write helpers
# - POI search cache (lookup with TTL, replace, purge)
# - analysis log
# -----------------------------------------------------------------------------
from datetime import timedelta
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import AnalysisLog, CachedPoi, PoiQuery, utcnow
from app.services.geo import GeoPoint
from app.services.types import (
    AnalysisInput,
    PoiKind,
    PoiSearchMeta,
    PoiSearchResult,
    PointOfInterest,
)


async def get_cached_search(
    db: AsyncSession, cache_key: str, ttl_min: int
) -> Optional[PoiSearchResult]:
    cutoff = utcnow() - timedelta(minutes=ttl_min)
    stmt = select(PoiQuery).where(
        PoiQuery.cache_key == cache_key, PoiQuery.fetched_at >= cutoff
    )
    query = (await db.execute(stmt)).scalar_one_or_none()
    if query is None:
        return None

    rows = (
        await db.execute(
            select(CachedPoi).where(CachedPoi.query_id == query.id).order_by(CachedPoi.id)
        )
    ).scalars().all()
    competitors: list[PointOfInterest] = []
    complements: list[PointOfInterest] = []
    for r in rows:
        poi = PointOfInterest(
            id=r.poi_id,
            name=r.name,
            category=r.category,
            point=GeoPoint(r.lat, r.lng),
            distance_m=r.distance_m or 0.0,
            kind=PoiKind(r.kind),
        )
        (competitors if poi.kind is PoiKind.COMPETITOR else complements).append(poi)

    return PoiSearchResult(
        success=True,
        competitors=competitors,
        complements=complements,
        meta=PoiSearchMeta(
            competitor_count=len(competitors),
            complement_count=len(complements),
            partial=bool(query.partial),
            warning=query.warning,
        ),
    )


async def _delete_queries(db: AsyncSession, ids: Sequence[int]) -> None:
    if not ids:
        return
    # SQLite does not enforce FK cascades unless asked to
    await db.execute(delete(CachedPoi).where(CachedPoi.query_id.in_(ids)))
    await db.execute(delete(PoiQuery).where(PoiQuery.id.in_(ids)))


async def save_search(
    db: AsyncSession, cache_key: str, input: AnalysisInput, result: PoiSearchResult
) -> int:
    """Replace any previous entry for cache_key. Returns the number of POIs stored."""
    old = (
        await db.execute(select(PoiQuery.id).where(PoiQuery.cache_key == cache_key))
    ).scalars().all()
    await _delete_queries(db, old)

    query = PoiQuery(
        cache_key=cache_key,
        business_type=input.business_type.value,
        lat=input.center.lat,
        lng=input.center.lng,
        radius_km=input.radius_km,
        language=input.language,
        partial=result.meta.partial,
        warning=result.meta.warning,
    )
    db.add(query)
    await db.flush()

    stored = 0
    for p in [*result.competitors, *result.complements]:
        db.add(
            CachedPoi(
                query_id=query.id,
                poi_id=p.id,
                name=p.name,
                category=p.category,
                lat=p.point.lat,
                lng=p.point.lng,
                distance_m=p.distance_m,
                kind=p.kind.value,
            )
        )
        stored += 1
    await db.commit()
    return stored


async def purge_expired(db: AsyncSession, ttl_min: int) -> int:
    cutoff = utcnow() - timedelta(minutes=ttl_min)
    ids = (
        await db.execute(select(PoiQuery.id).where(PoiQuery.fetched_at < cutoff))
    ).scalars().all()
    await _delete_queries(db, ids)
    await db.commit()
    return len(ids)


async def add_analysis_log(
    db: AsyncSession,
    *,
    input: AnalysisInput,
    status: str,
    cells: int = 0,
    competitor_count: int = 0,
    complement_count: int = 0,
    elapsed_ms: float = 0.0,
) -> AnalysisLog:
    row = AnalysisLog(
        business_type=input.business_type.value,
        lat=input.center.lat,
        lng=input.center.lng,
        radius_km=input.radius_km,
        cells=cells,
        competitor_count=competitor_count,
        complement_count=complement_count,
        status=status,
        elapsed_ms=elapsed_ms,
    )
    db.add(row)
    await db.commit()
    return row


async def list_analysis_logs(db: AsyncSession, limit: int = 100) -> Sequence[AnalysisLog]:
    stmt = select(AnalysisLog).order_by(AnalysisLog.id.desc()).limit(limit)
    return (await db.execute(stmt)).scalars().all()
