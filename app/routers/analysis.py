import time
import traceback

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AnalysisCancelled, NoCachedAnalysis
from app.db import crud
from app.db.session import get_session
from app.schemas.analysis import (
    AnalysisRequest,
    AnalysisResponse,
    CachedStatus,
    RecomputeRequest,
)
from app.services.engine import AnalysisEngine
from app.services.geo import GeoPoint
from app.services.recompute import RecomputeCoordinator
from app.services.types import AnalysisInput, AnalysisResult

router = APIRouter(prefix="/analysis", tags=["analysis"])


def get_engine(request: Request) -> AnalysisEngine:
    return request.app.state.engine


def get_coordinator(request: Request) -> RecomputeCoordinator:
    return request.app.state.coordinator


def _status(result: AnalysisResult) -> str:
    if not result.empty:
        return "done"
    if result.meta is not None and result.meta.error:
        return f"error:{result.meta.error}"
    return "empty"


@router.post("/area", response_model=AnalysisResponse)
async def analyze_area(
    req: AnalysisRequest,
    engine: AnalysisEngine = Depends(get_engine),
    coordinator: RecomputeCoordinator = Depends(get_coordinator),
    db: AsyncSession = Depends(get_session),
):
    inp = AnalysisInput(
        business_type=req.business_type,
        center=GeoPoint(req.lat, req.lng),
        radius_km=req.radius_km,
        language=req.language,
    )
    # slider recomputes against the old area are now meaningless
    coordinator.cancel_pending("new analysis")
    started = time.perf_counter()
    try:
        result = await engine.analyze(inp, req.resolve_weights())
    except AnalysisCancelled:
        raise HTTPException(status_code=409, detail="cancelled")
    except Exception as e:
        await crud.add_analysis_log(db, input=inp, status=f"error:{type(e).__name__}")
        raise HTTPException(status_code=500, detail=traceback.format_exc())

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    meta = result.meta
    await crud.add_analysis_log(
        db,
        input=inp,
        status=_status(result),
        cells=len(result.cell_details),
        competitor_count=meta.competitor_count if meta else 0,
        complement_count=meta.complement_count if meta else 0,
        elapsed_ms=elapsed_ms,
    )
    logger.info(f"[Analysis] {inp.business_type.value} {_status(result)} in {elapsed_ms:.0f}ms")
    return AnalysisResponse.from_result(result)


@router.post("/recompute", response_model=AnalysisResponse)
async def recompute(
    req: RecomputeRequest,
    coordinator: RecomputeCoordinator = Depends(get_coordinator),
):
    try:
        result = await coordinator.submit(req.resolve_weights())
    except NoCachedAnalysis as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AnalysisCancelled:
        raise HTTPException(status_code=409, detail="cancelled")
    return AnalysisResponse.from_result(result)


@router.get("/cached", response_model=CachedStatus)
async def cached(engine: AnalysisEngine = Depends(get_engine)):
    return CachedStatus(cached=engine.has_cached_analysis())
