# app/main.py
# -----------------------------------------------------------------------------
# FastAPI entrypoint
# - creates tables and wires the analysis engine at startup
# -----------------------------------------------------------------------------
from fastapi import FastAPI
from loguru import logger

from app.core.config import settings
from app.core.logging import setup_logging
from app.db.session import AsyncSessionLocal, init_models
from app.routers import admin, analysis
from app.services.categories import load_category_map
from app.services.engine import AnalysisEngine
from app.services.poi_search import AzureMapsPoiClient, CachedPoiSource
from app.services.recompute import RecomputeCoordinator

app = FastAPI(title=settings.APP_NAME)


def build_engine() -> AnalysisEngine:
    cmap = load_category_map()
    source = CachedPoiSource(AzureMapsPoiClient(cmap), AsyncSessionLocal)
    return AnalysisEngine(source, classifier=cmap.classifier)


@app.on_event("startup")
async def on_startup():
    setup_logging()
    await init_models()
    app.state.engine = build_engine()
    app.state.coordinator = RecomputeCoordinator(app.state.engine)
    if not settings.AZURE_MAPS_KEY:
        logger.warning("AZURE_MAPS_KEY is not set; every analysis will come back empty")
    logger.info(f"{settings.APP_NAME} started ({settings.ENV})")


app.include_router(analysis.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
