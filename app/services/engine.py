# app/services/engine.py
# -----------------------------------------------------------------------------
# Geospatial analysis engine
# - sample grid around a center point
# - per-cell competition / complements / accessibility / demand indices
# - min-max normalization, weighted score, badges, rationale
# - keeps the last (input, grid, POIs) so weight changes skip the fetch
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import math
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from app.core.cancellation import CancellationToken, check
from app.core.config import settings
from app.core.errors import NoCachedAnalysis
from app.services import badges
from app.services.categories import DEFAULT_CLASSIFIER, CategoryClassifier
from app.services.geo import (
    METERS_PER_DEG_LAT,
    GeoPoint,
    distance_matrix_m,
    haversine_m,
    meters_per_deg_lng,
)
from app.services.poi_search import PoiSource
from app.services.scoring import DEFAULT_WEIGHTS, score
from app.services.types import (
    AnalysisContext,
    AnalysisInput,
    AnalysisResult,
    CellScore,
    Grid,
    HeatmapCell,
    PointOfInterest,
    PoiSearchMeta,
    ResultItem,
    Weights,
)

MIN_STEP_M = 50.0
COMPETITION_DECAY_M = 300.0
COMPLEMENT_DECAY_M = 200.0
# accessibility/demand default to half the complement density when no
# tagged POI was found; a heuristic, tune freely
FALLBACK_FACTOR = 0.5
DEGENERATE_RANGE = 1e-9
CHUNK_CELLS = 64


def generate_grid(
    center_lat: float, center_lng: float, radius_km: float, target_cells: int = 250
) -> Grid:
    """
    Roughly circular grid of cell centers. target_cells only sizes the step,
    the actual count depends on the disc clipping.
    """
    radius_m = radius_km * 1000.0
    area = math.pi * radius_m * radius_m
    step = max(MIN_STEP_M, math.sqrt(area / max(1, target_cells)))

    m_lon = meters_per_deg_lng(center_lat)
    d_lat = step / METERS_PER_DEG_LAT
    d_lng = step / m_lon
    half_lat = radius_m / METERS_PER_DEG_LAT
    half_lng = radius_m / m_lon

    cells: list[GeoPoint] = []
    lat = center_lat - half_lat
    while lat <= center_lat + half_lat:
        lng = center_lng - half_lng
        while lng <= center_lng + half_lng:
            if haversine_m(center_lat, center_lng, lat, lng) <= radius_m:
                cells.append(GeoPoint(lat, lng))
            lng += d_lng
        lat += d_lat
    return Grid(cells=tuple(cells), step_m=step)


def normalize(values: np.ndarray) -> np.ndarray:
    """Min-max to [0,1]; a flat factor maps to all zeros."""
    if values.size == 0:
        return values
    lo = float(values.min())
    span = float(values.max()) - lo
    if span <= DEGENERATE_RANGE:
        return np.zeros_like(values, dtype=float)
    return (values - lo) / span


def _coords(pois: Sequence[PointOfInterest]) -> tuple[np.ndarray, np.ndarray]:
    lat = np.fromiter((p.point.lat for p in pois), dtype=float, count=len(pois))
    lng = np.fromiter((p.point.lng for p in pois), dtype=float, count=len(pois))
    return lat, lng


def compute_scores(
    grid: Grid,
    competitors: Sequence[PointOfInterest],
    complements: Sequence[PointOfInterest],
    weights: Weights,
    cancel: Optional[CancellationToken] = None,
    classifier: CategoryClassifier = DEFAULT_CLASSIFIER,
    chunk: int = CHUNK_CELLS,
) -> list[CellScore]:
    check(cancel)
    n = len(grid.cells)
    if n == 0:
        return []

    cell_lat = np.fromiter((c.lat for c in grid.cells), dtype=float, count=n)
    cell_lng = np.fromiter((c.lng for c in grid.cells), dtype=float, count=n)
    comp_lat, comp_lng = _coords(competitors)
    compl_lat, compl_lng = _coords(complements)
    access = np.array([classifier.is_access(p.category) for p in complements], dtype=bool)
    demand = np.array([classifier.is_demand(p.category) for p in complements], dtype=bool)

    ci_raw = np.zeros(n)
    co_raw = np.zeros(n)
    ai_raw = np.zeros(n)
    di_raw = np.zeros(n)

    # cells are independent; chunking bounds memory and gives cancel points
    for start in range(0, n, chunk):
        check(cancel)
        sl = slice(start, start + chunk)
        if len(competitors):
            d = distance_matrix_m(cell_lat[sl], cell_lng[sl], comp_lat, comp_lng)
            ci_raw[sl] = np.exp(-d / COMPETITION_DECAY_M).sum(axis=1)
        if len(complements):
            d = distance_matrix_m(cell_lat[sl], cell_lng[sl], compl_lat, compl_lng)
            k = np.exp(-d / COMPLEMENT_DECAY_M)
            co_raw[sl] = k.sum(axis=1)
            ai_raw[sl] = k[:, access].sum(axis=1)
            di_raw[sl] = k[:, demand].sum(axis=1)

    ai_raw = np.where(ai_raw == 0, co_raw * FALLBACK_FACTOR, ai_raw)
    di_raw = np.where(di_raw == 0, co_raw * FALLBACK_FACTOR, di_raw)

    ci_n = normalize(ci_raw)
    coi_n = normalize(co_raw)
    ai_n = normalize(ai_raw)
    di_n = normalize(di_raw)

    check(cancel)
    out: list[CellScore] = []
    for i, cell in enumerate(grid.cells):
        ci, coi, ai, di = float(ci_n[i]), float(coi_n[i]), float(ai_n[i]), float(di_n[i])
        out.append(
            CellScore(
                point=cell,
                ci=ci,
                coi=coi,
                ai=ai,
                di=di,
                score=score(coi, ai, di, ci, weights),
                coverage_confidence=min(1.0, max(0.0, (coi + di) / 2.0)),
                primary_badge=badges.primary_badge(ci, coi),
                supporting_badges=badges.supporting_badges(ai, di),
                rationale=badges.rationale(ci, coi, ai, di),
            )
        )
    # a cancel that lands mid-build must not leak a result
    check(cancel)
    return out


def build_result(
    scores: list[CellScore], top_n: int = 10, meta: Optional[PoiSearchMeta] = None
) -> AnalysisResult:
    heat = [HeatmapCell(s.point.lat, s.point.lng, s.score) for s in scores]
    # sorted() is stable: equal scores keep grid order
    order = sorted(range(len(scores)), key=lambda i: -scores[i].score)[:top_n]
    top = [
        ResultItem(
            rank=rank,
            score=scores[i].score,
            lat=scores[i].point.lat,
            lng=scores[i].point.lng,
        )
        for rank, i in enumerate(order, start=1)
    ]
    return AnalysisResult(heatmap=heat, top_results=top, cell_details=scores, meta=meta)


class AnalysisEngine:
    """
    Full analysis (fetch + grid + scores) and weight-only recompute.
    The retained context is replaced as a whole, never edited in place.
    """

    def __init__(
        self,
        poi_source: PoiSource,
        classifier: CategoryClassifier = DEFAULT_CLASSIFIER,
        target_cells: int | None = None,
        top_n: int | None = None,
    ):
        self._source = poi_source
        self._classifier = classifier
        self._target_cells = target_cells or settings.GRID_TARGET_CELLS
        self._top_n = top_n or settings.TOP_N
        self._last: Optional[AnalysisContext] = None

    @property
    def context(self) -> Optional[AnalysisContext]:
        return self._last

    def has_cached_analysis(self) -> bool:
        return self._last is not None

    def clear(self) -> None:
        self._last = None

    def generate_grid(self, center_lat: float, center_lng: float, radius_km: float) -> Grid:
        return generate_grid(center_lat, center_lng, radius_km, self._target_cells)

    def compute_scores(
        self,
        grid: Grid,
        competitors: Sequence[PointOfInterest],
        complements: Sequence[PointOfInterest],
        weights: Weights,
        cancel: Optional[CancellationToken] = None,
    ) -> list[CellScore]:
        return compute_scores(
            grid, competitors, complements, weights, cancel, classifier=self._classifier
        )

    async def analyze(
        self,
        input: AnalysisInput,
        weights: Optional[Weights] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        weights = weights or DEFAULT_WEIGHTS
        check(cancel)
        pois = await self._source.search(input, cancel=cancel)
        check(cancel)

        if not pois.success:
            logger.warning(
                f"[Engine] POI search failed for {input.business_type.value}: {pois.meta.error}"
            )
        if not pois.success or (not pois.competitors and not pois.complements):
            self._last = None
            logger.info(
                f"[Engine] no POI data near ({input.center.lat:.5f}, {input.center.lng:.5f})"
            )
            return AnalysisResult(meta=pois.meta)

        grid = self.generate_grid(input.center.lat, input.center.lng, input.radius_km)
        # CPU-bound; keep the event loop free for pending recompute timers
        scores = await asyncio.to_thread(
            self.compute_scores, grid, pois.competitors, pois.complements, weights, cancel
        )

        # swap in one assignment so recompute never sees a half-built context
        self._last = AnalysisContext(
            input=input,
            grid=grid,
            competitors=tuple(pois.competitors),
            complements=tuple(pois.complements),
        )
        logger.info(
            f"[Engine] analyzed {len(grid.cells)} cells "
            f"(step {grid.step_m:.0f}m, {len(pois.competitors)} competitors, "
            f"{len(pois.complements)} complements)"
        )
        return build_result(scores, self._top_n, pois.meta)

    def recompute(
        self, weights: Weights, cancel: Optional[CancellationToken] = None
    ) -> AnalysisResult:
        ctx = self._last
        if ctx is None:
            raise NoCachedAnalysis()
        check(cancel)
        scores = self.compute_scores(
            ctx.grid, ctx.competitors, ctx.complements, weights, cancel
        )
        return build_result(scores, self._top_n)
