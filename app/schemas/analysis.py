# app/schemas/analysis.py

from typing import List, Optional

from pydantic import BaseModel, Field

from app.services.scoring import DEFAULT_WEIGHTS
from app.services.types import AnalysisResult, BusinessType, Weights
from app.services.weights import from_percentages


class WeightsIn(BaseModel):
    complements: float = DEFAULT_WEIGHTS.complements
    accessibility: float = DEFAULT_WEIGHTS.accessibility
    demand: float = DEFAULT_WEIGHTS.demand
    competition: float = DEFAULT_WEIGHTS.competition


class PercentagesIn(BaseModel):
    """Raw slider values (0~100)."""

    complements: float = Field(35, ge=0, le=100)
    accessibility: float = Field(25, ge=0, le=100)
    demand: float = Field(25, ge=0, le=100)
    competition: float = Field(35, ge=0, le=100)


class WeightsMixin(BaseModel):
    weights: Optional[WeightsIn] = None
    percentages: Optional[PercentagesIn] = None

    def resolve_weights(self) -> Weights:
        # slider percentages win over explicit weights
        if self.percentages is not None:
            p = self.percentages
            return from_percentages(p.complements, p.accessibility, p.demand, p.competition)
        if self.weights is not None:
            return Weights(**self.weights.model_dump())
        return DEFAULT_WEIGHTS


class AnalysisRequest(WeightsMixin):
    business_type: BusinessType = BusinessType.COFFEE
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(1.0, ge=0.1, le=10)
    language: str = "en-US"


class RecomputeRequest(WeightsMixin):
    pass


class HeatmapCellOut(BaseModel):
    lat: float
    lng: float
    intensity: float


class ResultItemOut(BaseModel):
    rank: int
    score: float
    lat: float
    lng: float


class CellScoreOut(BaseModel):
    lat: float
    lng: float
    ci: float
    coi: float
    ai: float
    di: float
    score: float
    coverage_confidence: float
    primary_badge: Optional[str] = None
    supporting_badges: List[str] = []
    rationale: List[str] = []


class SearchMetaOut(BaseModel):
    competitor_count: int = 0
    complement_count: int = 0
    partial: bool = False
    warning: Optional[str] = None
    error: Optional[str] = None
    latency_ms: Optional[float] = None


class AnalysisResponse(BaseModel):
    empty: bool
    heatmap: List[HeatmapCellOut]
    top_results: List[ResultItemOut]
    cell_details: List[CellScoreOut]
    meta: Optional[SearchMetaOut] = None

    @classmethod
    def from_result(cls, result: AnalysisResult) -> "AnalysisResponse":
        meta = None
        if result.meta is not None:
            m = result.meta
            meta = SearchMetaOut(
                competitor_count=m.competitor_count,
                complement_count=m.complement_count,
                partial=m.partial,
                warning=m.warning,
                error=m.error,
                latency_ms=m.latency_ms,
            )
        return cls(
            empty=result.empty,
            heatmap=[
                HeatmapCellOut(lat=h.lat, lng=h.lng, intensity=h.intensity)
                for h in result.heatmap
            ],
            top_results=[
                ResultItemOut(rank=t.rank, score=t.score, lat=t.lat, lng=t.lng)
                for t in result.top_results
            ],
            cell_details=[
                CellScoreOut(
                    lat=c.point.lat,
                    lng=c.point.lng,
                    ci=c.ci,
                    coi=c.coi,
                    ai=c.ai,
                    di=c.di,
                    score=c.score,
                    coverage_confidence=c.coverage_confidence,
                    primary_badge=c.primary_badge,
                    supporting_badges=list(c.supporting_badges),
                    rationale=list(c.rationale),
                )
                for c in result.cell_details
            ],
            meta=meta,
        )


class CachedStatus(BaseModel):
    cached: bool
