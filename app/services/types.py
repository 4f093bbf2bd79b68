# app/services/types.py
# -----------------------------------------------------------------------------
# Domain value types shared by the engine, the POI source and the routers
# - plain dataclasses; pydantic models live in app/schemas
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from app.services.geo import GeoPoint


class PoiKind(str, Enum):
    COMPETITOR = "competitor"
    COMPLEMENT = "complement"


class BusinessType(str, Enum):
    COFFEE = "coffee"
    PHARMACY = "pharmacy"
    GROCERY = "grocery"
    FITNESS = "fitness"
    KIDS_SERVICES = "kids_services"


@dataclass(frozen=True, slots=True)
class PointOfInterest:
    id: Optional[str]
    name: Optional[str]
    category: Optional[str]
    point: GeoPoint
    distance_m: float
    kind: PoiKind


@dataclass(frozen=True, slots=True)
class Weights:
    complements: float = 0.35
    accessibility: float = 0.25
    demand: float = 0.25
    competition: float = 0.35  # subtracted


@dataclass(frozen=True, slots=True)
class Grid:
    cells: tuple[GeoPoint, ...]
    step_m: float


@dataclass(slots=True)
class CellScore:
    point: GeoPoint
    ci: float  # competition index
    coi: float  # complements index
    ai: float  # accessibility index
    di: float  # demand index
    score: float
    coverage_confidence: float
    primary_badge: Optional[str] = None
    supporting_badges: list[str] = field(default_factory=list)
    rationale: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AnalysisInput:
    business_type: BusinessType
    center: GeoPoint
    radius_km: float
    language: str = "en-US"


@dataclass(slots=True)
class PoiSearchMeta:
    competitor_count: int = 0
    complement_count: int = 0
    partial: bool = False
    warning: Optional[str] = None
    error: Optional[str] = None
    latency_ms: Optional[float] = None


@dataclass(slots=True)
class PoiSearchResult:
    success: bool = False
    competitors: list[PointOfInterest] = field(default_factory=list)
    complements: list[PointOfInterest] = field(default_factory=list)
    meta: PoiSearchMeta = field(default_factory=PoiSearchMeta)


@dataclass(frozen=True, slots=True)
class HeatmapCell:
    lat: float
    lng: float
    intensity: float


@dataclass(frozen=True, slots=True)
class ResultItem:
    rank: int
    score: float
    lat: float
    lng: float


@dataclass(slots=True)
class AnalysisResult:
    heatmap: list[HeatmapCell] = field(default_factory=list)
    top_results: list[ResultItem] = field(default_factory=list)
    cell_details: list[CellScore] = field(default_factory=list)
    meta: Optional[PoiSearchMeta] = None

    @property
    def empty(self) -> bool:
        return not self.cell_details


@dataclass(frozen=True, slots=True)
class AnalysisContext:
    """Everything recompute() needs; replaced as a whole, never mutated."""

    input: AnalysisInput
    grid: Grid
    competitors: tuple[PointOfInterest, ...]
    complements: tuple[PointOfInterest, ...]
