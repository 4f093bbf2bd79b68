# app/services/categories.py
# -----------------------------------------------------------------------------
# Category data
# - business type -> (competitor ids, complement ids) for the POI search
# - access/demand code sets for the scoring classifier
# Both live in app/data/categories.json so taxonomies can change without code.
# -----------------------------------------------------------------------------
from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional

from loguru import logger

from app.core.config import settings
from app.services.types import BusinessType


@dataclass(frozen=True, slots=True)
class CategoryClassifier:
    access: frozenset[str] = frozenset()
    demand: frozenset[str] = frozenset()

    def is_access(self, code: Optional[str]) -> bool:
        return code is not None and code in self.access

    def is_demand(self, code: Optional[str]) -> bool:
        return code is not None and code in self.demand


DEFAULT_CLASSIFIER = CategoryClassifier(
    access=frozenset({"POI_PARKING", "POI_PUBLIC_TRANSPORT_STATION"}),
    demand=frozenset({"POI_SCHOOL", "POI_OFFICE", "POI_APARTMENT"}),
)


@dataclass(frozen=True, slots=True)
class CategorySets:
    competitors: tuple[str, ...] = ()
    complements: tuple[str, ...] = ()


@dataclass(frozen=True)
class CategoryMap:
    businesses: dict[str, CategorySets] = field(default_factory=dict)
    classifier: CategoryClassifier = DEFAULT_CLASSIFIER

    def categories_for(self, business: BusinessType | str) -> CategorySets:
        key = business.value if isinstance(business, BusinessType) else str(business)
        entry = self.businesses.get(key)
        if entry is None:
            # unknown business types are searched like coffee shops
            entry = self.businesses.get(BusinessType.COFFEE.value, CategorySets())
        return entry


def parse_category_map(raw: dict) -> CategoryMap:
    businesses = {
        name: CategorySets(
            competitors=tuple(entry.get("competitors") or ()),
            complements=tuple(entry.get("complements") or ()),
        )
        for name, entry in (raw.get("businesses") or {}).items()
    }
    access = raw.get("access_categories")
    demand = raw.get("demand_categories")
    classifier = CategoryClassifier(
        access=frozenset(access) if access is not None else DEFAULT_CLASSIFIER.access,
        demand=frozenset(demand) if demand is not None else DEFAULT_CLASSIFIER.demand,
    )
    return CategoryMap(businesses=businesses, classifier=classifier)


@lru_cache(maxsize=4)
def load_category_map(path: str | None = None) -> CategoryMap:
    p = Path(path or settings.CATEGORY_MAP_PATH)
    with p.open(encoding="utf-8") as f:
        raw = json.load(f)
    cmap = parse_category_map(raw)
    logger.info(f"[Categories] loaded {len(cmap.businesses)} business types from {p}")
    return cmap
