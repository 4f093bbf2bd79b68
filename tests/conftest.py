"""
Pytest configuration and shared fixtures.

Everything runs offline: the POI source is faked and the DB is a
throwaway SQLite file per test.
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="venuescope-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/default.db")
os.environ.setdefault("LOG_DIR", os.path.join(_TMP, "logs"))
os.environ.setdefault("RECOMPUTE_DEBOUNCE_MS", "0")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from app.db.session import init_models  # noqa: E402
from app.services.geo import GeoPoint  # noqa: E402
from app.services.types import (  # noqa: E402
    AnalysisInput,
    BusinessType,
    PoiKind,
    PoiSearchMeta,
    PoiSearchResult,
    PointOfInterest,
)

BELGRADE = GeoPoint(44.787, 20.449)


def make_poi(lat, lng, kind, category=None, poi_id=None):
    return PointOfInterest(
        id=poi_id,
        name=poi_id,
        category=category,
        point=GeoPoint(lat, lng),
        distance_m=0.0,
        kind=kind,
    )


class FakePoiSource:
    """Returns a canned PoiSearchResult and counts calls."""

    def __init__(self, result: PoiSearchResult):
        self.result = result
        self.calls = 0

    async def search(self, input, cancel=None):
        self.calls += 1
        return self.result


@pytest.fixture
def analysis_input():
    return AnalysisInput(
        business_type=BusinessType.COFFEE, center=BELGRADE, radius_km=1.0, language="en-US"
    )


@pytest.fixture
def competitors():
    return [
        make_poi(44.7875, 20.4495, PoiKind.COMPETITOR, "CAFE_PUB", "c1"),
        make_poi(44.7900, 20.4520, PoiKind.COMPETITOR, "CAFE_PUB", "c2"),
    ]


@pytest.fixture
def complements():
    return [
        make_poi(44.7840, 20.4460, PoiKind.COMPLEMENT, "POI_PARKING", "p1"),
        make_poi(44.7830, 20.4440, PoiKind.COMPLEMENT, "POI_OFFICE", "o1"),
        make_poi(44.7860, 20.4420, PoiKind.COMPLEMENT, "RESTAURANT", "r1"),
    ]


@pytest.fixture
def search_result(competitors, complements):
    return PoiSearchResult(
        success=True,
        competitors=competitors,
        complements=complements,
        meta=PoiSearchMeta(competitor_count=len(competitors), complement_count=len(complements)),
    )


@pytest.fixture
def fake_source(search_result):
    return FakePoiSource(search_result)


@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await init_models(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
