# app/services/poi_search.py
# -----------------------------------------------------------------------------
# POI source
# - PoiSource: what the engine needs ("competitors + complements near here")
# - AzureMapsPoiClient: category search over httpx, paged, 429 backoff
# - CachedPoiSource: DB-backed cache in front of any PoiSource
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Optional, Protocol

import httpx
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.cancellation import CancellationToken, check
from app.core.config import settings
from app.core.errors import AnalysisCancelled, UpstreamFetchFailure
from app.db import crud
from app.services.categories import CategoryMap
from app.services.geo import GeoPoint
from app.services.types import (
    AnalysisInput,
    PoiKind,
    PoiSearchMeta,
    PoiSearchResult,
    PointOfInterest,
)

MAX_THROTTLE_RETRIES = 2


class PoiSource(Protocol):
    async def search(
        self, input: AnalysisInput, cancel: Optional[CancellationToken] = None
    ) -> PoiSearchResult: ...


def cache_key(input: AnalysisInput) -> str:
    return (
        f"pois|{input.business_type.value}|{input.center.lat:.5f}|"
        f"{input.center.lng:.5f}|{input.radius_km:.2f}|{input.language}"
    )


def parse_results(payload: dict, kind: PoiKind) -> list[PointOfInterest]:
    """
    Azure Maps search results -> PointOfInterest.
    Entries without a usable position are skipped.
    """
    out: list[PointOfInterest] = []
    for r in payload.get("results") or []:
        try:
            pos = r["position"]
            lat = float(pos["lat"])
            lng = float(pos["lon"])
        except (KeyError, TypeError, ValueError):
            continue
        poi = r.get("poi") or {}
        classifications = poi.get("classifications") or []
        categories = poi.get("categories") or []
        if classifications:
            category = classifications[0].get("code")
        elif categories:
            category = categories[0]
        else:
            category = None
        try:
            dist = float(r.get("dist") or 0.0)
        except (TypeError, ValueError):
            dist = 0.0
        out.append(
            PointOfInterest(
                id=r.get("id"),
                name=poi.get("name"),
                category=category,
                point=GeoPoint(lat, lng),
                distance_m=dist,
                kind=kind,
            )
        )
    return out


class AzureMapsPoiClient:
    def __init__(
        self,
        category_map: CategoryMap,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        page_limit: int | None = None,
        max_pages: int | None = None,
    ):
        self._categories = category_map
        self._api_key = api_key if api_key is not None else settings.AZURE_MAPS_KEY
        self._client = client
        self._base_url = base_url or settings.POI_SEARCH_URL
        self._limit = page_limit or settings.POI_PAGE_LIMIT
        self._max_pages = max_pages or settings.POI_MAX_PAGES

    def _new_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(settings.POI_TIMEOUT_S, connect=6.0)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def search(
        self, input: AnalysisInput, cancel: Optional[CancellationToken] = None
    ) -> PoiSearchResult:
        started = time.perf_counter()
        result = PoiSearchResult(success=False)
        sets = self._categories.categories_for(input.business_type)
        client = self._client or self._new_client()
        try:
            if not self._api_key:
                raise UpstreamFetchFailure("DataError_MissingApiKey")
            comp, comp_partial = await self._query_set(
                client, sets.competitors, input, PoiKind.COMPETITOR, cancel
            )
            compl, compl_partial = await self._query_set(
                client, sets.complements, input, PoiKind.COMPLEMENT, cancel
            )
            partial = comp_partial or compl_partial
            result = PoiSearchResult(
                success=True,
                competitors=comp,
                complements=compl,
                meta=PoiSearchMeta(
                    competitor_count=len(comp),
                    complement_count=len(compl),
                    partial=partial,
                    warning="DataWarning_PartialResults" if partial else None,
                ),
            )
        except UpstreamFetchFailure as e:
            result.meta.error = e.error_key
        except httpx.TimeoutException as e:
            logger.warning(f"[POI] timeout: {e}")
            result.meta.error = "DataError_Timeout"
        except httpx.HTTPError as e:
            logger.warning(f"[POI] HTTPError: {e}")
            result.meta.error = "DataError_Http"
        except AnalysisCancelled:
            raise
        except Exception as e:
            # malformed upstream payloads (non-JSON body, odd shapes)
            logger.error(f"[POI] unexpected error: {e!r}")
            result.meta.error = "DataError_Unknown"
        finally:
            if self._client is None:
                await client.aclose()
            result.meta.latency_ms = (time.perf_counter() - started) * 1000.0
        return result

    async def _query_set(
        self,
        client: httpx.AsyncClient,
        category_ids: tuple[str, ...],
        input: AnalysisInput,
        kind: PoiKind,
        cancel: Optional[CancellationToken],
    ) -> tuple[list[PointOfInterest], bool]:
        items: list[PointOfInterest] = []
        if not category_ids:
            return items, False
        page = 0
        throttled = 0
        while page < self._max_pages:
            check(cancel)
            r = await client.get(self._base_url, params=self._params(category_ids, input, page))
            if r.status_code == 429:
                if throttled >= MAX_THROTTLE_RETRIES:
                    return items, True
                throttled += 1
                wait = 0.3 + random.uniform(0.0, 0.3)
                logger.warning(f"[POI] throttled, retry {throttled}/{MAX_THROTTLE_RETRIES} in {wait:.2f}s")
                await asyncio.sleep(wait)
                continue
            if r.is_error:
                logger.warning(f"[POI] {kind.value} page {page} -> HTTP {r.status_code}")
                return items, True
            payload: dict[str, Any] = r.json()
            if "results" not in payload:
                break
            items.extend(parse_results(payload, kind))
            if len(payload["results"]) < self._limit:
                break
            page += 1
        return items, False

    def _params(self, category_ids: tuple[str, ...], input: AnalysisInput, page: int) -> dict:
        return {
            "api-version": "1.0",
            "subscription-key": self._api_key,
            "lat": str(input.center.lat),
            "lon": str(input.center.lng),
            "radius": str(int(round(input.radius_km * 1000))),
            "limit": str(self._limit),
            "ofs": str(page * self._limit),
            "language": input.language,
            "categorySet": ",".join(category_ids),
        }


class CachedPoiSource:
    """
    DB cache in front of a PoiSource.
    Only successful searches are stored; entries expire after ttl_min.
    """

    def __init__(
        self,
        inner: PoiSource,
        sessionmaker: async_sessionmaker[AsyncSession],
        ttl_min: int | None = None,
    ):
        self._inner = inner
        self._sessionmaker = sessionmaker
        self._ttl_min = ttl_min if ttl_min is not None else settings.POI_CACHE_TTL_MIN

    async def search(
        self, input: AnalysisInput, cancel: Optional[CancellationToken] = None
    ) -> PoiSearchResult:
        key = cache_key(input)
        async with self._sessionmaker() as db:
            cached = await crud.get_cached_search(db, key, self._ttl_min)
            if cached is not None:
                logger.debug(f"[POI] cache hit {key}")
                return cached

        result = await self._inner.search(input, cancel=cancel)
        if result.success:
            async with self._sessionmaker() as db:
                await crud.save_search(db, key, input, result)
        return result
