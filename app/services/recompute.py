# app/services/recompute.py
# -----------------------------------------------------------------------------
# Weight-change recompute with supersede + debounce
# - every request bumps a generation counter and cancels the previous token
# - a request waits out the debounce window before doing any work
# - scoring runs in a worker thread; its result is committed only if its
#   generation is still the newest when it finishes
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from app.core.cancellation import CancellationToken
from app.core.config import settings
from app.core.errors import AnalysisCancelled, NoCachedAnalysis
from app.services.engine import AnalysisEngine
from app.services.types import AnalysisResult, Weights


class RecomputeCoordinator:
    def __init__(self, engine: AnalysisEngine, debounce_ms: int | None = None):
        self._engine = engine
        ms = settings.RECOMPUTE_DEBOUNCE_MS if debounce_ms is None else debounce_ms
        self._debounce_s = max(0, ms) / 1000.0
        self._generation = 0
        self._token: Optional[CancellationToken] = None
        self._latest: Optional[AnalysisResult] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def latest(self) -> Optional[AnalysisResult]:
        """Result of the newest completed recompute, if any."""
        return self._latest

    def cancel_pending(self, reason: str = "cancelled") -> None:
        if self._token is not None:
            self._token.cancel(reason)
            self._token = None

    async def submit(self, weights: Weights) -> AnalysisResult:
        if not self._engine.has_cached_analysis():
            raise NoCachedAnalysis()

        self._generation += 1
        gen = self._generation
        self.cancel_pending("superseded")
        token = CancellationToken()
        self._token = token

        if self._debounce_s:
            await asyncio.sleep(self._debounce_s)
        token.raise_if_cancelled()

        try:
            result = await asyncio.to_thread(self._engine.recompute, weights, token)
        except AnalysisCancelled:
            logger.debug(f"[Recompute] generation {gen} cancelled")
            raise
        if gen != self._generation:
            logger.debug(f"[Recompute] generation {gen} superseded by {self._generation}")
            raise AnalysisCancelled("superseded")

        self._latest = result
        if self._token is token:
            self._token = None
        return result
