"""
Unit tests for app/services/engine.py

Grid generation, factor indices, normalization, cancellation and the
analyze/recompute cycle. Fully offline (fake POI source).
"""
import numpy as np
import pytest

from app.core.cancellation import CancellationToken
from app.core.errors import AnalysisCancelled, NoCachedAnalysis
from app.services.engine import (
    AnalysisEngine,
    build_result,
    compute_scores,
    generate_grid,
    normalize,
)
from app.services.geo import GeoPoint, haversine_m
from app.services.scoring import DEFAULT_WEIGHTS
from app.services.types import (
    CellScore,
    PoiKind,
    PoiSearchMeta,
    PoiSearchResult,
    Weights,
)

from conftest import BELGRADE, FakePoiSource, make_poi


class CancelAfter(CancellationToken):
    """Cancels itself after `n` cancellation checks."""

    def __init__(self, n):
        super().__init__()
        self.remaining = n

    def raise_if_cancelled(self):
        if self.remaining <= 0:
            self.cancel()
        self.remaining -= 1
        super().raise_if_cancelled()


# =============================================================================
# Grid
# =============================================================================


class TestGenerateGrid:
    def test_cells_within_radius(self):
        grid = generate_grid(44.787, 20.449, 2.0, target_cells=100)
        assert len(grid.cells) > 50
        for c in grid.cells:
            assert haversine_m(44.787, 20.449, c.lat, c.lng) <= 2000 + 1e-6

    def test_step_has_a_floor(self):
        grid = generate_grid(44.787, 20.449, 0.1, target_cells=100_000)
        assert grid.step_m == 50.0

    def test_step_from_area(self):
        grid = generate_grid(44.787, 20.449, 1.0, target_cells=250)
        expected = np.sqrt(np.pi * 1000.0**2 / 250)
        assert grid.step_m == pytest.approx(expected)

    def test_count_is_roughly_the_target(self):
        grid = generate_grid(44.787, 20.449, 1.0, target_cells=250)
        assert 150 < len(grid.cells) < 350


# =============================================================================
# Normalization
# =============================================================================


class TestNormalize:
    def test_min_max(self):
        out = normalize(np.array([1.0, 3.0, 2.0]))
        assert out.tolist() == pytest.approx([0.0, 1.0, 0.5])

    def test_flat_values_become_zero(self):
        out = normalize(np.array([0.42, 0.42, 0.42]))
        assert out.tolist() == [0.0, 0.0, 0.0]

    def test_near_flat_values_become_zero(self):
        out = normalize(np.array([1.0, 1.0 + 1e-12]))
        assert out.tolist() == [0.0, 0.0]

    def test_empty(self):
        assert normalize(np.array([])).size == 0


# =============================================================================
# Scores
# =============================================================================


class TestComputeScores:
    @pytest.fixture
    def grid(self):
        return generate_grid(BELGRADE.lat, BELGRADE.lng, 1.0, target_cells=50)

    def test_no_data(self, grid):
        cells = compute_scores(grid, [], [], DEFAULT_WEIGHTS)
        assert len(cells) == len(grid.cells)
        assert all(c.score >= 0 for c in cells)
        assert all(c.ci == 0 and c.coi == 0 and c.ai == 0 and c.di == 0 for c in cells)

    def test_indices_are_normalized(self, grid, competitors, complements):
        cells = compute_scores(grid, competitors, complements, DEFAULT_WEIGHTS)
        for c in cells:
            for v in (c.ci, c.coi, c.ai, c.di, c.coverage_confidence):
                assert 0.0 <= v <= 1.0
        assert max(c.ci for c in cells) == pytest.approx(1.0)
        assert min(c.ci for c in cells) == pytest.approx(0.0)

    def test_closest_cell_to_competitor_has_top_ci(self, grid):
        target = grid.cells[len(grid.cells) // 2]
        comp = [make_poi(target.lat, target.lng, PoiKind.COMPETITOR)]
        cells = compute_scores(grid, comp, [], DEFAULT_WEIGHTS)
        best = max(cells, key=lambda c: c.ci)
        assert best.point == target
        assert best.primary_badge == "high_competition"

    def test_untagged_complements_fall_back_to_half_density(self, grid):
        compl = [
            make_poi(44.785, 20.447, PoiKind.COMPLEMENT, "RESTAURANT"),
            make_poi(44.789, 20.452, PoiKind.COMPLEMENT, "BAKERY"),
        ]
        cells = compute_scores(grid, [], compl, DEFAULT_WEIGHTS)
        # half of co normalizes to the same shape as co itself
        for c in cells:
            assert c.ai == pytest.approx(c.coi)
            assert c.di == pytest.approx(c.coi)

    def test_tagged_complements_drive_access(self, grid):
        parking = make_poi(44.790, 20.452, PoiKind.COMPLEMENT, "POI_PARKING")
        office = make_poi(44.783, 20.444, PoiKind.COMPLEMENT, "POI_OFFICE")
        cells = compute_scores(grid, [], [parking, office], DEFAULT_WEIGHTS)
        near_parking = min(cells, key=lambda c: haversine_m(c.point.lat, c.point.lng, 44.790, 20.452))
        near_office = min(cells, key=lambda c: haversine_m(c.point.lat, c.point.lng, 44.783, 20.444))
        assert near_parking.ai > near_office.ai
        assert near_office.di > near_parking.di

    def test_score_uses_weights(self, grid, competitors, complements):
        w = Weights(complements=1.0, accessibility=0.0, demand=0.0, competition=0.0)
        cells = compute_scores(grid, competitors, complements, w)
        for c in cells:
            assert c.score == pytest.approx(c.coi)

    def test_coverage_confidence(self, grid, competitors, complements):
        cells = compute_scores(grid, competitors, complements, DEFAULT_WEIGHTS)
        for c in cells:
            assert c.coverage_confidence == pytest.approx((c.coi + c.di) / 2)

    def test_empty_grid(self):
        from app.services.types import Grid

        assert compute_scores(Grid(cells=(), step_m=50.0), [], [], DEFAULT_WEIGHTS) == []

    def test_cancelled_before_start(self, grid, competitors, complements):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AnalysisCancelled):
            compute_scores(grid, competitors, complements, DEFAULT_WEIGHTS, token)

    def test_cancelled_mid_run_returns_nothing(self, grid, competitors, complements):
        token = CancelAfter(2)
        with pytest.raises(AnalysisCancelled):
            compute_scores(grid, competitors, complements, DEFAULT_WEIGHTS, token, chunk=8)


class TestBuildResult:
    def _cell(self, s, i):
        return CellScore(
            point=GeoPoint(44.0 + i * 0.001, 20.0),
            ci=0, coi=0, ai=0, di=0, score=s, coverage_confidence=0,
        )

    def test_top_results_are_stable_for_ties(self):
        cells = [self._cell(s, i) for i, s in enumerate([0.1, 0.5, 0.5, 0.3, 0.5])]
        result = build_result(cells, top_n=3)
        assert [t.rank for t in result.top_results] == [1, 2, 3]
        assert [t.lat for t in result.top_results] == pytest.approx([44.001, 44.002, 44.004])

    def test_heatmap_one_entry_per_cell(self):
        cells = [self._cell(s, i) for i, s in enumerate([0.1, -0.2])]
        result = build_result(cells)
        assert [h.intensity for h in result.heatmap] == [0.1, -0.2]
        assert len(result.top_results) == 2


# =============================================================================
# Engine: analyze / recompute
# =============================================================================


class TestAnalysisEngine:
    def test_recompute_requires_analysis(self, fake_source):
        engine = AnalysisEngine(fake_source)
        assert not engine.has_cached_analysis()
        with pytest.raises(NoCachedAnalysis):
            engine.recompute(DEFAULT_WEIGHTS)

    @pytest.mark.asyncio
    async def test_analyze_populates_result_and_context(self, fake_source, analysis_input):
        engine = AnalysisEngine(fake_source, target_cells=100, top_n=10)
        result = await engine.analyze(analysis_input, DEFAULT_WEIGHTS)

        assert not result.empty
        assert len(result.heatmap) == len(result.cell_details)
        assert len(result.top_results) == 10
        scores = [t.score for t in result.top_results]
        assert scores == sorted(scores, reverse=True)
        assert result.top_results[0].score == max(c.score for c in result.cell_details)
        assert engine.has_cached_analysis()
        assert engine.context.input == analysis_input

    @pytest.mark.asyncio
    async def test_recompute_with_same_weights_matches(self, fake_source, analysis_input):
        engine = AnalysisEngine(fake_source, target_cells=100)
        w = Weights(0.3, 0.2, 0.15, 0.4)
        first = await engine.analyze(analysis_input, w)
        again = engine.recompute(w)
        assert again.cell_details == first.cell_details
        assert fake_source.calls == 1

    @pytest.mark.asyncio
    async def test_recompute_changes_scores_not_indices(self, fake_source, analysis_input):
        engine = AnalysisEngine(fake_source, target_cells=100)
        first = await engine.analyze(analysis_input, DEFAULT_WEIGHTS)
        other = engine.recompute(Weights(0.0, 0.0, 0.0, 1.0))
        assert [c.ci for c in other.cell_details] == [c.ci for c in first.cell_details]
        for c in other.cell_details:
            assert c.score == pytest.approx(-c.ci)

    @pytest.mark.asyncio
    async def test_empty_pois_clear_context(self, fake_source, analysis_input):
        engine = AnalysisEngine(fake_source, target_cells=50)
        await engine.analyze(analysis_input)
        assert engine.has_cached_analysis()

        fake_source.result = PoiSearchResult(success=True)
        result = await engine.analyze(analysis_input)
        assert result.empty
        assert result.heatmap == [] and result.top_results == []
        assert not engine.has_cached_analysis()

    @pytest.mark.asyncio
    async def test_failed_search_is_empty_not_error(self, analysis_input, competitors):
        failed = PoiSearchResult(
            success=False,
            competitors=competitors,
            meta=PoiSearchMeta(error="DataError_Http"),
        )
        engine = AnalysisEngine(FakePoiSource(failed))
        result = await engine.analyze(analysis_input)
        assert result.empty
        assert result.meta.error == "DataError_Http"
        assert not engine.has_cached_analysis()

    @pytest.mark.asyncio
    async def test_cancelled_analyze_keeps_old_context(self, fake_source, analysis_input):
        engine = AnalysisEngine(fake_source, target_cells=50)
        await engine.analyze(analysis_input)
        before = engine.context

        token = CancellationToken()
        token.cancel()
        with pytest.raises(AnalysisCancelled):
            await engine.analyze(analysis_input, cancel=token)
        assert engine.context is before

    def test_recompute_cancelled_before_start(self, fake_source, analysis_input):
        import asyncio

        engine = AnalysisEngine(fake_source, target_cells=50)
        asyncio.run(engine.analyze(analysis_input))
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AnalysisCancelled):
            engine.recompute(DEFAULT_WEIGHTS, token)
