"""Tests for commodity scoring."""

import math

import pytest

from amenity_heatmap.config import ScoringConfig
from amenity_heatmap.data.models import GeoPoint
from amenity_heatmap.data.scoring_models import ScoreCell
from amenity_heatmap.demo import DEMO_WEIGHTS, demo_cells
from amenity_heatmap.services.scoring import CommodityScorer

WEIGHTS = [85, 60, 40, 70, 90]


@pytest.fixture
def scorer():
    return CommodityScorer(ScoringConfig())


def _cell(cell_id, lat, lng, counts):
    return ScoreCell(
        cell_id=cell_id, center_lat=lat, center_lng=lng, commodity_counts=counts
    )


def test_distance_same_point(scorer):
    p = GeoPoint(lat=45.5, lng=-73.5)
    assert scorer.distance(p, p) == 0


def test_distance_one_degree_latitude(scorer):
    d = scorer.distance(GeoPoint(lat=0, lng=0), GeoPoint(lat=1, lng=0))
    assert d == pytest.approx(111194.9, rel=1e-5)


def test_score_decay(scorer):
    assert scorer.score_decay(0) == 1
    assert scorer.score_decay(5000) == pytest.approx(math.exp(-2))
    assert scorer.score_decay(5000.1) == 0
    assert scorer.score_decay(1000) > scorer.score_decay(2000)


def test_amplify_uniform_weights_unchanged(scorer):
    assert scorer.amplify_weights([50] * 5) == [50] * 5


def test_amplify_short_inputs(scorer):
    assert scorer.amplify_weights([]) == []
    assert scorer.amplify_weights([42]) == [42]


def test_amplify_pushes_outliers_away():
    scorer = CommodityScorer(ScoringConfig(variance_amplification=0.5))
    amplified = scorer.amplify_weights([30, 70, 50, 50, 50])
    assert amplified[0] < 30
    assert amplified[1] > 70
    assert amplified[2:] == [50, 50, 50]
    assert all(0 <= w <= 100 for w in amplified)


def test_amplify_extremes_stay_in_range(scorer):
    amplified = scorer.amplify_weights([0, 100, 50, 50, 50])
    # already at the bounds, so clamping holds them there
    assert amplified == [0, 100, 50, 50, 50]
    assert all(0 <= w <= 100 for w in amplified)


def test_amplify_clamps_to_range(scorer):
    amplified = scorer.amplify_weights(WEIGHTS)
    assert amplified[0] == 100
    assert amplified[1] == pytest.approx(51)
    assert amplified[2] == 0
    assert amplified[3] == pytest.approx(631 / 9)
    assert amplified[4] == 100


def test_base_score_uses_amplified_weights(scorer):
    cell = _cell("grid_1", 45.5017, -73.5673, [15, 4, 6, 3, 20])
    assert scorer.base_score(cell, WEIGHTS) == pytest.approx(11743 / 144)


def test_base_score_empty_cell(scorer):
    assert scorer.base_score(_cell("c", 0, 0, [0, 0, 0, 0, 0]), WEIGHTS) == 0
    assert scorer.base_score(_cell("c", 0, 0, []), WEIGHTS) == 0
    assert scorer.base_score(_cell("c", 0, 0, [1, 2]), []) == 0


def test_base_score_ignores_extra_positions(scorer):
    # only the first type counts; its amplified weight is 100
    assert scorer.base_score(_cell("c", 0, 0, [3]), WEIGHTS) == 100


def test_isolated_cell_aggregated_equals_base(scorer):
    cells = [
        _cell("a", 45.50, -73.56, [15, 4, 6, 3, 20]),
        _cell("b", 46.50, -73.56, [0, 5, 0, 0, 0]),
    ]
    result = scorer.aggregated_score("a", cells, WEIGHTS)
    assert result.aggregated_score == pytest.approx(result.base_score)
    assert result.contributing_cells == 1


def test_neighbor_pulls_aggregated_score(scorer):
    cells = [
        _cell("a", 45.5000, -73.56, [1, 0, 0, 0, 0]),
        _cell("b", 45.5100, -73.56, [0, 1, 0, 0, 0]),
    ]
    result = scorer.aggregated_score("a", cells, WEIGHTS)
    assert result.base_score == 100
    assert 51 < result.aggregated_score < 100
    assert result.contributing_cells == 2
    assert result.breakdown[0].cell_id == "a"
    assert result.breakdown[0].distance_meters == 0
    assert result.breakdown[0].weight == 1
    assert result.breakdown[1].distance_meters > 0


def test_unknown_target_gives_zero_result(scorer):
    result = scorer.aggregated_score("missing", [_cell("a", 0, 0, [1])], WEIGHTS)
    assert result.cell_id == "missing"
    assert result.base_score == 0
    assert result.aggregated_score == 0
    assert result.contributing_cells == 0
    assert result.breakdown == []


def test_all_aggregated_scores_cover_every_cell(scorer):
    cells = demo_cells()
    results = scorer.all_aggregated_scores(cells, DEMO_WEIGHTS)
    assert [r.cell_id for r in results] == [c.cell_id for c in cells]
    for result in results:
        assert 0 <= result.aggregated_score <= 100
        distances = [b.distance_meters for b in result.breakdown]
        assert distances == sorted(distances)


def test_all_base_scores_match_single_cell(scorer):
    cells = demo_cells()
    base = scorer.all_base_scores(cells, DEMO_WEIGHTS)
    assert base["grid_1"] == pytest.approx(11743 / 144)
    assert base["grid_7"] == 0


def test_heatmap_data(scorer):
    cells = demo_cells()
    points = scorer.heatmap_data(cells, DEMO_WEIGHTS)
    assert len(points) == 16
    first = points[0]
    assert (first.lat, first.lng) == (45.5017, -73.5673)
    assert first.cell_id == "grid_1"
    assert first.commodity_count == 48
    assert first.base_score == pytest.approx(11743 / 144)


def test_summary(scorer):
    cells = [
        _cell("a", 45.5, -73.56, [1, 0, 0, 0, 0]),
        _cell("b", 47.5, -73.56, [0, 1, 0, 0, 0]),
    ]
    summary = scorer.summary(cells, WEIGHTS)
    assert summary.total_cells == 2
    assert summary.total_commodities == 2
    assert summary.average_score == 75.5
    assert summary.median_score == 75.5
    assert summary.min_score == 51
    assert summary.max_score == 100


def test_summary_empty(scorer):
    summary = scorer.summary([], WEIGHTS)
    assert summary.total_cells == 0
    assert summary.average_score == 0
