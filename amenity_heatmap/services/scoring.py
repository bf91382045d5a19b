"""
Weighted amenity scoring for grid cells.

Scores combine three steps:

1. Global weights (0-100 per amenity type) are amplified by their z-score so
   strongly wanted or unwanted types dominate.
2. Each cell's base score is the count-weighted average of amplified weights.
3. A cell's aggregated score is the mean of base scores of every cell within
   ``max_distance``, weighted by ``exp(-decay * (d / max_distance)^2)``.

The scorer is stateless apart from its configuration and safe to share.
"""

import math
import statistics
from collections.abc import Iterable, Mapping, Sequence

from amenity_heatmap.config import ScoringConfig
from amenity_heatmap.data.models import GeoPoint
from amenity_heatmap.data.scoring_models import (
    HeatmapPoint,
    ScoreBreakdown,
    ScoreCell,
    ScoreResult,
    ScoreSummary,
)

EARTH_RADIUS_METERS = 6371000
MIN_SCORE = 0.0
MAX_SCORE = 100.0


def _clamp(value: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def _by_id(cells: Iterable[ScoreCell]) -> dict[str, ScoreCell]:
    return {cell.cell_id: cell for cell in cells}


class CommodityScorer:
    """Scores grid cells from amenity counts and user weights."""

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()

    def distance(self, a: GeoPoint, b: GeoPoint) -> float:
        """Haversine distance in meters."""
        d_lat = math.radians(b.lat - a.lat)
        d_lng = math.radians(b.lng - a.lng)
        h = (
            math.sin(d_lat / 2) ** 2
            + math.cos(math.radians(a.lat))
            * math.cos(math.radians(b.lat))
            * math.sin(d_lng / 2) ** 2
        )
        return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    def score_decay(self, distance: float) -> float:
        """Neighbor weight in [0, 1]; 0 beyond ``max_distance``."""
        max_distance = self.config.max_distance
        if distance > max_distance:
            return 0.0
        normalized = distance / max_distance
        return math.exp(-self.config.decay_factor * normalized**2)

    def amplify_weights(self, weights: Sequence[float]) -> list[float]:
        """
        Push each weight away from the mean in proportion to its z-score.

        Args:
            weights: Global weights, one per amenity type, each 0-100

        Returns:
            Amplified weights clamped to [0, 100]; unchanged when there is
            no variance to amplify
        """
        weights = [float(w) for w in weights]
        if len(weights) < 2:
            return weights

        mean = statistics.fmean(weights)
        std_dev = statistics.pstdev(weights, mu=mean)
        if std_dev == 0:
            return weights

        amplification = self.config.variance_amplification
        amplified = []
        for weight in weights:
            deviation = weight - mean
            factor = 1 + abs(deviation) / std_dev * amplification
            amplified.append(_clamp(mean + deviation * factor))
        return amplified

    def base_score(
        self,
        cell: ScoreCell,
        weights: Sequence[float],
        amplified: Sequence[float] | None = None,
    ) -> float:
        """Count-weighted average of amplified weights for one cell, 0-100."""
        counts = cell.commodity_counts
        if not weights or not counts:
            return 0.0
        if amplified is None:
            amplified = self.amplify_weights(weights)

        total_weighted = 0.0
        total_count = 0.0
        # zip stops at the shorter vector
        for count, weight in zip(counts, amplified, strict=False):
            count = count or 0
            total_weighted += count * weight
            total_count += count

        if total_count == 0:
            return 0.0
        return _clamp(total_weighted / total_count)

    def all_base_scores(
        self,
        cells: Iterable[ScoreCell],
        weights: Sequence[float],
        amplified: Sequence[float] | None = None,
    ) -> dict[str, float]:
        if amplified is None:
            amplified = self.amplify_weights(weights)
        return {
            cell.cell_id: self.base_score(cell, weights, amplified) for cell in cells
        }

    def aggregated_score(
        self,
        target_id: str,
        cells: Iterable[ScoreCell] | Mapping[str, ScoreCell],
        weights: Sequence[float],
        base_scores: Mapping[str, float] | None = None,
        amplified: Sequence[float] | None = None,
    ) -> ScoreResult:
        """
        Score a cell together with its neighbors, weighted by distance decay.

        Args:
            target_id: Cell to score
            cells: Every cell in the dataset (or a mapping by cell id)
            weights: Global weights
            base_scores: Precomputed base scores by cell id
            amplified: Precomputed amplified weights

        Returns:
            Score result with the per-neighbor breakdown sorted by distance;
            an all-zero result if the target is unknown
        """
        cells_by_id = cells if isinstance(cells, Mapping) else _by_id(cells)
        target = cells_by_id.get(target_id)
        if target is None:
            return ScoreResult(cell_id=target_id)

        if amplified is None:
            amplified = self.amplify_weights(weights)
        base_scores = base_scores or {}

        def score_of(cell: ScoreCell) -> float:
            score = base_scores.get(cell.cell_id)
            if score is None:
                score = self.base_score(cell, weights, amplified)
            return score

        base = score_of(target)
        total_weighted = 0.0
        total_weight = 0.0
        breakdown: list[ScoreBreakdown] = []

        for cell_id, cell in cells_by_id.items():
            distance = self.distance(target.center, cell.center)
            if distance > self.config.max_distance and cell_id != target_id:
                continue
            weight = self.score_decay(distance)
            score = score_of(cell)
            contribution = score * weight
            total_weighted += contribution
            total_weight += weight
            breakdown.append(
                ScoreBreakdown(
                    cell_id=cell_id,
                    distance_meters=distance,
                    weight=weight,
                    score=score,
                    contribution=contribution,
                )
            )

        aggregated = total_weighted / total_weight if total_weight > 0 else base
        breakdown.sort(key=lambda b: b.distance_meters)
        return ScoreResult(
            cell_id=target_id,
            base_score=base,
            aggregated_score=aggregated,
            contributing_cells=len(breakdown),
            breakdown=breakdown,
        )

    def all_aggregated_scores(
        self,
        cells: Iterable[ScoreCell],
        weights: Sequence[float],
        base_scores: Mapping[str, float] | None = None,
        amplified: Sequence[float] | None = None,
    ) -> list[ScoreResult]:
        cells_by_id = _by_id(cells)
        if amplified is None:
            amplified = self.amplify_weights(weights)
        if base_scores is None:
            base_scores = self.all_base_scores(
                cells_by_id.values(), weights, amplified
            )
        return [
            self.aggregated_score(
                cell_id, cells_by_id, weights, base_scores, amplified
            )
            for cell_id in cells_by_id
        ]

    def heatmap_data(
        self,
        cells: Iterable[ScoreCell],
        weights: Sequence[float],
        results: Sequence[ScoreResult] | None = None,
    ) -> list[HeatmapPoint]:
        """One heatmap point per cell, valued by its aggregated score."""
        cells_by_id = _by_id(cells)
        if results is None:
            results = self.all_aggregated_scores(cells_by_id.values(), weights)
        points = []
        for result in results:
            cell = cells_by_id[result.cell_id]
            points.append(
                HeatmapPoint(
                    lat=cell.center_lat,
                    lng=cell.center_lng,
                    value=result.aggregated_score,
                    cell_id=result.cell_id,
                    base_score=result.base_score,
                    commodity_count=cell.total_count,
                )
            )
        return points

    def summary(
        self,
        cells: Iterable[ScoreCell],
        weights: Sequence[float],
        results: Sequence[ScoreResult] | None = None,
    ) -> ScoreSummary:
        """Dataset-wide statistics over aggregated scores, rounded to 2 places."""
        cells = list(cells)
        if results is None:
            results = self.all_aggregated_scores(cells, weights)
        scores = [r.aggregated_score for r in results]
        if not scores:
            return ScoreSummary()

        return ScoreSummary(
            total_cells=len(cells),
            total_commodities=sum(cell.total_count for cell in cells),
            average_score=round(statistics.fmean(scores), 2),
            median_score=round(statistics.median(scores), 2),
            min_score=round(min(scores), 2),
            max_score=round(max(scores), 2),
        )
