"""
Scoring walkthrough on a fixed dataset of 16 cells around downtown Montreal.

Usage:
    amenity-heatmap demo
    python -m amenity_heatmap.demo

Walks through:
  1. Base scores (each cell alone)
  2. Aggregated scores (distance-weighted neighbors)
  3. Detailed breakdown for one cell
  4. Heatmap points
  5. Summary statistics
"""

from amenity_heatmap.config import ScoringConfig
from amenity_heatmap.data.scoring_models import ScoreCell
from amenity_heatmap.services.scoring import CommodityScorer

# restaurant, gas, grocery, pharmacy, cafe
DEMO_WEIGHTS = [85, 60, 40, 70, 90]

_DEMO_DATA = [
    # downtown: dense, many cafes and restaurants
    ("grid_1", 45.5017, -73.5673, [15, 4, 6, 3, 20]),
    ("grid_2", 45.5067, -73.5623, [8, 1, 5, 2, 6]),
    ("grid_3", 45.4967, -73.5723, [4, 2, 7, 4, 3]),
    ("grid_4", 45.5117, -73.5773, [2, 1, 2, 1, 1]),
    # far away: high restaurants but distance limits its influence
    ("grid_5", 45.5517, -73.6173, [12, 0, 3, 1, 5]),
    ("grid_6", 45.5007, -73.5773, [5, 0, 0, 0, 0]),
    # empty
    ("grid_7", 45.5087, -73.5523, [0, 0, 0, 0, 0]),
    ("grid_8", 45.4937, -73.5823, [6, 3, 5, 2, 4]),
    ("grid_9", 45.4897, -73.5773, [4, 1, 2, 1, 12]),
    ("grid_10", 45.5157, -73.5903, [3, 9, 2, 1, 2]),
    ("grid_11", 45.5227, -73.5653, [2, 1, 10, 3, 2]),
    ("grid_12", 45.5187, -73.5553, [1, 1, 2, 9, 1]),
    ("grid_13", 45.4877, -73.5653, [14, 1, 2, 1, 6]),
    ("grid_14", 45.5047, -73.5973, [5, 4, 5, 3, 4]),
    ("grid_15", 45.5327, -73.6053, [1, 1, 1, 1, 1]),
    ("grid_16", 45.5407, -73.5753, [3, 2, 12, 2, 9]),
]


def demo_cells() -> list[ScoreCell]:
    return [
        ScoreCell(cell_id=cell_id, center_lat=lat, center_lng=lng, commodity_counts=c)
        for cell_id, lat, lng, c in _DEMO_DATA
    ]


def _header(title: str) -> None:
    print(title)
    print("-" * 80)


def run_demo(scorer: CommodityScorer | None = None) -> None:
    """Print every scoring step for the demo dataset."""
    scorer = scorer or CommodityScorer(ScoringConfig())
    cells = demo_cells()
    weights = DEMO_WEIGHTS

    print("=" * 80)
    print("COMMODITY SCORING DEMO")
    print("=" * 80)
    print(f"{len(cells)} cells, {len(weights)} amenity types\n")

    amplified = scorer.amplify_weights(weights)
    base_scores = scorer.all_base_scores(cells, weights, amplified)

    _header("STEP 1: BASE SCORES (cell alone, no neighbors)")
    print(f"Amplified weights: [{', '.join(f'{w:.1f}' for w in amplified)}]")
    for cell in cells:
        counts = ", ".join(f"{c:g}" for c in cell.commodity_counts)
        print(f"{cell.cell_id}: {base_scores[cell.cell_id]:.2f} | Counts: [{counts}]")
    print()

    _header("STEP 2: AGGREGATED SCORES (distance-weighted neighbors)")
    results = scorer.all_aggregated_scores(cells, weights, base_scores, amplified)
    for result in results:
        change = result.aggregated_score - result.base_score
        print(
            f"{result.cell_id}: Base={result.base_score:.2f} -> "
            f"Aggregated={result.aggregated_score:.2f} ({change:+.2f}) | "
            f"Contributing cells: {result.contributing_cells}"
        )
    print()

    _header("STEP 3: DETAILED BREAKDOWN (grid_1)")
    detail = scorer.aggregated_score("grid_1", cells, weights, base_scores, amplified)
    print(f"Base Score: {detail.base_score:.2f}")
    print(f"Aggregated Score: {detail.aggregated_score:.2f}")
    print(f"Contributing Cells: {detail.contributing_cells}\n")
    for entry in detail.breakdown[:5]:
        print(
            f"  {entry.cell_id:<10} | Distance: {entry.distance_meters:>5.0f}m | "
            f"Weight: {entry.weight:.4f} | Score: {entry.score:.2f} | "
            f"Contribution: {entry.contribution:.2f}"
        )
    print()

    _header("STEP 4: HEATMAP DATA")
    for point in scorer.heatmap_data(cells, weights, results)[:3]:
        print(
            f"Lat: {point.lat:.4f}, Lng: {point.lng:.4f} | "
            f"Score: {point.value:.2f} | Amenities: {point.commodity_count:g}"
        )
    print()

    _header("STEP 5: SUMMARY STATISTICS")
    summary = scorer.summary(cells, weights, results)
    print(f"Total Cells: {summary.total_cells}")
    print(f"Total Amenities: {summary.total_commodities:g}")
    print(f"Average Score: {summary.average_score}")
    print(f"Max Score: {summary.max_score}")
    print(f"Min Score: {summary.min_score}")
    print(f"Median Score: {summary.median_score}")
    print("=" * 80)


if __name__ == "__main__":
    run_demo()
