"""
Scoring value types.

These are transient results of a scoring request and are never persisted.
"""

from pydantic import BaseModel, Field

from amenity_heatmap.data.models import Bounds, GeoPoint


class ScoreCell(BaseModel):
    """A cell to be scored: its center and amenity counts per type."""

    cell_id: str
    center_lat: float
    center_lng: float
    commodity_counts: list[float] = Field(default_factory=list)

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(lat=self.center_lat, lng=self.center_lng)

    @property
    def total_count(self) -> float:
        return sum(count or 0 for count in self.commodity_counts)


class ScoreBreakdown(BaseModel):
    """Contribution of one cell to a target cell's aggregated score."""

    cell_id: str
    distance_meters: float
    weight: float
    score: float
    contribution: float


class ScoreResult(BaseModel):
    cell_id: str
    base_score: float = 0.0
    aggregated_score: float = 0.0
    contributing_cells: int = 0
    breakdown: list[ScoreBreakdown] = Field(default_factory=list)


class ScoreSummary(BaseModel):
    total_cells: int = 0
    total_commodities: float = 0
    average_score: float = 0.0
    median_score: float = 0.0
    min_score: float = 0.0
    max_score: float = 0.0


class HeatmapPoint(BaseModel):
    lat: float
    lng: float
    value: float
    cell_id: str
    base_score: float
    commodity_count: float


class GridSquare(BaseModel):
    """One square of a bounding region partitioned for a scan."""

    cell_id: str
    index: int
    row: int
    col: int
    bounds: Bounds
    commodity_counts: list[int] = Field(default_factory=list)

    def to_score_cell(self) -> ScoreCell:
        center = self.bounds.center
        return ScoreCell(
            cell_id=self.cell_id,
            center_lat=center.lat,
            center_lng=center.lng,
            commodity_counts=list(self.commodity_counts),
        )


class ScanResult(BaseModel):
    cells: list[GridSquare] = Field(default_factory=list)
    commodity_types: list[str] = Field(default_factory=list)
    base_scores: list[float] = Field(default_factory=list)
    aggregated_scores: list[float] = Field(default_factory=list)
    results: list[ScoreResult] = Field(default_factory=list)
    heatmap: list[HeatmapPoint] = Field(default_factory=list)
    summary: ScoreSummary = Field(default_factory=ScoreSummary)
