"""
Grid cache domain models.

Each persisted model includes DynamoDB key generation (pk, sk, gsi1pk,
gsi1sk) matching the single-table access patterns:

    Place:    PK=PLACE#externalId, SK=METADATA, GSI1PK=CELL#geohash
    GridCell: PK=CELL#geohash,     SK=METADATA
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import (
    BaseModel,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from amenity_heatmap.utils.helpers import dedupe_by, utc_now

KEY_FIELDS = {"pk", "sk", "gsi1pk", "gsi1sk"}


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class FetchStatus(StrEnum):
    PENDING = "pending"
    CACHED = "cached"
    EXPIRED = "expired"


class CommodityType(StrEnum):
    """Amenity types scored by default, in weight-vector order."""

    RESTAURANT = "restaurant"
    GAS_STATION = "gas_station"
    SUPERMARKET = "supermarket"
    PHARMACY = "pharmacy"
    SCHOOL = "school"


DEFAULT_COMMODITY_TYPES: list[str] = [t.value for t in CommodityType]

# Form field names -> provider place types
COMMODITY_ALIASES: dict[str, str] = {
    "restaurant": CommodityType.RESTAURANT,
    "gas": CommodityType.GAS_STATION,
    "grocery": CommodityType.SUPERMARKET,
    "pharmacy": CommodityType.PHARMACY,
    "school": CommodityType.SCHOOL,
}


def resolve_commodity_types(requested: Iterable[str] | None) -> list[str]:
    """
    Map requested type names to provider place types.

    Known form names are translated, unknown names pass through unchanged
    and an empty request selects every default type.
    """
    resolved = [
        str(COMMODITY_ALIASES.get(name, name)) for name in (requested or []) if name
    ]
    if not resolved:
        return list(DEFAULT_COMMODITY_TYPES)
    return dedupe_by(resolved, key=lambda t: t)


class GeoPoint(BaseModel):
    lat: float
    lng: float


class Bounds(BaseModel):
    """Axis-aligned lat/lng rectangle."""

    north: float
    south: float
    east: float
    west: float

    @model_validator(mode="after")
    def check_ranges(self) -> "Bounds":
        for value in (self.north, self.south):
            if not -90 <= value <= 90:
                raise ValueError(f"Latitude out of range: {value}")
        for value in (self.east, self.west):
            if not -180 <= value <= 180:
                raise ValueError(f"Longitude out of range: {value}")
        if self.north <= self.south:
            raise ValueError("north must be greater than south")
        if self.east <= self.west:
            raise ValueError("east must be greater than west")
        return self

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(
            lat=(self.north + self.south) / 2, lng=(self.east + self.west) / 2
        )

    def contains(self, point: GeoPoint) -> bool:
        """Inclusive containment test."""
        return (
            self.south <= point.lat <= self.north
            and self.west <= point.lng <= self.east
        )


class ProviderPlace(BaseModel):
    """A place as returned by the amenity provider."""

    external_id: str
    display_name: str = "Unknown"
    location: GeoPoint
    address: str = ""
    types: list[str] = Field(default_factory=list)


class AmenityRecord(BaseModel):
    """Place entity owned by one grid cell. AP1: PK=PLACE#id, GSI1PK=CELL#hash."""

    external_id: str
    display_name: str = "Unknown"
    location: GeoPoint
    address: str = ""
    commodity_types: list[str] = Field(default_factory=list)
    cell_id: str
    fetched_at: datetime = Field(default_factory=utc_now)

    @field_validator("fetched_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @computed_field
    @property
    def pk(self) -> str:
        return f"PLACE#{self.external_id}"

    @computed_field
    @property
    def sk(self) -> str:
        return "METADATA"

    @computed_field
    @property
    def gsi1pk(self) -> str:
        return f"CELL#{self.cell_id}"

    @computed_field
    @property
    def gsi1sk(self) -> str:
        return f"PLACE#{self.external_id}"

    @classmethod
    def from_provider(
        cls,
        place: ProviderPlace,
        cell_id: str,
        commodity_type: str,
        fetched_at: datetime | None = None,
    ) -> "AmenityRecord":
        """Tag a provider place with the cell and type it was fetched for."""
        return cls(
            external_id=place.external_id,
            display_name=place.display_name,
            location=place.location,
            address=place.address,
            commodity_types=[commodity_type],
            cell_id=cell_id,
            fetched_at=fetched_at or utc_now(),
        )


class GridCell(BaseModel):
    """
    Fetch metadata for a geohash cell. AP2: PK=CELL#hash, SK=METADATA.

    ``fetch_status == cached`` is only a claim; use ``is_valid`` to decide
    whether the cell may be served from cache.
    """

    geohash: str
    center_lat: float
    center_lng: float
    fetch_status: FetchStatus = FetchStatus.PENDING
    fetched_at: datetime | None = None
    expires_at: datetime | None = None
    last_updated: datetime = Field(default_factory=utc_now)
    type_expires_at: dict[str, datetime] = Field(default_factory=dict)

    @field_validator("fetched_at", "expires_at", "last_updated")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_validator("type_expires_at")
    @classmethod
    def ensure_utc_type_times(cls, value: dict[str, datetime]) -> dict[str, datetime]:
        return {k: _as_utc(v) for k, v in value.items()}

    @computed_field
    @property
    def pk(self) -> str:
        return f"CELL#{self.geohash}"

    @computed_field
    @property
    def sk(self) -> str:
        return "METADATA"

    def is_valid(self, now: datetime, commodity_type: str | None = None) -> bool:
        """True if the cell can be served from cache at ``now``."""
        now = _as_utc(now)
        if self.fetch_status != FetchStatus.CACHED or self.expires_at is None:
            return False
        if now >= self.expires_at:
            return False
        if commodity_type is None:
            return True
        type_expiry = self.type_expires_at.get(commodity_type)
        return type_expiry is not None and now < type_expiry

    def effective_status(self, now: datetime) -> FetchStatus:
        """Status as seen by readers; a stale cached cell reads as expired."""
        if self.fetch_status == FetchStatus.CACHED and not self.is_valid(now):
            return FetchStatus.EXPIRED
        return self.fetch_status

    def mark_cached(
        self, commodity_type: str | None, now: datetime, ttl: timedelta
    ) -> "GridCell":
        """Return a copy refreshed as cached until ``now + ttl``."""
        expires_at = now + ttl
        type_expires_at = dict(self.type_expires_at)
        if commodity_type:
            type_expires_at[commodity_type] = expires_at
        return self.model_copy(
            update={
                "fetch_status": FetchStatus.CACHED,
                "fetched_at": now,
                "expires_at": expires_at,
                "last_updated": now,
                "type_expires_at": type_expires_at,
            }
        )


class FetchResult(BaseModel):
    """Outcome of one single-type fetch through the grid cache."""

    places: list[AmenityRecord] = Field(default_factory=list)
    cell_id: str
    cells_used: int = 0
    cached_cell_ids: list[str] = Field(default_factory=list)
    new_cell_ids: list[str] = Field(default_factory=list)
    provider_error: str | None = None

    @computed_field
    @property
    def count(self) -> int:
        return len(self.places)

    @property
    def source(self) -> str:
        return "API" if self.new_cell_ids else "CACHE"


class QueryResult(BaseModel):
    """Deduplicated places for a multi-type query."""

    places: list[AmenityRecord] = Field(default_factory=list)
    per_type: dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def count(self) -> int:
        return len(self.places)
