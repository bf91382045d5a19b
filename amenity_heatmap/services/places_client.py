"""
Amenity provider backed by the Google Places "searchNearby" endpoint.

Any transport failure, non-2xx response or malformed payload surfaces as a
ProviderError so the fetch coordinator can degrade that amenity type.
"""

import asyncio
from typing import Any, Protocol

import aiohttp

from amenity_heatmap.config import APIConfig
from amenity_heatmap.data.models import GeoPoint, ProviderPlace
from amenity_heatmap.utils.error_handling import APIError, ProviderError
from amenity_heatmap.utils.logging import ServiceLogger
from amenity_heatmap.utils.rate_limiting import APIClient, RateLimitManager

SERVICE_NAME = "google_places"
SEARCH_NEARBY_ENDPOINT = "places:searchNearby"
MAX_SEARCH_RADIUS_METERS = 50000
FIELD_MASK = ",".join(
    [
        "places.id",
        "places.displayName",
        "places.formattedAddress",
        "places.location",
        "places.types",
    ]
)


class AmenityProvider(Protocol):
    """Contract for external amenity lookups."""

    async def search_nearby(
        self, center: GeoPoint, radius_meters: float, commodity_type: str
    ) -> list[ProviderPlace]: ...


class GooglePlacesProvider:
    """Nearby search against Places API (New)."""

    def __init__(self, config: APIConfig, rate_limits: RateLimitManager):
        self.config = config
        self.log = ServiceLogger(SERVICE_NAME)
        self.client = APIClient(
            service_name=SERVICE_NAME,
            base_url=config.places_base_url,
            limiter=rate_limits.get_limiter(SERVICE_NAME),
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": config.places_api_key,
                "X-Goog-FieldMask": FIELD_MASK,
            },
        )

    def build_request(
        self, center: GeoPoint, radius_meters: float, commodity_type: str
    ) -> dict[str, Any]:
        return {
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": center.lat, "longitude": center.lng},
                    "radius": min(float(radius_meters), MAX_SEARCH_RADIUS_METERS),
                }
            },
            "includedTypes": [commodity_type],
            "maxResultCount": self.config.max_result_count,
            "languageCode": self.config.language_code,
        }

    async def search_nearby(
        self, center: GeoPoint, radius_meters: float, commodity_type: str
    ) -> list[ProviderPlace]:
        """
        Search places of one type around a center.

        Args:
            center: Circle center
            radius_meters: Circle radius, clamped to the API maximum
            commodity_type: Places API place type (e.g. "restaurant")

        Returns:
            Places in provider order

        Raises:
            ProviderError: If the lookup fails for any reason
        """
        if not self.config.places_api_key:
            raise ProviderError("PLACES_API_KEY is not configured", SERVICE_NAME)

        body = self.build_request(center, radius_meters, commodity_type)
        self.log.log_api_request(SEARCH_NEARBY_ENDPOINT, body)

        try:
            data = await self.client.request(
                "POST", SEARCH_NEARBY_ENDPOINT, json_data=body
            )
        except APIError as e:
            raise ProviderError(
                str(e), SERVICE_NAME, status_code=e.status_code, original_error=e
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderError(
                "Request failed", SERVICE_NAME, original_error=e
            ) from e
        except asyncio.TimeoutError as e:
            raise ProviderError(
                "Request timed out", SERVICE_NAME, original_error=e
            ) from e
        except ValueError as e:
            # undecodable JSON body on a 2xx response
            raise ProviderError(
                "Invalid response body", SERVICE_NAME, original_error=e
            ) from e

        places = parse_places(data)
        self.log.log_api_response(SEARCH_NEARBY_ENDPOINT, len(places))
        return places


def parse_places(data: dict[str, Any]) -> list[ProviderPlace]:
    """
    Convert a searchNearby response body into provider places.

    Raises:
        ProviderError: If a place is missing its id or location
    """
    places = []
    for raw in data.get("places") or []:
        try:
            location = raw["location"]
            display_name = raw.get("displayName") or {}
            places.append(
                ProviderPlace(
                    external_id=raw["id"],
                    display_name=display_name.get("text") or "Unknown",
                    location=GeoPoint(
                        lat=location["latitude"], lng=location["longitude"]
                    ),
                    address=raw.get("formattedAddress") or "",
                    types=raw.get("types") or [],
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(
                "Malformed place in response", SERVICE_NAME, original_error=e
            ) from e
    return places
