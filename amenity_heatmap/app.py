"""
Service wiring shared by the Lambda handler and the CLI.
"""

from amenity_heatmap.config import HeatmapConfig
from amenity_heatmap.data.dynamodb import DynamoDBClient
from amenity_heatmap.data.repository import (
    DynamoDBRepository,
    GridRepository,
    InMemoryRepository,
)
from amenity_heatmap.services.fetch_coordinator import FetchCoordinator
from amenity_heatmap.services.geohash_indexer import GeohashIndexer
from amenity_heatmap.services.grid_cache import GridCache
from amenity_heatmap.services.heatmap_service import HeatmapService
from amenity_heatmap.services.places_client import (
    AmenityProvider,
    GooglePlacesProvider,
)
from amenity_heatmap.services.scoring import CommodityScorer
from amenity_heatmap.utils.rate_limiting import create_rate_limit_manager


def build_db(config: HeatmapConfig) -> DynamoDBClient:
    return DynamoDBClient(
        table_name=config.api.dynamodb_table_name,
        endpoint_url=config.api.dynamodb_endpoint,
        region=config.api.aws_region,
    )


def build_repository(config: HeatmapConfig, memory: bool = False) -> GridRepository:
    """DynamoDB-backed repository, or a process-local one when ``memory``."""
    if memory:
        return InMemoryRepository()
    return DynamoDBRepository(build_db(config))


def build_coordinator(
    config: HeatmapConfig,
    repo: GridRepository | None = None,
    provider: AmenityProvider | None = None,
) -> FetchCoordinator:
    """
    Assemble the fetch pipeline.

    Args:
        config: Application configuration
        repo: Repository to use; DynamoDB from ``config`` if omitted
        provider: Amenity provider; Google Places from ``config`` if omitted

    Returns:
        A ready FetchCoordinator
    """
    indexer = GeohashIndexer(config.grid)
    cache = GridCache(repo or build_repository(config), indexer, config.grid)
    if provider is None:
        provider = GooglePlacesProvider(config.api, create_rate_limit_manager())
    return FetchCoordinator(cache, provider, indexer)


def build_heatmap_service(
    config: HeatmapConfig,
    repo: GridRepository | None = None,
    provider: AmenityProvider | None = None,
) -> HeatmapService:
    return HeatmapService(
        build_coordinator(config, repo, provider), CommodityScorer(config.scoring)
    )
