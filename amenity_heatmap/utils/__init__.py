"""
Utility modules for the amenity heatmap service.
"""

from amenity_heatmap.config import LogLevel
from amenity_heatmap.utils.error_handling import (
    APIError,
    HeatmapError,
    InvalidCoordinateError,
    ProviderError,
    RepositoryError,
    RepositoryReadError,
    RepositoryWriteError,
    ValidationError,
)
from amenity_heatmap.utils.helpers import coerce_float, dedupe_by, split_csv, utc_now
from amenity_heatmap.utils.logging import ServiceLogger, get_logger, setup_logging

__all__ = [
    "APIError",
    "HeatmapError",
    "InvalidCoordinateError",
    "LogLevel",
    "ProviderError",
    "RepositoryError",
    "RepositoryReadError",
    "RepositoryWriteError",
    "ServiceLogger",
    "ValidationError",
    "coerce_float",
    "dedupe_by",
    "get_logger",
    "setup_logging",
    "split_csv",
    "utc_now",
]
