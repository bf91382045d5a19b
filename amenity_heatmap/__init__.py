"""
Amenity heatmap scoring backed by a geohash grid cache.

This package fetches nearby places through an external provider, caches them
per geohash cell with a time-to-live, and scores grid cells by how well their
amenities match a user's weighted preferences.
"""

__version__ = "0.1.0"
