"""
Error types for the amenity heatmap service.

Only malformed direct input is meant to reach the caller as a hard error.
Provider and repository failures are raised by the adapters and degraded
by the cache and fetch layers.
"""


class HeatmapError(Exception):
    """Base exception class for all amenity heatmap errors."""

    def __init__(self, message: str, original_error: Exception | None = None):
        """
        Initialize a HeatmapError.

        Args:
            message: Error message
            original_error: The original exception that caused this error (optional)
        """
        self.original_error = original_error
        if original_error:
            message = f"{message} - Original error: {original_error!s}"
        super().__init__(message)


class ValidationError(HeatmapError):
    """Error raised when a caller supplies malformed input."""

    pass


class InvalidCoordinateError(ValidationError):
    """Error raised for out-of-range coordinates or malformed geohashes."""

    pass


class APIError(HeatmapError):
    """Error raised when an external API request fails."""

    def __init__(
        self,
        message: str,
        service_name: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ):
        """
        Initialize an APIError.

        Args:
            message: Error message
            service_name: Name of the API service
            status_code: HTTP status code (optional)
            original_error: The original exception that caused this error (optional)
        """
        self.service_name = service_name
        self.status_code = status_code
        status_str = f" (status: {status_code})" if status_code else ""
        full_message = f"Error in {service_name} API{status_str}: {message}"
        super().__init__(full_message, original_error)


class ProviderError(APIError):
    """Error raised when an amenity lookup fails."""

    pass


class RepositoryError(HeatmapError):
    """Base class for persistence failures."""

    pass


class RepositoryReadError(RepositoryError):
    """Error raised when the repository cannot be read."""

    pass


class RepositoryWriteError(RepositoryError):
    """Error raised when the repository rejects a write."""

    pass
