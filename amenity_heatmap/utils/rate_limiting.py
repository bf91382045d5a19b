"""
Rate limiting and API request management for external services.

This module provides rate limiting, per-day quota tracking and exponential
backoff for calls to the places provider, so repeated heatmap scans stay
inside the provider's limits.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import aiohttp
from aiolimiter import AsyncLimiter
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from amenity_heatmap.utils.error_handling import APIError

# HTTP Status Codes
HTTP_STATUS_OK = 200
HTTP_STATUS_REDIRECT = 300
HTTP_STATUS_TOO_MANY_REQUESTS = 429


@dataclass
class RateLimitConfig:
    """Configuration for a service's rate limits."""

    service_name: str
    requests_per_minute: int  # Rate limit in requests per minute
    requests_per_day: int  # Daily quota
    max_retries: int = 3  # Maximum number of attempts for failed requests
    min_wait_seconds: float = 1.0  # Minimum wait time for backoff
    max_wait_seconds: float = 30.0  # Maximum wait time for backoff
    retry_status_codes: list[int] = field(
        default_factory=lambda: [429, 500, 502, 503, 504]
    )


@dataclass
class QuotaUsage:
    """Tracks API quota usage for a service."""

    daily_count: int = 0
    last_reset: datetime = field(default_factory=datetime.now)

    def _reset_if_new_day(self) -> None:
        current_time = datetime.now()
        if current_time.date() > self.last_reset.date():
            self.daily_count = 0
            self.last_reset = current_time

    def increment(self) -> None:
        """Increment the daily usage counter, resetting if necessary."""
        self._reset_if_new_day()
        self.daily_count += 1

    def get_remaining(self, daily_quota: int) -> int:
        """Get remaining requests for the day."""
        self._reset_if_new_day()
        return max(0, daily_quota - self.daily_count)

    def is_quota_exceeded(self, daily_quota: int) -> bool:
        """Check if daily quota is exceeded."""
        return self.get_remaining(daily_quota) <= 0


class ServiceRateLimiter:
    """
    Rate limiter for a specific service.

    Manages both short-term rate limits (requests per minute) and
    long-term quotas (requests per day) for a service.
    """

    def __init__(self, config: RateLimitConfig):
        """
        Initialize the rate limiter.

        Args:
            config: Rate limit configuration
        """
        self.config = config
        self.quota_usage = QuotaUsage()

        # minimum of 1 request per 50 seconds
        requests_per_second = max(0.02, config.requests_per_minute / 60)
        self.limiter = AsyncLimiter(requests_per_second, 1)

        self.request_timestamps: list[float] = []

        logger.info(
            f"Initialized rate limiter for {config.service_name} "
            f"({config.requests_per_minute}/min, {config.requests_per_day}/day)"
        )

    async def acquire(self) -> bool:
        """
        Acquire permission to make a request.

        Returns:
            True if request is allowed, False otherwise
        """
        if self.quota_usage.is_quota_exceeded(self.config.requests_per_day):
            logger.warning(
                f"Daily quota exceeded for {self.config.service_name} "
                f"({self.config.requests_per_day} requests/day)"
            )
            return False

        current_time = time.time()
        minute_ago = current_time - 60
        self.request_timestamps = [
            ts for ts in self.request_timestamps if ts > minute_ago
        ]

        if len(self.request_timestamps) >= self.config.requests_per_minute:
            logger.warning(
                f"Rate limit reached for {self.config.service_name} "
                f"({self.config.requests_per_minute} requests/minute)"
            )
            return False

        async with self.limiter:
            self.request_timestamps.append(current_time)
            self.quota_usage.increment()
            return True

    def get_backoff_time(self) -> float:
        """
        Calculate backoff time when rate limited.

        Returns:
            Backoff time in seconds
        """
        remaining_quota = self.quota_usage.get_remaining(self.config.requests_per_day)
        quota_factor = max(
            1, (self.config.requests_per_day * 0.1) / max(1, remaining_quota)
        )

        if len(self.request_timestamps) >= self.config.requests_per_minute:
            oldest = min(self.request_timestamps)
            time_until_slot_available = max(0, oldest + 60 - time.time())
            return time_until_slot_available * quota_factor

        return self.config.min_wait_seconds * quota_factor

    def should_retry_exception(self, exception: BaseException) -> bool:
        """
        Determine if an exception should trigger a retry.

        Args:
            exception: The exception to check

        Returns:
            True if should retry, False otherwise
        """
        if isinstance(
            exception, aiohttp.ClientConnectorError | aiohttp.ServerDisconnectedError
        ):
            return True

        if (
            isinstance(exception, APIError)
            and exception.status_code in self.config.retry_status_codes
        ):
            return True

        return False

    def get_quota_stats(self) -> dict[str, Any]:
        """Get quota usage statistics."""
        return {
            "service": self.config.service_name,
            "daily_quota": self.config.requests_per_day,
            "used_today": self.quota_usage.daily_count,
            "remaining": self.quota_usage.get_remaining(self.config.requests_per_day),
            "minute_limit": self.config.requests_per_minute,
            "current_minute_usage": len(self.request_timestamps),
        }


class RateLimitManager:
    """
    Registry of rate limiters across services.

    One manager is built per application wiring and handed to the API
    clients that need it.
    """

    def __init__(self, configs: list[RateLimitConfig] | None = None):
        self.limiters: dict[str, ServiceRateLimiter] = {}
        self.default_config = RateLimitConfig(
            service_name="default",
            requests_per_minute=30,
            requests_per_day=1000,
        )
        for config in configs or []:
            self.register_service(config)

    def register_service(self, config: RateLimitConfig) -> ServiceRateLimiter:
        """Register a service and return its limiter."""
        limiter = ServiceRateLimiter(config)
        self.limiters[config.service_name] = limiter
        return limiter

    def get_limiter(self, service_name: str) -> ServiceRateLimiter:
        """
        Get the rate limiter for a service.

        Args:
            service_name: Name of the service

        Returns:
            ServiceRateLimiter for the service, or a default one if not registered
        """
        if service_name not in self.limiters:
            logger.warning(
                f"No rate limiter configured for {service_name}, "
                f"using default configuration."
            )
            config = RateLimitConfig(
                service_name=service_name,
                requests_per_minute=self.default_config.requests_per_minute,
                requests_per_day=self.default_config.requests_per_day,
                max_retries=self.default_config.max_retries,
                min_wait_seconds=self.default_config.min_wait_seconds,
                max_wait_seconds=self.default_config.max_wait_seconds,
            )
            self.register_service(config)

        return self.limiters[service_name]


def before_sleep_callback(retry_state: RetryCallState) -> None:
    """
    Callback executed before sleeping between retries.

    Args:
        retry_state: Current retry state
    """
    exception = retry_state.outcome.exception()
    if exception:
        logger.warning(
            f"Request failed (attempt {retry_state.attempt_number}/"
            f"{retry_state.retry_object.stop.max_attempt_number}), "
            f"retrying in {retry_state.next_action.sleep:.2f} seconds: {exception!s}"
        )


async def with_rate_limit(
    limiter: ServiceRateLimiter, func: Callable[..., Any], *args: Any, **kwargs: Any
) -> Any:
    """
    Execute a coroutine function with rate limiting and retries.

    Args:
        limiter: Rate limiter of the service being called
        func: Coroutine function to execute
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        Result of the function
    """
    service_name = limiter.config.service_name

    if not await limiter.acquire():
        backoff_time = limiter.get_backoff_time()
        logger.warning(
            f"Rate limit reached for {service_name}, waiting {backoff_time:.2f} seconds"
        )
        await asyncio.sleep(backoff_time)

    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(limiter.should_retry_exception),
            stop=stop_after_attempt(limiter.config.max_retries),
            wait=wait_exponential(
                multiplier=1,
                min=limiter.config.min_wait_seconds,
                max=limiter.config.max_wait_seconds,
            ),
            reraise=True,
            before_sleep=before_sleep_callback,
        ):
            with attempt:
                return await func(*args, **kwargs)
    except Exception as e:
        logger.error(f"Request to {service_name} failed: {e!s}")
        raise


class APIClient:
    """
    Base client for JSON API requests with rate limiting and retries.
    """

    def __init__(
        self,
        service_name: str,
        base_url: str,
        limiter: ServiceRateLimiter,
        headers: dict[str, str] | None = None,
    ):
        """
        Initialize the API client.

        Args:
            service_name: Name of the service
            base_url: Base URL for API requests
            limiter: Rate limiter shared by requests to this service
            headers: Headers sent with every request (optional)
        """
        self.service_name = service_name
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter
        self.headers = dict(headers or {})

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Make an API request with rate limiting and retries.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            params: Query parameters (optional)
            json_data: JSON data for request body (optional)
            headers: Additional HTTP headers (optional)

        Returns:
            Parsed JSON response

        Raises:
            APIError: If the request fails after retries
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        request_headers = dict(self.headers)
        if headers:
            request_headers.update(headers)

        async def do_request():
            async with aiohttp.ClientSession() as session:
                request_method = getattr(session, method.lower())

                async with request_method(
                    url, params=params, json=json_data, headers=request_headers
                ) as response:
                    status_code = response.status
                    response_text = await response.text()

                    if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
                        logger.warning(
                            f"Rate limited by {self.service_name} API "
                            f"(Retry-After: {response.headers.get('Retry-After')})"
                        )
                        raise APIError(
                            "Rate limit exceeded",
                            self.service_name,
                            status_code=status_code,
                        )

                    if not (HTTP_STATUS_OK <= status_code < HTTP_STATUS_REDIRECT):
                        raise APIError(
                            f"API request failed: {response_text}",
                            self.service_name,
                            status_code=status_code,
                        )

                    try:
                        return await response.json()
                    except aiohttp.ContentTypeError as e:
                        raise APIError(
                            "Response was not JSON",
                            self.service_name,
                            status_code=status_code,
                            original_error=e,
                        ) from e

        return await with_rate_limit(self.limiter, do_request)


# Google Places (New) defaults: 600 requests per minute per project
DEFAULT_RATE_LIMITS = [
    RateLimitConfig(
        service_name="google_places",
        requests_per_minute=600,
        requests_per_day=10000,
        max_retries=3,
        min_wait_seconds=1.0,
        max_wait_seconds=30.0,
    ),
]


def create_rate_limit_manager(
    configs: list[RateLimitConfig] | None = None,
) -> RateLimitManager:
    """
    Build a RateLimitManager with the default service limits.

    Args:
        configs: Overrides registered after the defaults (optional)
    """
    manager = RateLimitManager(DEFAULT_RATE_LIMITS)
    for config in configs or []:
        manager.register_service(config)
    logger.info(f"Initialized rate limiting for {len(manager.limiters)} services")
    return manager
