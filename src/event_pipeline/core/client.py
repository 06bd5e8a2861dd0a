import asyncio
import json
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp
from loguru import logger

from event_pipeline.core.auth import AuthConfig, build_credential, build_marketplace_headers
from event_pipeline.core.errors import ApiError, ConfigurationError, FatalApiError, TransportError
from event_pipeline.core.rate_limit import RateLimiter
from event_pipeline.core.retry import RETRY_AFTER_STATUSES

DEFAULT_TIMEOUT = 300


def extract_error_message(body: str) -> str:
    """Summarize an error body as ``{"error": ..., "description": ...}``.

    JSON values other than objects give an empty summary.

    Raises:
        ValueError: If the body is not JSON (HTML error pages, empty bodies)
    """
    parsed = json.loads(body)
    if not isinstance(parsed, dict):
        return json.dumps({})

    summary = {}
    for field in ("error", "description"):
        value = parsed.get(field)
        if value is not None:
            summary[field] = value if isinstance(value, str) else json.dumps(value)
    return json.dumps(summary)


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer Retry-After header: {value!r}")
        return None


class ApiClient:
    """Issues authenticated GET requests against the API.

    One request per ``send`` call, no retries; see RetryHandler for that.
    Every completed request is paced through the shared RateLimiter.
    """

    def __init__(
        self,
        auth_config: AuthConfig,
        rate_limiter: RateLimiter,
        timeout: int = DEFAULT_TIMEOUT,
        marketplace_integration_name: Optional[str] = None,
        marketplace_app_id: Optional[str] = None,
        marketplace_org_id: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.auth_config = auth_config
        self.rate_limiter = rate_limiter
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=timeout)
        self._marketplace = (
            marketplace_integration_name,
            marketplace_app_id,
            marketplace_org_id
        )
        self.session = session
        self._owns_session = session is None
        self._headers: Optional[Dict[str, str]] = None
        self._metrics = {
            'requests_made': 0,
            'requests_failed': 0,
            'bytes_processed': 0
        }

    async def __aenter__(self) -> 'ApiClient':
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit with proper cleanup."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    def build_headers(self) -> Dict[str, str]:
        """Headers sent with every request."""
        if self._headers is None:
            headers = {"Authorization": build_credential(self.auth_config)}
            headers.update(build_marketplace_headers(*self._marketplace))
            headers["Content-Type"] = "application/json"
            self._headers = headers
        return self._headers

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self.session

    async def send(self, url: str) -> str:
        """Send one GET request.

        Args:
            url: Absolute request URL

        Returns:
            Raw response body

        Raises:
            ApiError: If the response status is not 200
            TransportError: If no response was received
            FatalApiError: If an error response body is not JSON
        """
        session = await self._ensure_session()
        headers = self.build_headers()
        parsed = urlparse(url)
        logger.info(f">>> GET {parsed.path}{'?' + parsed.query if parsed.query else ''}")

        try:
            async with session.get(url, headers=headers, timeout=self.timeout) as response:
                status = response.status
                response_headers = response.headers
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._metrics['requests_failed'] += 1
            logger.debug(f"Request to {url} failed without response: {e!r}")
            raise TransportError(str(e) or e.__class__.__name__) from e

        self._metrics['requests_made'] += 1
        self._metrics['bytes_processed'] += len(body.encode())

        # Paced after the connection is released
        await self.rate_limiter.initialize_from(response_headers)
        await self.rate_limiter.acquire()

        if status != 200:
            self._metrics['requests_failed'] += 1
            try:
                message = extract_error_message(body)
            except ValueError as e:
                logger.error(f"Could not parse error response of {url}: {e}")
                raise FatalApiError(status, body) from e
            retry_after = None
            if status in RETRY_AFTER_STATUSES:
                retry_after = _parse_retry_after(response_headers.get("Retry-After"))
            raise ApiError(status, message, retry_after)
        return body

    async def check_credentials(self, url: str) -> None:
        """Send a single request to verify the configured credentials.

        Raises:
            ConfigurationError: If the credentials are rejected or the request fails
        """
        try:
            await self.send(url)
        except (ApiError, FatalApiError) as e:
            if e.status_code == 401:
                raise ConfigurationError("Could not authorize with your credential.") from e
            if e.status_code == 403:
                raise ConfigurationError("Your account doesn't have enough permission.") from e
            raise ConfigurationError(
                f"Could not authorize with your credential due to problems {e}"
            ) from e
        logger.info("Credentials verified")

    def get_metrics(self) -> Dict[str, Any]:
        """Get request metrics."""
        metrics = self._metrics.copy()
        metrics['success_rate'] = (
            (metrics['requests_made'] - metrics['requests_failed']) / metrics['requests_made']
            if metrics['requests_made'] > 0 else 0
        )
        metrics.update(self.rate_limiter.get_metrics())
        return metrics
