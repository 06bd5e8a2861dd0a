import asyncio
import json
import random
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel
from loguru import logger

from event_pipeline.core.errors import ApiError, FatalApiError, RetryGiveUpError
from event_pipeline.core.types import RetryDecision

# Returned instead of a body when the API signals "no records" through an error
EMPTY_RESPONSE = ""

TOO_RECENT_START_TIME = "Too recent start_time."
# Prefixes of a 422 description meaning "no records after start_time"
TOO_RECENT_START_TIME_MARKERS = (TOO_RECENT_START_TIME, "too_recent_start_time")
RETRY_AFTER_STATUSES = (429, 500, 503)


class RetryConfig(BaseModel):
    """Configuration for retry mechanism with exponential backoff."""
    retry_limit: int = 5                       # Maximum number of retries after the first attempt
    initial_wait: float = 4.0                  # Wait before the first retry in seconds
    max_wait: float = 60.0                     # Upper bound for a single backoff step
    jitter: bool = False                       # Whether to add random jitter to delays


def _parse_description(body: str) -> Optional[str]:
    parsed = json.loads(body)
    if isinstance(parsed, dict) and parsed.get("description") is not None:
        return str(parsed["description"])
    return None


def classify(status: int, body: str, retry_after: Optional[int] = None) -> RetryDecision:
    """Decide how to react to a failed request.

    Args:
        status: HTTP status code, -1 when no response was received
        body: Extracted error body
        retry_after: Server advised delay in seconds, if any

    Returns:
        RETRY, FATAL or BENIGN_EMPTY
    """
    if status == -1:
        return RetryDecision.RETRY

    if status == 404:
        # Empty sub-resources come back as 404 instead of an empty list
        return RetryDecision.RETRY

    if status == 409:
        logger.warning(f"'{status}' temporary failure.")
        return RetryDecision.RETRY

    if status == 422:
        try:
            description = _parse_description(body)
        except ValueError:
            return RetryDecision.FATAL
        if description is not None and description.startswith(TOO_RECENT_START_TIME_MARKERS):
            # No records after start_time, same as an empty page
            return RetryDecision.BENIGN_EMPTY
        return RetryDecision.FATAL

    if status in RETRY_AFTER_STATUSES:
        if retry_after:
            logger.warning(f"Reached API limitation, wait for '{retry_after}' SECONDS")
        elif status != 429:
            logger.warning(f"'{status}' temporary failure.")
        return RetryDecision.RETRY

    if status // 100 == 4:
        return RetryDecision.FATAL

    logger.warning(f"Server returns unknown status code '{status}' message '{body}'")
    return RetryDecision.RETRY


class RetryHandler:
    """Handles retry logic with exponential backoff."""

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.config = config
        self._sleep = sleep
        self._metrics = {
            'retry_attempts': 0,
            'retry_successes': 0,
            'retry_failures': 0,
            'benign_empty_responses': 0,
            'total_retry_time': 0.0
        }
        self._start_time = time.monotonic()

    def calculate_delay(self, retry_count: int) -> float:
        """Calculate the backoff for the n-th retry (1-based), capped at max_wait."""
        delay = min(
            self.config.initial_wait * (2 ** (retry_count - 1)),
            self.config.max_wait
        )
        if self.config.jitter:
            delay *= (1 + random.random())
        return delay

    async def execute_with_retry(
        self,
        request_id: str,
        func: Callable[[], Awaitable[str]]
    ) -> str:
        """Execute a request function with retry logic.

        Args:
            request_id: Identifier used in log messages (usually the URL)
            func: Async function performing one request

        Returns:
            Response body, or EMPTY_RESPONSE when the API reported no records

        Raises:
            FatalApiError: If the failure is not retryable
            RetryGiveUpError: If all retries failed
        """
        retry_count = 0
        retry_start_time = time.monotonic()

        while True:
            try:
                result = await func()
                if retry_count > 0:
                    self._metrics['retry_successes'] += 1
                    self._metrics['total_retry_time'] += time.monotonic() - retry_start_time
                return result

            except ApiError as e:
                decision = classify(e.status_code, e.message, e.retry_after)

                if decision == RetryDecision.BENIGN_EMPTY:
                    logger.info(f"Request {request_id} reported no records: {e.message}")
                    self._metrics['benign_empty_responses'] += 1
                    return EMPTY_RESPONSE

                if decision == RetryDecision.FATAL:
                    self._metrics['retry_failures'] += 1
                    raise FatalApiError(e.status_code, e.message) from e

                retry_count += 1
                self._metrics['retry_attempts'] += 1
                if retry_count > self.config.retry_limit:
                    self._metrics['retry_failures'] += 1
                    self._metrics['total_retry_time'] += time.monotonic() - retry_start_time
                    logger.warning(f"Unable to complete the request {request_id}: {e}")
                    raise RetryGiveUpError(e, self.config.retry_limit) from e

                delay = self.calculate_delay(retry_count)
                if e.retry_after and e.retry_after > delay:
                    delay = float(e.retry_after)
                logger.warning(
                    f"Retrying '{retry_count}'/'{self.config.retry_limit}' after "
                    f"'{delay:.0f}' seconds. HTTP status code: '{e.status_code}'"
                )
                await self._sleep(delay)

    def get_metrics(self) -> Dict[str, Any]:
        """Get current retry metrics."""
        metrics = self._metrics.copy()
        uptime = time.monotonic() - self._start_time
        total_retries = metrics['retry_attempts']

        metrics['retry_rate'] = total_retries / uptime if uptime > 0 else 0.0
        metrics['average_retry_time'] = (
            metrics['total_retry_time'] / total_retries
            if total_retries > 0 else 0.0
        )
        return metrics
