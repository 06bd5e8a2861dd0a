from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union
import asyncio
import contextlib
import inspect
import time

from loguru import logger

from event_pipeline.core.client import ApiClient
from event_pipeline.core.config import ExtractorConfig
from event_pipeline.core.pagination import PageSequencer, PaginationStrategy
from event_pipeline.core.rate_limit import RateLimiter
from event_pipeline.core.retry import RetryHandler
from event_pipeline.core.watermark import WatermarkTracker, plan_next_cursor

Record = Dict[str, Any]
RecordConsumer = Callable[[Record], Union[Awaitable[None], None]]


class BaseExtractor(ABC):
    # Base class for API record extractors with built-in:
    # - Shared rate limiting and retry with backoff
    # - Lazy pagination
    # - Bounded concurrent fan-out
    # - Watermark tracking for incremental runs
    # - Metrics tracking

    def __init__(
        self,
        config: ExtractorConfig,
        client: Optional[ApiClient] = None,
        retry_handler: Optional[RetryHandler] = None
    ):
        self.config = config
        self.client = client or ApiClient(
            auth_config=config.auth_config,
            rate_limiter=RateLimiter(),
            timeout=config.timeout,
            marketplace_integration_name=config.app_marketplace_integration_name,
            marketplace_app_id=config.app_marketplace_app_id,
            marketplace_org_id=config.app_marketplace_org_id
        )
        self.retry_handler = retry_handler or RetryHandler(config.retry)
        self._semaphore = asyncio.Semaphore(config.max_concurrent_requests)
        self.watermark = WatermarkTracker()
        self._metrics = {
            'pages_fetched': 0,
            'items_processed': 0,
            'items_filtered': 0,
            'total_processing_time': 0.0
        }
        self._start_time = time.monotonic()

    async def __aenter__(self) -> 'BaseExtractor':
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit with proper cleanup."""
        await self.cleanup()

    async def cleanup(self) -> None:
        """Clean up resources."""
        await self.client.close()

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics for monitoring."""
        metrics = self._metrics.copy()
        metrics['uptime'] = time.monotonic() - self._start_time
        metrics.update(self.client.get_metrics())
        metrics.update(self.retry_handler.get_metrics())
        metrics.update(self.watermark.get_metrics())
        return metrics

    @abstractmethod
    def _validate(self) -> None:
        """Validate extraction configuration without network access.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        pass

    @abstractmethod
    def _credential_check_url(self) -> str:
        """URL used for the single credential check request."""
        pass

    @abstractmethod
    async def _extract(
        self,
        consumer: RecordConsumer,
        cancel_event: Optional[asyncio.Event]
    ) -> None:
        """Fetch records and hand each one to the consumer."""
        pass

    async def validate(self) -> None:
        """Validate configuration and verify the credentials with one request."""
        self._validate()
        if self.config.preview:
            return
        await self.client.check_credentials(self._credential_check_url())

    async def _fetch_page(self, url: str) -> str:
        """Fetch one page, retrying transient failures."""
        body = await self.retry_handler.execute_with_retry(url, lambda: self.client.send(url))
        self._metrics['pages_fetched'] += 1
        return body

    def _paginate(
        self,
        url: str,
        strategy: PaginationStrategy,
        records_key: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PageSequencer:
        return PageSequencer(self._fetch_page, url, strategy, records_key, cancel_event)

    async def _gather(self, coros) -> None:
        """Run coroutines concurrently; on the first failure cancel the rest and re-raise."""
        tasks = [asyncio.ensure_future(coro) for coro in coros]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _emit(self, consumer: RecordConsumer, record: Record) -> None:
        result = consumer(record)
        if inspect.isawaitable(result):
            await result
        self._metrics['items_processed'] += 1

    async def extract_records(
        self,
        consumer: RecordConsumer,
        cancel_event: Optional[asyncio.Event] = None
    ) -> int:
        """Run a full extraction, handing every record to ``consumer``.

        Returns:
            Latest observed record time in epoch seconds, 0 if none
        """
        self.watermark = WatermarkTracker()
        start = time.monotonic()
        try:
            await self._extract(consumer, cancel_event)
            return self.watermark.value
        finally:
            self._metrics['total_processing_time'] += time.monotonic() - start
            await self.cleanup()

    async def extract(self, cancel_event: Optional[asyncio.Event] = None) -> List[Record]:
        """Extract all records into a list."""
        records: List[Record] = []
        await self.extract_records(records.append, cancel_event)
        logger.info(f"Extracted {len(records)} records")
        return records

    async def extract_stream(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        queue_size: int = 1000
    ) -> AsyncIterator[Record]:
        """Stream records as the concurrent branches produce them."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        done = object()

        async def produce() -> None:
            try:
                await self.extract_records(queue.put, cancel_event)
            finally:
                # The reader is gone when the producer itself was cancelled
                if not asyncio.current_task().cancelling():
                    await queue.put(done)

        producer = asyncio.create_task(produce())
        try:
            while True:
                item = await queue.get()
                if item is done:
                    break
                yield item
            # Re-raise a producer failure
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer

    def build_report(self, last_time: int) -> Dict[str, int]:
        """Report for the next run: the incremental cursor, if any."""
        if self.config.preview:
            return {}
        cursor = plan_next_cursor(self.config.incremental, last_time, self.config.time_window)
        return cursor.to_report() if cursor else {}
