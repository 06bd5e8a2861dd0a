import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from pydantic import BaseModel
from loguru import logger

from event_pipeline.core.errors import ExtractionCancelledError
from event_pipeline.core.types import PaginationType

PageFetcher = Callable[[str], Awaitable[str]]


# Configuration classes for different pagination types
class PageNumberConfig(BaseModel):
    # Configuration for page number based pagination (e.g., ?page=1&per_page=100)
    page_param: str = "page"                    # Parameter name for page number
    size_param: str = "per_page"                # Parameter name for page size


class NextLinkConfig(BaseModel):
    # Configuration for pagination through an absolute URL in the response body
    next_field: str = "next_page"               # Dotted path to the next URL (e.g., "links.next")


# Strategy implementations
class PaginationStrategy(ABC):
    # Abstract base class defining interface for different pagination strategies
    pagination_type: PaginationType

    @abstractmethod
    async def get_next_url(
        self,
        current_url: str,
        response: Dict[str, Any],
        items: List[Any],
        page_number: int
    ) -> Optional[str]:
        # Get the URL of the next page based on the current response
        # Args: current_url (URL just fetched), response (decoded page),
        #       items (records of the page), page_number (1-based)
        # Returns: URL of the next page, or None if no more pages
        pass


class PageNumberStrategy(PaginationStrategy):
    # Strategy for page number based pagination; stops at the first short page
    pagination_type = PaginationType.PAGE_NUMBER

    def __init__(self, config: Optional[PageNumberConfig] = None):
        self.config = config or PageNumberConfig()

    async def get_next_url(
        self,
        current_url: str,
        response: Dict[str, Any],
        items: List[Any],
        page_number: int
    ) -> Optional[str]:
        parsed = urlparse(current_url)
        params = parse_qs(parsed.query, keep_blank_values=True)

        size_values = params.get(self.config.size_param)
        if not size_values:
            return None
        if len(items) < int(size_values[0]):
            return None

        current_page = int(params.get(self.config.page_param, [page_number])[0])
        params[self.config.page_param] = [str(current_page + 1)]
        return urlunparse(parsed._replace(query=urlencode(params, doseq=True)))


class NextLinkStrategy(PaginationStrategy):
    # Strategy following an embedded absolute next page URL until it is null/absent
    pagination_type = PaginationType.NEXT_LINK

    def __init__(self, config: Optional[NextLinkConfig] = None):
        self.config = config or NextLinkConfig()

    async def get_next_url(
        self,
        current_url: str,
        response: Dict[str, Any],
        items: List[Any],
        page_number: int
    ) -> Optional[str]:
        value: Any = response
        for part in self.config.next_field.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        if not value or not isinstance(value, str):
            return None
        if value == current_url:
            logger.warning(f"Next page URL repeats the current page, stopping: {value}")
            return None
        return value


class PageSequencer:
    """Lazy sequence of records for one endpoint.

    Pages are fetched one at a time, only when the consumer pulls past the
    records already buffered. An empty page, including the empty body a
    benign "no records" error produces, ends the sequence. Entries that are
    not JSON objects are skipped.

    An instance can be iterated only once; build a new one to start again
    from the first page.

    Example:
        async for user in PageSequencer(fetch, url, PageNumberStrategy(), "users"):
            ...
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        first_url: str,
        strategy: PaginationStrategy,
        records_key: str,
        cancel_event: Optional[asyncio.Event] = None,
        max_pages: Optional[int] = None
    ):
        self.fetch_page = fetch_page
        self.first_url = first_url
        self.strategy = strategy
        self.records_key = records_key
        self.cancel_event = cancel_event
        self.max_pages = max_pages
        self.page_count = 0
        self.record_count = 0
        self._started = False

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        if self._started:
            raise RuntimeError("PageSequencer can only be iterated once")
        self._started = True
        return self._iterate()

    def _decode(self, body: str) -> Optional[Dict[str, Any]]:
        if not body:
            return None
        response = json.loads(body)
        if not isinstance(response, dict):
            logger.warning(f"Unexpected '{self.records_key}' page payload type: {type(response).__name__}")
            return None
        return response

    async def _iterate(self) -> AsyncIterator[Dict[str, Any]]:
        url: Optional[str] = self.first_url

        while url:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise ExtractionCancelledError(f"Cancelled before fetching {url}")
            if self.max_pages and self.page_count >= self.max_pages:
                logger.info(f"Reached max pages limit ({self.max_pages}), stopping pagination")
                return

            body = await self.fetch_page(url)
            self.page_count += 1
            response = self._decode(body)
            if response is None:
                return

            items = response.get(self.records_key) or []
            if not isinstance(items, list):
                logger.warning(f"'{self.records_key}' is not a list in page {self.page_count}, stopping")
                return
            logger.debug(f"Received {len(items)} '{self.records_key}' in page {self.page_count}")
            if not items:
                return

            for item in items:
                if not isinstance(item, dict):
                    logger.warning(f"Skipping non-object '{self.records_key}' entry: {item!r}")
                    continue
                self.record_count += 1
                yield item

            url = await self.strategy.get_next_url(url, response, items, self.page_count)


async def collect(sequencer: PageSequencer) -> List[Dict[str, Any]]:
    """Drain a sequencer into a list."""
    return [item async for item in sequencer]
