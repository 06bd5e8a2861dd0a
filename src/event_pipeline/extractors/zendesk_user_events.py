import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from loguru import logger

from event_pipeline.core.base import BaseExtractor, Record, RecordConsumer
from event_pipeline.core.client import ApiClient
from event_pipeline.core.config import ExtractorConfig
from event_pipeline.core.dedupe import DedupSet
from event_pipeline.core.pagination import (
    NextLinkConfig,
    NextLinkStrategy,
    PageNumberStrategy,
    collect
)
from event_pipeline.core.retry import RetryHandler
from event_pipeline.core.types import Target
from event_pipeline.core.utils import format_iso_instant, to_epoch_seconds
from event_pipeline.core.validation import validate_config

EPOCH_START = "1970-01-01T00:00:00Z"

SAMPLE_EVENT = """
{
  "id": "5c7f31aef8df240001e60bbf",
  "type": "remove_from_cart",
  "source": "shopify",
  "description": "",
  "authenticated": true,
  "created_at": "2019-03-06T02:34:22Z",
  "received_at": "2019-03-06T02:34:22Z",
  "properties": {
    "model": 221,
    "size": 6
  },
  "user_id": "12312354234"
}
"""


class ZendeskUserEventsExtractor(BaseExtractor):
    """Extractor for Zendesk Sunshine user events.

    Events are only reachable per user, and users are listed per
    organization, so a run fans out in three levels:

    1. all organizations are fetched first (page number pagination)
    2. each organization's users are streamed concurrently across
       organizations, skipping users already seen in another organization
       when ``dedup`` is enabled
    3. each user's events are fetched (next link pagination), filtered by
       ``end_time`` and handed to the consumer

    Records of different users arrive in no particular order; the events of
    one user keep the API's page order.

    Example usage:
        config = ExtractorConfig(
            login_url="https://abc.zendesk.com/",
            auth_config=AuthConfig(method="token", username="me@abc.com", token="..."),
            profile_source="shopify",
            start_time="2019-03-01T00:00:00Z"
        )
        extractor = ZendeskUserEventsExtractor(config)
        events = await extractor.extract()
    """

    API_PATH = "/api/v2"
    USER_EVENTS_PATH = "/api/sunshine/events"

    def __init__(
        self,
        config: ExtractorConfig,
        client: Optional[ApiClient] = None,
        retry_handler: Optional[RetryHandler] = None
    ):
        super().__init__(config, client, retry_handler)
        self._org_semaphore = asyncio.Semaphore(config.max_concurrent_organizations)
        self.known_user_ids = DedupSet("users")

    def _validate(self) -> None:
        validate_config(self.config)

    def _credential_check_url(self) -> str:
        return f"{self.config.api_base}{self.API_PATH}/users.json?per_page=1"

    def _build_organizations_url(self) -> str:
        return (
            f"{self.config.api_base}{self.API_PATH}/{Target.ORGANIZATIONS.value}.json"
            f"?per_page={self.config.page_size}&page=1"
        )

    def _build_organization_users_url(self, organization: Record) -> Optional[str]:
        path = organization.get("url")
        if not path and organization.get("id") is not None:
            path = f"{self.config.api_base}{self.API_PATH}/organizations/{organization['id']}.json"
        if not path:
            return None
        return f"{path.replace('.json', '')}/users.json?per_page={self.config.page_size}&page=1"

    def _build_user_events_url(self, user_id: str) -> str:
        params = {"identifier": f"{self.config.profile_source}:user_id:{user_id}"}
        if self.config.user_event_source:
            params["source"] = self.config.user_event_source
        if self.config.user_event_type:
            params["type"] = self.config.user_event_type
        if self.config.start_time is not None:
            try:
                params["start_time"] = format_iso_instant(self.config.start_time)
            except ValueError:
                logger.warning(f"Could not parse start_time '{self.config.start_time}', starting from the epoch")
                params["start_time"] = EPOCH_START
        if self.config.end_time is not None:
            params["end_time"] = format_iso_instant(self.config.end_time)

        query = urlencode(params, safe=":")
        return f"{self.config.api_base}{self.USER_EVENTS_PATH}?{query}"

    @staticmethod
    def sample_records() -> List[Record]:
        """Fixed example record used by preview runs."""
        return [json.loads(SAMPLE_EVENT)]

    async def _extract(
        self,
        consumer: RecordConsumer,
        cancel_event: Optional[asyncio.Event]
    ) -> None:
        if self.config.preview:
            for record in self.sample_records():
                await self._emit(consumer, record)
            return

        self.known_user_ids = DedupSet("users")
        end_time = self.config.time_window.end_epoch

        # Fan-out needs the complete organization list
        organizations = await collect(self._paginate(
            self._build_organizations_url(),
            PageNumberStrategy(),
            Target.ORGANIZATIONS.value,
            cancel_event
        ))
        logger.info(f"Fetched {len(organizations)} organizations")

        await self._gather(
            self._process_organization(organization, consumer, cancel_event, end_time)
            for organization in organizations
        )

        if self.config.dedup:
            self.known_user_ids.log_summary()
        logger.info(f"Forwarded {self._metrics['items_processed']} events")

    async def _process_organization(
        self,
        organization: Record,
        consumer: RecordConsumer,
        cancel_event: Optional[asyncio.Event],
        end_time: Optional[int]
    ) -> None:
        async with self._org_semaphore:
            users_url = self._build_organization_users_url(organization)
            if not users_url:
                logger.warning(f"Skipping organization without url or id: {organization}")
                return

            batch: List[str] = []
            async for user in self._paginate(users_url, PageNumberStrategy(), Target.USERS.value, cancel_event):
                if user.get("id") is None:
                    logger.warning(f"Skipping user without id in {users_url}")
                    continue
                user_id = str(user["id"])
                if self.config.dedup and not self.known_user_ids.add(user_id):
                    continue

                batch.append(user_id)
                if len(batch) >= self.config.batch_size:
                    await self._process_users(batch, consumer, cancel_event, end_time)
                    batch = []

            if batch:
                await self._process_users(batch, consumer, cancel_event, end_time)

    async def _process_users(
        self,
        user_ids: List[str],
        consumer: RecordConsumer,
        cancel_event: Optional[asyncio.Event],
        end_time: Optional[int]
    ) -> None:
        await self._gather(
            self._process_user(user_id, consumer, cancel_event, end_time)
            for user_id in user_ids
        )

    async def _process_user(
        self,
        user_id: str,
        consumer: RecordConsumer,
        cancel_event: Optional[asyncio.Event],
        end_time: Optional[int]
    ) -> None:
        async with self._semaphore:
            events = self._paginate(
                self._build_user_events_url(user_id),
                NextLinkStrategy(NextLinkConfig(next_field="links.next")),
                Target.USER_EVENTS.value,
                cancel_event
            )
            async for event in events:
                created_at = self._created_at(event)
                if end_time is not None:
                    if created_at is None or created_at > end_time:
                        self._metrics['items_filtered'] += 1
                        continue
                if self.config.incremental and created_at is not None:
                    self.watermark.update(created_at)
                await self._emit(consumer, event)

    @staticmethod
    def _created_at(event: Record) -> Optional[int]:
        value = event.get("created_at")
        if value is None:
            logger.warning(f"Event {event.get('id')} has no created_at")
            return None
        return to_epoch_seconds(value)

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        metrics['known_users'] = len(self.known_user_ids)
        metrics['duplicate_users'] = self.known_user_ids.duplicates
        return metrics
