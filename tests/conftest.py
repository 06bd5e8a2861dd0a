import json
import pytest
from typing import Any, Callable, Dict, List, Optional, Union

from event_pipeline.core.auth import AuthConfig
from event_pipeline.core.client import ApiClient
from event_pipeline.core.config import ExtractorConfig
from event_pipeline.core.rate_limit import RateLimiter
from event_pipeline.core.retry import RetryConfig, RetryHandler
from event_pipeline.extractors.zendesk_user_events import ZendeskUserEventsExtractor

LOGIN_URL = "https://abc.zendesk.com/"
BASE = "https://abc.zendesk.com"
RATE_HEADERS = {"x-rate-limit": "700"}


class MockResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, status: int = 200, body: Union[str, Dict, List] = "", headers: Optional[Dict[str, str]] = None):
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)
        self.headers = dict(RATE_HEADERS) if headers is None else headers

    async def text(self) -> str:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class _RaisingContext:
    def __init__(self, error: Exception):
        self.error = error

    async def __aenter__(self):
        raise self.error

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class MockSession:
    """Routes GET requests to canned responses by exact URL.

    A route may be a single response or a list consumed in order (the last
    one repeats). Exceptions in a route are raised when the request is made.
    Unknown URLs get ``default``.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None, default: Optional[MockResponse] = None):
        self.routes = routes or {}
        self.default = default or MockResponse(200, {})
        self.requested: List[str] = []
        self.request_headers: List[Dict[str, str]] = []
        self.closed = False

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, timeout=None):
        self.requested.append(url)
        self.request_headers.append(headers or {})
        route = self.routes.get(url, self.default)
        if isinstance(route, list):
            response = route.pop(0) if len(route) > 1 else route[0]
        else:
            response = route
        if isinstance(response, Exception):
            return _RaisingContext(response)
        return response

    async def close(self):
        self.closed = True


async def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def sleeps() -> List[float]:
    """Collects the delays passed to a recording sleep."""
    return []


@pytest.fixture
def recording_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
    return _sleep


@pytest.fixture
def base_config() -> ExtractorConfig:
    """Provide a base extractor configuration."""
    return ExtractorConfig(
        login_url=LOGIN_URL,
        auth_config=AuthConfig(method="token", username="agent@abc.com", token="secret-token"),
        profile_source="shopify",
        retry=RetryConfig(retry_limit=2, initial_wait=1.0, max_wait=4.0),
        page_size=2
    )


@pytest.fixture
def make_client() -> Callable[..., ApiClient]:
    def _make(session: MockSession, config: Optional[ExtractorConfig] = None, **kwargs) -> ApiClient:
        config = config or ExtractorConfig(
            login_url=LOGIN_URL,
            auth_config=AuthConfig(method="basic", username="agent@abc.com", password="pw")
        )
        return ApiClient(
            auth_config=config.auth_config,
            rate_limiter=RateLimiter(sleep=no_sleep),
            marketplace_integration_name=config.app_marketplace_integration_name,
            marketplace_app_id=config.app_marketplace_app_id,
            marketplace_org_id=config.app_marketplace_org_id,
            session=session,
            **kwargs
        )
    return _make


@pytest.fixture
def make_extractor(make_client) -> Callable[..., ZendeskUserEventsExtractor]:
    def _make(config: ExtractorConfig, session: MockSession) -> ZendeskUserEventsExtractor:
        return ZendeskUserEventsExtractor(
            config,
            client=make_client(session, config),
            retry_handler=RetryHandler(config.retry, sleep=no_sleep)
        )
    return _make


@pytest.fixture
def zendesk_routes() -> Callable[..., Dict[str, Any]]:
    """Build routes for organizations -> users -> events.

    Args (of the returned builder):
        org_pages: list of pages, each a list of organization ids
        users_by_org: organization id -> list of user ids (single page)
        events_by_user: user id -> list of event pages, each a list of events
        events_query: extra query string appended to event URLs
    """
    def _build(
        org_pages: List[List[int]],
        users_by_org: Dict[int, List[int]],
        events_by_user: Dict[int, List[List[Dict[str, Any]]]],
        page_size: int = 2,
        events_query: str = ""
    ) -> Dict[str, Any]:
        routes: Dict[str, Any] = {}
        for page_number, org_ids in enumerate(org_pages, start=1):
            url = f"{BASE}/api/v2/organizations.json?per_page={page_size}&page={page_number}"
            routes[url] = MockResponse(200, {
                "organizations": [
                    {"id": org_id, "url": f"{BASE}/api/v2/organizations/{org_id}.json"}
                    for org_id in org_ids
                ]
            })

        for org_id, user_ids in users_by_org.items():
            url = f"{BASE}/api/v2/organizations/{org_id}/users.json?per_page={page_size}&page=1"
            routes[url] = MockResponse(200, {"users": [{"id": user_id} for user_id in user_ids]})

        for user_id, pages in events_by_user.items():
            first = f"{BASE}/api/sunshine/events?identifier=shopify:user_id:{user_id}{events_query}"
            for index, events in enumerate(pages):
                url = first if index == 0 else f"{first}&cursor={index}"
                next_url = f"{first}&cursor={index + 1}" if index + 1 < len(pages) else None
                routes[url] = MockResponse(200, {"data": events, "links": {"next": next_url}})
        return routes
    return _build


@pytest.fixture
def mock_response():
    """Factory for canned responses: mock_response(status, body, headers)."""
    return MockResponse


@pytest.fixture
def mock_session():
    """Factory for routed sessions: mock_session(routes, default)."""
    return MockSession
