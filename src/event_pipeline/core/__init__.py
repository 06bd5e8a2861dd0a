from .types import (
    AuthMethod,
    RetryDecision,
    PaginationType,
    Target
)
from .errors import (
    PipelineError,
    ApiError,
    TransportError,
    ConfigurationError,
    FatalApiError,
    RetryGiveUpError,
    ExtractionCancelledError
)
from .auth import (
    AuthConfig,
    build_credential,
    build_marketplace_headers
)
from .retry import (
    EMPTY_RESPONSE,
    RetryConfig,
    RetryHandler,
    classify
)
from .rate_limit import RateLimiter
from .client import ApiClient
from .pagination import (
    PaginationStrategy,
    PageNumberConfig,
    PageNumberStrategy,
    NextLinkConfig,
    NextLinkStrategy,
    PageSequencer
)
from .dedupe import DedupSet
from .watermark import (
    TimeWindow,
    CursorResult,
    WatermarkTracker,
    plan_next_cursor
)
from .config import ExtractorConfig

__all__ = [
    'AuthMethod',
    'RetryDecision',
    'PaginationType',
    'Target',
    'PipelineError',
    'ApiError',
    'TransportError',
    'ConfigurationError',
    'FatalApiError',
    'RetryGiveUpError',
    'ExtractionCancelledError',
    'AuthConfig',
    'build_credential',
    'build_marketplace_headers',
    'EMPTY_RESPONSE',
    'RetryConfig',
    'RetryHandler',
    'classify',
    'RateLimiter',
    'ApiClient',
    'PaginationStrategy',
    'PageNumberConfig',
    'PageNumberStrategy',
    'NextLinkConfig',
    'NextLinkStrategy',
    'PageSequencer',
    'DedupSet',
    'TimeWindow',
    'CursorResult',
    'WatermarkTracker',
    'plan_next_cursor',
    'ExtractorConfig'
]
