"""Event pipeline extractors package."""

from event_pipeline.extractors.zendesk_user_events import ZendeskUserEventsExtractor

__all__ = [
    'ZendeskUserEventsExtractor'
]
