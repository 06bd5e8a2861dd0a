"""Incremental extraction of Zendesk user events."""

from event_pipeline.core.config import ExtractorConfig
from event_pipeline.core.pipeline import Pipeline
from event_pipeline.extractors.zendesk_user_events import ZendeskUserEventsExtractor

__all__ = [
    'ExtractorConfig',
    'Pipeline',
    'ZendeskUserEventsExtractor'
]
