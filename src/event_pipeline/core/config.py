import os
import re
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from loguru import logger

from event_pipeline.core.auth import AuthConfig
from event_pipeline.core.retry import RetryConfig
from event_pipeline.core.watermark import TimeWindow

_ENV_PATTERN = re.compile(r"^\$\{env:([A-Za-z_][A-Za-z0-9_]*)\}$")


class ExtractorConfig(BaseModel):
    # Main configuration for user event extraction
    login_url: str                                      # e.g. https://abc.zendesk.com/
    auth_config: AuthConfig = Field(default_factory=AuthConfig)
    app_marketplace_integration_name: Optional[str] = None
    app_marketplace_app_id: Optional[str] = None
    app_marketplace_org_id: Optional[str] = None
    profile_source: Optional[str] = None                # Profile source for the event identifier
    user_event_source: Optional[str] = None             # Optional "source" filter for events
    user_event_type: Optional[str] = None               # Optional "type" filter for events
    start_time: Optional[Union[str, int]] = None        # ISO-8601 or epoch seconds
    end_time: Optional[Union[str, int]] = None          # ISO-8601 or epoch seconds
    incremental: bool = True                            # Produce a cursor for the next run
    dedup: bool = True                                  # Skip users seen in another organization
    preview: bool = False                               # Emit one sample record, no requests
    retry: RetryConfig = Field(default_factory=RetryConfig)
    timeout: int = 300                                  # Request timeout in seconds
    max_concurrent_requests: int = 10                   # Concurrent user branches
    max_concurrent_organizations: int = 5               # Concurrent organization branches
    batch_size: int = 100                               # Users scheduled together
    page_size: int = 100                                # Items per page for paged listings

    @field_validator('login_url')
    @classmethod
    def strip_login_url(cls, v: str) -> str:
        return v.strip()

    @field_validator('max_concurrent_requests', 'max_concurrent_organizations', 'batch_size', 'page_size', 'timeout')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def api_base(self) -> str:
        return self.login_url.rstrip('/')

    @property
    def time_window(self) -> TimeWindow:
        return TimeWindow(start_time=self.start_time, end_time=self.end_time)

    @classmethod
    def from_yaml(cls, file_path: str) -> 'ExtractorConfig':
        """Load configuration from YAML file.

        String values of the form ``${env:NAME}`` are replaced by the
        environment variable NAME, which keeps credentials out of the file.

        Args:
            file_path: Path to YAML configuration file

        Returns:
            ExtractorConfig instance
        """
        logger.info(f"Loading configuration from {file_path}")
        try:
            with open(file_path, 'r') as f:
                config_dict = yaml.safe_load(f) or {}
            return cls(**_resolve_env(config_dict))
        except Exception as e:
            logger.error(f"Error loading configuration: {str(e)}")
            raise


def _resolve_env(value: Any) -> Any:
    """Recursively resolve ${env:NAME} placeholders in configuration values."""
    if isinstance(value, str):
        match = _ENV_PATTERN.match(value)
        if match:
            name = match.group(1)
            if name not in os.environ:
                raise ValueError(f"Environment variable {name} referenced in configuration is not set")
            return os.environ[name]
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env(v) for v in value]
    return value
