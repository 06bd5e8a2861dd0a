import re

from loguru import logger

from event_pipeline.core.auth import build_credential, build_marketplace_headers
from event_pipeline.core.config import ExtractorConfig
from event_pipeline.core.errors import ConfigurationError

HOST_PATTERN = re.compile(r"^https://[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?(\.[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?)+(:\d+)?/?$")


def validate_host(login_url: str) -> None:
    if not HOST_PATTERN.match(login_url):
        raise ConfigurationError(
            f"Login URL, '{login_url}', is unmatched expectation. "
            "It should be followed this format: https://abc.zendesk.com/"
        )


def validate_config(config: ExtractorConfig) -> None:
    """Check the options that can be verified without a request.

    Raises:
        ConfigurationError: With a message describing what must be fixed
    """
    validate_host(config.login_url)
    build_marketplace_headers(
        config.app_marketplace_integration_name,
        config.app_marketplace_app_id,
        config.app_marketplace_org_id
    )
    build_credential(config.auth_config)

    if not config.profile_source:
        raise ConfigurationError("profile_source is required to fetch user events")

    if config.end_time is not None:
        try:
            config.time_window.end_epoch
        except ValueError:
            raise ConfigurationError(f"end_time '{config.end_time}' is not a valid timestamp")

    if config.incremental and not config.dedup:
        logger.warning("You've selected to skip de-duplicating records, result may contain duplicated data")
