import base64
from typing import Callable, Dict, Optional

from pydantic import BaseModel
from loguru import logger

from event_pipeline.core.errors import ConfigurationError
from event_pipeline.core.types import AuthMethod

MARKETPLACE_NAME_HEADER = "X-Zendesk-Marketplace-Name"
MARKETPLACE_APP_ID_HEADER = "X-Zendesk-Marketplace-App-Id"
MARKETPLACE_ORGANIZATION_ID_HEADER = "X-Zendesk-Marketplace-Organization-Id"


class AuthConfig(BaseModel):
    """Authentication configuration."""
    method: AuthMethod = AuthMethod.BASIC
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    access_token: Optional[str] = None


def _encode(credentials: str) -> str:
    return base64.b64encode(credentials.encode()).decode()


def _basic_credential(config: AuthConfig) -> str:
    if not config.username or not config.password:
        raise ConfigurationError(
            "username and password are required for authentication method 'basic'"
        )
    return f"Basic {_encode(f'{config.username}:{config.password}')}"


def _token_credential(config: AuthConfig) -> str:
    if not config.username or not config.token:
        raise ConfigurationError(
            "username and token are required for authentication method 'token'"
        )
    return f"Basic {_encode(f'{config.username}/token:{config.token}')}"


def _oauth_credential(config: AuthConfig) -> str:
    if not config.access_token:
        raise ConfigurationError(
            "access_token is required for authentication method 'oauth'"
        )
    return f"Bearer {config.access_token}"


_CREDENTIAL_BUILDERS: Dict[AuthMethod, Callable[[AuthConfig], str]] = {
    AuthMethod.BASIC: _basic_credential,
    AuthMethod.TOKEN: _token_credential,
    AuthMethod.OAUTH: _oauth_credential
}


def build_credential(config: AuthConfig) -> str:
    """Build the Authorization header value for the configured method.

    Args:
        config: Authentication configuration

    Returns:
        Value for the Authorization header

    Raises:
        ConfigurationError: If the method is unknown or its credentials are missing
    """
    builder = _CREDENTIAL_BUILDERS.get(config.method)
    if not builder:
        raise ConfigurationError(
            f"Unknown authentication method: {config.method}. "
            f"Supported methods: {', '.join(m.value for m in _CREDENTIAL_BUILDERS)}"
        )
    return builder(config)


def build_marketplace_headers(
    integration_name: Optional[str],
    app_id: Optional[str],
    org_id: Optional[str]
) -> Dict[str, str]:
    """Build the Apps Marketplace attribution headers.

    All three values must be given together or not at all.

    Raises:
        ConfigurationError: If only some of the values are configured
    """
    values = (integration_name, app_id, org_id)
    configured = [value is not None for value in values]
    if not any(configured):
        return {}
    if not all(configured):
        raise ConfigurationError(
            "All of app_marketplace_integration_name, app_marketplace_org_id, "
            "app_marketplace_app_id are required to fill out for Apps Marketplace API header"
        )

    logger.debug(f"Adding marketplace headers for integration '{integration_name}'")
    return {
        MARKETPLACE_NAME_HEADER: integration_name,
        MARKETPLACE_APP_ID_HEADER: app_id,
        MARKETPLACE_ORGANIZATION_ID_HEADER: org_id
    }
