import base64
import pytest

from event_pipeline.core.auth import AuthConfig, build_credential, build_marketplace_headers
from event_pipeline.core.errors import ConfigurationError
from event_pipeline.core.types import AuthMethod


def decode(header: str) -> str:
    scheme, value = header.split(" ", 1)
    assert scheme == "Basic"
    return base64.b64decode(value).decode()


class TestBuildCredential:
    """Test suite for Authorization header values."""

    async def test_basic(self):
        config = AuthConfig(method="basic", username="me@abc.com", password="pw")
        assert decode(build_credential(config)) == "me@abc.com:pw"

    async def test_token(self):
        config = AuthConfig(method=AuthMethod.TOKEN, username="me@abc.com", token="t0k")
        assert decode(build_credential(config)) == "me@abc.com/token:t0k"

    async def test_oauth(self):
        config = AuthConfig(method="oauth", access_token="abc123")
        assert build_credential(config) == "Bearer abc123"

    @pytest.mark.parametrize("config", [
        AuthConfig(method="basic", username="me@abc.com"),
        AuthConfig(method="basic", password="pw"),
        AuthConfig(method="token", username="me@abc.com"),
        AuthConfig(method="oauth", username="me@abc.com", password="pw"),
    ])
    async def test_missing_credentials(self, config):
        with pytest.raises(ConfigurationError, match="required"):
            build_credential(config)

    async def test_unknown_method_rejected_by_model(self):
        with pytest.raises(ValueError):
            AuthConfig(method="kerberos")


class TestMarketplaceHeaders:
    """Test suite for Apps Marketplace attribution headers."""

    async def test_none_configured(self):
        assert build_marketplace_headers(None, None, None) == {}

    async def test_all_configured(self):
        assert build_marketplace_headers("name", "1", "2") == {
            "X-Zendesk-Marketplace-Name": "name",
            "X-Zendesk-Marketplace-App-Id": "1",
            "X-Zendesk-Marketplace-Organization-Id": "2",
        }

    @pytest.mark.parametrize("values", [("name", None, None), (None, "1", "2"), ("", None, None), ("name", "1", None)])
    async def test_partial_configuration(self, values):
        with pytest.raises(ConfigurationError, match="Apps Marketplace"):
            build_marketplace_headers(*values)

    async def test_empty_strings_count_as_configured(self):
        headers = build_marketplace_headers("name", "", "")
        assert headers["X-Zendesk-Marketplace-Name"] == "name"
        assert headers["X-Zendesk-Marketplace-App-Id"] == ""
        assert len(build_marketplace_headers("", "", "")) == 3
