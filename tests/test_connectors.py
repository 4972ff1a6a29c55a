"""Tests for the connector layer.

Tests cover:
- Authentication strategies
- Request policy
- Error hierarchy
- DummyPlatform functionality
- ConnectorRegistry and create_platform

No network calls - all tests are offline.
"""

from datetime import datetime, timedelta, timezone

import pytest

from connectgw.connectors import (
    ConnectorError,
    ConnectorRegistry,
    DummyPlatform,
    DummyResponse,
    OAuthTokenAuth,
    PlatformClient,
    PlatformConnector,
    RateLimitError,
    RequestPolicy,
    ResourceNotFoundError,
    ServiceUnavailableError,
    TimeoutError,
    ValidationError,
    create_platform,
)

# =============================================================================
# Authentication Tests
# =============================================================================


class TestOAuthTokenAuth:
    """Tests for OAuthTokenAuth."""

    def test_missing_token_is_expired(self):
        """A token that was never fetched counts as expired."""
        auth = OAuthTokenAuth()
        assert auth.is_configured() is False
        assert auth.is_expired() is True
        assert auth.get_headers() == {}

    def test_token_without_expiry_is_valid(self):
        """A token with no expiry never expires."""
        auth = OAuthTokenAuth(access_token="token123")
        assert auth.is_expired() is False

    def test_token_within_skew_is_expired(self):
        """A token expiring inside the skew window is refreshed early."""
        auth = OAuthTokenAuth(
            access_token="token123",
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=30),
        )
        assert auth.is_expired() is True

    def test_future_token_is_valid(self):
        """A token expiring well in the future is used as is."""
        auth = OAuthTokenAuth(
            access_token="token123",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        assert auth.is_expired() is False
        assert auth.get_headers() == {"Authorization": "Bearer token123"}


# =============================================================================
# Request Policy Tests
# =============================================================================


class TestRequestPolicy:
    """Tests for RequestPolicy."""

    def test_default_policy(self):
        """Default policy has sensible values."""
        policy = RequestPolicy()
        assert policy.max_retries == 3
        assert 429 in policy.retry_on_status
        assert policy.user_agent.startswith("connectgw/")

    def test_only_get_is_retried(self):
        """Side-effecting methods are never retried by default."""
        policy = RequestPolicy()
        assert policy.allows_retry("GET") is True
        assert policy.allows_retry("get") is True
        for method in ("POST", "PUT", "PATCH", "DELETE"):
            assert policy.allows_retry(method) is False

    def test_with_timeout(self):
        """with_timeout sets the read and pool timeouts."""
        policy = RequestPolicy.with_timeout(5.0, max_retries=1)
        assert policy.read_timeout == 5.0
        assert policy.total_timeout == 5.0
        assert policy.max_retries == 1


# =============================================================================
# Error Hierarchy Tests
# =============================================================================


class TestConnectorErrors:
    """Tests for connector error hierarchy."""

    def test_all_errors_inherit_from_base(self):
        """All connector errors are ConnectorErrors."""
        for error in (
            TimeoutError(),
            RateLimitError(),
            ValidationError("bad"),
            ResourceNotFoundError(),
            ServiceUnavailableError("down"),
        ):
            assert isinstance(error, ConnectorError)

    def test_rate_limit_error(self):
        """RateLimitError carries retry_after and status 429."""
        error = RateLimitError("slow down", connector_name="pipedream", retry_after=12.0)
        assert error.retry_after == 12.0
        assert error.status_code == 429
        assert error.details["retry_after"] == 12.0

    def test_not_found_error(self):
        """ResourceNotFoundError records what was missing."""
        error = ResourceNotFoundError(resource_type="account", resource_id="apn_1")
        assert error.status_code == 404
        assert error.details == {"resource_type": "account", "resource_id": "apn_1"}


# =============================================================================
# DummyPlatform Tests
# =============================================================================


class TestDummyPlatform:
    """Tests for DummyPlatform."""

    def test_implements_protocol(self):
        """DummyPlatform satisfies the PlatformConnector protocol."""
        assert isinstance(DummyPlatform(), PlatformConnector)

    @pytest.mark.asyncio
    async def test_list_accounts_filters_by_user_and_app(self, platform):
        """Listing honours the user and app filters."""
        payload = await platform.list_accounts({"external_user_id": "user-1", "app": "slack"})
        assert [a["id"] for a in payload["data"]] == ["a1", "a2"]
        assert payload["page_info"]["total_count"] == 2

    @pytest.mark.asyncio
    async def test_list_accounts_paginates(self, platform):
        """Cursors continue after the last id of the previous page."""
        first = await platform.list_accounts({"external_user_id": "user-1", "limit": 2})
        second = await platform.list_accounts(
            {"external_user_id": "user-1", "limit": 2, "after": first["page_info"]["end_cursor"]}
        )
        assert [a["id"] for a in first["data"]] == ["a1", "a2"]
        assert [a["id"] for a in second["data"]] == ["a3"]

    @pytest.mark.asyncio
    async def test_credentials_only_when_requested(self, platform):
        """Credentials are returned only with include_credentials."""
        without = await platform.get_account("a3")
        with_creds = await platform.get_account("a3", include_credentials=True)
        assert "credentials" not in without["data"]
        assert with_creds["data"]["credentials"] == {"oauth_access_token": "ya29.secret"}

    @pytest.mark.asyncio
    async def test_delete_unknown_account_raises(self, platform):
        """Deleting an unknown account is a ResourceNotFoundError."""
        with pytest.raises(ResourceNotFoundError):
            await platform.delete_account("nope")

    @pytest.mark.asyncio
    async def test_canned_error(self, platform):
        """A canned error is raised instead of the in-memory behaviour."""
        platform.set_response(
            "get_account", DummyResponse(error=ServiceUnavailableError("down")), key="a1"
        )
        with pytest.raises(ServiceUnavailableError):
            await platform.get_account("a1")
        # Other accounts are unaffected
        assert (await platform.get_account("a3"))["data"]["id"] == "a3"

    @pytest.mark.asyncio
    async def test_canned_data(self, platform):
        """Canned data replaces the computed payload."""
        platform.set_response("list_apps", DummyResponse(data={"data": [], "page_info": {}}))
        assert await platform.list_apps({}) == {"data": [], "page_info": {}}

    @pytest.mark.asyncio
    async def test_delete_external_user_removes_accounts(self, platform):
        """Deleting a user removes every account it owns."""
        await platform.delete_external_user("user-1")
        assert platform.account_ids() == ["b1"]

    @pytest.mark.asyncio
    async def test_call_log(self, platform):
        """Calls are recorded for assertions."""
        await platform.list_apps({"q": "slack"})
        await platform.list_apps({"q": "git"})
        assert platform.was_called("list_apps")
        assert platform.call_count("list_apps") == 2
        assert not platform.was_called("delete_account")
        platform.clear_call_log()
        assert platform.get_call_log() == []

    @pytest.mark.asyncio
    async def test_aclose(self, platform):
        """aclose marks the platform closed."""
        await platform.aclose()
        assert platform.closed is True


# =============================================================================
# Registry Tests
# =============================================================================


class TestConnectorRegistry:
    """Tests for ConnectorRegistry and create_platform."""

    def test_builtin_connectors_registered(self):
        """Both connectors register themselves on import."""
        assert ConnectorRegistry.get("pipedream") is PlatformClient
        assert ConnectorRegistry.get("DUMMY") is DummyPlatform
        assert set(ConnectorRegistry.list_connectors()) >= {"pipedream", "dummy"}

    def test_register_and_unregister(self):
        """Custom connectors can be registered and removed."""
        ConnectorRegistry.register("custom", DummyPlatform)
        try:
            assert ConnectorRegistry.is_registered("custom")
        finally:
            ConnectorRegistry.unregister("custom")
        assert not ConnectorRegistry.is_registered("custom")

    def test_create_platform_dummy(self, make_config):
        """create_platform builds the configured connector."""
        platform = create_platform(make_config(CONNECTGW_PLATFORM="dummy"))
        assert isinstance(platform, DummyPlatform)

    def test_create_platform_unknown(self, make_config):
        """An unknown platform name is a ValueError."""
        with pytest.raises(ValueError, match="Unknown platform"):
            create_platform(make_config(CONNECTGW_PLATFORM="zapier"))
