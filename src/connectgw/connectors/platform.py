"""REST client for the Pipedream Connect API.

Implements the PlatformConnector protocol on top of AsyncHTTPClient:
- client-credentials bearer token, refreshed shortly before expiry
- project-scoped Connect endpoints (tokens, accounts, users, components)
- the app catalog
- the authenticated proxy

Payloads are returned as decoded JSON; the gateway layer parses them.
"""

import asyncio
import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from connectgw.config import Config, PlatformConfig

from .base import (
    AuthenticationError,
    ConnectorError,
    ConnectorRegistry,
    OAuthTokenAuth,
    RequestPolicy,
)
from .http_client import AsyncHTTPClient

logger = logging.getLogger(__name__)


def encode_proxy_url(target_url: str) -> str:
    """Encode a target URL the way the proxy endpoint expects (URL-safe base64)."""
    return base64.urlsafe_b64encode(target_url.encode("utf-8")).decode("ascii").rstrip("=")


class PlatformClient:
    """Pipedream Connect API client."""

    _name = "pipedream"

    def __init__(
        self,
        platform: PlatformConfig,
        policy: Optional[RequestPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            platform: Project id, client credentials, environment, base URL
            policy: Request policy (timeouts, retries)
            transport: Optional httpx transport (tests use MockTransport)
        """
        if not platform.is_configured():
            raise AuthenticationError(
                "Platform credentials are not configured: set PIPEDREAM_PROJECT_ID, "
                "PIPEDREAM_CLIENT_ID and PIPEDREAM_CLIENT_SECRET",
                connector_name=self._name,
            )

        self.platform = platform
        self.auth = OAuthTokenAuth()
        self.policy = policy or RequestPolicy()
        self.policy.default_headers.setdefault("X-PD-Environment", platform.environment)
        self.http = AsyncHTTPClient(
            auth=self.auth,
            policy=self.policy,
            base_url=platform.base_url,
            connector_name=self._name,
            transport=transport,
        )
        # Separate client for the token endpoint, which must not carry a bearer header
        self._token_http = AsyncHTTPClient(
            policy=self.policy,
            base_url=platform.base_url,
            connector_name=self._name,
            transport=transport,
        )
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, cfg: Config, **kwargs: Any) -> "PlatformClient":
        """Create a client from the central configuration."""
        policy = RequestPolicy.with_timeout(cfg.request_timeout_s)
        return cls(cfg.platform, policy=policy, **kwargs)

    @property
    def name(self) -> str:
        """Connector name."""
        return self._name

    def _project_path(self, *parts: str) -> str:
        """Build a project-scoped Connect path."""
        suffix = "/".join(p.strip("/") for p in parts)
        return f"/connect/{self.platform.project_id}/{suffix}"

    # =========================================================================
    # Authentication
    # =========================================================================

    async def _ensure_token(self) -> None:
        """Fetch a new access token if the current one is missing or expiring."""
        if not self.auth.is_expired():
            return

        async with self._token_lock:
            # Another coroutine may have refreshed while we waited
            if not self.auth.is_expired():
                return

            response = await self._token_http.post(
                "/oauth/token",
                json={
                    "grant_type": "client_credentials",
                    "client_id": self.platform.client_id,
                    "client_secret": self.platform.client_secret,
                },
            )
            payload = response.json() or {}
            access_token = payload.get("access_token")
            if not access_token:
                raise AuthenticationError(
                    "Token endpoint returned no access_token", connector_name=self._name
                )

            expires_in = float(payload.get("expires_in", 3600))
            self.auth.access_token = access_token
            self.auth.token_type = payload.get("token_type", "Bearer").capitalize()
            self.auth.expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
            logger.debug(f"Obtained platform access token (expires in {expires_in:.0f}s)")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Authenticated request returning decoded JSON (None for empty bodies)."""
        await self._ensure_token()
        response = await self.http.request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ConnectorError(
                f"Platform returned a non-JSON body for {method} {path}",
                connector_name=self._name,
                status_code=response.status_code,
            ) from e

    # =========================================================================
    # Connect tokens
    # =========================================================================

    async def create_connect_token(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /connect/{project}/tokens."""
        return await self._request("POST", self._project_path("tokens"), json=payload)

    # =========================================================================
    # Accounts and users
    # =========================================================================

    async def list_accounts(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET /connect/{project}/accounts."""
        return await self._request("GET", self._project_path("accounts"), params=params)

    async def get_account(self, account_id: str, include_credentials: bool = False) -> Dict[str, Any]:
        """GET /connect/{project}/accounts/{id}."""
        return await self._request(
            "GET",
            self._project_path("accounts", account_id),
            params={"include_credentials": include_credentials},
        )

    async def delete_account(self, account_id: str) -> None:
        """DELETE /connect/{project}/accounts/{id}."""
        await self._request("DELETE", self._project_path("accounts", account_id))

    async def delete_external_user(self, external_user_id: str) -> None:
        """DELETE /connect/{project}/users/{external_user_id}."""
        await self._request("DELETE", self._project_path("users", external_user_id))

    # =========================================================================
    # Catalog
    # =========================================================================

    async def list_apps(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET /apps."""
        return await self._request("GET", "/apps", params=params)

    async def list_components(self, component_type: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET /connect/{project}/{actions|triggers}."""
        return await self._request(
            "GET", self._project_path(f"{component_type}s"), params=params
        )

    async def get_component(self, component_type: str, key: str) -> Dict[str, Any]:
        """GET /connect/{project}/{actions|triggers}/{key}."""
        return await self._request("GET", self._project_path(f"{component_type}s", key))

    async def configure_prop(self, component_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /connect/{project}/{actions|triggers}/configure."""
        return await self._request(
            "POST", self._project_path(f"{component_type}s", "configure"), json=payload
        )

    # =========================================================================
    # Proxy
    # =========================================================================

    async def proxy_request(
        self,
        external_user_id: str,
        account_id: str,
        target_url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Forward a request through /connect/{project}/proxy/{encoded_url}.

        The upstream status and body come back as they are, errors included.
        """
        await self._ensure_token()
        response = await self.http.request(
            method,
            self._project_path("proxy", encode_proxy_url(target_url)),
            params={"external_user_id": external_user_id, "account_id": account_id},
            headers=headers,
            json=body,
            raise_for_status=False,
        )
        try:
            parsed: Any = response.json()
        except ValueError:
            parsed = response.body.decode("utf-8", errors="replace")
        return {
            "status": response.status_code,
            "headers": response.headers,
            "body": parsed,
        }

    async def aclose(self) -> None:
        """Nothing pooled: each request opens its own httpx client."""
        return None


ConnectorRegistry.register("pipedream", PlatformClient)
