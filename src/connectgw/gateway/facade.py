"""Gateway Facade: the single entry point host layers call.

Each operation takes the tenant explicitly, delegates to the account
manager, token issuer, catalog or configurator, and returns a
GatewayResult envelope. Errors never escape as exceptions: gateway
errors keep their kind, anything unexpected is logged and reported as
``Internal``.

Cancelling an operation cancels the caller only: platform calls it has
already dispatched finish in the background and their results are
dropped.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence
from urllib.parse import urlsplit

from pydantic import ValidationError

from connectgw.config import Config
from connectgw.connectors import create_platform
from connectgw.connectors.base import PlatformConnector
from connectgw.gateway.accounts import AccountFilter, AccountManager
from connectgw.gateway.catalog import ComponentCatalog
from connectgw.gateway.configurator import ComponentConfigurator
from connectgw.gateway.dispatch import InFlight
from connectgw.gateway.errors import (
    GatewayError,
    GatewayResult,
    InternalError,
    InvalidArgument,
    PartialFailure,
    platform_errors,
    unexpected_payload,
)
from connectgw.gateway.identity import TenantLike, require_tenant
from connectgw.gateway.models import ProxyResponse, Tenant
from connectgw.gateway.tokens import TokenIssuer

logger = logging.getLogger(__name__)

PROXY_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


class ConnectorGateway:
    """Tenant-scoped operations over the automation platform."""

    def __init__(self, platform: PlatformConnector, config: Config):
        self.platform = platform
        self.config = config
        # Side-effecting calls abandoned by cancelled requests, shared by every component
        self.in_flight = InFlight()
        self.accounts = AccountManager(platform, config, self.in_flight)
        self.tokens = TokenIssuer(platform, config, self.in_flight)
        self.catalog = ComponentCatalog(platform, config)
        self.configurator = ComponentConfigurator(platform, self.catalog, self.in_flight)

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **kwargs: Any) -> "ConnectorGateway":
        """Build a gateway on the platform named in the configuration."""
        if config is None:
            from connectgw.config import config
        return cls(create_platform(config, **kwargs), config)

    async def __aenter__(self) -> "ConnectorGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Let abandoned platform calls finish, then close the platform."""
        await self.in_flight.drain()
        await self.platform.aclose()

    async def _run(
        self,
        operation: str,
        tenant: Optional[TenantLike],
        call: Callable[[Tenant], Awaitable[Any]],
    ) -> GatewayResult:
        """Resolve the tenant, run the call and wrap its outcome."""
        try:
            resolved = require_tenant(tenant)
            return GatewayResult.success(await call(resolved))
        except GatewayError as e:
            logger.info(f"{operation} failed: {e.kind.value}: {e.message}")
            return GatewayResult.failure(e)
        except ValidationError as e:
            # Platform payloads are parsed under unexpected_payload, so this is caller input
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            return GatewayResult.failure(
                InvalidArgument(f"Invalid arguments: {e.error_count()} error(s)", {"errors": errors})
            )
        except Exception as e:
            logger.exception(f"{operation} failed unexpectedly")
            return GatewayResult.failure(InternalError(f"{type(e).__name__}: {e}"))

    # =========================================================================
    # Accounts
    # =========================================================================

    async def list_accounts(
        self,
        tenant: Optional[TenantLike],
        app: Optional[str] = None,
        oauth_app_id: Optional[str] = None,
        external_user_id: Optional[str] = None,
        include_credentials: bool = False,
    ) -> GatewayResult:
        async def call(t: Tenant):
            filters = AccountFilter(
                app=app,
                oauth_app_id=oauth_app_id,
                external_user_id=external_user_id,
                include_credentials=include_credentials,
            )
            return await self.accounts.list_accounts(t, filters)

        return await self._run("list_accounts", tenant, call)

    async def get_account(
        self, tenant: Optional[TenantLike], account_id: str, include_credentials: bool = False
    ) -> GatewayResult:
        return await self._run(
            "get_account",
            tenant,
            lambda t: self.accounts.get_account(t, account_id, include_credentials),
        )

    async def delete_account(self, tenant: Optional[TenantLike], account_id: str) -> GatewayResult:
        async def call(t: Tenant) -> Dict[str, Any]:
            await self.accounts.delete_account(t, account_id)
            return {"deleted": account_id}

        return await self._run("delete_account", tenant, call)

    async def delete_accounts_for_app(self, tenant: Optional[TenantLike], app_id: str) -> GatewayResult:
        """Cascade delete of every user's accounts for the app.

        Any failed account makes the envelope PartialFailure with the result attached.
        """
        result = await self._run(
            "delete_accounts_for_app",
            tenant,
            lambda t: self.accounts.delete_all_accounts_for_app(t, app_id),
        )
        if result.ok and result.data.failed:
            cascade = result.data
            return GatewayResult.failure(
                PartialFailure(f"Cascade delete for app '{app_id}': {cascade.summary()}", cascade),
                data=cascade,
            )
        return result

    async def delete_external_user(self, tenant: Optional[TenantLike], user_id: str) -> GatewayResult:
        async def call(t: Tenant) -> Dict[str, Any]:
            await self.accounts.delete_external_user(t, user_id)
            return {"deleted": user_id}

        return await self._run("delete_external_user", tenant, call)

    # =========================================================================
    # Tokens
    # =========================================================================

    async def create_connect_token(
        self,
        tenant: Optional[TenantLike],
        allowed_origins: Optional[Sequence[str]] = None,
        success_redirect_uri: Optional[str] = None,
        error_redirect_uri: Optional[str] = None,
        webhook_uri: Optional[str] = None,
    ) -> GatewayResult:
        return await self._run(
            "create_connect_token",
            tenant,
            lambda t: self.tokens.create_connect_token(
                t,
                allowed_origins=allowed_origins,
                success_redirect_uri=success_redirect_uri,
                error_redirect_uri=error_redirect_uri,
                webhook_uri=webhook_uri,
            ),
        )

    # =========================================================================
    # Catalog and configuration
    # =========================================================================

    async def list_apps(
        self, tenant: Optional[TenantLike], q: Optional[str] = None, cursor: Optional[str] = None
    ) -> GatewayResult:
        return await self._run("list_apps", tenant, lambda t: self.catalog.list_apps(q=q, cursor=cursor))

    async def list_components(
        self,
        tenant: Optional[TenantLike],
        component_type: Any,
        app: Optional[str] = None,
        q: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> GatewayResult:
        return await self._run(
            "list_components",
            tenant,
            lambda t: self.catalog.list_components(component_type, app=app, q=q, cursor=cursor),
        )

    async def get_component(
        self, tenant: Optional[TenantLike], component_type: Any, key: str
    ) -> GatewayResult:
        return await self._run(
            "get_component", tenant, lambda t: self.catalog.get_component(component_type, key)
        )

    async def configure_component(
        self,
        tenant: Optional[TenantLike],
        component_type: Any,
        key: str,
        prop_name: str,
        configured_props: Any,
    ) -> GatewayResult:
        async def call(t: Tenant):
            request = self.configurator.build_request(
                t, component_type, key, prop_name, configured_props
            )
            return await self.configurator.configure(t, request)

        return await self._run("configure_component", tenant, call)

    # =========================================================================
    # Proxy
    # =========================================================================

    async def proxy_request(
        self,
        tenant: Optional[TenantLike],
        account_id: str,
        target_url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
    ) -> GatewayResult:
        """Call a third-party API with one of the tenant's accounts."""

        async def call(t: Tenant) -> ProxyResponse:
            verb = (method or "").upper()
            if verb not in PROXY_METHODS:
                raise InvalidArgument(f"Unsupported proxy method: {method!r}", {"method": method})
            parts = urlsplit(target_url) if isinstance(target_url, str) else None
            if parts is None or parts.scheme not in ("http", "https") or not parts.netloc:
                raise InvalidArgument("target_url must be an absolute http(s) URL")

            account = await self.accounts.get_account(t, account_id)
            with platform_errors():
                payload = await self.in_flight.run(
                    self.platform.proxy_request(
                        t.external_user_id, account.account_id, target_url, verb, headers, body
                    )
                )
            with unexpected_payload("proxy response"):
                return ProxyResponse.model_validate(payload)

        return await self._run("proxy_request", tenant, call)
