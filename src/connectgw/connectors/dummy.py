"""In-memory platform for tests and offline development.

DummyPlatform implements the PlatformConnector protocol without any
network calls. It keeps accounts, apps and component definitions in
dictionaries and returns payloads in the same shape as the REST API, so
the gateway's parsing code runs unchanged against it.

Scenarios are scripted with canned responses:
- ``set_response(operation, DummyResponse(...))`` overrides one operation
- ``set_response(operation, DummyResponse(...), key=...)`` overrides one
  operation for one target (an account id, a component key, ...)

Every call is recorded for assertions (``was_called``, ``call_count``).
"""

import asyncio
import copy
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .base import ConnectorError, ConnectorRegistry, ResourceNotFoundError


@dataclass
class DummyResponse:
    """Canned response for DummyPlatform.

    ``data=None`` with no error only applies the delay and then falls
    through to the in-memory behaviour.
    """

    data: Any = None
    error: Optional[ConnectorError] = None
    delay_seconds: float = 0.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def app_payload(
    slug: str,
    app_id: Optional[str] = None,
    name: Optional[str] = None,
    auth_type: str = "oauth",
    categories: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Build an app payload in the platform's shape."""
    return {
        "id": app_id or f"app_{slug}",
        "name_slug": slug,
        "name": name or slug.replace("_", " ").title(),
        "auth_type": auth_type,
        "description": f"{name or slug} integration",
        "categories": categories or [],
        "img_src": f"https://assets.pipedream.net/s.v0/{app_id or 'app_' + slug}/logo/orig",
    }


class DummyPlatform:
    """In-memory stand-in for the automation platform."""

    _name = "dummy"

    def __init__(self, **_: Any):
        """Initialize an empty platform. Keyword arguments are accepted and ignored."""
        self._accounts: Dict[str, Dict[str, Any]] = {}
        self._apps: Dict[str, Dict[str, Any]] = {}
        self._components: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._configure_responses: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._users: set = set()
        self._responses: Dict[Tuple[str, Optional[str]], DummyResponse] = {}
        self._call_log: List[Dict[str, Any]] = []
        self._counter = 0
        self.closed = False

    @property
    def name(self) -> str:
        """Connector name."""
        return self._name

    # =========================================================================
    # Seeding
    # =========================================================================

    def add_app(self, slug: str, **kwargs: Any) -> Dict[str, Any]:
        """Add an app to the catalog and return its payload."""
        payload = app_payload(slug, **kwargs)
        self._apps[slug] = payload
        return payload

    def add_account(
        self,
        external_user_id: str,
        app_slug: str,
        account_id: Optional[str] = None,
        name: Optional[str] = None,
        healthy: bool = True,
        dead: bool = False,
        credentials: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Add a connected account and return its payload."""
        app = self._apps.get(app_slug) or self.add_app(app_slug)
        if account_id is None:
            self._counter += 1
            account_id = f"apn_{self._counter:06d}"
        now = _now_iso()
        payload = {
            "id": account_id,
            "name": name,
            "external_id": external_user_id,
            "healthy": healthy,
            "dead": dead,
            "app": copy.deepcopy(app),
            "created_at": now,
            "updated_at": now,
            "credentials": credentials,
        }
        self._accounts[account_id] = payload
        self._users.add(external_user_id)
        return payload

    def add_component(
        self,
        component_type: str,
        key: str,
        props: Iterable[Dict[str, Any]] = (),
        name: Optional[str] = None,
        version: str = "0.0.1",
        description: str = "",
    ) -> Dict[str, Any]:
        """Add a component definition with the given configurable props."""
        payload = {
            "key": key,
            "name": name or key,
            "version": version,
            "description": description,
            "configurable_props": [dict(p) for p in props],
        }
        self._components[(component_type, key)] = payload
        return payload

    def set_configure_response(self, key: str, prop_name: str, payload: Dict[str, Any]) -> None:
        """Set the payload configure_prop returns for one component prop."""
        self._configure_responses[(key, prop_name)] = payload

    def set_response(self, operation: str, response: DummyResponse, key: Optional[str] = None) -> None:
        """Set canned response for an operation, optionally for one target key.

        Args:
            operation: Operation name (e.g., "get_account", "delete_account")
            response: DummyResponse to return/raise
            key: Target the override applies to (account id, component key)
        """
        self._responses[(operation, key)] = response

    def clear_responses(self) -> None:
        """Clear all canned responses."""
        self._responses.clear()

    def account_ids(self) -> List[str]:
        """Ids of accounts currently stored."""
        return list(self._accounts)

    # =========================================================================
    # Call log
    # =========================================================================

    def _log_call(self, operation: str, args: Dict[str, Any]) -> None:
        """Log a method call for later assertions."""
        self._call_log.append({"operation": operation, "args": copy.deepcopy(args)})

    def get_call_log(self) -> List[Dict[str, Any]]:
        """Get log of all method calls."""
        return self._call_log.copy()

    def clear_call_log(self) -> None:
        """Clear the call log."""
        self._call_log.clear()

    def was_called(self, operation: str) -> bool:
        """Check if an operation was called."""
        return any(call["operation"] == operation for call in self._call_log)

    def call_count(self, operation: str) -> int:
        """Count how many times an operation was called."""
        return sum(1 for call in self._call_log if call["operation"] == operation)

    async def _canned(self, operation: str, key: Optional[str] = None) -> Any:
        """Apply a canned response: sleep, raise, or return its data."""
        response = self._responses.get((operation, key)) or self._responses.get((operation, None))
        if response is None:
            return None

        if response.delay_seconds > 0:
            await asyncio.sleep(response.delay_seconds)

        if response.error is not None:
            raise response.error

        return copy.deepcopy(response.data)

    # =========================================================================
    # Pagination
    # =========================================================================

    @staticmethod
    def _paginate(items: List[Dict[str, Any]], params: Dict[str, Any], id_key: str) -> Dict[str, Any]:
        """Slice items after the ``after`` cursor, up to ``limit``."""
        total = len(items)
        start = 0
        after = params.get("after")
        if after:
            ids = [item[id_key] for item in items]
            if after in ids:
                start = ids.index(after) + 1
        limit = int(params.get("limit") or total or 1)
        page = items[start:start + limit]
        return {
            "data": page,
            "page_info": {
                "total_count": total,
                "count": len(page),
                "start_cursor": page[0][id_key] if page else None,
                "end_cursor": page[-1][id_key] if page else None,
            },
        }

    # =========================================================================
    # PlatformConnector operations
    # =========================================================================

    async def create_connect_token(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Mint a fake connect token valid for four hours."""
        self._log_call("create_connect_token", {"payload": payload})
        canned = await self._canned("create_connect_token")
        if canned is not None:
            return canned

        self._users.add(payload["external_user_id"])
        token = f"ctok_{secrets.token_hex(16)}"
        expires_at = datetime.now(timezone.utc) + timedelta(hours=4)
        return {
            "token": token,
            "expires_at": expires_at.isoformat(),
            "connect_link_url": f"https://pipedream.com/_static/connect.html?token={token}&connectLink=true",
        }

    async def list_accounts(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Filter stored accounts and return one page."""
        self._log_call("list_accounts", {"params": params})
        canned = await self._canned("list_accounts")
        if canned is not None:
            return canned

        app = params.get("app")
        user = params.get("external_user_id")
        include_credentials = bool(params.get("include_credentials"))

        items = []
        for account in self._accounts.values():
            if user and account["external_id"] != user:
                continue
            if app and app not in (account["app"]["id"], account["app"]["name_slug"]):
                continue
            item = copy.deepcopy(account)
            if not include_credentials:
                item.pop("credentials", None)
            items.append(item)
        return self._paginate(items, params, "id")

    async def get_account(self, account_id: str, include_credentials: bool = False) -> Dict[str, Any]:
        """Return one stored account."""
        self._log_call(
            "get_account", {"account_id": account_id, "include_credentials": include_credentials}
        )
        canned = await self._canned("get_account", account_id)
        if canned is not None:
            return canned

        account = self._accounts.get(account_id)
        if account is None:
            raise ResourceNotFoundError(
                f"Account {account_id} not found",
                connector_name=self._name,
                resource_type="account",
                resource_id=account_id,
            )
        item = copy.deepcopy(account)
        if not include_credentials:
            item.pop("credentials", None)
        return {"data": item}

    async def delete_account(self, account_id: str) -> None:
        """Remove one stored account."""
        self._log_call("delete_account", {"account_id": account_id})
        await self._canned("delete_account", account_id)

        if self._accounts.pop(account_id, None) is None:
            raise ResourceNotFoundError(
                f"Account {account_id} not found",
                connector_name=self._name,
                resource_type="account",
                resource_id=account_id,
            )

    async def delete_external_user(self, external_user_id: str) -> None:
        """Remove a user and every account it owns."""
        self._log_call("delete_external_user", {"external_user_id": external_user_id})
        await self._canned("delete_external_user", external_user_id)

        if external_user_id not in self._users:
            raise ResourceNotFoundError(
                f"External user {external_user_id} not found",
                connector_name=self._name,
                resource_type="external_user",
                resource_id=external_user_id,
            )
        self._users.discard(external_user_id)
        for account_id in [
            a["id"] for a in self._accounts.values() if a["external_id"] == external_user_id
        ]:
            del self._accounts[account_id]

    async def list_apps(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Search the app catalog."""
        self._log_call("list_apps", {"params": params})
        canned = await self._canned("list_apps")
        if canned is not None:
            return canned

        q = (params.get("q") or "").lower()
        items = [
            copy.deepcopy(app)
            for app in self._apps.values()
            if not q or q in app["name_slug"].lower() or q in app["name"].lower()
        ]
        return self._paginate(items, params, "id")

    async def list_components(self, component_type: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Search component definitions of one type."""
        self._log_call("list_components", {"component_type": component_type, "params": params})
        canned = await self._canned("list_components")
        if canned is not None:
            return canned

        app = params.get("app")
        q = (params.get("q") or "").lower()
        items = []
        for (ctype, key), component in self._components.items():
            if ctype != component_type:
                continue
            if app and not key.startswith(f"{app}-"):
                continue
            if q and q not in key.lower() and q not in component["name"].lower():
                continue
            items.append({
                "key": component["key"],
                "name": component["name"],
                "version": component["version"],
                "description": component["description"],
            })
        return self._paginate(items, params, "key")

    async def get_component(self, component_type: str, key: str) -> Dict[str, Any]:
        """Return one component definition."""
        self._log_call("get_component", {"component_type": component_type, "key": key})
        canned = await self._canned("get_component", key)
        if canned is not None:
            return canned

        component = self._components.get((component_type, key))
        if component is None:
            raise ResourceNotFoundError(
                f"Component {key} not found",
                connector_name=self._name,
                resource_type=component_type,
                resource_id=key,
            )
        return {"data": copy.deepcopy(component)}

    async def configure_prop(self, component_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Return the configured options for one prop."""
        self._log_call("configure_prop", {"component_type": component_type, "payload": payload})
        canned = await self._canned("configure_prop", payload.get("id"))
        if canned is not None:
            return canned

        response = self._configure_responses.get((payload["id"], payload["prop_name"]))
        if response is None:
            return {"options": [], "string_options": None, "errors": [], "observations": []}
        return copy.deepcopy(response)

    async def proxy_request(
        self,
        external_user_id: str,
        account_id: str,
        target_url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Echo the proxied request back."""
        self._log_call(
            "proxy_request",
            {
                "external_user_id": external_user_id,
                "account_id": account_id,
                "target_url": target_url,
                "method": method,
                "headers": headers,
                "body": body,
            },
        )
        canned = await self._canned("proxy_request", account_id)
        if canned is not None:
            return canned

        return {
            "status": 200,
            "headers": {"content-type": "application/json"},
            "body": {"url": target_url, "method": method, "body": body},
        }

    async def aclose(self) -> None:
        """Mark the platform closed."""
        self.closed = True


ConnectorRegistry.register("dummy", DummyPlatform)
