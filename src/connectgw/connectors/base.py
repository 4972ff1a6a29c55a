"""Core connector abstractions for the automation platform.

Defines the transport foundation the gateway sits on:
- OAuthTokenAuth: the project's client-credentials bearer token
- RequestPolicy: timeouts, retries, headers
- ConnectorError hierarchy: typed transport failures
- PlatformConnector Protocol: the operations the gateway needs
- ConnectorRegistry: name -> connector class lookup
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Dict,
    FrozenSet,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)

from connectgw.versioning import get_user_agent

# =============================================================================
# Platform Authentication
# =============================================================================


@dataclass
class OAuthTokenAuth:
    """Bearer token for the platform API.

    Starts empty; the platform client fills it from the client-credentials
    grant and replaces it whenever ``is_expired()`` reports true.
    """

    access_token: str = ""
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None

    # Treat the token as expired this long before the real expiry
    expiry_skew: timedelta = timedelta(seconds=60)

    def is_configured(self) -> bool:
        return bool(self.access_token)

    def is_expired(self) -> bool:
        """Missing, expired, or inside the skew window."""
        if not self.access_token:
            return True
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) + self.expiry_skew >= self.expires_at

    def get_headers(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"{self.token_type} {self.access_token}"}


# =============================================================================
# Request Policy
# =============================================================================


@dataclass
class RequestPolicy:
    """Policy for HTTP requests: timeouts, retries, headers.

    Only methods in ``retry_methods`` are retried. Side-effecting calls
    (configure, token creation, deletes) are never replayed blindly.
    """

    # Timeouts
    connect_timeout: float = 10.0  # seconds
    read_timeout: float = 30.0  # seconds
    total_timeout: float = 60.0  # seconds

    # Retries
    max_retries: int = 3
    retry_delay: float = 1.0  # base delay in seconds
    retry_backoff: float = 2.0  # exponential backoff multiplier
    retry_on_status: List[int] = field(default_factory=lambda: [429, 500, 502, 503, 504])
    retry_methods: FrozenSet[str] = frozenset({"GET"})

    # Headers
    user_agent: str = field(default_factory=get_user_agent)
    default_headers: Dict[str, str] = field(default_factory=dict)

    def allows_retry(self, method: str) -> bool:
        """Check whether requests with this method may be retried."""
        return method.upper() in self.retry_methods

    @classmethod
    def with_timeout(cls, timeout_s: float, **kwargs: Any) -> "RequestPolicy":
        """Build a policy whose read and pool timeouts follow one setting."""
        return cls(read_timeout=timeout_s, total_timeout=timeout_s, **kwargs)


# =============================================================================
# Connector Error Hierarchy
# =============================================================================


class ConnectorError(Exception):
    """A platform call failed below the gateway.

    ``status_code`` is the HTTP status when the platform answered at all.
    """

    def __init__(
        self,
        message: str,
        connector_name: str = "",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.connector_name = connector_name
        self.details = details or {}
        self.status_code = status_code
        super().__init__(message)


class ConnectionError(ConnectorError):
    """The platform could not be reached."""


class TimeoutError(ConnectorError):
    """No platform response within the policy's timeout."""

    def __init__(
        self,
        message: str = "Platform request timed out",
        connector_name: str = "",
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(message, connector_name, {"timeout_seconds": timeout_seconds})
        self.timeout_seconds = timeout_seconds


class AuthenticationError(ConnectorError):
    """Project credentials missing or rejected (401)."""


class AuthorizationError(ConnectorError):
    """Credentials valid but the project may not do this (403)."""


class RateLimitError(ConnectorError):
    """The platform throttled the project (429)."""

    def __init__(
        self,
        message: str = "Platform rate limit exceeded",
        connector_name: str = "",
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, connector_name, {"retry_after": retry_after}, status_code=429)
        self.retry_after = retry_after


class ValidationError(ConnectorError):
    """The platform rejected the request body or parameters (400/422)."""


class ResourceNotFoundError(ConnectorError):
    """Account, user or component unknown to the platform (404)."""

    def __init__(
        self,
        message: str = "Resource not found",
        connector_name: str = "",
        resource_type: str = "",
        resource_id: str = "",
    ):
        super().__init__(
            message,
            connector_name,
            {"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(ConnectorError):
    """The platform reported a conflicting state (409)."""


class ServiceUnavailableError(ConnectorError):
    """The platform failed on its side (5xx)."""


# =============================================================================
# Platform Connector Protocol
# =============================================================================


@runtime_checkable
class PlatformConnector(Protocol):
    """Operations the gateway needs from the automation platform.

    Implementations return the platform's JSON payloads (dicts) unchanged;
    parsing into domain models happens in the gateway layer.
    """

    @property
    def name(self) -> str:
        """Connector name (e.g., 'pipedream', 'dummy')."""
        ...

    async def create_connect_token(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Mint a connect token for one external user."""
        ...

    async def list_accounts(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return one page of accounts: ``{"data": [...], "page_info": {...}}``."""
        ...

    async def get_account(self, account_id: str, include_credentials: bool = False) -> Dict[str, Any]:
        """Return one account payload."""
        ...

    async def delete_account(self, account_id: str) -> None:
        """Delete one account."""
        ...

    async def delete_external_user(self, external_user_id: str) -> None:
        """Delete an external user and all of its accounts."""
        ...

    async def list_apps(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return one page of apps."""
        ...

    async def list_components(self, component_type: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return one page of component summaries of a type."""
        ...

    async def get_component(self, component_type: str, key: str) -> Dict[str, Any]:
        """Return one component definition."""
        ...

    async def configure_prop(self, component_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve the options of one component prop."""
        ...

    async def proxy_request(
        self,
        external_user_id: str,
        account_id: str,
        target_url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Forward a request to a third-party API with the account's credentials."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


# =============================================================================
# Connector Registry
# =============================================================================


class ConnectorRegistry:
    """Registry of available platform connectors.

    Connector modules register themselves at import time.
    """

    _connectors: Dict[str, type] = {}

    @classmethod
    def register(cls, name: str, connector_class: type) -> None:
        """Register a connector class.

        Args:
            name: Connector name (e.g., "pipedream", "dummy")
            connector_class: Class implementing PlatformConnector
        """
        cls._connectors[name.lower()] = connector_class

    @classmethod
    def unregister(cls, name: str) -> None:
        """Unregister a connector."""
        cls._connectors.pop(name.lower(), None)

    @classmethod
    def get(cls, name: str) -> Optional[type]:
        """Get a connector class by name."""
        return cls._connectors.get(name.lower())

    @classmethod
    def list_connectors(cls) -> List[str]:
        """List all registered connector names."""
        return list(cls._connectors.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        """Check if a connector is registered."""
        return name.lower() in cls._connectors
