"""Connector layer for the external automation platform.

Key components:
- PlatformConnector Protocol: operations the gateway needs from the platform
- OAuthTokenAuth: client-credentials bearer token
- RequestPolicy: timeouts and retries
- AsyncHTTPClient: httpx wrapper with policy enforcement
- PlatformClient: Pipedream Connect REST client
- DummyPlatform: in-memory platform without network calls
"""

import logging
from typing import Any

from .base import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ConnectionError,
    ConnectorError,
    ConnectorRegistry,
    OAuthTokenAuth,
    PlatformConnector,
    RateLimitError,
    RequestPolicy,
    ResourceNotFoundError,
    ServiceUnavailableError,
    TimeoutError,
    ValidationError,
)
from .dummy import DummyPlatform, DummyResponse
from .http_client import AsyncHTTPClient, HTTPResponse
from .platform import PlatformClient

logger = logging.getLogger(__name__)


def create_platform(cfg: Any = None, **kwargs: Any) -> PlatformConnector:
    """Create the configured platform connector.

    Args:
        cfg: Config instance (defaults to the global config)
        **kwargs: Extra constructor arguments (e.g., transport)

    Returns:
        Connector instance

    Raises:
        ValueError: If the configured platform name is not registered
    """
    if cfg is None:
        from connectgw.config import config as cfg

    connector_class = ConnectorRegistry.get(cfg.platform_name)
    if connector_class is None:
        available = ConnectorRegistry.list_connectors()
        raise ValueError(f"Unknown platform: '{cfg.platform_name}'. Available: {available}")

    logger.debug(f"Creating platform connector '{cfg.platform_name}'")
    if hasattr(connector_class, "from_config"):
        return connector_class.from_config(cfg, **kwargs)
    return connector_class(**kwargs)


__all__ = [
    # Protocol and registry
    "PlatformConnector",
    "ConnectorRegistry",
    "create_platform",
    # Auth
    "OAuthTokenAuth",
    # Policy
    "RequestPolicy",
    # Errors
    "ConnectorError",
    "ConnectionError",
    "TimeoutError",
    "AuthenticationError",
    "AuthorizationError",
    "RateLimitError",
    "ValidationError",
    "ResourceNotFoundError",
    "ConflictError",
    "ServiceUnavailableError",
    # Implementations
    "AsyncHTTPClient",
    "HTTPResponse",
    "PlatformClient",
    "DummyPlatform",
    "DummyResponse",
]
