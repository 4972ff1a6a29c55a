"""Connector gateway: tenant-scoped accounts, connect tokens and components."""

from .errors import (
    ErrorKind,
    GatewayError,
    GatewayResult,
    InternalError,
    InvalidArgument,
    MissingDependency,
    NotFound,
    PartialFailure,
    UpstreamError,
)
from .facade import ConnectorGateway
from .identity import SessionTenantResolver, require_tenant
from .models import (
    CascadeResult,
    Component,
    ComponentSummary,
    ComponentType,
    ConfigureRequest,
    ConfigureResult,
    ConnectToken,
    ExternalAccount,
    ExternalApp,
    FailedDeletion,
    Page,
    PropDefinition,
    PropKind,
    PropOption,
    ProxyResponse,
    Tenant,
)
from .props import resolution_order

__all__ = [
    "ConnectorGateway",
    # Errors
    "ErrorKind",
    "GatewayError",
    "GatewayResult",
    "InternalError",
    "InvalidArgument",
    "MissingDependency",
    "NotFound",
    "PartialFailure",
    "UpstreamError",
    # Identity
    "SessionTenantResolver",
    "require_tenant",
    # Models
    "CascadeResult",
    "Component",
    "ComponentSummary",
    "ComponentType",
    "ConfigureRequest",
    "ConfigureResult",
    "ConnectToken",
    "ExternalAccount",
    "ExternalApp",
    "FailedDeletion",
    "Page",
    "PropDefinition",
    "PropKind",
    "PropOption",
    "ProxyResponse",
    "Tenant",
    "resolution_order",
]
