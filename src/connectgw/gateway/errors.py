"""Gateway error taxonomy and the result envelope.

Every failure that leaves the gateway is one of a small set of kinds.
Transport errors from the connector layer are translated here so host
layers never see httpx or connector exceptions.
"""

from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

from connectgw.connectors.base import (
    ConnectorError,
    RateLimitError,
    ResourceNotFoundError,
)


class ErrorKind(str, Enum):
    """Stable error kind strings exposed to callers."""

    INVALID_ARGUMENT = "InvalidArgument"
    NOT_FOUND = "NotFound"
    MISSING_DEPENDENCY = "MissingDependency"
    UPSTREAM_ERROR = "UpstreamError"
    PARTIAL_FAILURE = "PartialFailure"
    INTERNAL = "Internal"


class GatewayError(Exception):
    """Base exception for gateway errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize as ``{kind, message, details}``."""
        return {"kind": self.kind.value, "message": self.message, "details": self.details}


class InvalidArgument(GatewayError):
    """Caller-supplied input is malformed or not permitted."""

    kind = ErrorKind.INVALID_ARGUMENT


class NotFound(GatewayError):
    """Target entity does not exist or is not visible to the tenant."""

    kind = ErrorKind.NOT_FOUND


class MissingDependency(GatewayError):
    """A prop cannot be configured until the props it depends on have values."""

    kind = ErrorKind.MISSING_DEPENDENCY

    def __init__(self, prop_name: str, missing: List[str]):
        self.prop_name = prop_name
        self.missing = list(missing)
        super().__init__(
            f"Cannot configure '{prop_name}': missing values for {', '.join(self.missing)}",
            {"prop_name": prop_name, "missing": self.missing},
        )


class UpstreamError(GatewayError):
    """The platform failed, timed out, or returned something unexpected."""

    kind = ErrorKind.UPSTREAM_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        if retry_after is not None:
            details["retry_after"] = retry_after
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message, details)


class PartialFailure(GatewayError):
    """A batch operation completed with some failed items."""

    kind = ErrorKind.PARTIAL_FAILURE

    def __init__(self, message: str, result: Any = None):
        self.result = result
        super().__init__(message)


class InternalError(GatewayError):
    """Unexpected failure inside the gateway."""

    kind = ErrorKind.INTERNAL


def translate_connector_error(
    error: ConnectorError,
    resource: Optional[str] = None,
    resource_id: Optional[str] = None,
) -> GatewayError:
    """Map a transport error onto the gateway taxonomy.

    Args:
        error: Error raised by the connector layer
        resource: Entity type when the call targeted one entity ("account", ...)
        resource_id: Entity id when the call targeted one entity

    Returns:
        NotFound for a 404 on a specific entity, UpstreamError otherwise
    """
    if isinstance(error, ResourceNotFoundError) and resource:
        label = f"{resource} '{resource_id}'" if resource_id else resource
        return NotFound(
            f"{label[0].upper()}{label[1:]} not found",
            {"resource": resource, "resource_id": resource_id},
        )

    retry_after = error.retry_after if isinstance(error, RateLimitError) else None
    details = {"error_type": type(error).__name__}
    if error.connector_name:
        details["connector"] = error.connector_name
    return UpstreamError(
        str(error),
        details,
        status_code=error.status_code,
        retry_after=retry_after,
    )


@contextmanager
def platform_errors(resource: Optional[str] = None, resource_id: Optional[str] = None) -> Iterator[None]:
    """Translate ConnectorErrors raised inside the block."""
    try:
        yield
    except ConnectorError as e:
        raise translate_connector_error(e, resource, resource_id) from e


@contextmanager
def unexpected_payload(what: str) -> Iterator[None]:
    """Turn payload parsing failures inside the block into UpstreamError."""
    try:
        yield
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamError(
            f"Platform returned an unexpected {what} payload: {e}",
            {"payload": what},
        ) from e


class ErrorInfo(BaseModel):
    """Serialized error inside a GatewayResult."""

    kind: ErrorKind
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GatewayResult(BaseModel):
    """Envelope returned by every facade operation."""

    ok: bool
    data: Any = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def success(cls, data: Any = None) -> "GatewayResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: GatewayError, data: Any = None) -> "GatewayResult":
        return cls(
            ok=False,
            data=data,
            error=ErrorInfo(kind=error.kind, message=error.message, details=error.details),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict of the envelope."""
        return self.model_dump(mode="json")
