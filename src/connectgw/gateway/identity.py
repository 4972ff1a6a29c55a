"""Tenant identity resolution.

The host application owns authentication; the gateway only needs the
opaque ``external_user_id``. Every gateway operation takes the tenant as
an explicit argument, these helpers turn what the host has into one.
"""

from collections.abc import Mapping
from typing import Any, Optional, Union

from connectgw.gateway.errors import InvalidArgument
from connectgw.gateway.models import Tenant

TenantLike = Union[Tenant, str]


def require_tenant(value: Optional[TenantLike]) -> Tenant:
    """Coerce a Tenant or raw id into a Tenant.

    Raises:
        InvalidArgument: If no identity was supplied
    """
    if isinstance(value, Tenant):
        return value
    if value is None:
        raise InvalidArgument("Tenant identity (external_user_id) is required")
    return Tenant(external_user_id=value)


class SessionTenantResolver:
    """Resolve the tenant from a host session mapping.

    The session is whatever the host's auth layer produced for the
    request (decoded JWT claims, a framework session dict, ...).
    """

    def __init__(self, key: str = "user_id"):
        self.key = key

    def resolve(self, session: Optional[Mapping]) -> Tenant:
        """Return the session's tenant; a missing session or key is InvalidArgument."""
        if not session:
            raise InvalidArgument("No authenticated session")
        value: Any = session.get(self.key)
        if value is None:
            raise InvalidArgument(f"Session has no '{self.key}'")
        return require_tenant(str(value))
