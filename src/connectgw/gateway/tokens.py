"""Connection Token Issuer.

Mints the short-lived, origin-restricted token a tenant's browser uses to
run the platform's account-linking flow. Nothing is stored; the token is
handed back and forgotten.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from connectgw.config import Config
from connectgw.connectors.base import PlatformConnector
from connectgw.gateway.dispatch import InFlight
from connectgw.gateway.errors import InvalidArgument, platform_errors, unexpected_payload
from connectgw.gateway.models import ConnectToken, Tenant

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")


def normalize_origin(origin: Any) -> str:
    """Normalize an origin to ``scheme://host[:port]``.

    Raises:
        InvalidArgument: Not an http(s) origin, or it carries a path, query or fragment
    """
    if not isinstance(origin, str) or not origin.strip():
        raise InvalidArgument("Allowed origin must be a non-empty string", {"origin": origin})

    parts = urlsplit(origin.strip())
    try:
        port = parts.port
    except ValueError as e:
        raise InvalidArgument(f"Invalid port in origin {origin!r}", {"origin": origin}) from e

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES or not parts.hostname:
        raise InvalidArgument(
            f"Allowed origin must be an http(s) URL with a host: {origin!r}",
            {"origin": origin},
        )
    if parts.path not in ("", "/") or parts.query or parts.fragment or parts.username:
        raise InvalidArgument(
            f"Allowed origin must not carry a path, query, fragment or credentials: {origin!r}",
            {"origin": origin},
        )

    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    return f"{scheme}://{host}:{port}" if port is not None else f"{scheme}://{host}"


def normalize_origins(origins: Sequence[Any]) -> Tuple[str, ...]:
    """Normalize and de-duplicate origins, keeping first-seen order."""
    if isinstance(origins, str):
        raise InvalidArgument("allowed_origins must be a list of origins, not a string")
    result: List[str] = []
    for origin in origins:
        normalized = normalize_origin(origin)
        if normalized not in result:
            result.append(normalized)
    return tuple(result)


def validate_uri(value: Optional[str], field: str) -> Optional[str]:
    """Absolute http(s) URL check for redirect and webhook URIs."""
    if value is None:
        return None
    parts = urlsplit(value.strip()) if isinstance(value, str) else None
    if parts is None or parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.netloc:
        raise InvalidArgument(f"{field} must be an absolute http(s) URL", {"field": field})
    return value.strip()


class TokenIssuer:
    """Issues connect tokens for one tenant at a time."""

    def __init__(
        self,
        platform: PlatformConnector,
        config: Config,
        in_flight: Optional[InFlight] = None,
    ):
        self.platform = platform
        self.config = config
        self.in_flight = in_flight if in_flight is not None else InFlight()

    async def create_connect_token(
        self,
        tenant: Tenant,
        allowed_origins: Optional[Sequence[str]] = None,
        success_redirect_uri: Optional[str] = None,
        error_redirect_uri: Optional[str] = None,
        webhook_uri: Optional[str] = None,
    ) -> ConnectToken:
        """Mint a connect token for the tenant.

        Omitting ``allowed_origins`` uses the configured default origin; an
        explicit empty list is rejected rather than widened.

        Raises:
            InvalidArgument: Empty or malformed origins or URIs
            UpstreamError: Platform failure
        """
        if allowed_origins is None:
            origins = normalize_origins([self.config.default_allowed_origin])
        else:
            origins = normalize_origins(allowed_origins)
            if not origins:
                raise InvalidArgument("allowed_origins must not be empty; omit it to use the default")

        payload: Dict[str, Any] = {
            "external_user_id": tenant.external_user_id,
            "allowed_origins": list(origins),
        }
        for field, value in (
            ("success_redirect_uri", success_redirect_uri),
            ("error_redirect_uri", error_redirect_uri),
            ("webhook_uri", webhook_uri),
        ):
            uri = validate_uri(value, field)
            if uri is not None:
                payload[field] = uri

        with platform_errors():
            response = await self.in_flight.run(self.platform.create_connect_token(payload))

        with unexpected_payload("connect token"):
            token = ConnectToken(
                token=response["token"],
                expires_at=response["expires_at"],
                external_user_id=tenant.external_user_id,
                allowed_origins=origins,
                connect_link_url=response.get("connect_link_url"),
            )

        logger.info(f"Issued connect token for {len(origins)} origin(s), expires {token.expires_at.isoformat()}")
        return token
