"""Version metadata for the connector gateway."""

from typing import Dict

# Package version
PACKAGE_VERSION = "0.1.0"

# Platform REST API revision the client is written against
PLATFORM_API_VERSION = "v1"


def get_user_agent() -> str:
    """User-Agent sent on every platform request."""
    return f"connectgw/{PACKAGE_VERSION}"


def version_info() -> Dict[str, str]:
    """Version details for CLI output and diagnostics."""
    return {
        "package_version": PACKAGE_VERSION,
        "platform_api_version": PLATFORM_API_VERSION,
    }
