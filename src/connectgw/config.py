"""Configuration and environment handling for the connector gateway."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

VALID_ENVIRONMENTS = ("development", "production")


class PlatformConfig:
    """Credentials and endpoint for the external automation platform."""

    def __init__(self):
        self.project_id: str = os.getenv("PIPEDREAM_PROJECT_ID", "")
        self.client_id: str = os.getenv("PIPEDREAM_CLIENT_ID", "")
        self.client_secret: str = os.getenv("PIPEDREAM_CLIENT_SECRET", "")
        self.environment: str = os.getenv("PIPEDREAM_ENVIRONMENT", "development").lower()
        self.base_url: str = os.getenv(
            "CONNECTGW_API_BASE_URL", "https://api.pipedream.com/v1"
        ).rstrip("/")

        if self.environment not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"PIPEDREAM_ENVIRONMENT must be one of {VALID_ENVIRONMENTS}, "
                f"got {self.environment!r}"
            )

    def is_configured(self) -> bool:
        """Check that project and client credentials are all set."""
        return bool(self.project_id and self.client_id and self.client_secret)


class Config:
    """Central configuration object."""

    def __init__(self, env_file: Optional[Path] = None):
        # Load .env file if it exists
        self.project_root = Path(__file__).parent.parent.parent
        env_path = env_file or self.project_root / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        # Platform connector selection ("pipedream" or "dummy")
        self.platform_name: str = os.getenv("CONNECTGW_PLATFORM", "pipedream").lower()
        self.platform = PlatformConfig()

        # Connect tokens
        self.default_allowed_origin: str = os.getenv(
            "CONNECTGW_DEFAULT_ORIGIN", "http://localhost:3000"
        )

        # Outbound calls
        self.request_timeout_s: float = float(os.getenv("CONNECTGW_REQUEST_TIMEOUT_S", "30"))
        self.cascade_concurrency: int = int(os.getenv("CONNECTGW_CASCADE_CONCURRENCY", "5"))
        self.page_size: int = int(os.getenv("CONNECTGW_PAGE_SIZE", "100"))

        if self.cascade_concurrency < 1:
            raise ValueError("CONNECTGW_CASCADE_CONCURRENCY must be at least 1")
        if self.request_timeout_s <= 0:
            raise ValueError("CONNECTGW_REQUEST_TIMEOUT_S must be positive")

        # Logging
        self.log_level: str = os.getenv("CONNECTGW_LOG_LEVEL", "INFO").upper()


# Global config instance
config = Config()
