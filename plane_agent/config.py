"""
Configuration module for Plane Agent.

Handles all configuration through environment variables with secure defaults.
Never stores API keys directly in code.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


DEFAULT_API_PREFIXES = "/api/v1,/api,/api/public,"


def _parse_prefixes(raw: str) -> tuple[str, ...]:
    """
    Parse a comma-separated list of API path prefixes.

    Empty entries are kept (they mean "no prefix"), order is preserved and
    every non-empty prefix is normalized to a leading slash without a
    trailing one.
    """
    prefixes = []
    for part in raw.split(","):
        part = part.strip().rstrip("/")
        if part and not part.startswith("/"):
            part = f"/{part}"
        if part not in prefixes:
            prefixes.append(part)
    return tuple(prefixes)


@dataclass(frozen=True)
class PlaneConfig:
    """Configuration for the Plane project-tracking API."""

    api_url: str = field(
        default_factory=lambda: os.getenv(
            "PLANE_URL", "https://plane-production.up.railway.app"
        ).rstrip("/")
    )
    api_key: str = field(
        default_factory=lambda: os.getenv("PLANE_API_KEY", "")
    )
    workspace: str = field(
        default_factory=lambda: os.getenv("PLANE_WORKSPACE", "indigo")
    )
    project_id: str = field(
        default_factory=lambda: os.getenv("PLANE_PROJECT_ID", "")
    )

    # Candidate path prefixes, probed in order on every call
    api_prefixes: tuple[str, ...] = field(
        default_factory=lambda: _parse_prefixes(
            os.getenv("PLANE_API_PREFIXES", DEFAULT_API_PREFIXES)
        )
    )

    # Request timeout in seconds
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30"))
    )

    # Attempts per candidate prefix on transport errors
    max_retries: int = field(
        default_factory=lambda: int(os.getenv("PLANE_MAX_RETRIES", "2"))
    )


@dataclass(frozen=True)
class RailwayConfig:
    """Configuration for the Railway GraphQL API."""

    api_url: str = field(
        default_factory=lambda: os.getenv(
            "RAILWAY_API_URL", "https://backboard.railway.com/graphql/v2"
        )
    )
    token: str = field(
        default_factory=lambda: os.getenv("RAILWAY_TOKEN")
        or os.getenv("RAILWAY_API_KEY", "")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.getenv("RAILWAY_MAX_RETRIES", "3"))
    )


@dataclass(frozen=True)
class WebhookConfig:
    """Configuration for the inbound webhook listener."""

    host: str = field(
        default_factory=lambda: os.getenv("WEBHOOK_HOST", "0.0.0.0")
    )
    port: int = field(
        default_factory=lambda: int(os.getenv("PORT", "3000"))
    )

    # Public base URL Plane should deliver events to
    public_url: str = field(
        default_factory=lambda: os.getenv(
            "WEBHOOK_URL", "http://webhooks.local:3000"
        ).rstrip("/")
    )
    service_name: str = field(
        default_factory=lambda: os.getenv(
            "WEBHOOK_SERVICE_NAME", "plane-webhook-listener"
        )
    )

    # Post analysis comments back to Plane for issue.created events
    post_comments: bool = field(
        default_factory=lambda: os.getenv(
            "WEBHOOK_POST_COMMENTS", "true"
        ).lower() == "true"
    )

    @property
    def endpoint_url(self) -> str:
        """Full URL of the Plane webhook endpoint."""
        return f"{self.public_url}/plane-webhook"


@dataclass(frozen=True)
class BatchConfig:
    """Configuration for bulk ticket creation."""

    # Seconds to wait between remote-creation attempts
    rate_limit_delay: float = field(
        default_factory=lambda: float(os.getenv("RATE_LIMIT_DELAY", "1.0"))
    )
    report_path: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["REPORT_PATH"]) if os.getenv("REPORT_PATH") else None
        )
    )


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration aggregating all config sections."""

    plane: PlaneConfig = field(default_factory=PlaneConfig)
    railway: RailwayConfig = field(default_factory=RailwayConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    # Logging level
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )

    def validate(self, require_railway: bool = False) -> list[str]:
        """
        Validate configuration and return list of errors.

        Args:
            require_railway: Also require Railway credentials.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if not self.plane.api_url:
            errors.append("PLANE_URL is required")
        if not self.plane.api_key:
            errors.append("PLANE_API_KEY is required")
        if not self.plane.api_prefixes:
            errors.append("PLANE_API_PREFIXES must list at least one prefix")
        if self.batch.rate_limit_delay < 0:
            errors.append("RATE_LIMIT_DELAY must not be negative")

        if require_railway and not self.railway.token:
            errors.append("RAILWAY_TOKEN is required for Railway commands")

        return errors


def get_config() -> AppConfig:
    """
    Get application configuration.

    Returns:
        AppConfig instance with all settings loaded from environment.
    """
    return AppConfig()
