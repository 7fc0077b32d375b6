"""Runtime configuration for the provisioning core.

Settings are read from the environment (a ``.env`` file at the repo root is
loaded first if present). Nothing here talks to the network; validation
failures raise ConfigurationError before any remote call is attempted.

Environment variables:
    BASEROW_API_URL: Base URL of the Baserow server
    BASEROW_ADMIN_EMAIL: Admin identity used for schema provisioning
    BASEROW_ADMIN_PASSWORD: Admin password
    BASEROW_WORKSPACE_ID: Existing workspace to create tenant databases in
        (optional; a workspace per tenant is created when unset)
    BASEROW_API_VERSION: Declared backend API version (default "v1")
    BASEROW_TOKEN_REFRESH_BUFFER_SECONDS: Credential refresh buffer (default 60)
    BASEROW_TIMEOUT_SECONDS: Per-request timeout (default 30)
    TENANT_DB_PATH: SQLite file for tenant configuration and job records
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "tenant_provisioning.db"


class ConfigurationError(Exception):
    """Required configuration is missing or invalid.

    Fatal: raised before any remote call is attempted.
    """

    def __init__(self, message: str, missing: Optional[Tuple[str, ...]] = None):
        super().__init__(message)
        self.missing = missing or ()


@dataclass
class RetryConfig:
    """Configuration for HTTP retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class BaserowSettings:
    """Connection and admin identity settings for the Baserow backend.

    Attributes:
        api_url: Base URL of the Baserow server (no trailing slash)
        admin_email: Admin identity for privileged (JWT) calls
        admin_password: Admin password
        workspace_id: Workspace to create tenant databases in; None means
            one workspace is created per tenant
        api_version: Declared REST API version, selects the endpoint table
        refresh_buffer_seconds: Cached credentials expiring within this many
            seconds are refreshed before use
        timeout_seconds: Per-request timeout
        retry_config: Retry policy for transient HTTP failures
    """
    api_url: str = ""
    admin_email: str = ""
    admin_password: str = ""
    workspace_id: Optional[int] = None
    api_version: str = "v1"
    refresh_buffer_seconds: int = 60
    timeout_seconds: int = 30
    retry_config: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_env(cls) -> "BaserowSettings":
        """Build settings from environment variables (unvalidated)."""
        workspace = os.getenv("BASEROW_WORKSPACE_ID")
        try:
            workspace_id = int(workspace) if workspace else None
        except ValueError:
            raise ConfigurationError(
                f"BASEROW_WORKSPACE_ID must be an integer, got {workspace!r}",
                missing=("BASEROW_WORKSPACE_ID",),
            )

        return cls(
            api_url=os.getenv("BASEROW_API_URL", "").rstrip("/"),
            admin_email=os.getenv("BASEROW_ADMIN_EMAIL", ""),
            admin_password=os.getenv("BASEROW_ADMIN_PASSWORD", ""),
            workspace_id=workspace_id,
            api_version=os.getenv("BASEROW_API_VERSION", "v1"),
            refresh_buffer_seconds=int(os.getenv("BASEROW_TOKEN_REFRESH_BUFFER_SECONDS", "60")),
            timeout_seconds=int(os.getenv("BASEROW_TIMEOUT_SECONDS", "30")),
        )

    @property
    def refresh_buffer_ms(self) -> int:
        return self.refresh_buffer_seconds * 1000

    def validate(self) -> None:
        """Raise ConfigurationError if the service URL or admin identity is absent."""
        missing = []
        if not self.api_url:
            missing.append("BASEROW_API_URL")
        if not self.admin_email:
            missing.append("BASEROW_ADMIN_EMAIL")
        if not self.admin_password:
            missing.append("BASEROW_ADMIN_PASSWORD")

        if missing:
            raise ConfigurationError(
                f"Baserow admin configuration incomplete, missing: {', '.join(missing)}",
                missing=tuple(missing),
            )

        if self.refresh_buffer_seconds <= 0:
            raise ConfigurationError("Token refresh buffer must be positive")


def get_db_path() -> Path:
    """Location of the tenant configuration database."""
    return Path(os.getenv("TENANT_DB_PATH", str(DEFAULT_DB_PATH)))
