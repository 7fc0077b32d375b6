"""Baserow connector - admin credential lifecycle and REST client.

Usage:
    settings = BaserowSettings.from_env()
    token_manager = TokenLifecycleManager(settings)
    async with BaserowApiClient(token_manager, settings) as client:
        workspace = await client.create_workspace("Acme")
"""

from connectors.baserow.auth import (
    AuthError,
    AuthState,
    Credential,
    TokenLifecycleManager,
)
from connectors.baserow.client import (
    BaserowApiClient,
    BaserowApiError,
    BaserowAuthenticationError,
    BaserowNotFoundError,
    BaserowRateLimitError,
    BaserowValidationError,
)
from connectors.baserow.endpoints import API_VERSIONS, BaserowEndpoints, resolve_endpoints

__all__ = [
    # Auth
    "AuthError",
    "AuthState",
    "Credential",
    "TokenLifecycleManager",

    # Client
    "BaserowApiClient",
    "BaserowApiError",
    "BaserowAuthenticationError",
    "BaserowNotFoundError",
    "BaserowRateLimitError",
    "BaserowValidationError",

    # Endpoints
    "API_VERSIONS",
    "BaserowEndpoints",
    "resolve_endpoints",
]
