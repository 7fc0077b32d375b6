"""Baserow HTTP Client.

Low-level HTTP client for the privileged (JWT) Baserow calls used by schema
provisioning. Handles authentication headers, retries, and error mapping.
Every request fetches a credential from the TokenLifecycleManager first, so
a long provisioning run never sends an expired token.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional
import asyncio
import json

import aiohttp

from connectors.baserow.auth import TokenLifecycleManager
from connectors.baserow.endpoints import BaserowEndpoints, resolve_endpoints
from core.config import BaserowSettings
from core.observability.logging import get_logger

logger = get_logger(__name__)


def retry_after_seconds(value: Optional[str], fallback: float) -> float:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date).

    Missing or unparseable values give ``fallback``; dates in the past give 0.
    """
    if not value:
        return fallback
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable Retry-After header: {value!r}")
        return fallback
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class BaserowApiError(Exception):
    """Base exception for Baserow API errors."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class BaserowAuthenticationError(BaserowApiError):
    """Authentication failed (401/403)."""
    pass


class BaserowNotFoundError(BaserowApiError):
    """Resource not found (404)."""
    pass


class BaserowRateLimitError(BaserowApiError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str, retry_after: float = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


class BaserowValidationError(BaserowApiError):
    """Validation error from Baserow (400)."""
    pass


class BaserowApiClient:
    """HTTP client for Baserow admin operations.

    Provides:
    - JWT-authenticated API calls
    - Error handling and retries
    - Workspace, database, token, table and field operations

    Usage:
        async with BaserowApiClient(token_manager, settings) as client:
            table = await client.create_table(database_id, "Content Ideas")
            await client.create_field(table["id"], {"name": "Title", "type": "text"})
    """

    def __init__(self, token_manager: TokenLifecycleManager, settings: BaserowSettings):
        """Initialize API client.

        Args:
            token_manager: Source of valid admin credentials
            settings: Service URL, API version, timeouts and retry policy
        """
        self.token_manager = token_manager
        self.settings = settings
        self.endpoints: BaserowEndpoints = resolve_endpoints(settings.api_version)
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Initialize HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "BaserowApiClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def _build_url(self, endpoint: str, **params) -> str:
        return self.endpoints.url(self.settings.api_url, endpoint, **params)

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        **params,
    ) -> Any:
        """Make an authenticated API request with automatic retries.

        Args:
            method: HTTP method
            endpoint: Name of the endpoint in the version's endpoint table
            data: Request body
            **params: Path parameters for the endpoint template

        Returns:
            Response JSON ({} for empty bodies)

        Raises:
            AuthError: No valid admin credential could be obtained
            BaserowAuthenticationError: Request rejected with 401/403
            BaserowNotFoundError: Resource not found
            BaserowRateLimitError: Rate limit exceeded
            BaserowValidationError: Validation error
            BaserowApiError: Other API errors
        """
        if not self._session:
            raise BaserowApiError("Not connected. Call connect() first.")

        url = self._build_url(endpoint, **params)
        retry_config = self.settings.retry_config
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        last_error: Optional[Exception] = None

        for attempt in range(retry_config.max_retries + 1):
            credential = await self.token_manager.get_valid_token()
            headers = {
                "Authorization": credential.authorization_header,
                "Content-Type": "application/json",
            }

            try:
                async with self._session.request(
                    method,
                    url,
                    headers=headers,
                    json=data,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    if response.status < 400:
                        if response.status == 204:
                            return {}
                        return json.loads(response_text) if response_text else {}

                    if response.status in (401, 403):
                        # Server-side revocation: drop the cache and retry once
                        if attempt == 0:
                            logger.warning(f"Got {response.status} on {method} {url}, re-authenticating...")
                            self.token_manager.clear_cache()
                            continue
                        raise BaserowAuthenticationError(
                            f"Authentication failed: {response_text}",
                            response.status,
                            response_text,
                        )

                    if response.status == 404:
                        raise BaserowNotFoundError(
                            f"Resource not found: {url}",
                            response.status,
                            response_text,
                        )

                    if response.status == 429:
                        retry_after = retry_after_seconds(
                            response.headers.get("Retry-After"),
                            retry_config.get_delay(attempt),
                        )
                        if attempt < retry_config.max_retries:
                            logger.warning(f"Rate limited, waiting {retry_after:.0f}s...")
                            await asyncio.sleep(retry_after)
                            continue
                        raise BaserowRateLimitError("Rate limit exceeded", retry_after)

                    if response.status == 400:
                        raise BaserowValidationError(
                            f"Validation error: {response_text}",
                            response.status,
                            response_text,
                        )

                    if response.status in retry_config.retry_on_status:
                        if attempt < retry_config.max_retries:
                            delay = retry_config.get_delay(attempt)
                            logger.warning(
                                f"Request failed with {response.status}, "
                                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                            )
                            await asyncio.sleep(delay)
                            continue

                    raise BaserowApiError(
                        f"API error {response.status}: {response_text}",
                        response.status,
                        response_text,
                    )

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_error = e
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Request failed with {type(e).__name__}: {e}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise BaserowApiError(f"Request failed after {retry_config.max_retries} retries: {e}")

        raise BaserowApiError(f"Request failed: {last_error}")

    # =========================================================================
    # Workspaces and databases
    # =========================================================================

    async def create_workspace(self, name: str) -> Dict[str, Any]:
        """Create a workspace. Returns the workspace with its ``id``."""
        return await self._request("POST", "workspaces", data={"name": name})

    async def delete_workspace(self, workspace_id: int) -> None:
        await self._request("DELETE", "workspace", workspace_id=workspace_id)

    async def create_database(self, workspace_id: int, name: str) -> Dict[str, Any]:
        """Create a database application (base) inside a workspace."""
        return await self._request(
            "POST",
            "workspace_applications",
            data={"name": name, "type": "database"},
            workspace_id=workspace_id,
        )

    async def delete_database(self, database_id: int) -> None:
        await self._request("DELETE", "application", application_id=database_id)

    async def create_database_token(self, workspace_id: int, name: str) -> Dict[str, Any]:
        """Create the long-lived per-tenant database token used for CRUD.

        Returns:
            Token record including ``key``
        """
        return await self._request(
            "POST",
            "database_tokens",
            data={"name": name, "workspace": workspace_id},
        )

    # =========================================================================
    # Tables
    # =========================================================================

    async def create_table(self, database_id: int, name: str) -> Dict[str, Any]:
        """Create a table in a database. Returns the table with its ``id``."""
        return await self._request(
            "POST",
            "database_tables",
            data={"name": name},
            database_id=database_id,
        )

    async def delete_table(self, table_id: int) -> None:
        """Delete a table (rollback primitive)."""
        await self._request("DELETE", "table", table_id=table_id)

    # =========================================================================
    # Fields
    # =========================================================================

    async def list_fields(self, table_id: int) -> List[Dict[str, Any]]:
        response = await self._request("GET", "table_fields", table_id=table_id)
        return response if isinstance(response, list) else []

    async def create_field(self, table_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a field. Returns the field with its ``id``."""
        return await self._request("POST", "table_fields", data=payload, table_id=table_id)

    async def update_field(self, field_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", "field", data=payload, field_id=field_id)

    async def delete_field(self, field_id: int) -> None:
        await self._request("DELETE", "field", field_id=field_id)
