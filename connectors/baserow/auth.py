"""Baserow admin credential lifecycle.

Keeps the privileged JWT used for schema provisioning valid under concurrent
use:

- a cached credential is reused while it expires later than now + buffer
- otherwise exactly one refresh is attempted with the stored refresh token
- only if the refresh call fails does the manager re-authenticate
- concurrent callers share the single in-flight refresh/authenticate

One manager exists per admin identity and is owned by whatever composes the
application; there is no module-level instance.

Usage:
    manager = TokenLifecycleManager(BaserowSettings.from_env())
    credential = await manager.get_valid_token()
    headers = {"Authorization": credential.authorization_header}
"""

import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import aiohttp

from connectors.baserow.endpoints import resolve_endpoints
from core.config import BaserowSettings
from core.observability.logging import get_logger

logger = get_logger(__name__)

# Baserow access tokens live ten minutes; older servers omit expires_in
DEFAULT_EXPIRES_IN_SECONDS = 600


class AuthError(Exception):
    """The backend rejected the admin credentials or the refresh token."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AuthState(str, Enum):
    """Credential lifecycle states."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    VALID = "valid"
    EXPIRING = "expiring"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class Credential:
    """Admin JWT pair with absolute expiry.

    Attributes:
        access_token: Short-lived JWT sent as ``Authorization: JWT <token>``
        refresh_token: Token used to obtain a new access token
        expires_at: Expiry as epoch milliseconds
    """
    access_token: str
    refresh_token: str
    expires_at: int

    def is_fresh(self, now_ms: int, buffer_ms: int) -> bool:
        """True while the credential outlives the refresh buffer."""
        return self.expires_at > now_ms + buffer_ms

    @property
    def authorization_header(self) -> str:
        return f"JWT {self.access_token}"


class TokenLifecycleManager:
    """Acquires, caches and refreshes the Baserow admin credential.

    The only shared mutable state in the provisioning core. All renewals go
    through a single in-flight task, so N concurrent ``get_valid_token()``
    calls on a stale cache produce exactly one backend call.
    """

    def __init__(
        self,
        settings: BaserowSettings,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the manager.

        Args:
            settings: Service URL, admin identity and refresh buffer
            session: Shared aiohttp session (one is created lazily if omitted)
            clock: Seconds-since-epoch source, injectable for tests
        """
        self.settings = settings
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._state = AuthState.UNAUTHENTICATED
        self._inflight: Optional[asyncio.Future] = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def cached_credential(self) -> Optional[Credential]:
        return self._credential

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def get_valid_token(self) -> Credential:
        """Get a credential that outlives the refresh buffer.

        Raises:
            ConfigurationError: Service URL or admin identity missing (no network call)
            AuthError: Backend rejected authentication
        """
        self.settings.validate()

        credential = self._credential
        if credential and credential.is_fresh(self._now_ms(), self.settings.refresh_buffer_ms):
            self._state = AuthState.VALID
            return credential

        if self._inflight is None:
            if credential:
                self._state = AuthState.EXPIRING
            task = asyncio.ensure_future(self._renew(credential))
            self._inflight = task
            task.add_done_callback(self._release_inflight)

        # shield: one impatient caller must not cancel the renewal for the others
        return await asyncio.shield(self._inflight)

    def _release_inflight(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _renew(self, stale: Optional[Credential]) -> Credential:
        if stale and stale.refresh_token:
            try:
                return await self.refresh(stale.refresh_token)
            except AuthError as e:
                logger.warning(
                    f"Token refresh rejected, re-authenticating: {e}",
                    extra_fields={"status_code": e.status_code},
                )

        return await self.authenticate()

    async def authenticate(self) -> Credential:
        """Obtain a new credential with the admin email/password."""
        self.settings.validate()
        self._state = AuthState.AUTHENTICATING
        logger.info("Authenticating Baserow admin identity")

        try:
            data = await self._post_json(
                "token_auth",
                {"email": self.settings.admin_email, "password": self.settings.admin_password},
            )
        except AuthError:
            self._credential = None
            self._state = AuthState.UNAUTHENTICATED
            raise

        return self._commit(data, previous_refresh_token=None)

    async def refresh(self, refresh_token: str) -> Credential:
        """Replace the cached credential using a refresh token."""
        self._state = AuthState.REFRESHING
        logger.info("Refreshing Baserow admin token")

        try:
            data = await self._post_json("token_refresh", {"refresh_token": refresh_token})
        except AuthError:
            self._state = AuthState.AUTHENTICATING
            raise

        return self._commit(data, previous_refresh_token=refresh_token)

    def clear_cache(self) -> None:
        """Drop the cached credential; the next call re-authenticates."""
        self._credential = None
        self._state = AuthState.UNAUTHENTICATED
        logger.info("Baserow admin token cache cleared")

    def _commit(self, data: Dict[str, Any], previous_refresh_token: Optional[str]) -> Credential:
        access_token = data.get("access_token") or data.get("token")
        if not access_token:
            self._credential = None
            self._state = AuthState.UNAUTHENTICATED
            raise AuthError("Authentication response did not contain an access token")

        expires_in = data.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN_SECONDS
        credential = Credential(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or previous_refresh_token or "",
            expires_at=self._now_ms() + int(expires_in) * 1000,
        )
        self._credential = credential
        self._state = AuthState.VALID
        return credential

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _post_json(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST an unauthenticated JSON body to a token endpoint.

        Any non-2xx reply or transport failure is an AuthError.
        """
        url = resolve_endpoints(self.settings.api_version).url(self.settings.api_url, endpoint)
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)

        try:
            async with session.post(url, json=body, timeout=timeout) as response:
                response_text = await response.text()
                if response.status >= 400:
                    raise AuthError(
                        f"Baserow {endpoint} failed: {response.status} - {response_text}",
                        response.status,
                        response_text,
                    )
                return json.loads(response_text) if response_text else {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthError(f"Baserow {endpoint} request failed: {e}")

    async def close(self) -> None:
        """Close the HTTP session if this manager created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None
