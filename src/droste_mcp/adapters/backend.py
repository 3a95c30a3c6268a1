"""Authenticated gateway to the Droste CV backend API."""

import logging
from typing import Any, Dict, Optional

import httpx

from droste_mcp.errors import AuthExpired, AuthRequired, BackendError, TransportError
from droste_mcp.session.credentials import Credentials, CredentialStore

from . import BackendResponse

logger = logging.getLogger(__name__)


DEFAULT_BACKEND_URL = "http://localhost:3000"
LOGIN_PATH = "/api/auth/login"
REFRESH_PATH = "/api/auth/refresh"

_BODY_METHODS = ("POST", "PUT", "PATCH")
_TOKEN_FIELDS = ("accessToken", "refreshToken")


def _parse_body(response: httpx.Response) -> Any:
    """Return the JSON body, the raw text if it is not JSON, or None if empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class BackendGateway:
    """
    Single entry point for every backend call made by MCP tools.

    Attaches the bearer token from a CredentialStore and, on a 401, performs
    exactly one refresh-and-retry cycle. No other retries happen here: a
    failing backend is reported, never masked.

    Example:
        async with BackendGateway("http://localhost:3000") as gateway:
            response = await gateway.call(store, "GET", "/api/cvs")
            print(response.data)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize gateway.

        Args:
            base_url: Backend base URL (e.g., "http://localhost:3000")
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "BackendGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(
        self,
        store: CredentialStore,
        method: str,
        path: str,
        payload: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> BackendResponse:
        """
        Make an authenticated request to the backend API.

        Args:
            store: Credential store of the calling session or process
            method: HTTP method ("GET", "POST", ...)
            path: API path (e.g., "/api/cvs")
            payload: JSON body for POST/PUT/PATCH
            params: Query string parameters

        Returns:
            BackendResponse for a 2xx response

        Raises:
            AuthRequired: If the store holds no credentials
            AuthExpired: If the backend rejected the token and refresh failed
            BackendError: For any other non-2xx response
            TransportError: If the backend could not be reached
        """
        credentials = store.get()
        if credentials is None:
            logger.warning(f"Rejected {method.upper()} {path}: no credentials available")
            raise AuthRequired(store.missing_hint)

        response = await self._send(method, path, payload, params, credentials.access_token)

        if response.status_code == 401:
            logger.info(f"{method.upper()} {path} returned 401, attempting token refresh")
            refreshed = await self._refresh(store, credentials)
            response = await self._send(method, path, payload, params, refreshed.access_token)
            if response.status_code == 401:
                logger.warning(f"{method.upper()} {path} still unauthorized after refresh")
                self._invalidate(store, refreshed)
                raise AuthExpired()

        return self._to_backend_response(method, path, response)

    async def login(self, store: CredentialStore, email: str, password: str) -> Dict[str, Any]:
        """
        Log in against the backend and store the returned tokens.

        Args:
            store: Credential store that receives the new tokens
            email: User's email address
            password: User's password (never logged)

        Returns:
            Login response body with token fields removed

        Raises:
            BackendError: If the backend rejects the login
            TransportError: If the backend could not be reached
        """
        logger.debug("Attempting backend login")
        response = await self._send(
            "POST", LOGIN_PATH, {"email": email, "password": password}, None, None
        )
        body = _parse_body(response)

        if not 200 <= response.status_code < 300:
            logger.warning(f"Backend login failed with status {response.status_code}")
            raise BackendError(response.status_code, body)

        if not isinstance(body, dict) or not body.get("accessToken"):
            raise BackendError(
                response.status_code,
                body,
                message="Backend login response did not include an access token",
            )

        store.set(
            Credentials(
                access_token=body["accessToken"],
                refresh_token=body.get("refreshToken"),
            )
        )
        logger.info("Backend login succeeded, credentials stored")
        return {k: v for k, v in body.items() if k not in _TOKEN_FIELDS}

    async def _refresh(self, store: CredentialStore, stale: Credentials) -> Credentials:
        """
        Obtain a new access token, at most one refresh in flight per store.

        Callers that waited on the lock reuse the token the winner stored.
        """
        if not stale.can_refresh:
            self._invalidate(store, stale)
            raise AuthExpired()

        async with store.refresh_lock:
            current = store.get()
            if current is None:
                # A concurrent refresh failed and cleared the store
                raise AuthExpired()
            if current.access_token != stale.access_token:
                logger.debug("Token already refreshed by a concurrent call")
                return current

            try:
                response = await self._client.post(
                    REFRESH_PATH,
                    json={"refreshToken": current.refresh_token},
                    headers={"Content-Type": "application/json"},
                )
            except httpx.HTTPError as e:
                logger.error(f"Token refresh failed: network error: {e}")
                replaced = self._superseded(store, current)
                if replaced is not None:
                    return replaced
                store.clear()
                raise AuthExpired() from e

            # A login or logout may have replaced the credentials meanwhile
            replaced = self._superseded(store, current)
            if replaced is not None:
                return replaced

            body = _parse_body(response)
            if (
                not 200 <= response.status_code < 300
                or not isinstance(body, dict)
                or not body.get("accessToken")
            ):
                logger.warning(f"Token refresh rejected with status {response.status_code}")
                store.clear()
                raise AuthExpired()

            return store.update_tokens(body["accessToken"], body.get("refreshToken"))

    @staticmethod
    def _superseded(store: CredentialStore, current: Credentials) -> Optional[Credentials]:
        """
        Credentials that replaced ``current`` while a refresh was in flight.

        Returns None when the store still holds ``current``.

        Raises:
            AuthExpired: If the store was cleared in the meantime
        """
        latest = store.get()
        if latest is current:
            return None
        if latest is None:
            raise AuthExpired()
        logger.debug("Credentials changed during token refresh, keeping the newer ones")
        return latest

    @staticmethod
    def _invalidate(store: CredentialStore, stale: Credentials) -> None:
        # Only clear if nobody logged in again while we were waiting
        if store.get() is stale:
            store.clear()

    async def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Any],
        params: Optional[Dict[str, Any]],
        token: Optional[str],
    ) -> httpx.Response:
        method = method.upper()
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        body = payload if method in _BODY_METHODS and payload is not None else None
        logger.debug(
            f"MCP -> Backend: {method} {self.base_url}{path} "
            f"({'with' if token else 'without'} Authorization)"
        )

        try:
            return await self._client.request(
                method, path, json=body, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error(f"MCP -> Backend: network error calling {method} {path}: {e}")
            raise TransportError(
                f"Network error communicating with backend API: {e}"
            ) from e

    @staticmethod
    def _to_backend_response(method: str, path: str, response: httpx.Response) -> BackendResponse:
        body = _parse_body(response)
        if not 200 <= response.status_code < 300:
            logger.warning(f"{method.upper()} {path} failed with status {response.status_code}")
            raise BackendError(response.status_code, body)
        return BackendResponse(
            status=response.status_code,
            data=body,
            headers=dict(response.headers),
        )
