"""Authenticated HTTP session against the gate-control service.

A :class:`Session` wraps an :class:`httpx.AsyncClient`, injects the bearer
access token into every outbound request and keeps the token pair valid:

* a ``401`` response triggers **one** refresh via ``POST /auth/refresh``;
* concurrent requests that hit ``401`` while a refresh is outstanding await
  that same refresh (single-flight) instead of starting their own;
* every original request is retried at most once.

The server burns refresh tokens on use, so two parallel refresh calls with the
same token would make the slower one fail and log the user out.  Sharing one
``asyncio.Task`` between all waiters prevents that race.

Owners learn about token rotation and terminal expiry through the optional
``on_refresh`` / ``on_expired`` hooks (see
:class:`gate_client.auth.registry.SessionRegistry`).
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Final
from urllib.parse import quote

import httpx

from gate_client.auth.errors import (
    InvalidCredentialsError,
    NetworkError,
    RequestError,
    SessionExpiredError,
)
from gate_client.auth.log_utils import get_session_logger, request_extra
from gate_client.auth.models import Credentials, Gate
from gate_client.utils.environment import GateClientConfig
from gate_client.utils.logging import mask_sensitive

LOGIN_PATH: Final[str] = "/auth/login"
REFRESH_PATH: Final[str] = "/auth/refresh"
LOGOUT_PATH: Final[str] = "/auth/logout"
GATES_LIST_PATH: Final[str] = "/gates/list"
GATES_OPEN_PATH: Final[str] = "/gates/open/{gate}"

RefreshHook = Callable[["Session", Credentials], Awaitable[None]]
ExpiredHook = Callable[["Session"], Awaitable[None]]


def build_client(config: GateClientConfig) -> httpx.AsyncClient:
    """Return an AsyncClient configured from *config*."""
    return httpx.AsyncClient(
        base_url=config.api_url,
        timeout=config.timeout,
        verify=config.ssl_verify,
        headers={"Accept": "application/json"},
    )


class Session:
    """One client identity and its token lifecycle."""

    def __init__(
        self,
        config: GateClientConfig | None = None,
        *,
        credentials: Credentials | None = None,
        client: httpx.AsyncClient | None = None,
        on_refresh: RefreshHook | None = None,
        on_expired: ExpiredHook | None = None,
    ) -> None:
        self.config = config or GateClientConfig.from_env()
        self.session_id: str = uuid.uuid4().hex
        self.username: str | None = None
        self.on_refresh = on_refresh
        self.on_expired = on_expired

        self._owns_client = client is None
        self._client: httpx.AsyncClient = client or build_client(self.config)
        self._credentials: Credentials | None = credentials
        self._pending_refresh: asyncio.Task[Credentials] | None = None
        self._expiry_reported_for: Credentials | None = None
        self._refresh_failed_for: Credentials | None = None
        self._log = get_session_logger(self)

    # ------------------------------------------------------------------ #
    # Properties                                                         #
    # ------------------------------------------------------------------ #
    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @property
    def is_authenticated(self) -> bool:
        return self._credentials is not None

    @property
    def refresh_in_flight(self) -> bool:
        return self._pending_refresh is not None

    def __repr__(self) -> str:
        return f"Session(session_id={self.session_id[:8]!r}, authenticated={self.is_authenticated})"

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    async def aclose(self) -> None:
        """Close the HTTP client when this Session created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Login / logout                                                     #
    # ------------------------------------------------------------------ #
    async def login(self, username: str, password: str) -> Credentials:
        """Exchange *username* / *password* for a token pair.

        Raises
        ------
        InvalidCredentialsError
            The server answered with a non-2xx status.  Credentials stay unset.
        NetworkError
            The login endpoint could not be reached.
        """
        self.username = username
        self._ensure_open("POST", LOGIN_PATH)
        try:
            response = await self._client.post(
                LOGIN_PATH, json={"login": username, "password": password}
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"Login request failed: {exc}", method="POST", path=LOGIN_PATH) from exc

        if not response.is_success:
            self._log.info("Login rejected (HTTP %s)", response.status_code)
            raise InvalidCredentialsError(status_code=response.status_code)

        try:
            credentials = Credentials.from_payload(response.json())
        except ValueError as exc:
            raise RequestError(
                status_code=response.status_code,
                method="POST",
                path=LOGIN_PATH,
                body=response.text,
            ) from exc

        self._credentials = credentials
        self._log.info("Logged in (access token %s)", mask_sensitive(credentials.access_token))
        return credentials

    async def logout(self) -> None:
        """Tell the server to drop the session, then forget local credentials.

        Local credentials are cleared even when the call fails; the failure
        is re-raised afterwards.
        """
        try:
            # bypasses the expiry hook: the owner is already logging out
            await self._request("POST", LOGOUT_PATH, json=None, params=None, retried=False)
        finally:
            self._credentials = None
            self._log.info("Local credentials cleared")

    # ------------------------------------------------------------------ #
    # Authenticated request path                                         #
    # ------------------------------------------------------------------ #
    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request and return the 2xx response.

        Raises
        ------
        SessionExpiredError
            The refresh token was rejected or is missing, or the request was
            still unauthorized after its single retry.  ``on_expired`` fires.
        NetworkError
            Transport failure; never triggers a refresh.
        RequestError
            Any other non-2xx response.
        """
        try:
            return await self._request(method, path, json=json, params=params, retried=False)
        except SessionExpiredError:
            await self._report_expired()
            raise

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        params: dict[str, Any] | None,
        retried: bool,
    ) -> httpx.Response:
        sent_with = self._credentials
        response = await self._send(method, path, json=json, params=params, credentials=sent_with)

        if response.status_code != 401:
            return self._ensure_success(response, method, path)

        if retried:
            self._log.warning("Unauthorized after refresh", extra=request_extra(method, path))
            raise SessionExpiredError(f"{method} {path} still unauthorized after token refresh")

        await self._refreshed_credentials(sent_with)
        return await self._request(method, path, json=json, params=params, retried=True)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        params: dict[str, Any] | None,
        credentials: Credentials | None,
    ) -> httpx.Response:
        self._ensure_open(method, path)
        headers: dict[str, str] = {}
        if credentials is not None:
            headers["Authorization"] = f"Bearer {credentials.access_token}"
        try:
            return await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}", method=method, path=path) from exc

    def _ensure_open(self, method: str, path: str) -> None:
        # the registry closes a Session it no longer holds
        if self._client.is_closed:
            raise SessionExpiredError(f"{method} {path} attempted on a closed session")

    @staticmethod
    def _ensure_success(response: httpx.Response, method: str, path: str) -> httpx.Response:
        if response.is_success:
            return response
        raise RequestError(
            status_code=response.status_code,
            method=method,
            path=path,
            body=response.text,
        )

    # ------------------------------------------------------------------ #
    # Single-flight refresh                                              #
    # ------------------------------------------------------------------ #
    async def _refreshed_credentials(self, sent_with: Credentials | None) -> Credentials:
        """Return credentials newer than *sent_with*, refreshing at most once."""
        current = self._credentials
        if self._pending_refresh is None:
            if sent_with is not None and sent_with is self._refresh_failed_for:
                # a refresh with these credentials was already rejected
                raise SessionExpiredError("Refresh token already rejected")
            if current is not None and current is not sent_with:
                # a refresh completed after this request went out
                return current
            if current is None or not current.refresh_token:
                raise SessionExpiredError("No refresh token available")
            self._log.debug("Starting token refresh")
            self._pending_refresh = asyncio.create_task(self._run_refresh(current))
        else:
            self._log.debug("Joining in-flight token refresh")
        # shield: a cancelled waiter must not cancel the refresh for the others
        return await asyncio.shield(self._pending_refresh)

    async def _run_refresh(self, current: Credentials) -> Credentials:
        try:
            self._ensure_open("POST", REFRESH_PATH)
            try:
                response = await self._client.post(
                    REFRESH_PATH, json={"refresh_token": current.refresh_token}
                )
            except httpx.TransportError as exc:
                raise NetworkError(
                    f"Token refresh failed: {exc}", method="POST", path=REFRESH_PATH
                ) from exc

            if not response.is_success:
                self._log.warning("Refresh token rejected (HTTP %s)", response.status_code)
                raise SessionExpiredError(f"Refresh token rejected (HTTP {response.status_code})")

            try:
                refreshed = Credentials.from_payload(response.json())
            except ValueError as exc:
                raise SessionExpiredError("Malformed token refresh response") from exc

            self._credentials = refreshed
            self._log.info("Refreshed access token (%s)", mask_sensitive(refreshed.access_token))
            await self._notify_refresh(refreshed)
            return refreshed
        except SessionExpiredError:
            self._refresh_failed_for = current
            raise
        finally:
            self._pending_refresh = None

    # ------------------------------------------------------------------ #
    # Hooks                                                              #
    # ------------------------------------------------------------------ #
    async def _notify_refresh(self, credentials: Credentials) -> None:
        if self.on_refresh is None:
            return
        try:
            await self.on_refresh(self, credentials)
        except Exception:  # the API call itself succeeded
            self._log.exception("on_refresh hook failed")

    async def _report_expired(self) -> None:
        # concurrent waiters of one failed refresh report a single expiry
        if self._expiry_reported_for is not None and self._expiry_reported_for is self._credentials:
            return
        self._expiry_reported_for = self._credentials
        if self.on_expired is None:
            return
        try:
            await self.on_expired(self)
        except Exception:
            self._log.exception("on_expired hook failed")

    # ------------------------------------------------------------------ #
    # Gate API                                                           #
    # ------------------------------------------------------------------ #
    async def get_gates(self) -> list[Gate]:
        """Return the gates the current user may open."""
        response = await self.request("GET", GATES_LIST_PATH)
        try:
            payload = response.json()
            return [Gate.from_payload(item) for item in payload["gates"]]
        except (ValueError, KeyError, TypeError) as exc:
            raise RequestError(
                status_code=response.status_code,
                method="GET",
                path=GATES_LIST_PATH,
                body=response.text,
            ) from exc

    async def open_gate(self, gate: str | int) -> bool:
        """Ask the server to open *gate*; return its ``success`` flag."""
        path = GATES_OPEN_PATH.format(gate=quote(str(gate), safe=""))
        response = await self.request("POST", path)
        try:
            payload = response.json()
        except ValueError:
            return True
        if isinstance(payload, dict) and "success" in payload:
            return bool(payload["success"])
        return True
