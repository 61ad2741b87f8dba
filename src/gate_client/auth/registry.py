"""SessionRegistry – the single authority on "is there a usable Session".

States (exactly one holds at a time)::

    NoSession ──login ok──▶ Authenticated(session) ──logout / expiry──▶ NoSession
        │                                                    ▲
        └──login failed──▶ LoginFailed ──login ok────────────┘

Every transition also updates the :class:`CredentialStore`:

* entering ``Authenticated`` persists the session's credentials;
* each token refresh performed by the current session re-persists the
  newest pair;
* leaving ``Authenticated`` or failing a login clears the store.

Transitions are serialized with an :class:`asyncio.Lock`; network calls
inside a transition may suspend, but two transitions never interleave.
Subscribers (navigation, UI) are notified with ``(old_state, new_state)``
after each transition.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Union

from gate_client.auth.errors import AuthError, GateClientError
from gate_client.auth.models import Credentials
from gate_client.auth.session import Session
from gate_client.auth.store import CredentialStore, default_store
from gate_client.utils.environment import GateClientConfig

_LOG = logging.getLogger("gate-client.auth.registry")


# --------------------------------------------------------------------------- #
# States                                                                      #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class NoSession:
    """Unauthenticated; the initial and steady logged-out state."""


@dataclass(frozen=True)
class Authenticated:
    session: Session


@dataclass(frozen=True)
class LoginFailed:
    """The last login attempt was rejected or could not reach the server."""

    reason: str = "invalid_credentials"
    message: str = ""


RegistryState = Union[NoSession, Authenticated, LoginFailed]
StateListener = Callable[[RegistryState, RegistryState], None]
SessionFactory = Callable[..., Session]


# --------------------------------------------------------------------------- #
# Registry                                                                    #
# --------------------------------------------------------------------------- #
class SessionRegistry:
    """Process-wide holder of the current Session (or none)."""

    def __init__(
        self,
        store: CredentialStore | None = None,
        *,
        config: GateClientConfig | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.store: CredentialStore = store if store is not None else default_store()
        self.config = config or GateClientConfig.from_env()
        self._session_factory: SessionFactory = session_factory or Session
        self._state: RegistryState = NoSession()
        self._lock = asyncio.Lock()
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------ #
    # Read-only views                                                    #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> RegistryState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._state.session if isinstance(self._state, Authenticated) else None

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self._state, Authenticated)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener*; return a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------ #
    # Transitions                                                        #
    # ------------------------------------------------------------------ #
    async def restore(self) -> RegistryState:
        """Resume a persisted session, if the store holds a full token pair."""
        async with self._lock:
            if isinstance(self._state, Authenticated):
                return self._state
            credentials = self.store.load()
            if credentials is None:
                _LOG.debug("No stored credentials to restore")
                return self._state
            session = self._new_session(credentials=credentials)
            await self._transition(Authenticated(session))
            _LOG.info("Restored session from stored credentials")
            return self._state

    async def login(self, username: str, password: str) -> RegistryState:
        """Open a fresh Session for *username*.

        Failures are reported through the ``LoginFailed`` state rather than
        raised.
        """
        async with self._lock:
            session = self._new_session()
            try:
                credentials = await session.login(username, password)
            except GateClientError as exc:
                await session.aclose()
                self.store.clear()
                reason = exc.reason if isinstance(exc, AuthError) else exc.error_code
                _LOG.info("Login failed for %s: %s", username, reason)
                await self._transition(LoginFailed(reason=reason, message=str(exc)))
                return self._state

            self.store.save(credentials)
            await self._transition(Authenticated(session))
            _LOG.info("Login succeeded for %s", username)
            return self._state

    async def logout(self) -> RegistryState:
        """Best-effort server logout, then drop local state unconditionally."""
        async with self._lock:
            if isinstance(self._state, Authenticated):
                try:
                    await self._state.session.logout()
                except GateClientError as exc:
                    _LOG.warning("Server logout failed; clearing local session anyway: %s", exc)
            self.store.clear()
            await self._transition(NoSession())
            return self._state

    async def refresh_observed(self, session: Session, credentials: Credentials) -> None:
        """Persist the newest token pair issued to the current *session*."""
        if session is not self.session:
            _LOG.debug("Ignoring refresh from a session that is no longer current")
            return
        self.store.save(credentials)
        _LOG.debug("Persisted refreshed credentials")

    async def session_expired(self, session: Session) -> None:
        """Drop *session* after its refresh token was rejected."""
        async with self._lock:
            if session is not self.session:
                return
            _LOG.info("Session expired; logging out locally")
            self.store.clear()
            await self._transition(NoSession())

    async def aclose(self) -> None:
        """Release the current session's HTTP resources without logging out."""
        session = self.session
        if session is not None:
            await session.aclose()

    # ------------------------------------------------------------------ #
    # Internals                                                          #
    # ------------------------------------------------------------------ #
    def _new_session(self, credentials: Credentials | None = None) -> Session:
        return self._session_factory(
            self.config,
            credentials=credentials,
            on_refresh=self.refresh_observed,
            on_expired=self.session_expired,
        )

    async def _transition(self, new_state: RegistryState) -> None:
        old_state = self._state
        self._state = new_state
        if isinstance(old_state, Authenticated) and (
            not isinstance(new_state, Authenticated) or new_state.session is not old_state.session
        ):
            await old_state.session.aclose()
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                _LOG.exception("Registry listener failed")
