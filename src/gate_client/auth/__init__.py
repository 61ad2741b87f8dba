"""Session and token-refresh core.

Sub-modules
-----------
models
    Immutable dataclasses for the token pair and gate records.
errors
    Exception types raised by the session layer.
store
    Durable credential persistence (disk / memory).
session
    Authenticated HTTP session with single-flight token refresh.
registry
    Process-wide session state machine.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .models import Credentials, Gate  # noqa: F401
from .errors import (  # noqa: F401
    AuthError,
    GateClientError,
    InvalidCredentialsError,
    NetworkError,
    RequestError,
    SessionExpiredError,
)
from .store import (  # noqa: F401
    CredentialStore,
    DiskCredentialStore,
    MemoryCredentialStore,
    default_store,
)
from .session import Session  # noqa: F401
from .registry import (  # noqa: F401
    Authenticated,
    LoginFailed,
    NoSession,
    RegistryState,
    SessionRegistry,
)
from .log_utils import get_session_logger  # noqa: F401

__all__ = [
    # models
    "Credentials",
    "Gate",
    # errors
    "GateClientError",
    "AuthError",
    "InvalidCredentialsError",
    "SessionExpiredError",
    "NetworkError",
    "RequestError",
    # store
    "CredentialStore",
    "DiskCredentialStore",
    "MemoryCredentialStore",
    "default_store",
    # session
    "Session",
    # registry
    "SessionRegistry",
    "RegistryState",
    "NoSession",
    "Authenticated",
    "LoginFailed",
    # logging helpers
    "get_session_logger",
]
