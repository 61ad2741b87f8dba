"""Client for the gate-control service with transparent token refresh."""

from __future__ import annotations

from .auth import (  # noqa: F401
    Credentials,
    Gate,
    Session,
    SessionRegistry,
)
from .navigation import NavigationDecision, NavigationGuard  # noqa: F401
from .utils.environment import GateClientConfig  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "Credentials",
    "Gate",
    "Session",
    "SessionRegistry",
    "NavigationGuard",
    "NavigationDecision",
    "GateClientConfig",
    "__version__",
]
