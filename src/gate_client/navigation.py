"""Navigation guard: which destination may be shown for a registry state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gate_client.auth.registry import Authenticated, LoginFailed, NoSession, RegistryState


@dataclass(frozen=True)
class NavigationDecision:
    action: Literal["allow", "redirect"]
    destination: str

    @property
    def allowed(self) -> bool:
        return self.action == "allow"


class NavigationGuard:
    """Decide between allow, redirect-to-login and redirect-to-home."""

    def __init__(self, login_destination: str = "/login", home_destination: str = "/") -> None:
        self.login_destination = login_destination
        self.home_destination = home_destination

    def resolve(self, state: RegistryState, destination: str) -> NavigationDecision:
        authenticated = isinstance(state, Authenticated)
        if not authenticated and destination != self.login_destination:
            return NavigationDecision("redirect", self.login_destination)
        if authenticated and destination == self.login_destination:
            return NavigationDecision("redirect", self.home_destination)
        return NavigationDecision("allow", destination)

    def landing_for(self, state: RegistryState) -> str:
        """Where to go right after the registry entered *state*."""
        if isinstance(state, Authenticated):
            return self.home_destination
        if isinstance(state, (NoSession, LoginFailed)):
            return self.login_destination
        raise TypeError(f"unknown registry state: {state!r}")
