"""Typed, immutable records used by the gate client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class Credentials:
    """Snapshot of an access/refresh token pair.

    Both values are opaque bearer strings and are never parsed client-side.
    """

    access_token: str
    refresh_token: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Credentials":
        """Build from the ``{access_token, refresh_token}`` wire shape."""
        if not isinstance(payload, Mapping):
            raise ValueError("Token response is not a JSON object")
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        if not access_token or not refresh_token:
            raise ValueError("Token response missing access_token or refresh_token")
        return cls(access_token=str(access_token), refresh_token=str(refresh_token))

    def to_payload(self) -> dict[str, str]:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token}

    def __repr__(self) -> str:
        # keep tokens out of tracebacks and debug logs
        return "Credentials(access_token='****', refresh_token='****')"


@dataclass(frozen=True, slots=True)
class Gate:
    """A gate the authenticated user may open."""

    id: int
    name: str
    description: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Gate":
        # the server also sends ``retries``; unknown keys are ignored
        return cls(
            id=int(payload["id"]),
            name=str(payload["name"]),
            description=str(payload.get("description") or ""),
        )
