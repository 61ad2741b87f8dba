"""Exception types raised by the gate client.

Only lightweight, **data-carrying** exceptions live here so that CLI / UI
layers can transform them into exit codes or user-friendly messages.

Hierarchy
---------
::

    GateClientError
    ├── AuthError
    │   ├── InvalidCredentialsError
    │   └── SessionExpiredError
    ├── NetworkError
    └── RequestError
"""

from __future__ import annotations

from typing import Any


class GateClientError(RuntimeError):
    """Base class for every error surfaced by :mod:`gate_client`."""

    error_code: str = "gate_client_error"

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.error_code, "message": str(self)}


class AuthError(GateClientError):
    """Authentication could not be established or kept alive."""

    error_code = "auth_error"
    reason: str = "auth_error"

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["reason"] = self.reason
        return payload


class InvalidCredentialsError(AuthError):
    """Raised when the login endpoint rejects the username / password."""

    reason = "invalid_credentials"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message or "Invalid login or password.")
        self.status_code: int | None = status_code


class SessionExpiredError(AuthError):
    """Raised when the refresh token is rejected or missing.

    Not retried: the owner of the session is expected to log out.
    """

    reason = "session_expired"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Session expired; please log in again.")


class NetworkError(GateClientError):
    """Transport-level failure (timeout, connection reset, DNS...)."""

    error_code = "network_error"

    def __init__(self, message: str, *, method: str | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.path = path

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.method and self.path:
            payload["request"] = f"{self.method} {self.path}"
        return payload


class RequestError(GateClientError):
    """Non-2xx response that is not handled by the refresh protocol."""

    error_code = "request_error"

    def __init__(
        self,
        *,
        status_code: int,
        method: str,
        path: str,
        body: str = "",
    ) -> None:
        super().__init__(f"{method} {path} returned {status_code}")
        self.status_code = status_code
        self.method = method
        self.path = path
        # response bodies are short JSON error objects; keep an excerpt only
        self.body = body[:200]

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status_code"] = self.status_code
        payload["request"] = f"{self.method} {self.path}"
        return payload
