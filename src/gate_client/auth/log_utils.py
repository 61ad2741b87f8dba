"""Logging helpers that tag records with live session state.

Records emitted through :func:`get_session_logger` carry these attributes,
read from the Session at emit time rather than captured once:

- ``session_id``        – client-side identifier of the Session (first 8 chars)
- ``username``          – login name, once ``login`` has been called
- ``refresh_in_flight`` – whether a token refresh is outstanding

Request-scoped lines add ``request`` (``"METHOD /path"``) via
:func:`request_extra`.  Tokens are never attached; pass them through
:func:`gate_client.utils.logging.mask_sensitive` if they must appear.

Usage
-----
>>> log = get_session_logger(session)
>>> log.warning("unauthorized", extra=request_extra("GET", "/gates/list"))
WARNING gate-client.auth.session session_id=3f2a9c1e refresh_in_flight=False ...
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Protocol


class _SessionState(Protocol):
    session_id: str
    username: str | None

    @property
    def refresh_in_flight(self) -> bool: ...


class _SessionLoggerAdapter(logging.LoggerAdapter):
    def __init__(self, logger: logging.Logger, session: _SessionState):
        super().__init__(logger, {})
        self.session = session

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("session_id", self.session.session_id[:8])
        if self.session.username is not None:
            extra.setdefault("username", self.session.username)
        extra.setdefault("refresh_in_flight", self.session.refresh_in_flight)
        kwargs["extra"] = extra
        return msg, kwargs


def request_extra(method: str, path: str) -> dict[str, str]:
    """Return the ``extra`` mapping that tags a record with one request."""
    return {"request": f"{method.upper()} {path}"}


def get_session_logger(
    session: _SessionState,
    *,
    base_logger_name: str = "gate-client.auth.session",
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter bound to *session*."""
    return _SessionLoggerAdapter(logging.getLogger(base_logger_name), session)
