"""Logging setup and secret masking."""

from __future__ import annotations

import logging
import sys

_ROOT_LOGGER_NAME = "gate-client"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Return *value* with everything past the first *keep_chars* replaced.

    >>> mask_sensitive("eyJhbGciOiJIUzI1NiJ9", 4)
    'eyJh****'
    """
    if not value:
        return ""
    if len(value) <= keep_chars:
        return "*" * len(value)
    return f"{value[:keep_chars]}****"


def setup_logging(level: str | int = logging.WARNING, stream=None) -> logging.Logger:  # noqa: ANN001
    """Configure the ``gate-client`` logger hierarchy and return its root.

    Calling this twice replaces the handler instead of stacking a second one.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        level = resolved

    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_gate_client_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._gate_client_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.propagate = False
    return root
