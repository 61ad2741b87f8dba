"""Environment-driven configuration for the gate client."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Tuple
from urllib.parse import urlparse

logger = logging.getLogger("gate-client.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")
_FALSY: Final[Tuple[str, ...]] = ("false", "0", "no", "n", "off")
_LOOPBACK_HOSTS: Final[Tuple[str, ...]] = ("127.0.0.1", "localhost", "::1")

DEFAULT_API_URL: Final[str] = "http://127.0.0.1:7000"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0
DEFAULT_LOG_LEVEL: Final[str] = "WARNING"


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _env_flag(name: str, default: bool) -> bool:
    """
    Read a boolean flag. Unset or empty values fall back to *default*;
    unrecognised values are treated as the default and logged.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    if _truthy(raw):
        return True
    if raw.strip().lower() in _FALSY:
        return False
    logger.warning("Ignoring unrecognised value for %s; using %s", name, default)
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _is_plaintext_remote(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme == "http" and parsed.hostname not in _LOOPBACK_HOSTS


def default_storage_dir() -> Path:
    """Return ``GATE_AUTH_STORAGE_DIR`` or ``~/.gate-client/auth``."""
    return Path(os.getenv("GATE_AUTH_STORAGE_DIR") or Path.home() / ".gate-client" / "auth").expanduser()


@dataclass(frozen=True)
class GateClientConfig:
    """
    Settings shared by sessions, the registry and the CLI.

    ``timeout`` is handed to the HTTP transport as-is; call sites never pick
    their own timeout.
    """

    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    ssl_verify: bool = True
    storage_dir: Path = field(default_factory=default_storage_dir)
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "GateClientConfig":
        """Build configuration from ``GATE_*`` environment variables."""
        api_url = (os.getenv("GATE_API_URL") or DEFAULT_API_URL).strip().rstrip("/")
        if _is_plaintext_remote(api_url):
            # login sends the password in the request body
            logger.warning("GATE_API_URL does not use https: %s", api_url)
        return cls(
            api_url=api_url,
            timeout=_env_float("GATE_HTTP_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
            ssl_verify=_env_flag("GATE_SSL_VERIFY", True),
            storage_dir=default_storage_dir(),
            log_level=(os.getenv("GATE_LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().upper(),
        )
