"""Durable storage for the current access/refresh token pair.

This module introduces a *narrow* persistence interface
(:class:`CredentialStore`) and two implementations:

* :class:`DiskCredentialStore` – JSON file, survives process restarts.
* :class:`MemoryCredentialStore` – in-process dict, for tests and
  throw-away sessions.

The disk layout is a single object with two well-known keys::

    {"accessToken": "...", "refreshToken": "..."}

Absence of either key means "no session to restore".

Design goals of the disk store:

* **Atomicity** – writes use *temp-file + os.replace*.
* **Single writer** – writes and deletes take an advisory ``O_EXCL`` lock.
* **Privacy** – the file is created with mode ``0600``.

Environment variables
---------------------
GATE_AUTH_STORAGE_DIR
    Base directory for the credentials file.
    Defaults to ``~/.gate-client/auth`` when unset.
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from gate_client.auth.models import Credentials
from gate_client.utils.environment import default_storage_dir

_LOG = logging.getLogger("gate-client.auth.store")

ACCESS_TOKEN_KEY: Final[str] = "accessToken"
REFRESH_TOKEN_KEY: Final[str] = "refreshToken"
_FILENAME: Final[str] = "credentials.json"

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    fd = os.open(tmp, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX


@contextmanager
def _file_lock(lock_path: Path, retries: int = 25, delay: float = 0.02):  # noqa: D401
    """Advisory file lock using ``os.O_EXCL`` temp-file creation."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    for attempt in range(retries + 1):
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.close(fd)
            break  # acquired!
        except FileExistsError:
            if attempt == retries:
                raise TimeoutError(f"Could not acquire lock {lock_path}") from None
            time.sleep(delay)
    try:
        yield
    finally:
        lock_path.unlink(missing_ok=True)


def _credentials_from_record(data: object) -> Credentials | None:
    if not isinstance(data, dict):
        return None
    access_token = data.get(ACCESS_TOKEN_KEY)
    refresh_token = data.get(REFRESH_TOKEN_KEY)
    if not access_token or not refresh_token:
        return None
    return Credentials(access_token=str(access_token), refresh_token=str(refresh_token))


def _record_from_credentials(credentials: Credentials) -> dict[str, str]:
    return {
        ACCESS_TOKEN_KEY: credentials.access_token,
        REFRESH_TOKEN_KEY: credentials.refresh_token,
    }


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class CredentialStore(Protocol):
    """Minimal persistence contract for the single-user token pair."""

    def load(self) -> Credentials | None: ...
    def save(self, credentials: Credentials) -> None: ...
    def clear(self) -> None: ...


class MemoryCredentialStore(CredentialStore):
    """Dict-backed store; contents vanish with the process."""

    def __init__(self, credentials: Credentials | None = None) -> None:
        self._data: dict[str, str] = {}
        if credentials is not None:
            self.save(credentials)

    def load(self) -> Credentials | None:
        return _credentials_from_record(self._data)

    def save(self, credentials: Credentials) -> None:
        self._data = _record_from_credentials(credentials)

    def clear(self) -> None:
        self._data = {}


# --------------------------------------------------------------------------- #
# Disk implementation                                                         #
# --------------------------------------------------------------------------- #


class DiskCredentialStore(CredentialStore):
    """JSON-file implementation of :class:`CredentialStore`."""

    def __init__(self, base_dir: str | os.PathLike | None = None) -> None:
        self.base_dir = Path(base_dir or default_storage_dir()).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self.base_dir / _FILENAME

    def _lock_path(self) -> Path:
        return self.path.with_suffix(".lock")

    def load(self) -> Credentials | None:
        path = self.path
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (ValueError, OSError) as exc:
            _LOG.warning("Ignoring unreadable credentials file %s: %s", path, exc)
            return None
        return _credentials_from_record(data)

    def save(self, credentials: Credentials) -> None:
        with _file_lock(self._lock_path()):
            _atomic_write(self.path, _record_from_credentials(credentials))
        _LOG.debug("Persisted credentials to %s", self.path)

    def clear(self) -> None:
        with _file_lock(self._lock_path()):
            self.path.unlink(missing_ok=True)
        _LOG.debug("Cleared credentials at %s", self.path)


# --------------------------------------------------------------------------- #
# Convenience – default singleton                                            #
# --------------------------------------------------------------------------- #

_default_store: DiskCredentialStore | None = None


def default_store() -> DiskCredentialStore:
    """Return a process-wide singleton :class:`DiskCredentialStore`."""
    global _default_store  # noqa: PLW0603
    if _default_store is None:
        _default_store = DiskCredentialStore()
    return _default_store
