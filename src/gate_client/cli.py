"""gate-client command line.

Thin front-end over :class:`~gate_client.auth.registry.SessionRegistry`.
Tokens are persisted by the default disk store, so ``gates`` and ``open``
silently resume the session created by ``login``.

Exit codes
----------
0  success
1  request or network error
2  not logged in, login rejected, or session expired

Example
-------
    gate-client --api-url https://gates.example.com login --username alice
    gate-client gates
    gate-client open "Main entrance"
"""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import getpass
import json
import logging
import sys
from typing import Any, Sequence

from gate_client.auth.errors import AuthError, GateClientError
from gate_client.auth.registry import Authenticated, LoginFailed, SessionFactory, SessionRegistry
from gate_client.auth.store import CredentialStore, DiskCredentialStore
from gate_client.utils.environment import GateClientConfig
from gate_client.utils.logging import setup_logging

EXIT_OK = 0
EXIT_REQUEST_ERROR = 1
EXIT_AUTH = 2

_LOG = logging.getLogger("gate-client.cli")


# --------------------------------------------------------------------------- #
# Output helpers
# --------------------------------------------------------------------------- #
def _emit(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _emit_error(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, sort_keys=True), file=sys.stderr)


def _not_logged_in() -> int:
    _emit_error({"error": "not_logged_in", "message": "Run 'gate-client login' first."})
    return EXIT_AUTH


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #
async def _cmd_login(registry: SessionRegistry, args: argparse.Namespace) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    state = await registry.login(args.username, password)
    if isinstance(state, LoginFailed):
        _emit_error({"error": "login_failed", "reason": state.reason, "message": state.message})
        return EXIT_AUTH
    _emit({"authenticated": True, "username": args.username})
    return EXIT_OK


async def _cmd_logout(registry: SessionRegistry, args: argparse.Namespace) -> int:  # noqa: ARG001
    await registry.restore()
    await registry.logout()
    _emit({"authenticated": False})
    return EXIT_OK


async def _cmd_status(registry: SessionRegistry, args: argparse.Namespace) -> int:  # noqa: ARG001
    state = await registry.restore()
    _emit({"authenticated": isinstance(state, Authenticated), "api_url": registry.config.api_url})
    return EXIT_OK


async def _cmd_gates(registry: SessionRegistry, args: argparse.Namespace) -> int:  # noqa: ARG001
    await registry.restore()
    session = registry.session
    if session is None:
        return _not_logged_in()
    gates = await session.get_gates()
    _emit([dataclasses.asdict(gate) for gate in gates])
    return EXIT_OK


async def _cmd_open(registry: SessionRegistry, args: argparse.Namespace) -> int:
    await registry.restore()
    session = registry.session
    if session is None:
        return _not_logged_in()
    success = await session.open_gate(args.gate)
    _emit({"gate": args.gate, "success": success})
    return EXIT_OK if success else EXIT_REQUEST_ERROR


_COMMANDS = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "status": _cmd_status,
    "gates": _cmd_gates,
    "open": _cmd_open,
}


# --------------------------------------------------------------------------- #
# Entry points
# --------------------------------------------------------------------------- #
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gate-client", description="Gate-control service client")
    parser.add_argument("--api-url", help="Base URL of the gate service (env GATE_API_URL)")
    parser.add_argument("--timeout", type=float, help="HTTP timeout in seconds (env GATE_HTTP_TIMEOUT)")
    parser.add_argument("--log-level", help="Log level (env GATE_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and persist the session")
    login.add_argument("--username", "-u", required=True)
    login.add_argument("--password", "-p", help="Prompted for when omitted")

    sub.add_parser("logout", help="Log out and forget stored tokens")
    sub.add_parser("status", help="Show whether a stored session exists")
    sub.add_parser("gates", help="List available gates")

    open_ = sub.add_parser("open", help="Open a gate")
    open_.add_argument("gate", help="Gate name or id")
    return parser


def _config_from_args(args: argparse.Namespace) -> GateClientConfig:
    config = GateClientConfig.from_env()
    overrides: dict[str, Any] = {}
    if args.api_url:
        overrides["api_url"] = args.api_url.rstrip("/")
    if args.timeout is not None:
        if args.timeout <= 0:
            raise ValueError("--timeout must be positive")
        overrides["timeout"] = args.timeout
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    return dataclasses.replace(config, **overrides) if overrides else config


async def run(
    args: argparse.Namespace,
    *,
    store: CredentialStore | None = None,
    config: GateClientConfig | None = None,
    session_factory: SessionFactory | None = None,
) -> int:
    """Execute the parsed command; return the process exit code."""
    config = config or _config_from_args(args)
    registry = SessionRegistry(
        store if store is not None else DiskCredentialStore(config.storage_dir),
        config=config,
        session_factory=session_factory,
    )
    try:
        return await _COMMANDS[args.command](registry, args)
    except AuthError as exc:
        _emit_error(exc.to_payload())
        return EXIT_AUTH
    except GateClientError as exc:
        _emit_error(exc.to_payload())
        return EXIT_REQUEST_ERROR
    finally:
        await registry.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))
    try:
        setup_logging(config.log_level)
    except ValueError as exc:
        parser.error(str(exc))
    _LOG.debug("Running %s against %s", args.command, config.api_url)
    return asyncio.run(run(args, config=config))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
