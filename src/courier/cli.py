"""Command-line interface for courier."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from typing import List, Optional, Sequence, Tuple

from .client import Courier
from .config import AUTH_METHODS, CourierConfig, load_config
from .errors import CourierError
from .ssh.executor import StderrPolicy
from .transport.base import Transport
from .utils.logging import get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="courier",
        description="Run a shell command on a remote host over SSH.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Log connection and protocol steps",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    run_parser = subparsers.add_parser("run", help="Run one command and print its output")
    run_parser.add_argument("--host", help="Target server host")
    run_parser.add_argument("--port", type=int, default=None, help="SSH port")
    run_parser.add_argument("--user", help="SSH username")
    run_parser.add_argument(
        "--auth-method",
        choices=list(AUTH_METHODS),
        help="SSH authentication method",
    )
    run_parser.add_argument("--password", help="SSH password", default=None)
    run_parser.add_argument("--key-path", help="Path to SSH private key", default=None)
    run_parser.add_argument(
        "--timeout", type=float, default=None, help="Connect timeout in seconds"
    )
    run_parser.add_argument(
        "--env", "-e", action="append", default=[], metavar="KEY=VALUE",
        help="Environment variable to set for the command (repeatable)",
    )
    run_parser.add_argument(
        "--command-timeout", type=float, default=None,
        help="Abort the command after this many seconds",
    )
    run_parser.add_argument(
        "--lenient-stderr", action="store_true",
        help="Do not treat output on stderr as a failure",
    )
    run_parser.add_argument(
        "--json", action="store_true", dest="as_json",
        help="Print the full result as JSON",
    )
    run_parser.add_argument("remote_command", nargs=argparse.REMAINDER, help="Command to run")

    return parser


def terminal_responder(
    title: str, instructions: str, prompts: Sequence[Tuple[str, bool]]
) -> List[str]:
    """Answer keyboard-interactive prompts on the local terminal."""
    for text in (title, instructions):
        if text:
            print(text, file=sys.stderr)
    answers = []
    for prompt, echo in prompts:
        if echo:
            answers.append(input(prompt))
        else:
            answers.append(getpass.getpass(prompt))
    return answers


def _merge_args(config: CourierConfig, args: argparse.Namespace) -> Optional[str]:
    """Fold CLI flags into ``config``; return an error message if unusable."""
    connection = config.connection
    execution = config.execution

    if args.host:
        connection.host = args.host
    if args.port is not None:
        connection.port = args.port
    if args.user:
        connection.username = args.user
    if args.auth_method:
        connection.auth_method = args.auth_method
    if args.password is not None:
        connection.password = args.password
    if args.key_path is not None:
        connection.key_path = args.key_path
        if not args.auth_method:
            connection.auth_method = "key"
    if args.timeout is not None:
        connection.timeout = args.timeout
    if args.command_timeout is not None:
        execution.command_timeout = args.command_timeout
    if args.lenient_stderr:
        execution.stderr_policy = StderrPolicy.LENIENT.value

    missing = []
    if not connection.host:
        missing.append("host")
    if not connection.username:
        missing.append("user")
    if missing:
        return f"missing required connection settings: {', '.join(missing)}"
    if not args.remote_command:
        return "no command given"
    return None


def handle_run_command(
    args: argparse.Namespace,
    config: CourierConfig,
    transport: Optional[Transport] = None,
) -> int:
    remote_command = list(args.remote_command)
    if remote_command and remote_command[0] == "--":
        remote_command = remote_command[1:]
    args.remote_command = remote_command

    problem = _merge_args(config, args)
    if problem:
        print(f"courier run: error: {problem}", file=sys.stderr)
        return 2

    connection = config.connection
    if connection.auth_method == "password" and not connection.password:
        connection.password = getpass.getpass(
            f"{connection.username}@{connection.host}'s password: "
        )

    try:
        client = Courier.from_config(config, transport=transport, responder=terminal_responder)
    except (CourierError, ValueError) as exc:
        print(f"courier: {exc}", file=sys.stderr)
        return 1

    with client:
        result = client.execute(" ".join(remote_command), args.env)

    if args.as_json:
        print(json.dumps(result.to_payload(), ensure_ascii=False, indent=2))
    else:
        if result.stdout:
            sys.stdout.write(result.stdout)
            sys.stdout.flush()
        if result.error is not None:
            print(f"courier: {result.error}", file=sys.stderr)
        elif result.stderr:
            sys.stderr.write(result.stderr)
    return 0 if result.ok else 1


def dispatch_command(args: argparse.Namespace, transport: Optional[Transport] = None) -> int:
    logger = get_logger(__name__, level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"courier: {exc}", file=sys.stderr)
        return 2
    logger.debug("Loaded configuration from %s", args.config or "defaults")

    if args.command == "run":
        return handle_run_command(args, config, transport)
    return 2


def run_cli(argv: Optional[list[str]] = None, *, transport: Optional[Transport] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args, transport)
