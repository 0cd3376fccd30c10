"""Command execution protocol: one channel per command."""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import (
    ChannelCreationError,
    CommandCancelledError,
    CommandExecutionError,
    CommandTimeoutError,
    CourierError,
    EnvSetError,
    NoConnectionError,
    PtyRequestError,
    RemoteStderrNonEmpty,
    SessionCreationError,
)
from ..transport.base import ECHO, TTY_OP_ISPEED, TTY_OP_OSPEED, Channel, ExitStatusError
from .connection import SSHConnection

logger = logging.getLogger(__name__)


class StderrPolicy(str, Enum):
    STRICT = "strict"  # non-empty stderr fails the call
    LENIENT = "lenient"


class Outcome(str, Enum):
    SUCCESS = "success"
    NO_CONNECTION = "no_connection"
    CHANNEL_FAILED = "channel_failed"
    CONFIGURE_FAILED = "configure_failed"
    COMMAND_FAILED = "command_failed"
    STDERR_NONEMPTY = "stderr_nonempty"


@dataclass
class PtySettings:
    term: str = "xterm"
    cols: int = 80
    rows: int = 40
    modes: Dict[int, int] = field(
        default_factory=lambda: {
            ECHO: 0,  # disable echoing
            TTY_OP_ISPEED: 14400,  # input speed = 14.4kbaud
            TTY_OP_OSPEED: 14400,  # output speed = 14.4kbaud
        }
    )


@dataclass
class ExecutionResult:
    command: str
    outcome: Outcome
    stdout: str = ""
    stderr: str = ""
    error: Optional[CourierError] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def to_payload(self) -> dict:
        return {
            "command": self.command,
            "outcome": self.outcome.value,
            "ok": self.ok,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "error": str(self.error) if self.error is not None else None,
        }


def parse_env(entries: Iterable[str]) -> List[Tuple[str, str]]:
    """Keep only ``KEY=VALUE`` entries with exactly one ``=`` and both sides non-empty."""
    bindings: List[Tuple[str, str]] = []
    for entry in entries:
        parts = entry.split("=")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            logger.debug("Skipping malformed env entry %r", entry)
            continue
        bindings.append((parts[0], parts[1]))
    return bindings


class CommandExecutor:
    """Runs commands over an ``SSHConnection``.

    Each call acquires a fresh channel, requests a pty, applies environment
    bindings, runs the command with stdout and stderr captured separately and
    releases the channel on every path. Calls are not safe to run
    concurrently on one connection.
    """

    def __init__(
        self,
        connection: SSHConnection,
        *,
        stderr_policy: StderrPolicy = StderrPolicy.STRICT,
        pty: Optional[PtySettings] = None,
    ) -> None:
        self.connection = connection
        self.stderr_policy = StderrPolicy(stderr_policy)
        self.pty = pty or PtySettings()

    def run(
        self,
        command: str,
        env: Optional[Iterable[str]] = None,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Run ``command`` and return its stdout; raise a ``CourierError`` on failure."""
        result = self.execute(command, env, timeout=timeout, cancel=cancel)
        if result.error is not None:
            raise result.error
        return result.stdout

    def run_with_env(
        self,
        command: str,
        env: Iterable[str],
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        return self.run(command, list(env), timeout=timeout, cancel=cancel)

    def execute(
        self,
        command: str,
        env: Optional[Iterable[str]] = None,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionResult:
        """Run ``command`` and return the classified result without raising."""
        if not self.connection.connected:
            return ExecutionResult(command, Outcome.NO_CONNECTION, error=NoConnectionError())

        try:
            channel = self.connection.open_channel()
        except NoConnectionError as exc:
            return ExecutionResult(command, Outcome.NO_CONNECTION, error=exc)
        except ChannelCreationError as exc:
            cause = exc.cause or exc
            error = SessionCreationError(cause)
            error.__cause__ = cause
            return ExecutionResult(command, Outcome.CHANNEL_FAILED, error=error)

        try:
            try:
                self._configure(channel, env)
            except (PtyRequestError, EnvSetError) as exc:
                return ExecutionResult(command, Outcome.CONFIGURE_FAILED, error=exc)

            try:
                stdout, stderr = self._exec(channel, command, timeout, cancel)
            except CommandExecutionError as exc:
                return ExecutionResult(command, Outcome.COMMAND_FAILED, error=exc)
        finally:
            self._release(channel)

        if stderr:
            if self.stderr_policy is StderrPolicy.STRICT:
                return ExecutionResult(
                    command,
                    Outcome.STDERR_NONEMPTY,
                    stdout=stdout,
                    stderr=stderr,
                    error=RemoteStderrNonEmpty(stderr, stdout, command),
                )
            logger.warning("Command %r wrote to stderr: %s", command, stderr.rstrip())
        return ExecutionResult(command, Outcome.SUCCESS, stdout=stdout, stderr=stderr)

    def _configure(self, channel: Channel, env: Optional[Iterable[str]]) -> None:
        pty = self.pty
        try:
            channel.request_pty(pty.term, pty.cols, pty.rows, pty.modes)
        except Exception as exc:
            raise PtyRequestError(exc) from exc
        logger.debug("Allocated %s pty %dx%d", pty.term, pty.cols, pty.rows)

        if env is None:
            return
        for key, value in parse_env(env):
            try:
                channel.set_env(key, value)
            except Exception as exc:
                raise EnvSetError(key, exc) from exc
            logger.debug("Set env %s", key)

    def _exec(
        self,
        channel: Channel,
        command: str,
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> Tuple[str, str]:
        out_buffer = io.BytesIO()
        err_buffer = io.BytesIO()
        channel.bind_stdout(out_buffer)
        channel.bind_stderr(err_buffer)

        logger.debug("Running %r", command)
        try:
            channel.run(command, timeout=timeout, cancel=cancel)
        except TimeoutError as exc:
            raise CommandTimeoutError(command, exc) from exc
        except InterruptedError as exc:
            raise CommandCancelledError(command, exc) from exc
        except ExitStatusError as exc:
            raise CommandExecutionError(command, exc, exc.exit_status) from exc
        except Exception as exc:
            raise CommandExecutionError(command, exc) from exc

        return (
            out_buffer.getvalue().decode("utf-8", errors="replace"),
            err_buffer.getvalue().decode("utf-8", errors="replace"),
        )

    @staticmethod
    def _release(channel: Channel) -> None:
        try:
            channel.close()
        except Exception as exc:
            # The outcome is already decided; close errors do not change it.
            logger.debug("Ignoring error while closing channel: %s", exc)
