"""High-level client bundling a connection with a command executor."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Iterable, Optional

from .credentials import Credential, InteractiveResponder, PasswordCredential
from .ssh.connection import SSHConnection
from .ssh.executor import CommandExecutor, ExecutionResult, PtySettings, StderrPolicy
from .transport.base import Transport

if TYPE_CHECKING:
    from .config import CourierConfig


class Courier:
    """Run commands on one remote host.

    Usage::

        with Courier.connect("10.0.0.5", 22, "deploy", PasswordCredential("pw"), 10) as c:
            print(c.run("uname -a"))
    """

    def __init__(
        self,
        connection: SSHConnection,
        *,
        stderr_policy: StderrPolicy = StderrPolicy.STRICT,
        pty: Optional[PtySettings] = None,
        command_timeout: Optional[float] = None,
    ) -> None:
        self.connection = connection
        self.executor = CommandExecutor(connection, stderr_policy=stderr_policy, pty=pty)
        self.command_timeout = command_timeout

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        username: str,
        credential: Credential,
        timeout: float,
        *,
        transport: Optional[Transport] = None,
        stderr_policy: StderrPolicy = StderrPolicy.STRICT,
        pty: Optional[PtySettings] = None,
        command_timeout: Optional[float] = None,
    ) -> "Courier":
        connection = SSHConnection.connect(
            host, port, username, credential, timeout, transport=transport
        )
        return cls(
            connection,
            stderr_policy=stderr_policy,
            pty=pty,
            command_timeout=command_timeout,
        )

    @classmethod
    def from_config(
        cls,
        config: "CourierConfig",
        *,
        transport: Optional[Transport] = None,
        responder: Optional[InteractiveResponder] = None,
    ) -> "Courier":
        connection_config = config.connection
        execution_config = config.execution
        missing = [
            name for name in ("host", "username") if not getattr(connection_config, name)
        ]
        if missing:
            raise ValueError(f"Missing connection settings: {', '.join(missing)}")
        return cls.connect(
            connection_config.host,
            connection_config.port,
            connection_config.username,
            connection_config.to_credential(responder),
            connection_config.timeout,
            transport=transport,
            stderr_policy=StderrPolicy(execution_config.stderr_policy),
            pty=execution_config.pty_settings(),
            command_timeout=execution_config.command_timeout,
        )

    @property
    def connected(self) -> bool:
        return self.connection.connected

    def run(
        self,
        command: str,
        env: Optional[Iterable[str]] = None,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        return self.executor.run(command, env, timeout=self._timeout(timeout), cancel=cancel)

    def run_with_env(
        self,
        command: str,
        env: Iterable[str],
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        return self.executor.run_with_env(
            command, env, timeout=self._timeout(timeout), cancel=cancel
        )

    def execute(
        self,
        command: str,
        env: Optional[Iterable[str]] = None,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionResult:
        return self.executor.execute(command, env, timeout=self._timeout(timeout), cancel=cancel)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "Courier":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.command_timeout


def connect_with_password(
    host: str,
    port: int,
    username: str,
    password: str,
    timeout: float,
    **kwargs,
) -> Courier:
    return Courier.connect(host, port, username, PasswordCredential(password), timeout, **kwargs)
