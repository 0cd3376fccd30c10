"""Interfaces the core expects from a secure-transport implementation."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from ..credentials import Credential

# RFC 4254 section 8 terminal mode opcodes
TTY_OP_END = 0
ECHO = 53
TTY_OP_ISPEED = 128
TTY_OP_OSPEED = 129


@dataclass(frozen=True)
class Address:
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class DialConfig:
    """Everything a transport needs to dial and authenticate."""

    username: str
    credential: Credential
    timeout: float


class ExitStatusError(Exception):
    """Raised by a channel when the remote command exits abnormally."""

    def __init__(self, exit_status: int, signal: Optional[str] = None) -> None:
        self.exit_status = exit_status
        self.signal = signal
        if signal:
            message = f"Process exited with signal {signal}"
        else:
            message = f"Process exited with status {exit_status}"
        super().__init__(message)


class Sink(Protocol):
    def write(self, data: bytes) -> int:
        ...


class Channel(Protocol):
    """A single-use session multiplexed over a connection."""

    def request_pty(
        self, term: str, cols: int, rows: int, modes: Mapping[int, int]
    ) -> None:
        ...

    def set_env(self, key: str, value: str) -> None:
        ...

    def bind_stdout(self, sink: Sink) -> None:
        ...

    def bind_stderr(self, sink: Sink) -> None:
        ...

    def run(
        self,
        command: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Run ``command`` to completion.

        Raises ``ExitStatusError`` on a non-zero exit, ``TimeoutError`` when
        ``timeout`` elapses and ``InterruptedError`` when ``cancel`` is set.

        ``timeout`` and ``cancel`` cover the command once the server has
        accepted the exec request. Waiting for that reply, like the pty and
        env replies, is not bounded by them; closing the connection from
        another thread ends such a wait.
        """
        ...

    def close(self) -> None:
        ...


class Connection(Protocol):
    def new_channel(self) -> Channel:
        ...

    def close(self) -> None:
        ...


class Transport(Protocol):
    """Dials and authenticates; raises ``DialError`` or ``AuthenticationError``."""

    def dial(self, address: Address, config: DialConfig) -> Connection:
        ...
