"""Error taxonomy for connection and command execution failures."""

from __future__ import annotations

from typing import Optional


class CourierError(RuntimeError):
    """Base class for every error raised by courier."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class NoConnectionError(CourierError):
    """Operation attempted on a handle that is not connected."""

    def __init__(self) -> None:
        super().__init__("Error getting SSH connection")


class ConnectError(CourierError):
    def __init__(self, host: str, port: int, cause: BaseException) -> None:
        super().__init__(
            f"Error dialing host: {host} on port: {port}: {cause}", cause
        )
        self.host = host
        self.port = port


class DialError(ConnectError):
    """Host unreachable, DNS failure, handshake failure or timeout."""


class AuthenticationError(ConnectError):
    """The remote host rejected the credential."""


class ChannelCreationError(CourierError):
    prefix = "Error creating new SSH channel"

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"{self.prefix}: {cause}", cause)


class SessionCreationError(ChannelCreationError):
    prefix = "Error creating new SSH session"


class PtyRequestError(CourierError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Error request for pseudo terminal failed: {cause}", cause)


class EnvSetError(CourierError):
    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(f"Error setting env {key} for cmd: {cause}", cause)
        self.key = key


class CommandExecutionError(CourierError):
    def __init__(
        self,
        command: str,
        cause: BaseException,
        exit_status: Optional[int] = None,
    ) -> None:
        super().__init__(f"Error running: {command}: {cause}", cause)
        self.command = command
        self.exit_status = exit_status


class CommandTimeoutError(CommandExecutionError):
    pass


class CommandCancelledError(CommandExecutionError):
    pass


class RemoteStderrNonEmpty(CourierError):
    """The command exited cleanly but wrote to its error stream.

    ``str(error)`` is the stderr text verbatim; ``stdout`` keeps what the
    command printed.
    """

    def __init__(self, stderr: str, stdout: str, command: str = "") -> None:
        super().__init__(stderr)
        self.stderr = stderr
        self.stdout = stdout
        self.command = command
