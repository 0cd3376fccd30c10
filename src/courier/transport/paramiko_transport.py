"""Secure transport built on Paramiko."""

from __future__ import annotations

import logging
import socket
import struct
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional

import paramiko
from paramiko.common import cMSG_CHANNEL_REQUEST

from ..credentials import InteractiveCredential, KeyCredential, PasswordCredential
from ..errors import AuthenticationError, DialError
from .base import TTY_OP_END, Address, DialConfig, ExitStatusError, Sink

logger = logging.getLogger(__name__)

Authenticator = Callable[[paramiko.Transport, str, Any], None]


def encode_terminal_modes(modes: Mapping[int, int]) -> bytes:
    """Encode terminal modes as opcode byte + uint32 pairs, ``TTY_OP_END`` terminated."""
    encoded = b"".join(struct.pack(">BI", opcode, value) for opcode, value in modes.items())
    return encoded + bytes([TTY_OP_END])


def _auth_password(transport: paramiko.Transport, username: str, credential: PasswordCredential) -> None:
    transport.auth_password(username, credential.password)


def _auth_key(transport: paramiko.Transport, username: str, credential: KeyCredential) -> None:
    passphrase = credential.passphrase
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    # Positional: the keyword is passphrase in paramiko 3.x and password in 5.x
    key = paramiko.PKey.from_path(credential.key_path, passphrase)
    transport.auth_publickey(username, key)


def _auth_interactive(
    transport: paramiko.Transport, username: str, credential: InteractiveCredential
) -> None:
    transport.auth_interactive(username, credential.responder)


DEFAULT_AUTHENTICATORS: Dict[type, Authenticator] = {
    PasswordCredential: _auth_password,
    KeyCredential: _auth_key,
    InteractiveCredential: _auth_interactive,
}


class ParamikoChannel:
    """One paramiko session channel, used for a single command."""

    CHUNK_SIZE = 32768

    def __init__(self, channel: paramiko.Channel, *, poll_interval: float = 0.1) -> None:
        self._channel = channel
        self._poll_interval = poll_interval
        self._stdout: Optional[Sink] = None
        self._stderr: Optional[Sink] = None

    def request_pty(self, term: str, cols: int, rows: int, modes: Mapping[int, int]) -> None:
        self._send_request("pty-req", term, cols, rows, 0, 0, encode_terminal_modes(modes))

    def set_env(self, key: str, value: str) -> None:
        self._send_request("env", key, value)

    def bind_stdout(self, sink: Sink) -> None:
        self._stdout = sink

    def bind_stderr(self, sink: Sink) -> None:
        self._stderr = sink

    def run(
        self,
        command: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        # exec_command blocks until the server replies; the deadline starts after.
        channel = self._channel
        channel.exec_command(command)
        # Nothing is ever written to stdin
        channel.shutdown_write()

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            received = self._drain()
            if channel.exit_status_ready() and not (
                channel.recv_ready() or channel.recv_stderr_ready()
            ):
                break
            if cancel is not None and cancel.is_set():
                channel.close()
                raise InterruptedError(f"command cancelled: {command}")
            if deadline is not None and time.monotonic() > deadline:
                channel.close()
                raise TimeoutError(f"command did not complete within {timeout} seconds")
            if received:
                continue
            if cancel is not None:
                cancel.wait(self._poll_interval)
            else:
                time.sleep(self._poll_interval)

        self._drain()
        status = channel.recv_exit_status()
        if status == -1:
            raise paramiko.SSHException("remote command exited without reporting an exit status")
        if status != 0:
            raise ExitStatusError(status)

    def close(self) -> None:
        self._channel.close()

    def _drain(self) -> bool:
        received = False
        while self._channel.recv_ready():
            self._write(self._stdout, self._channel.recv(self.CHUNK_SIZE))
            received = True
        while self._channel.recv_stderr_ready():
            self._write(self._stderr, self._channel.recv_stderr(self.CHUNK_SIZE))
            received = True
        return received

    @staticmethod
    def _write(sink: Optional[Sink], data: bytes) -> None:
        if sink is not None and data:
            sink.write(data)

    def _send_request(self, request: str, *fields: Any) -> None:
        # Same exchange as paramiko.Channel.get_pty, but with want-reply set
        # and caller-supplied payload. A refusal closes the channel and
        # _wait_for_event raises SSHException.
        m = paramiko.Message()
        m.add_byte(cMSG_CHANNEL_REQUEST)
        m.add_int(self._channel.remote_chanid)
        m.add_string(request)
        m.add_boolean(True)
        for value in fields:
            if isinstance(value, int):
                m.add_int(value)
            else:
                m.add_string(value)
        self._channel._event_pending()
        self._channel.transport._send_user_message(m)
        self._channel._wait_for_event()


class ParamikoConnection:
    def __init__(
        self,
        transport: paramiko.Transport,
        *,
        timeout: Optional[float] = None,
        poll_interval: float = 0.1,
    ) -> None:
        self._transport = transport
        self._timeout = timeout
        self._poll_interval = poll_interval

    def new_channel(self) -> ParamikoChannel:
        channel = self._transport.open_session(timeout=self._timeout)
        return ParamikoChannel(channel, poll_interval=self._poll_interval)

    def close(self) -> None:
        self._transport.close()


class ParamikoTransport:
    """Dials with a plain TCP socket and runs the Paramiko client handshake.

    Host keys are accepted as presented.
    """

    def __init__(
        self,
        *,
        socket_factory: Callable[..., socket.socket] | None = None,
        transport_factory: Callable[[socket.socket], paramiko.Transport] | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        self._socket_factory = socket_factory or socket.create_connection
        self._transport_factory = transport_factory or paramiko.Transport
        self._poll_interval = poll_interval
        self.authenticators: Dict[type, Authenticator] = dict(DEFAULT_AUTHENTICATORS)

    def register_authenticator(self, credential_type: type, authenticator: Authenticator) -> None:
        self.authenticators[credential_type] = authenticator

    def dial(self, address: Address, config: DialConfig) -> ParamikoConnection:
        authenticator = self.authenticators.get(type(config.credential))
        if authenticator is None:
            raise TypeError(
                f"No authenticator registered for {type(config.credential).__name__}"
            )

        try:
            sock = self._socket_factory((address.host, address.port), timeout=config.timeout)
        except OSError as exc:
            raise DialError(address.host, address.port, exc) from exc

        transport: Optional[paramiko.Transport] = None
        try:
            transport = self._transport_factory(sock)
            transport.start_client(timeout=config.timeout)
            logger.debug("SSH handshake with %s complete", address)
            authenticator(transport, config.username, config.credential)
        except paramiko.AuthenticationException as exc:
            self._abort(transport, sock)
            raise AuthenticationError(address.host, address.port, exc) from exc
        except (paramiko.SSHException, OSError, EOFError) as exc:
            self._abort(transport, sock)
            raise DialError(address.host, address.port, exc) from exc
        except BaseException:
            self._abort(transport, sock)
            raise

        if not transport.is_authenticated():
            self._abort(transport, sock)
            cause = paramiko.AuthenticationException("Authentication failed.")
            raise AuthenticationError(address.host, address.port, cause)

        return ParamikoConnection(
            transport, timeout=config.timeout, poll_interval=self._poll_interval
        )

    @staticmethod
    def _abort(transport: Optional[paramiko.Transport], sock: socket.socket) -> None:
        if transport is not None:
            transport.close()
        else:
            sock.close()
