"""Ownership of one authenticated SSH connection."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..credentials import Credential
from ..errors import ChannelCreationError, ConnectError, DialError, NoConnectionError
from ..transport.base import Address, Channel, Connection, DialConfig, Transport

logger = logging.getLogger(__name__)


class SSHConnection:
    """Transport handle: live until ``close`` releases the connection.

    Channels are created on demand, one per command. Closing is idempotent.
    """

    def __init__(self, connection: Optional[Connection], address: Optional[Address] = None) -> None:
        self._connection = connection
        self.address = address
        self._lock = threading.Lock()

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
    ) -> "SSHConnection":
        if not 1 <= port <= 65535:
            raise ValueError(f"Port out of range: {port}")
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout}")
        credential.validate()

        if transport is None:
            from ..transport.paramiko_transport import ParamikoTransport

            transport = ParamikoTransport()

        address = Address(host, port)
        logger.info("Connecting to %s as %s (%s auth)", address, username, credential.kind)
        try:
            connection = transport.dial(
                address, DialConfig(username=username, credential=credential, timeout=timeout)
            )
        except ConnectError:
            raise
        except Exception as exc:
            raise DialError(host, port, exc) from exc
        logger.info("Connected to %s", address)
        return cls(connection, address)

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def open_channel(self) -> Channel:
        with self._lock:
            if self._connection is None:
                raise NoConnectionError()
            try:
                return self._connection.new_channel()
            except Exception as exc:
                raise ChannelCreationError(exc) from exc

    def close(self) -> None:
        with self._lock:
            connection, self._connection = self._connection, None
        if connection is None:
            return
        logger.info("Closing connection to %s", self.address)
        connection.close()

    def __enter__(self) -> "SSHConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()
