"""Secure-transport collaborators for courier."""

from .base import (
    ECHO,
    TTY_OP_ISPEED,
    TTY_OP_OSPEED,
    Address,
    Channel,
    Connection,
    DialConfig,
    ExitStatusError,
    Transport,
)
from .paramiko_transport import ParamikoTransport, encode_terminal_modes

__all__ = [
    "ECHO",
    "TTY_OP_ISPEED",
    "TTY_OP_OSPEED",
    "Address",
    "Channel",
    "Connection",
    "DialConfig",
    "ExitStatusError",
    "ParamikoTransport",
    "Transport",
    "encode_terminal_modes",
]
