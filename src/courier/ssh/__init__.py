"""SSH connection handle and command executor."""

from .connection import SSHConnection
from .executor import (
    CommandExecutor,
    ExecutionResult,
    Outcome,
    PtySettings,
    StderrPolicy,
    parse_env,
)

__all__ = [
    "CommandExecutor",
    "ExecutionResult",
    "Outcome",
    "PtySettings",
    "SSHConnection",
    "StderrPolicy",
    "parse_env",
]
