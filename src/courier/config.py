"""Configuration loading utilities for courier."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .credentials import (
    Credential,
    InteractiveCredential,
    InteractiveResponder,
    KeyCredential,
    PasswordCredential,
)
from .ssh.executor import PtySettings, StderrPolicy

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/courier.json")

AUTH_METHODS = ("password", "key", "interactive")


@dataclass
class ConnectionConfig:
    """Where and how to connect."""

    host: Optional[str] = None
    port: int = 22
    username: Optional[str] = None
    auth_method: str = "password"
    password: Optional[str] = None
    key_path: Optional[str] = None
    passphrase: Optional[str] = None
    timeout: float = 20

    def to_credential(self, responder: Optional[InteractiveResponder] = None) -> Credential:
        if self.auth_method == "password":
            credential: Credential = PasswordCredential(password=self.password or "")
        elif self.auth_method == "key":
            credential = KeyCredential(key_path=self.key_path or "", passphrase=self.passphrase)
        elif self.auth_method == "interactive":
            if responder is None:
                raise ValueError("Interactive authentication selected but no responder provided")
            credential = InteractiveCredential(responder=responder)
        else:
            raise ValueError(
                f"Unknown auth_method {self.auth_method!r}, expected one of {', '.join(AUTH_METHODS)}"
            )
        credential.validate()
        return credential


@dataclass
class ExecutionConfig:
    """Settings applied to every command."""

    stderr_policy: str = StderrPolicy.STRICT.value
    command_timeout: Optional[float] = None
    term: str = "xterm"
    cols: int = 80
    rows: int = 40

    def pty_settings(self) -> PtySettings:
        return PtySettings(term=self.term, cols=self.cols, rows=self.rows)


@dataclass
class CourierConfig:
    """Top-level configuration."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CourierConfig":
        connection_payload = payload.get("connection", {}) or {}
        execution_payload = payload.get("execution", {}) or {}

        # 过滤掉以下划线开头的注释字段
        connection_payload = {k: v for k, v in connection_payload.items() if not k.startswith("_")}
        execution_payload = {k: v for k, v in execution_payload.items() if not k.startswith("_")}

        return cls(
            connection=ConnectionConfig(**{**ConnectionConfig().__dict__, **connection_payload}),
            execution=ExecutionConfig(**{**ExecutionConfig().__dict__, **execution_payload}),
        )


def _apply_env_overrides(config: CourierConfig) -> None:
    connection = config.connection
    execution = config.execution

    env_host = os.getenv("COURIER_SSH_HOST")
    if env_host:
        connection.host = env_host

    env_port = os.getenv("COURIER_SSH_PORT")
    if env_port:
        connection.port = int(env_port)

    env_username = os.getenv("COURIER_SSH_USERNAME")
    if env_username:
        connection.username = env_username

    env_password = os.getenv("COURIER_SSH_PASSWORD")
    if env_password:
        connection.password = env_password
        connection.auth_method = "password"

    env_key_path = os.getenv("COURIER_SSH_KEY_PATH")
    if env_key_path:
        connection.key_path = env_key_path
        connection.auth_method = "key"

    env_timeout = os.getenv("COURIER_SSH_TIMEOUT")
    if env_timeout:
        connection.timeout = float(env_timeout)

    env_policy = os.getenv("COURIER_STDERR_POLICY")
    if env_policy:
        execution.stderr_policy = StderrPolicy(env_policy.lower()).value

    env_command_timeout = os.getenv("COURIER_COMMAND_TIMEOUT")
    if env_command_timeout:
        execution.command_timeout = float(env_command_timeout)


def load_config(path: Optional[str] = None) -> CourierConfig:
    """Load configuration from `path` or the default location.

    An explicit `path` must exist; a missing default file yields defaults.

    Environment variables (higher priority than config file):
    - COURIER_SSH_HOST / COURIER_SSH_PORT / COURIER_SSH_USERNAME
    - COURIER_SSH_PASSWORD: selects password auth
    - COURIER_SSH_KEY_PATH: selects key auth
    - COURIER_SSH_TIMEOUT: dial timeout in seconds
    - COURIER_STDERR_POLICY: "strict" or "lenient"
    - COURIER_COMMAND_TIMEOUT: per-command timeout in seconds
    """

    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(f"Could not find configuration file: {candidate}")
    else:
        candidate = _DEFAULT_CONFIG_PATH

    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        config = CourierConfig.from_dict(data)
    else:
        config = CourierConfig()

    _apply_env_overrides(config)
    return config
