import io
import tempfile
import threading
import unittest
from dataclasses import dataclass
from pathlib import Path

import paramiko
from paramiko.common import cMSG_CHANNEL_REQUEST

from courier.credentials import InteractiveCredential, KeyCredential, PasswordCredential
from courier.errors import AuthenticationError, DialError
from courier.transport import ECHO, TTY_OP_ISPEED, TTY_OP_OSPEED, encode_terminal_modes
from courier.transport.base import Address, DialConfig, ExitStatusError
from courier.transport.paramiko_transport import (
    ParamikoChannel,
    ParamikoConnection,
    ParamikoTransport,
)


class FakeParamikoChannel:
    """Mimics the parts of paramiko.Channel the adapter touches."""

    def __init__(self, stdout=(), stderr=(), exit_status=0, refuse=False, finishes=True) -> None:
        self.remote_chanid = 7
        self.transport = self
        self.sent: list[paramiko.Message] = []
        self.command = None
        self.write_shut = False
        self.closed = False
        self._out = list(stdout)
        self._err = list(stderr)
        self._exit_status = exit_status
        self._refuse = refuse
        self._finishes = finishes

    # request/reply plumbing
    def _event_pending(self) -> None:
        pass

    def _send_user_message(self, m: paramiko.Message) -> None:
        self.sent.append(m)

    def _wait_for_event(self) -> None:
        if self._refuse:
            raise paramiko.SSHException("Channel closed.")

    def exec_command(self, command: str) -> None:
        self.command = command

    def shutdown_write(self) -> None:
        self.write_shut = True

    def recv_ready(self) -> bool:
        return bool(self._out)

    def recv(self, nbytes: int) -> bytes:
        return self._out.pop(0)

    def recv_stderr_ready(self) -> bool:
        return bool(self._err)

    def recv_stderr(self, nbytes: int) -> bytes:
        return self._err.pop(0)

    def exit_status_ready(self) -> bool:
        return self.closed or (self._finishes and not self._out and not self._err)

    def recv_exit_status(self) -> int:
        return self._exit_status

    def close(self) -> None:
        self.closed = True


class FakeParamikoTransport:
    def __init__(self, sock, password="secret", handshake_error=None) -> None:
        self.sock = sock
        self.password = password
        self.handshake_error = handshake_error
        self.authenticated = False
        self.closed = False
        self.session_timeout = None

    def start_client(self, timeout=None) -> None:
        self.start_timeout = timeout
        if self.handshake_error is not None:
            raise self.handshake_error

    def auth_password(self, username, password) -> None:
        if password != self.password:
            raise paramiko.AuthenticationException("Authentication failed.")
        self.authenticated = True

    def auth_publickey(self, username, key) -> None:
        self.public_key = key
        self.authenticated = True

    def auth_interactive(self, username, handler) -> None:
        self.answers = handler("login", "", [("Verification code: ", False)])
        self.authenticated = True

    def is_authenticated(self) -> bool:
        return self.authenticated

    def open_session(self, timeout=None):
        self.session_timeout = timeout
        return FakeParamikoChannel()

    def close(self) -> None:
        self.closed = True


class FakeSocket:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class TerminalModeTests(unittest.TestCase):
    def test_encodes_opcode_value_pairs_and_terminator(self) -> None:
        encoded = encode_terminal_modes({ECHO: 0, TTY_OP_ISPEED: 14400, TTY_OP_OSPEED: 14400})
        self.assertEqual(
            encoded,
            bytes([53, 0, 0, 0, 0, 128, 0, 0, 0x38, 0x40, 129, 0, 0, 0x38, 0x40, 0]),
        )

    def test_empty_modes_is_just_terminator(self) -> None:
        self.assertEqual(encode_terminal_modes({}), b"\x00")


class ParamikoChannelTests(unittest.TestCase):
    def test_pty_request_payload(self) -> None:
        raw = FakeParamikoChannel()
        modes = {ECHO: 0, TTY_OP_ISPEED: 14400, TTY_OP_OSPEED: 14400}
        ParamikoChannel(raw).request_pty("xterm", 80, 40, modes)

        m = paramiko.Message(raw.sent[0].asbytes())
        self.assertEqual(m.get_byte(), cMSG_CHANNEL_REQUEST)
        self.assertEqual(m.get_int(), 7)
        self.assertEqual(m.get_text(), "pty-req")
        self.assertTrue(m.get_boolean())
        self.assertEqual(m.get_text(), "xterm")
        self.assertEqual([m.get_int() for _ in range(4)], [80, 40, 0, 0])
        self.assertEqual(m.get_binary(), encode_terminal_modes(modes))

    def test_env_request_wants_reply(self) -> None:
        raw = FakeParamikoChannel()
        ParamikoChannel(raw).set_env("FOO", "bar")

        m = paramiko.Message(raw.sent[0].asbytes())
        m.get_byte()
        m.get_int()
        self.assertEqual(m.get_text(), "env")
        self.assertTrue(m.get_boolean())
        self.assertEqual((m.get_text(), m.get_text()), ("FOO", "bar"))

    def test_refused_request_raises(self) -> None:
        channel = ParamikoChannel(FakeParamikoChannel(refuse=True))
        with self.assertRaises(paramiko.SSHException):
            channel.set_env("LD_PRELOAD", "x")

    def test_run_captures_both_streams(self) -> None:
        raw = FakeParamikoChannel(stdout=[b"hel", b"lo\n"], stderr=[b"warn\n"])
        channel = ParamikoChannel(raw, poll_interval=0.001)
        out, err = io.BytesIO(), io.BytesIO()
        channel.bind_stdout(out)
        channel.bind_stderr(err)

        channel.run("echo hello")

        self.assertEqual(raw.command, "echo hello")
        self.assertTrue(raw.write_shut)
        self.assertEqual(out.getvalue(), b"hello\n")
        self.assertEqual(err.getvalue(), b"warn\n")

    def test_unbound_streams_are_discarded(self) -> None:
        channel = ParamikoChannel(FakeParamikoChannel(stdout=[b"x"], stderr=[b"y"]))
        channel.run("true")

    def test_nonzero_exit_raises_exit_status_error(self) -> None:
        channel = ParamikoChannel(FakeParamikoChannel(exit_status=127))
        with self.assertRaises(ExitStatusError) as ctx:
            channel.run("nonexistent-binary-xyz")
        self.assertEqual(ctx.exception.exit_status, 127)

    def test_missing_exit_status_raises(self) -> None:
        channel = ParamikoChannel(FakeParamikoChannel(exit_status=-1))
        with self.assertRaises(paramiko.SSHException):
            channel.run("kill -9 $$")

    def test_deadline_closes_channel(self) -> None:
        raw = FakeParamikoChannel(finishes=False)
        channel = ParamikoChannel(raw, poll_interval=0.001)
        with self.assertRaises(TimeoutError):
            channel.run("sleep 100", timeout=0.02)
        self.assertTrue(raw.closed)

    def test_cancel_closes_channel(self) -> None:
        raw = FakeParamikoChannel(finishes=False)
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(InterruptedError):
            ParamikoChannel(raw, poll_interval=0.001).run("sleep 100", cancel=cancel)
        self.assertTrue(raw.closed)


@dataclass
class TokenCredential:
    token: str
    kind = "token"

    def validate(self) -> None:
        pass


class ParamikoTransportTests(unittest.TestCase):
    def _transport(self, **fake_kwargs):
        made = {}

        def socket_factory(address, timeout=None):
            made["address"] = address
            made["timeout"] = timeout
            made["socket"] = FakeSocket()
            return made["socket"]

        def transport_factory(sock):
            made["transport"] = FakeParamikoTransport(sock, **fake_kwargs)
            return made["transport"]

        transport = ParamikoTransport(
            socket_factory=socket_factory, transport_factory=transport_factory
        )
        return transport, made

    def test_dial_and_authenticate(self) -> None:
        transport, made = self._transport()
        connection = transport.dial(
            Address("example.com", 22),
            DialConfig(username="root", credential=PasswordCredential("secret"), timeout=4),
        )
        self.assertIsInstance(connection, ParamikoConnection)
        self.assertEqual(made["address"], ("example.com", 22))
        self.assertEqual(made["timeout"], 4)
        self.assertEqual(made["transport"].start_timeout, 4)

        channel = connection.new_channel()
        self.assertIsInstance(channel, ParamikoChannel)
        self.assertEqual(made["transport"].session_timeout, 4)

        connection.close()
        self.assertTrue(made["transport"].closed)

    def test_bad_password_is_authentication_error(self) -> None:
        transport, made = self._transport()
        with self.assertRaises(AuthenticationError) as ctx:
            transport.dial(
                Address("example.com", 22),
                DialConfig(username="root", credential=PasswordCredential("nope"), timeout=4),
            )
        self.assertIn("example.com", str(ctx.exception))
        self.assertTrue(made["transport"].closed)

    def test_socket_failure_is_dial_error(self) -> None:
        def refuse(address, timeout=None):
            raise ConnectionRefusedError("connection refused")

        transport = ParamikoTransport(socket_factory=refuse)
        with self.assertRaises(DialError) as ctx:
            transport.dial(
                Address("10.1.1.1", 2222),
                DialConfig(username="root", credential=PasswordCredential("pw"), timeout=1),
            )
        self.assertIn("2222", str(ctx.exception))
        self.assertIsInstance(ctx.exception.cause, ConnectionRefusedError)

    def test_handshake_failure_is_dial_error(self) -> None:
        transport, made = self._transport(
            handshake_error=paramiko.SSHException("Error reading SSH protocol banner")
        )
        with self.assertRaises(DialError):
            transport.dial(
                Address("h", 22),
                DialConfig(username="root", credential=PasswordCredential("secret"), timeout=1),
            )
        self.assertTrue(made["transport"].closed)

    def test_unregistered_credential_kind(self) -> None:
        transport, made = self._transport()
        config = DialConfig(username="root", credential=TokenCredential("t"), timeout=1)
        with self.assertRaises(TypeError):
            transport.dial(Address("h", 22), config)
        self.assertEqual(made, {})

    def test_registered_authenticator_is_used(self) -> None:
        transport, made = self._transport()
        seen = []

        def token_auth(paramiko_transport, username, credential) -> None:
            seen.append((username, credential.token))
            paramiko_transport.authenticated = True

        transport.register_authenticator(TokenCredential, token_auth)
        transport.dial(
            Address("h", 22),
            DialConfig(username="root", credential=TokenCredential("abc"), timeout=1),
        )
        self.assertEqual(seen, [("root", "abc")])

    def test_key_credential_loads_key_file(self) -> None:
        key = paramiko.RSAKey.generate(2048)
        with tempfile.TemporaryDirectory() as tmp:
            plain = Path(tmp) / "id_rsa"
            key.write_private_key_file(str(plain))
            locked = Path(tmp) / "id_rsa_locked"
            key.write_private_key_file(str(locked), password="hunter2")

            for credential in (
                KeyCredential(str(plain)),
                KeyCredential(str(locked), passphrase="hunter2"),
            ):
                transport, made = self._transport()
                transport.dial(
                    Address("h", 22),
                    DialConfig(username="root", credential=credential, timeout=1),
                )
                loaded = made["transport"].public_key
                self.assertIsInstance(loaded, paramiko.PKey)
                self.assertEqual(loaded.asbytes(), key.asbytes())

    def test_interactive_credential_answers_prompts(self) -> None:
        prompts_seen = []

        def responder(title, instructions, prompts):
            prompts_seen.append(list(prompts))
            return ["424242"]

        transport, made = self._transport()
        transport.dial(
            Address("h", 22),
            DialConfig(username="root", credential=InteractiveCredential(responder), timeout=1),
        )
        self.assertEqual(prompts_seen, [[("Verification code: ", False)]])
        self.assertEqual(made["transport"].answers, ["424242"])

    def test_unexpected_authenticator_error_closes_transport(self) -> None:
        transport, made = self._transport()

        def broken(paramiko_transport, username, credential) -> None:
            raise TypeError("unexpected keyword argument")

        transport.register_authenticator(TokenCredential, broken)
        with self.assertRaises(TypeError):
            transport.dial(
                Address("h", 22),
                DialConfig(username="root", credential=TokenCredential("abc"), timeout=1),
            )
        self.assertTrue(made["transport"].closed)

    def test_unauthenticated_transport_is_rejected(self) -> None:
        transport, made = self._transport()
        transport.register_authenticator(KeyCredential, lambda t, u, c: None)
        with self.assertRaises(AuthenticationError):
            transport.dial(
                Address("h", 22),
                DialConfig(username="root", credential=KeyCredential("/tmp/id"), timeout=1),
            )
        self.assertTrue(made["transport"].closed)


if __name__ == "__main__":
    unittest.main()
