"""SSH credential kinds.

Each kind is its own dataclass; transports look up how to authenticate with
a credential by its class, so adding a kind never touches existing ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, ClassVar, List, Optional, Sequence, Tuple, Union

# (title, instructions, [(prompt, echo), ...]) -> answers
InteractiveResponder = Callable[[str, str, Sequence[Tuple[str, bool]]], List[str]]


@dataclass
class PasswordCredential:
    kind: ClassVar[str] = "password"

    password: str = field(repr=False)

    def validate(self) -> None:
        if not self.password:
            raise ValueError("Password authentication selected but no password provided")


@dataclass
class KeyCredential:
    kind: ClassVar[str] = "key"

    key_path: str
    passphrase: Optional[str] = field(default=None, repr=False)

    def validate(self) -> None:
        if not self.key_path:
            raise ValueError("Key authentication selected but no key_path provided")


@dataclass
class InteractiveCredential:
    """Keyboard-interactive authentication driven by ``responder``."""

    kind: ClassVar[str] = "interactive"

    responder: InteractiveResponder

    def validate(self) -> None:
        if not callable(self.responder):
            raise ValueError("Interactive authentication needs a callable responder")


Credential = Union[PasswordCredential, KeyCredential, InteractiveCredential]
