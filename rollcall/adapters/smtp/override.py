"""
Function email sender adapter - Implements EmailSender protocol.

Wraps a caller-supplied ``(email, code)`` callable so that an embedding
application can route verification codes through its own mailer. When
present it fully replaces the default transport.
"""

from collections.abc import Callable
from typing import Any

SendFunction = Callable[[str, str], Any]


class FunctionEmailSender:
    """Implements EmailSender protocol by delegating to a plain function."""

    def __init__(self, send: SendFunction) -> None:
        if not callable(send):
            raise TypeError("email sender override must be callable")
        self._send = send

    def send_verification_code(self, email: str, code: str) -> None:
        # Return value of the override is ignored; only exceptions count.
        self._send(email, code)
