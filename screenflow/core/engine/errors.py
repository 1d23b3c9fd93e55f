"""
Typed errors for the conversation engine.

Only two kinds ever escape to ``InteractionMachine.err``: ``StateError``
(programmer or registry misuse) and ``ApiError`` (the sandbox reported a
failed request).  Validation failures are values, not exceptions: they are
recorded on ``State.error`` as ``StateInvalidError`` instances.
"""
from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from screenflow.core.engine.state import State


class ScreenflowError(Exception):
    """Base class for all engine errors."""


class StateError(ScreenflowError):
    """Fatal misuse of a state or the state registry."""


class ApiError(ScreenflowError):
    """Raised when a sandbox API request comes back with ``success: false``."""

    def __init__(self, reply: dict):
        self.reply = reply
        super().__init__(reply.get("reason") or "Sandbox API request failed")


class StateInvalidError(ScreenflowError):
    """
    A failed validation of user input.

    ``response`` is what gets shown to the user: a plain string or a
    ``LazyText`` that is translated when the state is displayed.
    """

    def __init__(self, state: "State", response: Any):
        self.state = state
        self.response = response
        super().__init__(str(response))

    def translate(self, i18n) -> None:
        self.response = i18n(self.response)


class UserNotFoundError(ScreenflowError):
    """No persisted record for the requested user address."""

    def __init__(self, addr: str):
        self.addr = addr
        super().__init__(f"User not found: {addr}")
