"""
Session dispatch: which handler runs for an inbound message's session marker.

    new      -> session:new, then reply
    resume   -> session:resume, input (if any content), then reply
    close    -> session:close only, no reply
    anything else, or no marker -> same as resume

A message without a marker from a user who is not in a session is treated as
``new``; that is how session-less transports (SMS, chat apps) start sessions.
"""
from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, TYPE_CHECKING

from screenflow.core.engine.domain import InboundMessage
from screenflow.core.engine.events import SessionCloseEvent, SessionNewEvent, SessionResumeEvent

if TYPE_CHECKING:
    from screenflow.core.engine.interaction_machine import InteractionMachine

SessionHandler = Callable[["InteractionMachine", InboundMessage], Awaitable[None]]


class SessionEvent(str, Enum):
    NEW = "new"
    RESUME = "resume"
    CLOSE = "close"


async def handle_new(im: "InteractionMachine", msg: InboundMessage) -> None:
    await im.emit(SessionNewEvent(im))
    await im.reply(msg)


async def handle_resume(im: "InteractionMachine", msg: InboundMessage) -> None:
    await im.emit(SessionResumeEvent(im))
    if msg.has_content():
        await im.state.input(msg.content)
    await im.reply(msg)


async def handle_close(im: "InteractionMachine", msg: InboundMessage) -> None:
    await im.emit(SessionCloseEvent(im, user_terminated=True))


class SessionDispatchTable:
    """Closed mapping of session markers to handlers, with ``resume`` as fallback"""

    def __init__(self) -> None:
        self._handlers: Dict[SessionEvent, SessionHandler] = {
            SessionEvent.NEW: handle_new,
            SessionEvent.RESUME: handle_resume,
            SessionEvent.CLOSE: handle_close,
        }
        self.fallback: SessionHandler = handle_resume

    @staticmethod
    def coerce(session_event: Optional[str], in_session: bool) -> Optional[str]:
        """Messages without a marker start a new session for users not in one."""
        if not in_session:
            return session_event or SessionEvent.NEW.value
        return session_event

    def lookup(self, session_event: Optional[str]) -> SessionHandler:
        try:
            marker = SessionEvent(session_event)
        except ValueError:
            return self.fallback
        return self._handlers[marker]
