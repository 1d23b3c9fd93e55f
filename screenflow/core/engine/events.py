"""
Ordered publish-subscribe primitives shared by every engine component.

Listeners for one kind run one after the other, in registration order. A
listener may return a plain value or an awaitable; the next listener only
starts once the previous one has finished. If a listener raises, emission
stops there and the exception propagates to the emitter. Listeners that
already ran are not rolled back.
"""
from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

from screenflow.infra.logging_config import get_logger

logger = get_logger(__name__)

Listener = Callable[[Any], Any]


class EventKind(str, Enum):
    """Every event kind the engine emits"""
    SETUP = "setup"
    TEARDOWN = "teardown"

    STATE_SETUP = "state:setup"
    STATE_INPUT = "state:input"
    STATE_INVALID = "state:invalid"
    STATE_SHOW = "state:show"
    STATE_ENTER = "state:enter"
    STATE_EXIT = "state:exit"
    STATE_RESUME = "state:resume"

    SESSION_NEW = "session:new"
    SESSION_RESUME = "session:resume"
    SESSION_CLOSE = "session:close"

    INBOUND_MESSAGE = "inbound_message"
    INBOUND_EVENT = "inbound_event"
    UNKNOWN_COMMAND = "unknown_command"
    REPLY = "reply"
    IM_ERROR = "im:error"
    IM_SHUTDOWN = "im:shutdown"

    USER_NEW = "user:new"
    USER_LOAD = "user:load"
    USER_RESET = "user:reset"
    USER_SAVE = "user:save"


# ============================================================================
# EVENT PAYLOADS
# ============================================================================

@dataclass(frozen=True)
class Event:
    kind: EventKind = field(init=False)


@dataclass(frozen=True)
class SetupEvent(Event):
    """Emitted once an eventable object has finished setting up"""
    instance: Any
    kind: EventKind = field(default=EventKind.SETUP, init=False)


@dataclass(frozen=True)
class TeardownEvent(Event):
    instance: Any
    kind: EventKind = field(default=EventKind.TEARDOWN, init=False)


# -- state events (carry the state they concern) -----------------------------

@dataclass(frozen=True)
class StateEvent(Event):
    state: Any


@dataclass(frozen=True)
class StateSetupEvent(StateEvent):
    kind: EventKind = field(default=EventKind.STATE_SETUP, init=False)


@dataclass(frozen=True)
class StateInputEvent(StateEvent):
    content: Any = None
    kind: EventKind = field(default=EventKind.STATE_INPUT, init=False)


@dataclass(frozen=True)
class StateInvalidEvent(StateEvent):
    error: Any = None
    kind: EventKind = field(default=EventKind.STATE_INVALID, init=False)


@dataclass(frozen=True)
class StateShowEvent(StateEvent):
    content: Any = None
    kind: EventKind = field(default=EventKind.STATE_SHOW, init=False)


@dataclass(frozen=True)
class StateEnterEvent(StateEvent):
    kind: EventKind = field(default=EventKind.STATE_ENTER, init=False)


@dataclass(frozen=True)
class StateExitEvent(StateEvent):
    kind: EventKind = field(default=EventKind.STATE_EXIT, init=False)


@dataclass(frozen=True)
class StateResumeEvent(StateEvent):
    kind: EventKind = field(default=EventKind.STATE_RESUME, init=False)


# -- interaction machine events ----------------------------------------------

@dataclass(frozen=True)
class IMEvent(Event):
    im: Any


@dataclass(frozen=True)
class SessionNewEvent(IMEvent):
    kind: EventKind = field(default=EventKind.SESSION_NEW, init=False)


@dataclass(frozen=True)
class SessionResumeEvent(IMEvent):
    kind: EventKind = field(default=EventKind.SESSION_RESUME, init=False)


@dataclass(frozen=True)
class SessionCloseEvent(IMEvent):
    """``user_terminated`` is False when the app itself ended the session"""
    user_terminated: bool = False
    kind: EventKind = field(default=EventKind.SESSION_CLOSE, init=False)


@dataclass(frozen=True)
class InboundMessageEvent(IMEvent):
    cmd: dict = field(default_factory=dict)
    kind: EventKind = field(default=EventKind.INBOUND_MESSAGE, init=False)

    @property
    def msg(self) -> dict:
        return self.cmd.get("msg") or {}


@dataclass(frozen=True)
class InboundEventEvent(IMEvent):
    """Delivery report or ack for an outbound message sent by this app"""
    cmd: dict = field(default_factory=dict)
    kind: EventKind = field(default=EventKind.INBOUND_EVENT, init=False)

    @property
    def event(self) -> dict:
        return self.cmd.get("msg") or {}


@dataclass(frozen=True)
class UnknownCommandEvent(IMEvent):
    cmd: dict = field(default_factory=dict)
    kind: EventKind = field(default=EventKind.UNKNOWN_COMMAND, init=False)


@dataclass(frozen=True)
class ReplyEvent(IMEvent):
    content: Any = None
    continue_session: bool = True
    kind: EventKind = field(default=EventKind.REPLY, init=False)


@dataclass(frozen=True)
class IMErrorEvent(IMEvent):
    error: BaseException | None = None
    kind: EventKind = field(default=EventKind.IM_ERROR, init=False)


@dataclass(frozen=True)
class IMShutdownEvent(IMEvent):
    kind: EventKind = field(default=EventKind.IM_SHUTDOWN, init=False)


# -- user events --------------------------------------------------------------

@dataclass(frozen=True)
class UserEvent(Event):
    user: Any


@dataclass(frozen=True)
class UserNewEvent(UserEvent):
    kind: EventKind = field(default=EventKind.USER_NEW, init=False)


@dataclass(frozen=True)
class UserLoadEvent(UserEvent):
    kind: EventKind = field(default=EventKind.USER_LOAD, init=False)


@dataclass(frozen=True)
class UserResetEvent(UserEvent):
    kind: EventKind = field(default=EventKind.USER_RESET, init=False)


@dataclass(frozen=True)
class UserSaveEvent(UserEvent):
    kind: EventKind = field(default=EventKind.USER_SAVE, init=False)


# ============================================================================
# EVENTABLE
# ============================================================================

async def maybe_await(value: Any) -> Any:
    """Resolve ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class Eventable:
    """Mixin giving an object an ordered, awaitable event bus."""

    def __init__(self) -> None:
        self._listeners: Dict[EventKind, List[Listener]] = defaultdict(list)

    def on(self, kind: EventKind | str, listener: Listener) -> Listener:
        """Register ``listener`` for ``kind``. Returns the listener, so this works as a decorator."""
        kind = EventKind(kind)
        self._listeners[kind].append(listener)
        logger.debug(
            "Listener %s registered on %s for '%s'",
            getattr(listener, "__qualname__", repr(listener)),
            type(self).__name__,
            kind.value,
        )
        return listener

    def off(self, kind: EventKind | str, listener: Listener) -> None:
        kind = EventKind(kind)
        if listener in self._listeners[kind]:
            self._listeners[kind].remove(listener)

    def once(self, kind: EventKind | str) -> "asyncio.Future":
        """Return a future resolved with the next ``kind`` event emitted on this object."""
        kind = EventKind(kind)
        future = asyncio.get_running_loop().create_future()

        def listener(event):
            self.off(kind, listener)
            if not future.done():
                future.set_result(event)

        self.on(kind, listener)
        return future

    def listeners(self, kind: EventKind | str) -> list[Listener]:
        return list(self._listeners.get(EventKind(kind), ()))

    async def emit(self, event: Event) -> None:
        """Run every listener for ``event.kind`` in order, awaiting each one."""
        # Snapshot: listeners added or removed mid-emit take effect next time
        for listener in list(self._listeners.get(event.kind, ())):
            await maybe_await(listener(event))

    def teardown_listeners(self) -> None:
        self._listeners.clear()
