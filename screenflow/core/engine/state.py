"""
Base contract for application states (screens).

A state instance lives for one run only: it is built by the app's state
registry from the persisted ``StateData``, set up with the interaction
machine and its metadata, fed input and/or shown, then thrown away.

Within a run a state goes ``constructed -> set up -> (input | shown) -> exited``.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Union, TYPE_CHECKING

from screenflow.core.engine.errors import StateError, StateInvalidError
from screenflow.core.engine.events import (
    Eventable,
    EventKind,
    Listener,
    StateInputEvent,
    StateInvalidEvent,
    StateSetupEvent,
    StateShowEvent,
    maybe_await,
)
from screenflow.core.engine.state_data import StateData
from screenflow.core.engine.translate import LazyText
from screenflow.infra.metrics import AppMetrics

if TYPE_CHECKING:
    from screenflow.core.engine.interaction_machine import InteractionMachine
    from screenflow.core.engine.user import User


@dataclass
class StateDescriptor:
    """Explicit next-state target: a name plus the data the next state is built from"""
    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    creator_opts: Dict[str, Any] = field(default_factory=dict)


# A next state is a name, a descriptor (or {"name", "metadata", "creator_opts"}
# mapping), or a callable returning either (possibly awaitable), or None for
# "stay where you are".
NextState = Union[str, StateDescriptor, Mapping[str, Any], Callable[..., Any], None]


async def resolve_next_state(target: NextState, *args: Any) -> Optional[StateData]:
    """Resolve a ``NextState`` into ``StateData``, or None if no transition is wanted."""
    if callable(target):
        target = await maybe_await(target(*args))

    if target is None:
        return None
    if isinstance(target, (str, StateDescriptor, StateData)):
        return StateData(target)
    if isinstance(target, Mapping):
        if not target.get("name"):
            raise StateError(f"Next state descriptor is missing a name: {target!r}")
        return StateData(target)

    raise StateError(f"Cannot use {type(target).__name__} as a next state")


class State(Eventable):
    """
    Base class for application states.

    Args:
        name: Unique name of the state within its app.
        send_reply: Whether to reply when this state is current after input.
            A bool or a callable returning one (possibly awaitable).
        continue_session: Whether the session stays open after this state is
            shown. A bool or a callable, resolved per run.
        helper_metadata: Transport helper metadata sent along with replies.
            A dict or a callable returning one.
        check: ``check(content)`` validation hook. Returns None when the
            content is valid, otherwise an error message (``str`` or
            ``LazyText``) or a ready ``StateInvalidError``.
        metadata: Default metadata; persisted metadata wins on conflicts.
        events: ``{event_kind: listener}`` installed at construction.
    """

    def __init__(
        self,
        name: str,
        *,
        send_reply: Union[bool, Callable[[], Any]] = True,
        continue_session: Union[bool, Callable[[], Any]] = True,
        helper_metadata: Union[Dict[str, Any], Callable[[], Any], None] = None,
        check: Optional[Callable[[Any], Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        events: Optional[Dict[Union[EventKind, str], Listener]] = None,
    ):
        super().__init__()
        if not name:
            raise StateError("States need a name")

        self.name = name
        self.im: Optional["InteractionMachine"] = None
        self.metadata: Dict[str, Any] = {}
        self.creator_opts: Dict[str, Any] = {}
        self.error: Optional[StateInvalidError] = None
        self.check = check

        self._default_metadata = dict(metadata or {})
        self._send_reply = send_reply
        self._continue_session = continue_session
        self._helper_metadata = helper_metadata
        self._translated = False

        for kind, listener in (events or {}).items():
            self.on(kind, listener)

    @property
    def user(self) -> "User":
        if self.im is None:
            raise StateError(f"State '{self.name}' used before setup")
        return self.im.user

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def setup(self, im: "InteractionMachine", metadata: Optional[Mapping[str, Any]] = None) -> None:
        """Attach the state to ``im``. Must run before anything else."""
        self.im = im
        self.metadata = copy.deepcopy(self._default_metadata)
        self.metadata.update(copy.deepcopy(dict(metadata or {})))
        self.error = None
        self._translated = False

        await maybe_await(self.init())
        await self.emit(StateSetupEvent(self))

    def init(self) -> Any:
        """Hook for subclasses, runs during setup. May return an awaitable."""

    async def input(self, content: Any) -> None:
        """Hand user content to the state's input listeners."""
        await self._translate_once()
        await self.emit(StateInputEvent(self, content))

    async def show(self) -> Any:
        """Build the content to reply with and announce it."""
        await self._translate_once()
        i18n = self.user.i18n
        if self.error is not None:
            self.error.translate(i18n)

        content = i18n(await maybe_await(self.display()))
        await self.emit(StateShowEvent(self, content))
        return content

    def display(self) -> Any:
        """Content shown to the user. Subclasses override; may return an awaitable."""
        return f"State: [{self.name}]"

    def translate(self, i18n) -> Any:
        """Translate any text that was not given already translated."""

    async def _translate_once(self) -> None:
        if self._translated:
            return
        await maybe_await(self.translate(self.user.i18n))
        self._translated = True

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(self, content: Any) -> bool:
        """Run ``check`` against ``content``. Returns False (and invalidates) on failure."""
        if self.check is None:
            self.error = None
            return True

        result = await maybe_await(self.check(content))

        if result is None:
            self.error = None
            return True

        if isinstance(result, StateInvalidError):
            error = result
        elif isinstance(result, (str, LazyText)):
            error = StateInvalidError(self, result)
        else:
            raise StateError(
                f"Check for state '{self.name}' returned {type(result).__name__}; "
                "expected None, an error message or a StateInvalidError"
            )

        await self.invalidate(error)
        return False

    async def invalidate(self, error: Union[StateInvalidError, str, LazyText]) -> None:
        """Put the state in an error state and announce it."""
        if not isinstance(error, StateInvalidError):
            error = StateInvalidError(self, error)

        self.error = error
        AppMetrics.validation_failed(self.name)
        await self.emit(StateInvalidEvent(self, error))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def set_next_state(self, target: NextState, *args: Any) -> None:
        """
        Schedule the state the machine moves to when it replies.

        ``target`` can be a state name, a descriptor, or a callable invoked
        with ``args``. Only the last scheduled target is used. Resolving to
        None leaves any previously scheduled transition untouched.
        """
        next_state = await resolve_next_state(target, *args)
        if next_state is None:
            return
        self.im.next_state.reset(next_state)

    def save_response(self, response: Any) -> None:
        """Record the user's accepted answer for this state."""
        self.user.set_answer(self.name, response)

    # ------------------------------------------------------------------
    # Per-run configuration
    # ------------------------------------------------------------------

    async def send_reply(self) -> bool:
        return bool(await _resolve_option(self._send_reply))

    async def continue_session(self) -> bool:
        return bool(await _resolve_option(self._continue_session))

    async def helper_metadata(self) -> Dict[str, Any]:
        return dict(await _resolve_option(self._helper_metadata) or {})

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


async def _resolve_option(option: Any) -> Any:
    if callable(option):
        return await maybe_await(option())
    return option
