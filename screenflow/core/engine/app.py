"""
Application = start state name + a registry of state creators.

Creators are ``creator(name, opts)`` callables (sync or async) returning a
fresh ``State``; ``opts`` is the ``creator_opts`` persisted with the state.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Union, TYPE_CHECKING

from screenflow.core.engine.errors import StateError
from screenflow.core.engine.events import Eventable, SetupEvent, TeardownEvent, maybe_await
from screenflow.core.engine.state import State
from screenflow.infra.logging_config import get_logger

if TYPE_CHECKING:
    from screenflow.core.engine.interaction_machine import InteractionMachine

logger = get_logger(__name__)

StateCreator = Callable[[str, Dict[str, Any]], Any]


class AppStates:
    """Registry mapping state names to creators"""

    def __init__(self, app: "App"):
        self.app = app
        self.creators: Dict[str, StateCreator] = {}

    def add(self, state: Union[State, str], creator: Optional[StateCreator] = None) -> None:
        """
        Register a state instance, or a creator under ``name``.

        Raises:
            StateError: If a state with the same name is already registered
        """
        if isinstance(state, State):
            instance = state
            name = state.name
            creator = lambda _name, _opts: instance  # noqa: E731
        else:
            name = state
            if creator is None:
                raise StateError(f"No creator given for state '{name}'")

        if name in self.creators:
            raise StateError(f"Duplicate state name '{name}'")
        self.creators[name] = creator

    def creator(self, name: str) -> Callable[[StateCreator], StateCreator]:
        """Decorator form of ``add(name, creator)``"""
        def register(fn: StateCreator) -> StateCreator:
            self.add(name, fn)
            return fn
        return register

    def is_registered(self, name: Optional[str]) -> bool:
        return name in self.creators

    def list_names(self) -> list[str]:
        return list(self.creators.keys())

    async def create(self, name: Optional[str], opts: Optional[Dict[str, Any]] = None) -> State:
        """
        Build the state registered as ``name``.

        Raises:
            StateError: If ``name`` is unknown or the creator misbehaves
        """
        creator = self.creators.get(name)
        if creator is None:
            available = self.list_names()
            raise StateError(
                f"Unknown state '{name}'. "
                f"Available states: {', '.join(available) if available else 'none'}"
            )

        state = await maybe_await(creator(name, dict(opts or {})))
        if not isinstance(state, State):
            raise StateError(f"Creator for '{name}' returned {type(state).__name__}, not a State")
        return state

    async def create_or_substitute(self, name: Optional[str], opts: Optional[Dict[str, Any]] = None) -> State:
        """Like ``create``, but falls back to the start state for unknown names (stale data)."""
        if self.is_registered(name):
            return await self.create(name, opts)

        logger.warning(
            "State '%s' no longer exists, substituting start state '%s'",
            name, self.app.start_state_name,
        )
        return await self.create(self.app.start_state_name)


class App(Eventable):
    """
    Base class for applications.

    Subclasses register states in ``__init__`` (or ``init``) via
    ``self.states.add``.
    """

    def __init__(self, start_state_name: str, name: Optional[str] = None):
        super().__init__()
        self.start_state_name = start_state_name
        self.name = name or type(self).__name__
        self.states = AppStates(self)
        self.im: Optional["InteractionMachine"] = None

    def attach_im(self, im: "InteractionMachine") -> None:
        self.im = im

    def init(self) -> Any:
        """Hook for subclasses, runs during setup once the user is loaded. May return an awaitable."""

    async def setup(self) -> None:
        await maybe_await(self.init())
        await self.emit(SetupEvent(self))

    async def teardown(self) -> None:
        await self.emit(TeardownEvent(self))
        self.teardown_listeners()
