# screenflow/core/engine/__init__.py
"""
Core engine -- the state orchestration layer of a conversational app.

This package contains the event bus, persisted state data, the state
contract, the app's state registry, the user record, session dispatch and
the interaction machine that ties one run together.

Canonical imports:
    from screenflow.core.engine import App, State, InteractionMachine
    from screenflow.core.engine.state_data import StateData
    from screenflow.core.engine.ports import SandboxApi
"""
from screenflow.core.engine.errors import (  # noqa: F401
    ScreenflowError,
    StateError,
    ApiError,
    StateInvalidError,
    UserNotFoundError,
)
from screenflow.core.engine.events import Eventable, Event, EventKind  # noqa: F401
from screenflow.core.engine.domain import InboundMessage  # noqa: F401
from screenflow.core.engine.ports import SandboxApi  # noqa: F401
from screenflow.core.engine.state_data import StateData  # noqa: F401
from screenflow.core.engine.state import State, StateDescriptor, resolve_next_state  # noqa: F401
from screenflow.core.engine.translate import LazyText, LazyTranslator, Translator  # noqa: F401
from screenflow.core.engine.app import App, AppStates  # noqa: F401
from screenflow.core.engine.user import User  # noqa: F401
from screenflow.core.engine.session_dispatch import SessionDispatchTable, SessionEvent  # noqa: F401
from screenflow.core.engine.interaction_machine import InteractionMachine, interact  # noqa: F401
