# screenflow/__init__.py
"""
screenflow -- screen-based conversational apps (USSD, SMS, chat) driven by
an interaction machine running inside a sandbox host.

    from screenflow import App, FreeText, EndState, interact
"""
from screenflow.core.engine import (  # noqa: F401
    App,
    State,
    StateData,
    InteractionMachine,
    interact,
    LazyTranslator,
)
from screenflow.core.states import (  # noqa: F401
    FreeText,
    Choice,
    ChoiceState,
    MenuState,
    BookletState,
    EndState,
)

__version__ = "0.1.0"
