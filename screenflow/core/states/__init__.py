# screenflow/core/states/__init__.py
"""Ready-made states: free text, choices and menus, booklets, end screens."""
from screenflow.core.states.freetext import FreeText  # noqa: F401
from screenflow.core.states.choices import Choice, ChoiceState, MenuState  # noqa: F401
from screenflow.core.states.booklet import BookletState  # noqa: F401
from screenflow.core.states.end import EndState  # noqa: F401
