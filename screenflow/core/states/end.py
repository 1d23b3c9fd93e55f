from __future__ import annotations

from typing import Any

from screenflow.core.engine.events import EventKind, StateShowEvent
from screenflow.core.engine.state import NextState, State, resolve_next_state


class EndState(State):
    """
    Shows ``text`` and closes the session.

    Once shown, the user's persisted state is pointed at ``next`` (default:
    the app's start state), so their next session starts there.
    """

    def __init__(self, name: str, text: Any, next: NextState = None, **opts: Any):
        opts.setdefault("continue_session", False)
        super().__init__(name, **opts)
        self.text = text
        self.next = next
        self.on(EventKind.STATE_SHOW, self._on_show)

    async def _on_show(self, event: StateShowEvent) -> None:
        target = self.next if self.next is not None else self.im.app.start_state_name
        next_state = await resolve_next_state(target)
        if next_state is not None:
            self.user.state.reset(next_state)

    def translate(self, i18n) -> None:
        self.text = i18n(self.text)

    def display(self) -> Any:
        return self.text
