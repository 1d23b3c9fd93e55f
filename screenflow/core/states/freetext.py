from __future__ import annotations

from typing import Any, Callable, Optional

from screenflow.core.engine.events import EventKind, StateInputEvent
from screenflow.core.engine.state import NextState, State


class FreeText(State):
    """
    Asks a question and accepts any text answer that passes ``check``.

    On valid input the answer is saved under the state's name and ``next``
    is scheduled (callables get the content). On invalid input the error
    text is shown in place of the question.
    """

    def __init__(
        self,
        name: str,
        question: Any,
        next: NextState = None,
        check: Optional[Callable[[Any], Any]] = None,
        **opts: Any,
    ):
        super().__init__(name, check=check, **opts)
        self.question_text = question
        self.next = next
        self.on(EventKind.STATE_INPUT, self._on_input)

    async def _on_input(self, event: StateInputEvent) -> None:
        content = event.content
        if not await self.validate(content):
            return

        self.save_response(content)
        await self.set_next_state(self.next, content)

    def translate(self, i18n) -> None:
        self.question_text = i18n(self.question_text)

    def display(self) -> Any:
        if self.error is not None:
            return self.error.response
        return self.question_text
