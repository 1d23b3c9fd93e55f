from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from screenflow.core.engine.events import EventKind, StateInputEvent
from screenflow.core.engine.state import NextState, State
from screenflow.core.engine.translate import LazyText

DEFAULT_ERROR_TEXT = LazyText("Sorry, that is not a valid choice.")


@dataclass
class Choice:
    """An option in a ``ChoiceState``: ``value`` is stored, ``label`` is shown"""
    value: str
    label: Any

    def translate(self, i18n) -> None:
        self.label = i18n(self.label)


class ChoiceState(State):
    """
    Numbered list of choices; the user answers with a number (or, with
    ``accept_labels``, the label text).

    The chosen value is saved under the state's name, and ``next`` is
    scheduled; callables get the chosen ``Choice``.
    """

    def __init__(
        self,
        name: str,
        question: Any,
        choices: List[Choice],
        next: NextState = None,
        error: Any = None,
        accept_labels: bool = False,
        **opts: Any,
    ):
        super().__init__(name, **opts)
        self.question_text = question
        self.choices = list(choices)
        self.next = next
        self.error_text = error if error is not None else DEFAULT_ERROR_TEXT
        self.accept_labels = accept_labels
        self.on(EventKind.STATE_INPUT, self._on_input)

    def process_choice(self, content: Any) -> Optional[Choice]:
        text = str(content or "").strip()
        if text.isdigit():
            index = int(text) - 1
            if 0 <= index < len(self.choices):
                return self.choices[index]

        if self.accept_labels:
            for choice in self.choices:
                if str(choice.label).strip().lower() == text.lower():
                    return choice
        return None

    async def _on_input(self, event: StateInputEvent) -> None:
        choice = self.process_choice(event.content)
        if choice is None:
            await self.invalidate(self.error_text)
            return

        if not await self.validate(choice.value):
            return

        self.save_response(choice.value)
        await self.set_next_state(self.next, choice)

    def translate(self, i18n) -> None:
        self.question_text = i18n(self.question_text)
        self.error_text = i18n(self.error_text)
        for choice in self.choices:
            choice.translate(i18n)

    def display(self) -> str:
        header = self.error.response if self.error is not None else self.question_text
        lines = [str(header)]
        lines.extend(f"{i}. {choice.label}" for i, choice in enumerate(self.choices, start=1))
        return "\n".join(lines)


class MenuState(ChoiceState):
    """A ``ChoiceState`` whose choice values are the names of the states to go to"""

    def __init__(self, name: str, question: Any, choices: List[Choice], **opts: Any):
        opts.setdefault("next", lambda choice: choice.value)
        super().__init__(name, question, choices, **opts)
