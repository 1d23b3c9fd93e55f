from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Union

from screenflow.core.engine.events import EventKind, StateInputEvent, maybe_await
from screenflow.core.engine.state import NextState, State

DEFAULT_BUTTONS: Dict[str, Union[int, str]] = {"1": -1, "2": 1, "0": "exit"}
DEFAULT_FOOTER = "\n1 for prev, 2 for next, 0 to end."


class BookletState(State):
    """
    Paginated text. ``page_text(n)`` returns page ``n`` (0-based, may be
    awaitable); ``buttons`` maps inputs to page offsets, or ``"exit"`` to
    move on to ``next``. The current page is kept in the state's metadata.
    """

    def __init__(
        self,
        name: str,
        pages: int,
        page_text: Callable[[int], Any],
        next: NextState = None,
        initial_page: int = 0,
        buttons: Optional[Dict[str, Union[int, str]]] = None,
        footer_text: str = DEFAULT_FOOTER,
        **opts: Any,
    ):
        super().__init__(name, **opts)
        self.pages = pages
        self.page_text = page_text
        self.next = next
        self.initial_page = initial_page
        self.buttons = dict(buttons if buttons is not None else DEFAULT_BUTTONS)
        self.footer_text = footer_text
        self.on(EventKind.STATE_INPUT, self._on_input)

    def init(self) -> None:
        self.metadata.setdefault("page", self.initial_page)

    @property
    def current_page(self) -> int:
        return self.metadata["page"]

    def inc_current_page(self, amount: int) -> None:
        self.metadata["page"] = (self.current_page + amount) % self.pages

    async def _on_input(self, event: StateInputEvent) -> None:
        content = (event.content or "").strip()
        button = self.buttons.get(content)
        if button is None:
            return

        if button == "exit":
            await self.set_next_state(self.next, content)
        elif isinstance(button, int):
            self.inc_current_page(button)

    async def display(self) -> str:
        content = await maybe_await(self.page_text(self.current_page))
        return f"{self.user.i18n(content)}{self.footer_text}"
