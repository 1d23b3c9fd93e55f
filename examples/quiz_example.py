#!/usr/bin/env python3
"""
Quiz Example

Demonstrates a small screen-based app (menu, free text, booklet, end screen)
running against the in-memory sandbox. Every inbound message is its own run:
a fresh interaction machine and app are built, the user's saved state is
resumed, and the reply is captured by the sandbox.

Run from project root:
    python examples/quiz_example.py
"""
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from screenflow.core.engine import App, LazyTranslator, interact
from screenflow.core.states import BookletState, Choice, EndState, FreeText, MenuState
from screenflow.infra.logging_config import setup_logging
from screenflow.infra.sandbox_api import DummySandboxApi

_ = LazyTranslator()

TIPS = [
    _("Lemons float, limes sink."),
    _("A lemon tree can produce 270 kg of fruit a year."),
    _("Lemon juice is about 5% citric acid."),
]


class QuizApp(App):
    def __init__(self):
        super().__init__("states:menu", name="quiz")

        self.states.add(MenuState("states:menu", _("Welcome to the fruit quiz!"), [
            Choice("states:question", _("Play")),
            Choice("states:tips", _("Tips")),
        ]))
        self.states.add(FreeText(
            "states:question",
            _("Which fruit is sour and yellow?"),
            next=self.after_answer,
            check=lambda content: None if content.strip() else _("Please type an answer."),
        ))
        self.states.add(BookletState(
            "states:tips",
            pages=len(TIPS),
            page_text=lambda n: TIPS[n],
            next="states:menu",
        ))
        self.states.add(EndState("states:right", _("Correct! Thanks for playing.")))
        self.states.add(EndState("states:wrong", _("Not quite, it was a lemon.")))

    async def after_answer(self, content):
        await self.im.metrics.inc("answers")
        return "states:right" if content.strip().lower() == "lemon" else "states:wrong"


async def main():
    setup_logging("WARNING")
    api = DummySandboxApi(
        config={"name": "quiz", "default_lang": "af"},
        translations={"af": {"Play": "Speel", "Tips": "Wenke"}},
    )

    conversation = [
        (None, "new", "Dial in"),
        ("2", "resume", "Open the tips"),
        ("2", "resume", "Next tip"),
        ("0", "resume", "Back to the menu"),
        ("1", "resume", "Play"),
        ("lemon", "resume", "Answer"),
    ]

    for i, (content, session_event, description) in enumerate(conversation, start=1):
        interact(api, QuizApp)
        await api.dispatch({
            "cmd": "inbound-message",
            "msg": {
                "from_addr": "+27123456789",
                "content": content,
                "message_id": f"msg-{i}",
                "session_event": session_event,
            },
        })
        reply = api.replies[-1]
        print(f"--- {description}: {content!r}")
        print(reply["content"])
        print(f"(continue_session={reply['continue_session']})\n")

    print("Saved user:", api.kv["users.quiz.+27123456789"])
    print("Metrics:", dict(api.metrics))


if __name__ == "__main__":
    asyncio.run(main())
