# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from screenflow.core.engine.app import App  # noqa: E402
from screenflow.core.states.end import EndState  # noqa: E402
from screenflow.core.states.freetext import FreeText  # noqa: E402
from screenflow.infra.metrics import get_metrics_collector  # noqa: E402
from screenflow.infra.sandbox_api import DummySandboxApi  # noqa: E402

USER_ADDR = "+27123456789"


class LemonApp(App):
    """Asks for a favourite fruit and only accepts lemons"""

    def __init__(self):
        super().__init__("states:start", name="test_app")
        self.states.add(FreeText(
            "states:start",
            question="What is your favourite fruit?",
            next="states:end",
            check=lambda content: None if content == "lemon" else "Only lemons are allowed.",
        ))
        self.states.add(EndState("states:end", text="Thanks, goodbye!"))


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield


@pytest.fixture
def user_addr():
    """Default user address for tests"""
    return USER_ADDR


@pytest.fixture
def user_key():
    """kv key the default user is stored under"""
    return f"users.test_app.{USER_ADDR}"


@pytest.fixture
def api():
    """In-memory sandbox host with a minimal app config"""
    return DummySandboxApi(config={"name": "test_app"})


@pytest.fixture
def lemon_app():
    return LemonApp


@pytest.fixture
def make_cmd():
    """Build an ``inbound-message`` host command"""
    def make(content=None, session_event=None, from_addr=USER_ADDR, message_id="msg-1", **extra):
        msg = {
            "from_addr": from_addr,
            "content": content,
            "message_id": message_id,
            "session_event": session_event,
            **extra,
        }
        return {"cmd": "inbound-message", "msg": msg}
    return make
