# tests/test_interaction_machine.py
"""
Tests for the interaction machine: one inbound message per run, driven
through the in-memory sandbox.

Covers:
- first contact           — user creation, start state, reply payload
- multi-run conversation  — validation error, transition, end of session
- session markers         — new / resume / close / missing / unrecognized
- failures                — sandbox errors, unknown states and malformed commands end in done()
- persistence             — the saved user record after each run
"""
import pytest

from screenflow.core.engine.app import App
from screenflow.core.engine.errors import ApiError, StateError
from screenflow.core.engine.events import EventKind
from screenflow.core.engine.interaction_machine import InteractionMachine, interact
from screenflow.core.engine.state import State
from screenflow.core.states.freetext import FreeText
from screenflow.infra.metrics import get_metrics_collector


def user_record(addr, state="states:start", in_session=True, answers=None, lang="en"):
    return {
        "addr": addr,
        "lang": lang,
        "answers": answers or {},
        "metadata": {},
        "state": {"name": state, "metadata": {}, "creator_opts": {}},
        "in_session": in_session,
    }


def app_with(*states, start=None):
    """App factory registering the given state instances"""
    def factory():
        app = App(start or states[0].name, name="test_app")
        for state in states:
            app.states.add(state)
        return app
    return factory


def record_state_events(im):
    events = []
    for kind in (EventKind.STATE_ENTER, EventKind.STATE_RESUME, EventKind.STATE_EXIT):
        im.on(kind, lambda e: events.append((e.kind.value, e.state.name)))
    return events


# ============================================================================
# First contact
# ============================================================================

class TestFirstContact:
    @pytest.mark.asyncio
    async def test_new_user_gets_start_state_question(self, api, lemon_app, make_cmd, user_key):
        interact(api, lemon_app)

        await api.dispatch(make_cmd(session_event="new"))

        assert api.replies == [{
            "content": "What is your favourite fruit?",
            "in_reply_to": "msg-1",
            "continue_session": True,
        }]
        record = api.kv[user_key]
        assert record["state"]["name"] == "states:start"
        assert record["in_session"] is True
        assert record["lang"] == "en"
        assert api.done_calls == 1

    @pytest.mark.asyncio
    async def test_setup_requests_run_in_order(self, api, lemon_app, make_cmd):
        interact(api, lemon_app)

        await api.dispatch(make_cmd(session_event="new"))

        assert [name for name, _ in api.requests] == [
            "config.get",  # app config
            "kv.get",  # user record
            "config.get",  # translations for the user's language
            "outbound.reply_to",
            "kv.set",  # user saved during done()
        ]
        assert api.requests[0][1] == {"key": "config"}
        assert api.requests[2][1] == {"key": "translation.en"}

    @pytest.mark.asyncio
    async def test_user_new_only_emitted_for_new_users(self, api, lemon_app, make_cmd, user_addr, user_key):
        im = interact(api, lemon_app)
        seen = []
        im.user.on(EventKind.USER_NEW, lambda e: seen.append("new"))
        im.user.on(EventKind.USER_LOAD, lambda e: seen.append("load"))
        await api.dispatch(make_cmd(session_event="new"))
        assert seen == ["new"]

        im = interact(api, lemon_app)
        seen.clear()
        im.user.on(EventKind.USER_NEW, lambda e: seen.append("new"))
        im.user.on(EventKind.USER_LOAD, lambda e: seen.append("load"))
        await api.dispatch(make_cmd("apple", session_event="resume"))
        assert seen == ["load"]

    @pytest.mark.asyncio
    async def test_setup_event_follows_app_setup(self, api, lemon_app, make_cmd):
        im = interact(api, lemon_app)
        calls = []
        im.app.on(EventKind.SETUP, lambda e: calls.append("app"))
        im.on(EventKind.SETUP, lambda e: calls.append("im"))

        await api.dispatch(make_cmd(session_event="new"))

        assert calls == ["app", "im"]

    def test_interact_without_api(self, lemon_app):
        assert interact(None, lemon_app) is None

    def test_interact_attaches_to_api(self, api, lemon_app):
        im = interact(api, lemon_app)
        assert isinstance(im, InteractionMachine)
        assert api.on_inbound_message is not None
        assert api.on_inbound_event is not None
        assert api.on_unknown_command is not None
        assert im.app.im is im


# ============================================================================
# Multi-run conversation
# ============================================================================

class TestConversation:
    @pytest.mark.asyncio
    async def test_lemon_conversation(self, api, lemon_app, make_cmd, user_key):
        interact(api, lemon_app)
        await api.dispatch(make_cmd(session_event="new", message_id="msg-1"))

        interact(api, lemon_app)
        await api.dispatch(make_cmd("apple", session_event="resume", message_id="msg-2"))

        assert api.replies[-1] == {
            "content": "Only lemons are allowed.",
            "in_reply_to": "msg-2",
            "continue_session": True,
        }
        assert api.kv[user_key]["state"]["name"] == "states:start"
        assert api.kv[user_key]["answers"] == {}

        interact(api, lemon_app)
        await api.dispatch(make_cmd("lemon", session_event="resume", message_id="msg-3"))

        assert api.replies[-1] == {
            "content": "Thanks, goodbye!",
            "in_reply_to": "msg-3",
            "continue_session": False,
        }
        record = api.kv[user_key]
        assert record["answers"] == {"states:start": "lemon"}
        # The end state points the next session back at the start
        assert record["state"]["name"] == "states:start"
        assert record["in_session"] is False
        assert api.done_calls == 3

    @pytest.mark.asyncio
    async def test_switch_emits_one_exit_then_one_enter(self, api, lemon_app, make_cmd, user_addr):
        api.kv[f"users.test_app.{user_addr}"] = user_record(user_addr)
        im = interact(api, lemon_app)
        events = record_state_events(im)

        await api.dispatch(make_cmd("lemon", session_event="resume"))

        assert events == [
            ("state:resume", "states:start"),
            ("state:exit", "states:start"),
            ("state:enter", "states:end"),
        ]

    @pytest.mark.asyncio
    async def test_state_events_reach_the_state_after_the_machine(self, api, make_cmd):
        calls = []
        state = State("states:start")
        state.on(EventKind.STATE_ENTER, lambda e: calls.append("state"))
        im = interact(api, app_with(state))
        im.on(EventKind.STATE_ENTER, lambda e: calls.append("im"))

        await api.dispatch(make_cmd(session_event="new"))

        assert calls == ["im", "state"]

    @pytest.mark.asyncio
    async def test_transition_to_current_state_is_noop(self, api, make_cmd, user_addr):
        api.kv[f"users.test_app.{user_addr}"] = user_record(user_addr)
        loop = FreeText("states:start", question="Again?", next="states:start")
        im = interact(api, app_with(loop))
        events = record_state_events(im)

        await api.dispatch(make_cmd("anything", session_event="resume"))

        assert events == [("state:resume", "states:start")]
        assert api.replies[-1]["content"] == "Again?"

    @pytest.mark.asyncio
    async def test_end_of_session_emits_app_close(self, api, lemon_app, make_cmd, user_addr):
        api.kv[f"users.test_app.{user_addr}"] = user_record(user_addr)
        im = interact(api, lemon_app)
        closes = []
        im.on(EventKind.SESSION_CLOSE, lambda e: closes.append(e.user_terminated))

        await api.dispatch(make_cmd("lemon", session_event="resume"))

        assert closes == [False]

    @pytest.mark.asyncio
    async def test_reply_event_after_send(self, api, lemon_app, make_cmd):
        im = interact(api, lemon_app)
        replies = []
        im.on(EventKind.REPLY, lambda e: replies.append((e.content, e.continue_session, len(api.replies))))

        await api.dispatch(make_cmd(session_event="new"))

        assert replies == [("What is your favourite fruit?", True, 1)]

    @pytest.mark.asyncio
    async def test_no_reply_when_state_declines(self, api, make_cmd):
        interact(api, app_with(State("states:start", send_reply=False)))

        await api.dispatch(make_cmd(session_event="new"))

        assert api.replies == []
        assert api.done_calls == 1

    @pytest.mark.asyncio
    async def test_helper_metadata_is_sent_with_reply(self, api, make_cmd):
        state = State("states:start", helper_metadata={"voice": {"wait_for": "#"}})
        interact(api, app_with(state))

        await api.dispatch(make_cmd(session_event="new"))

        assert api.replies[0]["helper_metadata"] == {"voice": {"wait_for": "#"}}

    @pytest.mark.asyncio
    async def test_reset_keyword_starts_over(self, api, lemon_app, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr, state="states:end", answers={"states:start": "lemon"})
        im = interact(api, lemon_app)
        resets = []
        im.user.on(EventKind.USER_RESET, lambda e: resets.append(e.user.addr))

        await api.dispatch(make_cmd("!reset", session_event="resume"))

        assert resets == [user_addr]
        assert api.kv[user_key]["answers"] == {}
        assert api.kv[user_key]["state"]["name"] == "states:start"
        assert api.replies[-1]["content"] == "What is your favourite fruit?"

    @pytest.mark.asyncio
    async def test_run_metrics(self, api, lemon_app, make_cmd):
        interact(api, lemon_app)

        await api.dispatch(make_cmd(session_event="new"))

        metrics = get_metrics_collector().get_metrics()
        assert metrics["counters"]["runs_total{app=test_app}"] == 1
        assert metrics["counters"][
            "replies_total{app=test_app,continue_session=true,state=states:start}"
        ] == 1
        assert metrics["histograms"]["run_duration_seconds{app=test_app}"]["count"] == 1


# ============================================================================
# Session markers
# ============================================================================

class TestSessionMarkers:
    @pytest.mark.asyncio
    async def test_missing_marker_outside_session_acts_as_new(self, api, lemon_app, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr, in_session=False)
        im = interact(api, lemon_app)
        news = []
        im.on(EventKind.SESSION_NEW, lambda e: news.append(e))

        await api.dispatch(make_cmd("lemon"))

        # Treated as a new session: the content is not used as input
        assert len(news) == 1
        assert api.kv[user_key]["answers"] == {}
        assert api.replies[-1]["content"] == "What is your favourite fruit?"
        assert api.kv[user_key]["in_session"] is True

    @pytest.mark.asyncio
    async def test_missing_marker_inside_session_acts_as_resume(self, api, lemon_app, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr, in_session=True)
        interact(api, lemon_app)

        await api.dispatch(make_cmd("lemon"))

        assert api.kv[user_key]["answers"] == {"states:start": "lemon"}
        assert api.replies[-1]["content"] == "Thanks, goodbye!"

    @pytest.mark.asyncio
    async def test_unrecognized_marker_acts_as_resume(self, api, lemon_app, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr, in_session=True)
        im = interact(api, lemon_app)
        resumes = []
        im.on(EventKind.SESSION_RESUME, lambda e: resumes.append(e))

        await api.dispatch(make_cmd("lemon", session_event="hangup"))

        assert len(resumes) == 1
        assert api.kv[user_key]["answers"] == {"states:start": "lemon"}

    @pytest.mark.asyncio
    async def test_close_skips_reply(self, api, lemon_app, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr, in_session=True)
        im = interact(api, lemon_app)
        closes = []
        im.on(EventKind.SESSION_CLOSE, lambda e: closes.append(e.user_terminated))

        await api.dispatch(make_cmd(session_event="close"))

        assert closes == [True]
        assert api.replies == []
        assert api.done_calls == 1
        assert api.kv[user_key]["state"]["name"] == "states:start"

    @pytest.mark.asyncio
    async def test_resume_without_content_skips_input(self, api, lemon_app, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr, in_session=True)
        im = interact(api, lemon_app)
        inputs = []
        im.on(EventKind.SESSION_RESUME, lambda e: inputs.append("resume"))

        await api.dispatch(make_cmd(session_event="resume"))

        assert inputs == ["resume"]
        assert api.replies[-1]["content"] == "What is your favourite fruit?"


# ============================================================================
# Failures
# ============================================================================

class TestFailures:
    @pytest.mark.asyncio
    async def test_sandbox_failure_ends_run_through_done(self, api, lemon_app, make_cmd, user_key):
        api.fail("outbound.reply_to", "Transport down")
        im = interact(api, lemon_app)
        errors = []
        im.on(EventKind.IM_ERROR, lambda e: errors.append(e.error))

        await api.dispatch(make_cmd(session_event="new"))

        assert len(errors) == 1
        assert isinstance(errors[0], ApiError)
        assert str(errors[0]) == "Transport down"
        assert user_key in api.kv
        assert api.done_calls == 1
        counters = get_metrics_collector().get_metrics()["counters"]
        assert counters["run_errors_total{app=test_app,error=ApiError}"] == 1

    @pytest.mark.asyncio
    async def test_transition_to_unknown_state_is_fatal(self, api, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr)
        broken = FreeText("states:start", question="Go?", next="states:missing")
        im = interact(api, app_with(broken))
        errors = []
        im.on(EventKind.IM_ERROR, lambda e: errors.append(e.error))

        await api.dispatch(make_cmd("go", session_event="resume"))

        assert len(errors) == 1
        assert isinstance(errors[0], StateError)
        assert api.replies == []
        assert api.done_calls == 1

    @pytest.mark.asyncio
    async def test_stale_persisted_state_is_replaced_by_start(self, api, lemon_app, make_cmd, user_addr, user_key):
        api.kv[user_key] = user_record(user_addr, state="states:removed")
        im = interact(api, lemon_app)
        events = record_state_events(im)

        await api.dispatch(make_cmd("apple", session_event="resume"))

        # Substituted states are entered, not resumed
        assert events == [("state:enter", "states:start")]
        assert api.replies[-1]["content"] == "Only lemons are allowed."
        assert api.kv[user_key]["state"]["name"] == "states:start"

    @pytest.mark.asyncio
    async def test_failing_listener_aborts_run(self, api, lemon_app, make_cmd):
        im = interact(api, lemon_app)
        errors = []
        im.on(EventKind.IM_ERROR, lambda e: errors.append(e.error))

        def boom(event):
            raise RuntimeError("listener failed")

        im.on(EventKind.SESSION_NEW, boom)

        await api.dispatch(make_cmd(session_event="new"))

        assert [str(e) for e in errors] == ["listener failed"]
        assert api.replies == []
        assert api.done_calls == 1

    @pytest.mark.asyncio
    async def test_message_without_sender_ends_run(self, api, lemon_app, make_cmd):
        im = interact(api, lemon_app)
        errors = []
        im.on(EventKind.IM_ERROR, lambda e: errors.append(type(e.error).__name__))

        await api.dispatch(make_cmd("hi", session_event="new", from_addr=""))

        assert errors == ["ValidationError"]
        assert api.replies == []
        assert api.kv == {}
        assert api.done_calls == 1
        counters = get_metrics_collector().get_metrics()["counters"]
        assert counters["run_errors_total{app=test_app,error=ValidationError}"] == 1

    @pytest.mark.asyncio
    async def test_malformed_command_ends_run(self, api, lemon_app):
        interact(api, lemon_app)

        await api.dispatch({"cmd": "", "msg": "not a message"})

        assert api.replies == []
        assert api.done_calls == 1

    @pytest.mark.asyncio
    async def test_long_content_and_numeric_message_id_accepted(self, api, lemon_app, make_cmd):
        interact(api, lemon_app)

        await api.dispatch(make_cmd("x" * 5000, session_event="new", message_id=123))

        assert api.replies[-1]["content"] == "What is your favourite fruit?"
        assert api.replies[-1]["in_reply_to"] == "123"
        assert api.done_calls == 1


# ============================================================================
# Other host commands
# ============================================================================

class TestOtherCommands:
    @pytest.mark.asyncio
    async def test_unknown_command_still_ends_run(self, api, lemon_app):
        interact(api, lemon_app)

        await api.dispatch({"cmd": "reticulate-splines"})

        assert api.done_calls == 1
        assert api.kv == {}

    @pytest.mark.asyncio
    async def test_inbound_event_reaches_listeners(self, api, lemon_app):
        im = interact(api, lemon_app)
        events = []
        im.on(EventKind.INBOUND_EVENT, lambda e: events.append(e.event))

        await api.dispatch({"cmd": "inbound-event", "msg": {"event_type": "ack", "user_message_id": "m1"}})

        assert events == [{"event_type": "ack", "user_message_id": "m1"}]
        assert api.done_calls == 1
