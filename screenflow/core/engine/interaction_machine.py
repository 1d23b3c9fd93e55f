"""
The interaction machine: one run, one inbound message.

Workflow: setup -> resume/enter persisted state -> session dispatch
(input) -> reply (transition, show, send) -> done (save user, teardown).
Any exception along the way lands in ``err``, which still ends the run
through ``done`` so the host is never left waiting.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Optional, Union

from screenflow.config import settings
from screenflow.core.engine.app import App
from screenflow.core.engine.domain import InboundMessage
from screenflow.core.engine.errors import ApiError
from screenflow.core.engine.events import (
    Event,
    EventKind,
    Eventable,
    IMErrorEvent,
    IMShutdownEvent,
    InboundEventEvent,
    InboundMessageEvent,
    ReplyEvent,
    SessionCloseEvent,
    SetupEvent,
    StateEnterEvent,
    StateEvent,
    StateExitEvent,
    StateResumeEvent,
    TeardownEvent,
    UnknownCommandEvent,
    maybe_await,
)
from screenflow.core.engine.im_config import IMConfig, SandboxConfig
from screenflow.core.engine.ports import SandboxApi
from screenflow.core.engine.resources import ContactStore, GroupStore, MetricStore, OutboundHelper
from screenflow.core.engine.session_dispatch import SessionDispatchTable
from screenflow.core.engine.state import State
from screenflow.core.engine.state_data import StateData
from screenflow.core.engine.translate import Translator
from screenflow.core.engine.user import User
from screenflow.infra.logging_config import LogContext, get_logger
from screenflow.infra.metrics import AppMetrics
from screenflow.transport.schemas import InboundMessageIn

logger = get_logger(__name__)

StateTarget = Union[str, StateData, State, dict, None]


class InteractionMachine(Eventable):
    """
    Bridges an ``App`` (its states) and the sandbox API for a single run.

    Attributes:
        state: The current ``State``, or None between exit and enter.
        next_state: Pending transition, applied during ``reply``.
        user: The ``User`` the inbound message came from.
    """

    def __init__(self, api: SandboxApi, app: App):
        super().__init__()
        self.api = api
        self.app = app
        self.msg: Optional[InboundMessage] = None

        self.user = User(self)
        self.state: Optional[State] = None
        self.next_state = StateData()

        self.log = LogContext(logger)
        self.sandbox_config = SandboxConfig(self)
        self.config = IMConfig(self)
        self.contacts = ContactStore(self)
        self.groups = GroupStore(self)
        self.outbound = OutboundHelper(self)
        self.metrics = MetricStore(self)
        self.sessions = SessionDispatchTable()

        self.on(EventKind.UNKNOWN_COMMAND, self.on_unknown_command)
        self.on(EventKind.INBOUND_MESSAGE, self.on_inbound_message)

        self.attach()

    # ------------------------------------------------------------------
    # Host wiring
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Route the sandbox's inbound commands to events on this machine."""
        self.api.on_unknown_command = self._command_handler(UnknownCommandEvent)
        self.api.on_inbound_event = self._command_handler(InboundEventEvent)
        self.api.on_inbound_message = self._command_handler(InboundMessageEvent)
        self.app.attach_im(self)

    def _command_handler(self, event_cls: Callable[..., Event]):
        async def handle(cmd: dict) -> None:
            await self.run(event_cls(self, cmd=cmd))
        return handle

    async def run(self, event: Event) -> None:
        """Emit ``event``, then end the run cleanly whether or not it failed."""
        with AppMetrics.track_run_time(self.app.name):
            try:
                await self.emit(event)
            except Exception as exc:
                await self.err(exc)
                return
            await self.done()

    async def api_request(self, cmd_name: str, payload: dict) -> dict:
        """
        Raw request to the sandbox API.

        Raises:
            ApiError: If the sandbox answers with ``success: false``
        """
        reply = await maybe_await(self.api.request(cmd_name, payload))
        if not reply or not reply.get("success"):
            raise ApiError(reply or {"reason": f"No reply to {cmd_name}"})
        return reply

    # ------------------------------------------------------------------
    # Setup / teardown
    # ------------------------------------------------------------------

    async def setup(self, msg: InboundMessage, reset: bool = False) -> None:
        """
        Set up everything the run needs, in order: sandbox config, app
        config, contacts, groups, outbound, metrics, user, app. Then emit
        ``user:new`` (new users only) and ``setup``.
        """
        self.msg = msg

        await self.sandbox_config.setup()
        await self.config.setup()
        await self.contacts.setup(delivery_class=self.config.delivery_class)
        await self.groups.setup()
        await self.outbound.setup(
            endpoints=self.config.endpoints,
            delivery_class=self.config.delivery_class,
        )
        await self.metrics.setup(store_name=self.config.metric_store or self.config.name)

        user_opts = {
            "lang": self.config.default_lang,
            "store_name": self.config.user_store or self.config.name,
        }
        if reset:
            await self.user.reset(msg.from_addr, **user_opts)
        else:
            await self.user.load_or_create(msg.from_addr, **user_opts)

        self.log.debug("Loaded user: %s", json.dumps(self.user.serialize(), default=str))
        await self.app.setup()
        await self.user.emit_creation_event()
        await self.emit(SetupEvent(self))

    async def teardown(self) -> None:
        await self.app.teardown()
        await self.emit(TeardownEvent(self))
        self.teardown_listeners()

    async def err(self, exc: BaseException) -> None:
        """Log a failed run, then end it through ``done``."""
        AppMetrics.run_failed(self.app.name, type(exc).__name__)
        await self.emit(IMErrorEvent(self, error=exc))
        self.log.error("Run failed: %s", exc, exc_info=exc)
        await self.done()

    async def done(self) -> None:
        """Save the user, tear down, and tell the host the run is over."""
        await self.emit(IMShutdownEvent(self))
        if self.state is not None and self.user.state.is_(self.state):
            # State metadata may have changed since the state was set
            self.user.state.reset(self.state)
        if self.user.addr is not None:
            await self.user.save()
        await self.teardown()
        await maybe_await(self.api.done())

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def create_state(self, dest: StateTarget, substitute: bool = False) -> State:
        """Build and set up the state described by ``dest`` (name, StateData, State or dict)."""
        data = StateData.from_any(dest)
        if substitute:
            state = await self.app.states.create_or_substitute(data.name, data.creator_opts)
        else:
            state = await self.app.states.create(data.name, data.creator_opts)

        if state.name == data.name:
            state.creator_opts = dict(data.creator_opts)
            await state.setup(self, data.metadata)
        else:
            await state.setup(self)
        return state

    def set_state(self, state: Optional[State]) -> None:
        """Make ``state`` current and mirror it into the user's persisted state."""
        self.state = state
        self.user.state.reset(state)

    async def create_and_set_state(self, dest: StateTarget, substitute: bool = False) -> State:
        state = await self.create_state(dest, substitute=substitute)
        self.set_state(state)
        return state

    async def emit_state_event(self, event: StateEvent) -> None:
        """Emit a state event on the machine, then on the state itself."""
        await self.emit(event)
        await event.state.emit(event)

    async def resume_state(self, dest: StateTarget) -> None:
        """
        Continue in ``dest`` from a previous run. If the registry had to
        substitute another state (``dest`` no longer exists), the new state
        is entered instead of resumed.
        """
        data = StateData.from_any(dest)
        state = await self.create_and_set_state(data, substitute=True)
        if state.name != data.name:
            await self.emit_state_event(StateEnterEvent(state))
        else:
            await self.emit_state_event(StateResumeEvent(state))

    async def enter_state(self, dest: StateTarget) -> None:
        state = await self.create_and_set_state(dest)
        await self.emit_state_event(StateEnterEvent(state))

    async def exit_state(self) -> None:
        if self.state is None:
            return
        await self.emit_state_event(StateExitEvent(self.state))
        self.set_state(None)

    async def switch_state(self, dest: StateTarget) -> None:
        """Exit the current state and enter ``dest``. No-op if ``dest`` is empty or already current."""
        data = StateData.from_any(dest)
        if not data.exists() or data.is_(self.state):
            return

        await self.exit_state()
        await self.enter_state(data)

    async def fetch_translation(self, lang: str) -> Translator:
        """Translator for ``lang``, from the sandbox config key ``translation.<lang>``."""
        data = await self.sandbox_config.get(f"translation.{lang}", json_value=True)
        return Translator(data, lang=lang)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def on_inbound_message(self, event: InboundMessageEvent) -> None:
        # Malformed messages end the run through err()
        msg = InboundMessage.from_dict(InboundMessageIn.model_validate(event.msg).model_dump())
        self.log.bind(addr=msg.from_addr, message_id=msg.message_id)
        self.log.info("Received inbound message: %s", msg.content)

        reset = False
        if msg.content == settings.reset_keyword:
            reset = True
            msg.content = ""

        await self.setup(msg, reset=reset)
        AppMetrics.run_started(self.app.name)

        if self.user.state.exists():
            await self.resume_state(self.user.state)
        else:
            await self.enter_state(self.app.start_state_name)

        self.log.bind(state=self.state.name)
        self.log.info("Switched to state: %s", self.state.name)
        await self.handle_message(msg)

    async def on_unknown_command(self, event: UnknownCommandEvent) -> None:
        self.log.error("Received unknown command: %s", json.dumps(event.cmd, default=str))

    async def handle_message(self, msg: InboundMessage) -> None:
        """Dispatch ``msg`` on its session marker (see ``SessionDispatchTable``)."""
        session_event = self.sessions.coerce(msg.session_event, self.user.in_session)
        self.user.in_session = True

        handler = self.sessions.lookup(session_event)
        await handler(self, msg)

    async def reply(self, msg: InboundMessage) -> None:
        """Apply the pending transition, then reply from the (new) current state if it wants to."""
        await self.switch_state(self.next_state)

        continue_session = await self.state.continue_session()
        self.user.in_session = continue_session
        if not continue_session:
            await self.emit(SessionCloseEvent(self, user_terminated=False))

        if await self.state.send_reply():
            await self.send_reply(msg, continue_session)

    async def send_reply(self, msg: InboundMessage, continue_session: bool) -> None:
        content = await self.state.show()

        payload: dict[str, Any] = {
            "content": content,
            "in_reply_to": msg.message_id,
            "continue_session": continue_session,
        }
        helper_metadata = await self.state.helper_metadata()
        if helper_metadata:
            payload["helper_metadata"] = helper_metadata

        await self.api_request("outbound.reply_to", payload)
        AppMetrics.reply_sent(self.app.name, self.state.name, continue_session)
        await self.emit(ReplyEvent(self, content=content, continue_session=continue_session))


def interact(api: Optional[SandboxApi], app_factory: Callable[[], App]) -> Optional[InteractionMachine]:
    """
    Build an ``InteractionMachine`` for the app made by ``app_factory`` (an
    ``App`` subclass or a function returning an app) and attach it to ``api``.

    Returns None when there is no api, e.g. when the app module is imported
    outside a sandbox.
    """
    if api is None:
        return None
    return InteractionMachine(api, app_factory())
