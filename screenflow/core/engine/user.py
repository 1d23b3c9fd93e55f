from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

from screenflow.core.engine.errors import UserNotFoundError
from screenflow.core.engine.events import (
    Eventable,
    UserLoadEvent,
    UserNewEvent,
    UserResetEvent,
    UserSaveEvent,
)
from screenflow.core.engine.state_data import StateData
from screenflow.core.engine.translate import Translator
from screenflow.infra.logging_config import get_logger, mask_addr

if TYPE_CHECKING:
    from screenflow.core.engine.interaction_machine import InteractionMachine

logger = get_logger(__name__)


class User(Eventable):
    """
    The user sending the current message, persisted in the sandbox kv store
    under ``users.<store_name>.<addr>``.

    Persisted record::

        {"addr", "lang", "answers", "metadata", "state", "in_session"}
    """

    def __init__(self, im: "InteractionMachine"):
        super().__init__()
        self.im = im
        self.addr: Optional[str] = None
        self.lang: Optional[str] = None
        self.answers: Dict[str, Any] = {}
        self.metadata: Dict[str, Any] = {}
        self.state = StateData()
        self.in_session = False
        self.store_name = "default"
        self.i18n = Translator()
        self.created = False

    @property
    def key(self) -> str:
        return f"users.{self.store_name}.{self.addr}"

    async def setup(
        self,
        addr: str,
        *,
        lang: Optional[str] = None,
        answers: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        state: Any = None,
        in_session: bool = False,
        store_name: Optional[str] = None,
    ) -> None:
        self.addr = addr
        self.lang = lang
        self.answers = dict(answers or {})
        self.metadata = dict(metadata or {})
        self.state = StateData(state)
        self.in_session = in_session
        self.store_name = store_name or "default"
        await self.refresh_i18n()

    async def refresh_i18n(self) -> None:
        self.i18n = await self.im.fetch_translation(self.lang) if self.lang else Translator()

    async def create(self, addr: str, *, lang: Optional[str] = None, store_name: Optional[str] = None) -> None:
        self.created = True
        await self.setup(addr, lang=lang, store_name=store_name)
        logger.info("Created user %s", mask_addr(addr))

    async def reset(self, addr: str, *, lang: Optional[str] = None, store_name: Optional[str] = None) -> None:
        """Start over with a blank record, ignoring whatever is persisted"""
        await self.setup(addr, lang=lang, store_name=store_name)
        logger.info("Reset user %s", mask_addr(addr))
        await self.emit(UserResetEvent(self))

    async def fetch(self, addr: str, store_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        key = f"users.{store_name or 'default'}.{addr}"
        reply = await self.im.api_request("kv.get", {"key": key})
        return reply.get("value")

    async def load(self, addr: str, *, store_name: Optional[str] = None) -> None:
        data = await self.fetch(addr, store_name)
        if data is None:
            raise UserNotFoundError(addr)
        await self._setup_from_record(addr, data, store_name)

    async def load_or_create(self, addr: str, *, lang: Optional[str] = None, store_name: Optional[str] = None) -> None:
        data = await self.fetch(addr, store_name)
        if data is None:
            await self.create(addr, lang=lang, store_name=store_name)
        else:
            await self._setup_from_record(addr, data, store_name)

    async def _setup_from_record(self, addr: str, data: Dict[str, Any], store_name: Optional[str]) -> None:
        self.created = False
        await self.setup(
            addr,
            lang=data.get("lang"),
            answers=data.get("answers"),
            metadata=data.get("metadata"),
            state=data.get("state"),
            in_session=bool(data.get("in_session", False)),
            store_name=store_name,
        )
        await self.emit(UserLoadEvent(self))

    async def emit_creation_event(self) -> None:
        """Emit ``user:new`` if this user was created during the current run"""
        if self.created:
            await self.emit(UserNewEvent(self))

    async def save(self) -> None:
        await self.im.api_request("kv.set", {"key": self.key, "value": self.serialize()})
        logger.debug("Saved user %s (state=%s)", mask_addr(self.addr), self.state.name)
        await self.emit(UserSaveEvent(self))

    def set_answer(self, state_name: str, answer: Any) -> None:
        self.answers[state_name] = answer

    def get_answer(self, state_name: str, default: Any = None) -> Any:
        return self.answers.get(state_name, default)

    async def set_lang(self, lang: str) -> None:
        self.lang = lang
        await self.refresh_i18n()

    def serialize(self) -> Dict[str, Any]:
        return {
            "addr": self.addr,
            "lang": self.lang,
            "answers": dict(self.answers),
            "metadata": dict(self.metadata),
            "state": self.state.serialize(),
            "in_session": self.in_session,
        }
