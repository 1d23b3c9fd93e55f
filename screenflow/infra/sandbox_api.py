"""
Sandbox API adapters.

- ``DummySandboxApi``  – in-memory host (kv store, config, outbound capture)
  for tests and local runs.
- ``HttpSandboxApi``   – talks to a sandbox host over HTTP with aiohttp:
  ``POST {base}/request`` for API requests, ``POST {base}/done`` at the
  end of a run.

Both accept host commands through ``dispatch`` and route them to the
handlers installed by ``InteractionMachine.attach``.
"""
from __future__ import annotations

import asyncio
import copy
import json
import uuid
from collections import defaultdict
from typing import Any, Callable, Dict, Optional

import aiohttp
from pydantic import ValidationError

from screenflow.config import settings
from screenflow.core.engine.ports import CommandHandler
from screenflow.infra.logging_config import get_logger
from screenflow.transport.schemas import InboundCommandIn

logger = get_logger(__name__)

INBOUND_MESSAGE = "inbound-message"
INBOUND_EVENT = "inbound-event"


class BaseSandboxApi:
    def __init__(self) -> None:
        self.on_inbound_message: Optional[CommandHandler] = None
        self.on_inbound_event: Optional[CommandHandler] = None
        self.on_unknown_command: Optional[CommandHandler] = None

    async def dispatch(self, raw: Dict[str, Any]) -> None:
        """
        Hand a host command to the attached machine.

        Commands that fail validation are treated as unknown commands, so
        the machine still ends the run. The inbound message itself is
        validated by the machine, inside the run.

        Raises:
            RuntimeError: If no interaction machine is attached
        """
        try:
            command = InboundCommandIn.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Malformed sandbox command: %s", exc.errors(include_url=False))
            command = None

        cmd = command.model_dump() if command is not None else raw
        name = command.cmd if command is not None else None
        if name == INBOUND_MESSAGE:
            handler = self.on_inbound_message
        elif name == INBOUND_EVENT:
            handler = self.on_inbound_event
        else:
            handler = self.on_unknown_command

        if handler is None:
            raise RuntimeError("No interaction machine attached to the sandbox api")
        await handler(cmd)


# ============================================================================
# IN-MEMORY SANDBOX
# ============================================================================

class DummySandboxApi(BaseSandboxApi):
    """
    In-memory sandbox host.

    Args:
        config: App config, stored as JSON under the ``config`` key.
        kv: Initial kv store contents.
        translations: ``{lang: {msgid: text}}``, stored as ``translation.<lang>``.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        kv: Optional[Dict[str, Any]] = None,
        translations: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        super().__init__()
        self.config_store: Dict[str, Any] = {}
        if config is not None:
            self.config_store["config"] = json.dumps(config)
        for lang, data in (translations or {}).items():
            self.config_store[f"translation.{lang}"] = json.dumps(data)

        self.kv: Dict[str, Any] = copy.deepcopy(kv or {})
        self.replies: list[dict] = []
        self.sent: list[dict] = []
        self.metrics: Dict[tuple, list] = defaultdict(list)
        self.contacts: Dict[tuple, dict] = {}
        self.groups: Dict[str, dict] = {}
        self.requests: list[tuple[str, dict]] = []
        self.done_calls = 0
        self._failures: Dict[str, str] = {}

        self._handlers: Dict[str, Callable[[dict], dict]] = {
            "config.get": self._config_get,
            "kv.get": self._kv_get,
            "kv.set": self._kv_set,
            "kv.delete": self._kv_delete,
            "outbound.reply_to": self._outbound_reply_to,
            "outbound.send_to_endpoint": self._outbound_send_to_endpoint,
            "metrics.fire": self._metrics_fire,
            "contacts.get_or_create": self._contacts_get_or_create,
            "groups.get_by_name": self._groups_get_by_name,
        }

    @property
    def is_done(self) -> bool:
        return self.done_calls > 0

    def fail(self, cmd_name: str, reason: str = "Simulated failure") -> None:
        """Make every subsequent ``cmd_name`` request fail with ``reason``"""
        self._failures[cmd_name] = reason

    def add_group(self, name: str, **fields: Any) -> dict:
        group = {"key": uuid.uuid4().hex, "name": name, **fields}
        self.groups[name] = group
        return group

    async def request(self, cmd_name: str, payload: dict) -> dict:
        self.requests.append((cmd_name, copy.deepcopy(payload)))

        if cmd_name in self._failures:
            return {"success": False, "reason": self._failures[cmd_name]}

        handler = self._handlers.get(cmd_name)
        if handler is None:
            return {"success": False, "reason": f"Unknown sandbox request '{cmd_name}'"}
        return handler(payload)

    async def done(self) -> None:
        self.done_calls += 1

    # -- request handlers ---------------------------------------------------

    def _config_get(self, payload: dict) -> dict:
        return {"success": True, "value": self.config_store.get(payload["key"])}

    def _kv_get(self, payload: dict) -> dict:
        return {"success": True, "value": copy.deepcopy(self.kv.get(payload["key"]))}

    def _kv_set(self, payload: dict) -> dict:
        self.kv[payload["key"]] = copy.deepcopy(payload["value"])
        return {"success": True}

    def _kv_delete(self, payload: dict) -> dict:
        existed = self.kv.pop(payload["key"], None) is not None
        return {"success": True, "existed": existed}

    def _outbound_reply_to(self, payload: dict) -> dict:
        self.replies.append(copy.deepcopy(payload))
        return {"success": True}

    def _outbound_send_to_endpoint(self, payload: dict) -> dict:
        self.sent.append(copy.deepcopy(payload))
        return {"success": True}

    def _metrics_fire(self, payload: dict) -> dict:
        self.metrics[(payload["store"], payload["metric"])].append(payload["value"])
        return {"success": True}

    def _contacts_get_or_create(self, payload: dict) -> dict:
        key = (payload.get("delivery_class"), payload["addr"])
        created = key not in self.contacts
        if created:
            self.contacts[key] = {"key": uuid.uuid4().hex, "addr": payload["addr"]}
        return {"success": True, "created": created, "contact": copy.deepcopy(self.contacts[key])}

    def _groups_get_by_name(self, payload: dict) -> dict:
        group = self.groups.get(payload["name"])
        if group is None:
            return {"success": False, "reason": f"Group not found: {payload['name']}"}
        return {"success": True, "group": copy.deepcopy(group)}


# ============================================================================
# HTTP SANDBOX
# ============================================================================

class HttpSandboxApi(BaseSandboxApi):
    """Sandbox host reached over HTTP. One instance per run."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__()
        base_url = base_url or settings.sandbox_url
        if not base_url:
            raise ValueError("HttpSandboxApi needs a base_url (or SANDBOX_URL)")

        self.base_url = base_url.rstrip("/")
        self.token = token if token is not None else settings.sandbox_token
        self.timeout = aiohttp.ClientTimeout(
            total=timeout_seconds if timeout_seconds is not None else settings.sandbox_timeout_seconds
        )
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Authorization": f"Bearer {self.token}"} if self.token else None
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=headers)
            logger.debug("Sandbox HTTP session created for %s", self.base_url)
        return self._session

    async def _post(self, path: str, body: dict) -> dict:
        session = self._get_session()
        async with session.post(f"{self.base_url}/{path}", json=body) as resp:
            if resp.status >= 400:
                text = await resp.text()
                return {"success": False, "reason": f"HTTP {resp.status}: {text[:200]}"}
            return await resp.json()

    async def request(self, cmd_name: str, payload: dict) -> dict:
        try:
            return await self._post("request", {"cmd": cmd_name, "payload": payload})
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("Sandbox request %s failed: %s", cmd_name, exc)
            return {"success": False, "reason": f"{type(exc).__name__}: {exc}"}

    async def done(self) -> None:
        try:
            reply = await self._post("done", {})
            if not reply.get("success", True):
                logger.warning("Sandbox did not acknowledge done: %s", reply.get("reason"))
        finally:
            await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
