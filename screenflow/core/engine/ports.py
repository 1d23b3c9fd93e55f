from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional, Protocol

CommandHandler = Callable[[dict], Awaitable[None]]


class SandboxApi(Protocol):
    """
    The host sandbox, seen from inside a run.

    The host delivers one command per run through one of the ``on_*`` slots
    (set by ``InteractionMachine.attach``). Everything else (kv storage,
    config, outbound messages, metrics) goes through ``request``, which
    resolves with ``{"success": bool, ...}``.
    """

    on_inbound_message: Optional[CommandHandler]
    on_inbound_event: Optional[CommandHandler]
    on_unknown_command: Optional[CommandHandler]

    async def request(self, cmd_name: str, payload: dict) -> dict: ...

    async def done(self) -> Any:
        """Tell the host the run is over."""
        ...
