"""
Thin wrappers around the sandbox's contact, group, outbound and metric APIs.

Each one is set up by ``InteractionMachine.setup`` (in that order) from the
app config; storage itself lives in the host.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

from screenflow.core.engine.errors import ScreenflowError
from screenflow.infra.logging_config import get_logger

if TYPE_CHECKING:
    from screenflow.core.engine.interaction_machine import InteractionMachine

logger = get_logger(__name__)


class ContactStore:
    def __init__(self, im: "InteractionMachine"):
        self.im = im
        self.delivery_class: Optional[str] = None

    async def setup(self, delivery_class: Optional[str] = None) -> None:
        self.delivery_class = delivery_class

    async def get_or_create(self, addr: str, delivery_class: Optional[str] = None) -> Dict[str, Any]:
        reply = await self.im.api_request("contacts.get_or_create", {
            "addr": addr,
            "delivery_class": delivery_class or self.delivery_class,
        })
        return reply.get("contact") or {}

    async def for_user(self) -> Dict[str, Any]:
        """Contact record for the current user"""
        return await self.get_or_create(self.im.user.addr)


class GroupStore:
    def __init__(self, im: "InteractionMachine"):
        self.im = im

    async def setup(self) -> None:
        pass

    async def get_by_name(self, name: str) -> Dict[str, Any]:
        reply = await self.im.api_request("groups.get_by_name", {"name": name})
        return reply.get("group") or {}


class OutboundHelper:
    """Sends messages that are not replies (e.g. notifications to other addresses)"""

    def __init__(self, im: "InteractionMachine"):
        self.im = im
        self.endpoints: Dict[str, Dict[str, Any]] = {}
        self.delivery_class: Optional[str] = None

    async def setup(self, endpoints: Optional[Dict[str, Dict[str, Any]]] = None, delivery_class: Optional[str] = None) -> None:
        self.endpoints = dict(endpoints or {})
        self.delivery_class = delivery_class

    async def send_to(self, to_addr: str, content: str, endpoint: str = "default") -> dict:
        if self.endpoints and endpoint not in self.endpoints:
            raise ScreenflowError(
                f"Unknown outbound endpoint '{endpoint}'. "
                f"Configured endpoints: {', '.join(self.endpoints)}"
            )
        return await self.im.api_request("outbound.send_to_endpoint", {
            "endpoint": endpoint,
            "to_addr": to_addr,
            "content": content,
        })


class MetricStore:
    """Fires metrics into the host's metric store"""

    def __init__(self, im: "InteractionMachine"):
        self.im = im
        self.store_name: Optional[str] = None

    async def setup(self, store_name: Optional[str] = None) -> None:
        self.store_name = store_name or "default"

    async def fire(self, metric: str, value: float, agg: str = "last") -> dict:
        logger.debug("Firing metric %s.%s=%s (%s)", self.store_name, metric, value, agg)
        return await self.im.api_request("metrics.fire", {
            "store": self.store_name,
            "metric": metric,
            "value": value,
            "agg": agg,
        })

    async def inc(self, metric: str, amount: float = 1) -> dict:
        return await self.fire(metric, amount, agg="sum")
