from __future__ import annotations

import json
from typing import Any, Dict, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from screenflow.config import settings
from screenflow.infra.logging_config import get_logger

if TYPE_CHECKING:
    from screenflow.core.engine.interaction_machine import InteractionMachine

logger = get_logger(__name__)


class AppConfig(BaseModel):
    """The app's config, stored as JSON under the sandbox config key ``config``"""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    default_lang: str = Field(default_factory=lambda: settings.default_lang)
    user_store: Optional[str] = None  # defaults to ``name``
    metric_store: Optional[str] = None  # defaults to ``name``
    delivery_class: str = "ussd"
    endpoints: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class SandboxConfig:
    """Read access to the sandbox's config values"""

    def __init__(self, im: "InteractionMachine"):
        self.im = im

    async def setup(self) -> None:
        pass

    async def get(self, key: str, json_value: bool = False) -> Any:
        """
        Fetch a config value from the sandbox.

        Args:
            key: Name of the config item.
            json_value: Parse the stored value as JSON.
        """
        reply = await self.im.api_request("config.get", {"key": key})
        value = reply.get("value")
        if value is not None and json_value and isinstance(value, (str, bytes)):
            return json.loads(value)
        return value


class IMConfig:
    """The interaction machine's own config, read from the sandbox during setup"""

    def __init__(self, im: "InteractionMachine"):
        self.im = im
        self.data = AppConfig()

    async def setup(self) -> None:
        raw = await self.im.sandbox_config.get("config", json_value=True)
        self.data = AppConfig.model_validate(raw or {})
        logger.debug("App config loaded: name=%s, delivery_class=%s", self.data.name, self.data.delivery_class)

    def get(self, key: str, default: Any = None) -> Any:
        value = getattr(self.data, key, None)
        if value is None and self.data.model_extra:
            value = self.data.model_extra.get(key)
        return default if value is None else value

    def __getattr__(self, key: str) -> Any:
        # Only reached for names not set on the instance itself
        if key in ("im", "data") or key.startswith("_"):
            raise AttributeError(key)
        if key not in AppConfig.model_fields and key not in (self.data.model_extra or {}):
            raise AttributeError(f"App config has no setting '{key}'")
        return self.get(key)
