# screenflow/transport/schemas.py
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InboundMessageIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    from_addr: str = Field(min_length=1)
    content: str | None = None
    message_id: str | None = None
    session_event: str | None = None

    @field_validator("message_id", mode="before")
    @classmethod
    def message_id_as_str(cls, v: Any) -> Any:
        # Some hosts send numeric ids
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class InboundCommandIn(BaseModel):
    """A command pushed by the sandbox host, e.g. ``inbound-message``"""
    model_config = ConfigDict(extra="allow")

    cmd: str = Field(min_length=1)
    msg: dict = Field(default_factory=dict)
