from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional


@dataclass
class InboundMessage:
    """
    A user message delivered by the sandbox host.
    This is the domain model the interaction machine works with.
    """
    from_addr: str
    content: Optional[str] = None
    message_id: Optional[str] = None
    session_event: Optional[str] = None  # "new", "resume", "close" or absent
    to_addr: Optional[str] = None
    transport_type: Optional[str] = None
    helper_metadata: Dict[str, Any] = field(default_factory=dict)

    # Anything else the host sent along
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InboundMessage":
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(**kwargs, extra=extra)

    def has_content(self) -> bool:
        """Check if message carries usable content"""
        return bool(self.content)
