from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional


class StateData:
    """
    Where the user currently is: a state name plus two opaque metadata bags.

    ``metadata`` is the state's own working data (e.g. the current page of a
    booklet), ``creator_opts`` is what the state's creator needs to rebuild
    the state next run. Only the serialized form survives between runs.

    Accepts the same arguments as ``reset``::

        StateData()                                   # no state
        StateData("menu", metadata={"page": 2})
        StateData(state_instance, creator_opts={...})
        StateData({"name": "menu", "metadata": {...}})
    """

    def __init__(self, state: Any = None, **opts: Any):
        self.name: Optional[str] = None
        self.metadata: Dict[str, Any] = {}
        self.creator_opts: Dict[str, Any] = {}
        self.reset(state, **opts)

    @classmethod
    def from_any(cls, state: Any) -> "StateData":
        if isinstance(state, StateData):
            return cls(state.serialize())
        return cls(state)

    def reset(
        self,
        state: Any = None,
        metadata: Optional[Mapping[str, Any]] = None,
        creator_opts: Optional[Mapping[str, Any]] = None,
    ) -> "StateData":
        """Replace all three fields at once. ``reset()`` clears to no state."""
        name: Optional[str] = None

        if state is None:
            pass
        elif isinstance(state, str):
            name = state
        elif isinstance(state, StateData):
            name = state.name
            metadata = metadata if metadata is not None else state.metadata
            creator_opts = creator_opts if creator_opts is not None else state.creator_opts
        elif isinstance(state, Mapping):
            name = state.get("name")
            metadata = metadata if metadata is not None else state.get("metadata")
            creator_opts = creator_opts if creator_opts is not None else state.get("creator_opts")
        elif hasattr(state, "name"):
            # A State instance: its live metadata is what gets persisted
            name = state.name
            if metadata is None:
                metadata = getattr(state, "metadata", None)
            if creator_opts is None:
                creator_opts = getattr(state, "creator_opts", None)
        else:
            raise TypeError(f"Cannot build state data from {type(state).__name__}")

        self.name = name
        self.metadata = copy.deepcopy(dict(metadata or {}))
        self.creator_opts = copy.deepcopy(dict(creator_opts or {}))
        return self

    def exists(self) -> bool:
        return self.name is not None

    def is_(self, other: Any) -> bool:
        """Compare by logical name against a name, State, StateData or ``{"name": ...}``"""
        if other is None:
            return False
        if isinstance(other, str):
            return self.name == other
        if isinstance(other, Mapping):
            return self.name == other.get("name")
        return self.name == getattr(other, "name", None)

    def update_metadata(self, metadata: Mapping[str, Any]) -> None:
        """Shallow merge; keys in ``metadata`` win"""
        self.metadata.update(metadata)

    def serialize(self) -> Dict[str, Any]:
        return copy.deepcopy({
            "name": self.name,
            "metadata": self.metadata,
            "creator_opts": self.creator_opts,
        })

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StateData):
            return self.serialize() == other.serialize()
        return NotImplemented

    def __repr__(self) -> str:
        return f"StateData(name={self.name!r}, metadata={self.metadata!r}, creator_opts={self.creator_opts!r})"
