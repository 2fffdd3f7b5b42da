"""Central transition tables for every lifecycle status field."""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, Mapping, Optional, TypeVar

from .exceptions import InvalidStateTransition

S = TypeVar("S", bound=Enum)


class TransitionTable(Generic[S]):
    """Maps an action name to the states it may start from and the state it ends in."""

    def __init__(self, entity: str, transitions: Mapping[str, tuple[frozenset[S], S]]) -> None:
        self.entity = entity
        self._transitions = dict(transitions)

    def sources(self, action: str) -> frozenset[S]:
        return self._transitions[action][0]

    def target(self, action: str) -> S:
        return self._transitions[action][1]

    def check(self, action: str, current: S, *, entity: Optional[dict[str, Any]] = None) -> S:
        """Return the target state or raise ``InvalidStateTransition``."""
        if action not in self._transitions:
            raise KeyError(f"unknown {self.entity} action: {action}")
        sources, target = self._transitions[action]
        if current not in sources:
            allowed = ", ".join(sorted(state.value for state in sources))
            raise InvalidStateTransition(
                f"cannot {action} {self.entity} in state '{current.value}' (allowed from: {allowed})",
                action=action,
                current_state=current.value,
                entity=entity,
            )
        return target
