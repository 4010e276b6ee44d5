# jinnie/core/state_machine.py
"""
Status transitions for records that carry `status`, `version` and a status
history (wishes, here).

A StateMachine wraps one record's current values. `apply` either moves the
record along an allowed edge, appending a history entry and bumping the
version, or raises without touching anything:

    sm = StateMachine(state=wish.status, allowed_transitions=WISH_TRANSITIONS,
                      version=wish.version, history=wish.status_history, idempotent=False)
    result = sm.apply("reserved", actor=uid)
    wish.status, wish.version = result["state"], result["version"]
"""
from __future__ import annotations
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple
import logging

from jinnie.core.timeutils import isoformat, utcnow

logger = logging.getLogger(__name__)


class InvalidTransition(ValueError):
    pass


class OptimisticLockError(Exception):
    pass


HistoryEntry = Dict[str, Any]
Hook = Callable[[HistoryEntry], None]
Edge = Tuple[str, str]

BEFORE = "before"
AFTER = "after"


class StateMachine:
    def __init__(self, state: str, allowed_transitions: Mapping[str, Sequence[str]], version: int = 0,
                 history: Optional[List[HistoryEntry]] = None, idempotent: bool = True):
        self.state = state or ""
        self._edges: Dict[str, FrozenSet[str]] = {
            src: frozenset(targets) for src, targets in (allowed_transitions or {}).items()
        }
        self.version = int(version or 0)
        self.history: List[HistoryEntry] = list(history or [])
        # same-state requests: no-op when idempotent, InvalidTransition otherwise
        self.idempotent = idempotent
        self._hooks: Dict[str, Dict[Edge, Hook]] = {BEFORE: {}, AFTER: {}}

    def allowed_from(self, state: Optional[str] = None) -> FrozenSet[str]:
        return self._edges.get(self.state if state is None else state, frozenset())

    def can_transition(self, to_state: str) -> bool:
        return to_state in self.allowed_from()

    def register_before(self, from_state: str, to_state: str, fn: Hook) -> None:
        self._hooks[BEFORE][(from_state, to_state)] = fn

    def register_after(self, from_state: str, to_state: str, fn: Hook) -> None:
        self._hooks[AFTER][(from_state, to_state)] = fn

    def _run_hook(self, when: str, edge: Edge, entry: HistoryEntry) -> None:
        fn = self._hooks[when].get(edge)
        if fn is None:
            return
        try:
            fn(entry)
        except Exception:
            # a failing hook is logged; the transition itself stands
            logger.exception("%s hook failed for %s -> %s", when, *edge)

    def snapshot(self) -> Dict[str, Any]:
        return {"state": self.state, "history": list(self.history), "version": self.version}

    def _check(self, to_state: str, expected_version: Optional[int]) -> bool:
        """Validate the request; False means "already there, nothing to do"."""
        if not to_state:
            raise InvalidTransition("Empty target state")
        if expected_version is not None and int(expected_version) != self.version:
            raise OptimisticLockError(f"Version mismatch (expected {expected_version}, got {self.version})")
        if to_state == self.state:
            if self.idempotent:
                return False
            raise InvalidTransition(f"Already {self.state}")
        if not self.can_transition(to_state):
            raise InvalidTransition(f"Invalid transition: {self.state} -> {to_state}")
        return True

    def apply(self, to_state: str, actor: Optional[str] = None, meta: Optional[Dict[str, Any]] = None,
              expected_version: Optional[int] = None) -> Dict[str, Any]:
        """
        Move to `to_state`. Returns {"state", "history", "version"}; raises
        InvalidTransition or OptimisticLockError.
        """
        to_state = (to_state or "").strip()
        if not self._check(to_state, expected_version):
            return self.snapshot()

        edge = (self.state, to_state)
        entry: HistoryEntry = {
            "from": edge[0],
            "to": edge[1],
            "at": isoformat(utcnow()),
            "actor": actor,
            "meta": dict(meta or {}),
        }
        self._run_hook(BEFORE, edge, entry)
        self.state = to_state
        self.history.append(entry)
        self.version += 1
        self._run_hook(AFTER, edge, entry)
        return self.snapshot()
