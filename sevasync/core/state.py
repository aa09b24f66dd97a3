#!/usr/bin/env python3
"""
Assignment state and sync records for SevaSync

AssignmentState is the list of bhakto for every seva, index-aligned with
the roster. SyncRecord wraps a state with the timestamp and origin used
for last-write-wins reconciliation, and owns the persisted JSON shape.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .tasks import Roster, TaskRole, GROCERY_PERMANENT, YARD_VOLUNTEER


class StateError(Exception):
    """Raised when assignment data cannot be used"""

    pass


class MalformedStateError(StateError):
    """Raised when occupants do not line up with the roster"""

    pass


class MalformedRecordError(StateError):
    """Raised when a persisted or remote record has the wrong shape"""

    pass


class AssignmentState:
    """Immutable occupants per task, in roster order"""

    __slots__ = ("_occupants",)

    def __init__(self, occupants: Sequence[Sequence[str]]):
        if isinstance(occupants, (str, bytes)) or not isinstance(
            occupants, (list, tuple)
        ):
            raise MalformedStateError("Assignments must be a list of occupant lists")
        groups = []
        for i, group in enumerate(occupants):
            if not isinstance(group, (list, tuple)):
                raise MalformedStateError(
                    f"Occupants for task {i} must be a list, got {type(group).__name__}"
                )
            for name in group:
                if not isinstance(name, str):
                    raise MalformedStateError(
                        f"Occupant names must be strings (task {i}: {name!r})"
                    )
            groups.append(tuple(group))
        self._occupants: Tuple[Tuple[str, ...], ...] = tuple(groups)

    @property
    def occupants(self) -> Tuple[Tuple[str, ...], ...]:
        return self._occupants

    def __len__(self) -> int:
        return len(self._occupants)

    def __iter__(self):
        return iter(self._occupants)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AssignmentState):
            return NotImplemented
        return self._occupants == other._occupants

    def __hash__(self) -> int:
        return hash(self._occupants)

    def __repr__(self) -> str:
        return f"AssignmentState({self.to_lists()!r})"

    def occupants_for(self, index: int) -> Tuple[str, ...]:
        return self._occupants[index]

    def headcount(self) -> int:
        return sum(len(group) for group in self._occupants)

    def to_lists(self) -> List[List[str]]:
        return [list(group) for group in self._occupants]

    def validate(self, roster: Roster) -> "AssignmentState":
        """Check the state lines up with the roster, returns self"""
        if len(self._occupants) != len(roster):
            raise MalformedStateError(
                f"Expected {len(roster)} occupant lists, got {len(self._occupants)}"
            )
        return self

    def pinned_violations(self, roster: Roster) -> List[str]:
        """Describe any broken pinned-role invariants"""
        problems = []
        for task, group in zip(roster, self._occupants):
            if task.role is TaskRole.PINNED_YARD and group != (YARD_VOLUNTEER,):
                problems.append(f"{task.name} should be exactly [{YARD_VOLUNTEER}]")
            elif task.role is TaskRole.PINNED_GROCERY and (
                not group or group[0] != GROCERY_PERMANENT
            ):
                problems.append(f"{task.name} should start with {GROCERY_PERMANENT}")
        return problems

    def check_pinned(self, roster: Roster) -> "AssignmentState":
        """Length check plus pinned Grocery/Yard members, returns self"""
        self.validate(roster)
        problems = self.pinned_violations(roster)
        if problems:
            raise MalformedStateError("; ".join(problems))
        return self


@dataclass(frozen=True)
class SyncRecord:
    """A state stamped with when and by whom it was written"""

    state: AssignmentState
    updated_at_millis: int
    origin_id: str
    last_action: str = "load"

    def to_payload(self) -> Dict[str, Any]:
        """Stable JSON shape shared by local and remote storage"""
        return {
            "assignments": self.state.to_lists(),
            "updatedAtMillis": self.updated_at_millis,
            "timestamp": self.updated_at_millis,
            "originId": self.origin_id,
            "lastModifiedBy": self.origin_id,
            "lastAction": self.last_action,
        }

    @classmethod
    def from_payload(
        cls, payload: Any, roster: Optional[Roster] = None
    ) -> "SyncRecord":
        if not isinstance(payload, dict):
            raise MalformedRecordError("Record payload must be a JSON object")
        if "assignments" not in payload:
            raise MalformedRecordError("Record payload has no assignments")

        updated_at = payload.get("updatedAtMillis", payload.get("timestamp"))
        # bool is an int subclass but never a timestamp
        if isinstance(updated_at, bool) or not isinstance(updated_at, int):
            raise MalformedRecordError(f"Invalid record timestamp: {updated_at!r}")

        origin_id = payload.get("originId", payload.get("lastModifiedBy"))
        if not isinstance(origin_id, str):
            raise MalformedRecordError(f"Invalid record origin: {origin_id!r}")

        try:
            state = AssignmentState(payload["assignments"])
            if roster is not None:
                state.check_pinned(roster)
        except MalformedStateError as e:
            raise MalformedRecordError(f"Invalid assignments in record: {e}") from e

        return cls(
            state=state,
            updated_at_millis=updated_at,
            origin_id=origin_id,
            last_action=str(payload.get("lastAction", "load")),
        )
