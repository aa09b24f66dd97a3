#!/usr/bin/env python3
"""
Rotation engine for SevaSync

One rotation collects every rotating bhakto into a pool (roster order),
moves the last entry to the front and deals the pool back out by task
capacity. Grocery keeps its permanent member and Yard keeps its
volunteer; neither sentinel ever enters the pool.
"""

from typing import List

from .logger import log_debug, log_warning
from .state import AssignmentState, StateError
from .tasks import Roster, TaskRole, GROCERY_PERMANENT, YARD_VOLUNTEER


class CapacityMismatchError(StateError):
    """Raised in strict mode when a rotation would drop people"""

    pass


def build_rotation_pool(roster: Roster, state: AssignmentState) -> List[str]:
    """Flatten rotation-eligible occupants in roster order"""
    pool: List[str] = []
    for task, group in zip(roster, state):
        if task.role is TaskRole.NORMAL:
            # Combined units stay a single entry
            pool.extend(group)
        elif task.role is TaskRole.PINNED_GROCERY:
            pool.extend(name for name in group if name != GROCERY_PERMANENT)
    return pool


def rotate_pool(pool: List[str]) -> List[str]:
    """Last entry becomes first"""
    if not pool:
        return []
    return [pool[-1]] + pool[:-1]


def redistribute(roster: Roster, pool: List[str]) -> AssignmentState:
    """Deal the pool out over the roster with a single cursor"""
    cursor = 0
    groups = []
    for task in roster:
        if task.role is TaskRole.PINNED_YARD:
            group = [YARD_VOLUNTEER]
        elif task.role is TaskRole.PINNED_GROCERY:
            group = [GROCERY_PERMANENT]
            if cursor < len(pool):
                group.append(pool[cursor])
                cursor += 1
        else:
            group = pool[cursor : cursor + task.capacity]
            cursor += len(group)
        groups.append(group)

    if cursor < len(pool):
        log_warning(
            f"Rotation dropped {len(pool) - cursor} entries: {pool[cursor:]}",
            component="rotation",
        )
    return AssignmentState(groups)


def rotate(
    roster: Roster, state: AssignmentState, strict: bool = False
) -> AssignmentState:
    """
    Compute the next assignment.

    Pure: the given state is never modified. Raises MalformedStateError if
    the state does not line up with the roster, and CapacityMismatchError
    in strict mode when the pool is larger than the rotating slots.
    """
    state.validate(roster)

    pool = build_rotation_pool(roster, state)
    if strict and len(pool) > roster.rotating_slots:
        raise CapacityMismatchError(
            f"{len(pool)} people in rotation but only {roster.rotating_slots} slots"
        )

    rotated = rotate_pool(pool)
    log_debug(
        f"Rotation pool ({len(rotated)}): {rotated}", component="rotation"
    )
    log_debug(
        f"Combined units in pool: {[p for p in rotated if ' & ' in p]}",
        component="rotation",
    )
    return redistribute(roster, rotated)
