"""Core system components for SevaSync"""

from .tasks import (
    Task, TaskRole, Roster, build_roster, default_roster,
    SEVA_TASKS, TASK_CAPACITIES, DEFAULT_ASSIGNMENTS,
    GROCERY_PERMANENT, YARD_VOLUNTEER,
)
from .state import (
    AssignmentState, SyncRecord,
    StateError, MalformedStateError, MalformedRecordError,
)
from .rotation import rotate, build_rotation_pool, CapacityMismatchError
from .system_state import SyncTracker

__all__ = [
    'Task', 'TaskRole', 'Roster', 'build_roster', 'default_roster',
    'SEVA_TASKS', 'TASK_CAPACITIES', 'DEFAULT_ASSIGNMENTS',
    'GROCERY_PERMANENT', 'YARD_VOLUNTEER',
    'AssignmentState', 'SyncRecord',
    'StateError', 'MalformedStateError', 'MalformedRecordError',
    'rotate', 'build_rotation_pool', 'CapacityMismatchError',
    'SyncTracker',
]
