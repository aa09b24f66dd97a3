#!/usr/bin/env python3
"""
Seva task roster for SevaSync
Defines the fixed, ordered list of cleaning tasks and their capacities
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple


GROCERY_PERMANENT = "Bhagirath Bhai"
YARD_VOLUNTEER = "Volunteer"


class TaskRole(Enum):
    """How a task takes part in rotation"""

    NORMAL = "normal"
    PINNED_GROCERY = "pinned_grocery"
    PINNED_YARD = "pinned_yard"


@dataclass(frozen=True)
class Task:
    """A single seva and how many bhakto it takes"""

    name: str
    capacity: int
    role: TaskRole = TaskRole.NORMAL

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError(f"Task '{self.name}' needs a capacity of at least 1")


SEVA_TASKS: Tuple[str, ...] = (
    "Main Hall, Entrance, Coat Closet",
    "Kitchen",
    "Fridges",
    "Upper Rooms and Walkway/Stairs",
    "Upper Washroom",
    "Dastva Hall and Walkway/Stairs",
    "Lower Washroom",
    "Private Washroom and Laundry Room",
    "Basement, Luggage Room and Kitchen",
    "Garbage",
    "Grocery",
    "Yard",
)

TASK_CAPACITIES: Tuple[int, ...] = (3, 3, 1, 1, 1, 2, 1, 1, 2, 1, 2, 1)

# "Malav Bhai & Param Bhai" is a combined unit and moves as one entry
DEFAULT_ASSIGNMENTS: Tuple[Tuple[str, ...], ...] = (
    ("Het Bhai", "Harsh Bhai", "Avi Bhai"),
    ("Devang Bhai", "Kintul Bhai", "Shreyansh Bhai"),
    ("Rohan Bhai",),
    ("Malav Bhai & Param Bhai",),
    ("Jayraj Bhai",),
    ("Vraj Bhai", "Nisarg Bhai"),
    ("Sheel Bhai",),
    ("Hardik Bhai",),
    ("Heet Bhai", "Pratik Bhai"),
    ("Bhumin Bhai",),
    (GROCERY_PERMANENT, "Mann Bhai"),
    (YARD_VOLUNTEER,),
)


def role_for(name: str) -> TaskRole:
    """Derive the rotation role from a task name"""
    if name == "Grocery":
        return TaskRole.PINNED_GROCERY
    if name == "Yard":
        return TaskRole.PINNED_YARD
    return TaskRole.NORMAL


class Roster:
    """Ordered, fixed task list"""

    def __init__(self, tasks: Sequence[Task]):
        self.tasks: Tuple[Task, ...] = tuple(tasks)
        if not self.tasks:
            raise ValueError("Roster needs at least one task")

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    def __getitem__(self, index: int) -> Task:
        return self.tasks[index]

    @property
    def names(self) -> List[str]:
        return [task.name for task in self.tasks]

    def index_of(self, role: TaskRole) -> int:
        """Index of the first task with the given role, -1 if none"""
        for i, task in enumerate(self.tasks):
            if task.role is role:
                return i
        return -1

    @property
    def grocery_index(self) -> int:
        return self.index_of(TaskRole.PINNED_GROCERY)

    @property
    def yard_index(self) -> int:
        return self.index_of(TaskRole.PINNED_YARD)

    @property
    def rotating_slots(self) -> int:
        """How many pool entries one rotation can place"""
        slots = 0
        for task in self.tasks:
            if task.role is TaskRole.NORMAL:
                slots += task.capacity
            elif task.role is TaskRole.PINNED_GROCERY:
                slots += 1
        return slots


def build_roster(
    names: Sequence[str] = SEVA_TASKS, capacities: Sequence[int] = TASK_CAPACITIES
) -> Roster:
    """Build a roster from parallel name and capacity lists"""
    if len(names) != len(capacities):
        raise ValueError(
            f"Got {len(names)} task names but {len(capacities)} capacities"
        )
    return Roster(
        Task(name=name, capacity=int(capacity), role=role_for(name))
        for name, capacity in zip(names, capacities)
    )


def default_roster() -> Roster:
    return build_roster(SEVA_TASKS, TASK_CAPACITIES)
