"""Immutable snapshots of the habit store."""

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from habitsync.api.errors import HabitSyncError
from habitsync.api.models import Habit, RecordId, TodayProgressEntry


def same_id(left: RecordId, right: RecordId) -> bool:
    """Backend ids may arrive as numbers or numeric strings; compare their text."""
    return str(left) == str(right)


class StoreStatus(str, Enum):
    """Load status of the store."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class HabitState:
    """What the view layer reads: cached habits and today's entries."""

    habits: tuple[Habit, ...] = ()
    today_progress: tuple[TodayProgressEntry, ...] = ()
    status: StoreStatus = StoreStatus.IDLE
    error: Optional[str] = None

    def habit(self, habit_id: RecordId) -> Optional[Habit]:
        """Find a cached habit by id."""
        for habit in self.habits:
            if same_id(habit.id, habit_id):
                return habit
        return None

    def today_entry(self, habit_id: RecordId) -> Optional[TodayProgressEntry]:
        """Find today's entry for a habit."""
        for entry in self.today_progress:
            if same_id(entry.habit.id, habit_id):
                return entry
        return None

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "habits": [habit.model_dump(mode="json") for habit in self.habits],
            "today_progress": [
                entry.model_dump(mode="json") for entry in self.today_progress
            ],
            "status": self.status.value,
            "error": self.error,
        }


# State transitions. Each returns a new snapshot and never touches the old one.


def set_loading(state: HabitState) -> HabitState:
    return replace(state, status=StoreStatus.LOADING)


def set_ready(state: HabitState) -> HabitState:
    return replace(state, status=StoreStatus.READY, error=None)


def set_error(state: HabitState, message: str) -> HabitState:
    return replace(state, status=StoreStatus.ERROR, error=message)


def set_habits(state: HabitState, habits: list[Habit]) -> HabitState:
    return replace(state, habits=tuple(habits))


def set_today_progress(state: HabitState, entries: list[TodayProgressEntry]) -> HabitState:
    return replace(state, today_progress=tuple(entries))


def add_habit(state: HabitState, habit: Habit) -> HabitState:
    return replace(state, habits=state.habits + (habit,))


def update_habit(state: HabitState, updated: Habit) -> HabitState:
    """Replace the habit with the same id, keeping collection order."""
    return replace(
        state,
        habits=tuple(
            updated if same_id(habit.id, updated.id) else habit for habit in state.habits
        ),
    )


def remove_habit(state: HabitState, habit_id: RecordId) -> HabitState:
    return replace(
        state,
        habits=tuple(habit for habit in state.habits if not same_id(habit.id, habit_id)),
    )


def patch_today_completion(
    state: HabitState, habit_id: RecordId, completed: bool
) -> HabitState:
    """Set the completed flag of today's entry for one habit."""
    return replace(
        state,
        today_progress=tuple(
            entry.model_copy(update={"completed": completed})
            if same_id(entry.habit.id, habit_id)
            else entry
            for entry in state.today_progress
        ),
    )


@dataclass(frozen=True)
class MutationResult:
    """
    Outcome of a store operation.

    `refresh` holds the follow-up reload started by the operation, if any.
    Callers may await it; the operation itself never does.
    """

    ok: bool
    data: Any = None
    error: Optional[HabitSyncError] = None
    refresh: Optional[asyncio.Task] = None
    skipped: bool = False

    @classmethod
    def skip(cls) -> "MutationResult":
        """Result of an operation attempted without a session."""
        return cls(ok=False, skipped=True)
