"""Data models for the habit tracking backend."""

import datetime as dt
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Identifiers are assigned by the backend and treated as opaque.
RecordId = Union[int, str]


class WireModel(BaseModel):
    """Immutable backend record."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Habit(WireModel):
    """A user-defined recurring action."""

    id: RecordId
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    emoji: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None

    # Streaks are computed by the backend only
    current_streak: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)
    is_active: bool = True
    created_at: Optional[dt.datetime] = None


class ProgressRecord(WireModel):
    """Completion status of one habit on one calendar day."""

    id: RecordId
    habit_id: RecordId = Field(validation_alias=AliasChoices("habit_id", "habitId"))
    date: dt.date
    completed: bool = False


class TodayProgressEntry(WireModel):
    """A habit merged with its progress record for the current day."""

    habit: Habit
    completed: bool = False
    progress_id: Optional[RecordId] = Field(
        None, validation_alias=AliasChoices("progress_id", "progressId")
    )
    date: Optional[dt.date] = None


class ToggleResult(WireModel):
    """Backend answer to a completion toggle."""

    completed: bool


class ProgressStats(WireModel):
    """Completion statistics over a window of days."""

    completed_days: int = Field(0, alias="completedDays")
    total_days: int = Field(0, alias="totalDays")
    completion_rate: float = Field(0.0, alias="completionRate")
    missed_days: int = Field(0, alias="missedDays")


class ShareStatsSummary(WireModel):
    """Headline numbers shown on the share screen."""

    total_habits: int = Field(0, alias="totalHabits")
    total_completions: int = Field(0, alias="totalCompletions")
    longest_streak: int = Field(0, alias="longestStreak")
    average_streak: float = Field(0.0, alias="averageStreak")


class ShareableStats(WireModel):
    """Statistics that can be published through a share link."""

    stats: ShareStatsSummary = ShareStatsSummary()
    top_habits: list[Habit] = Field(default_factory=list, alias="topHabits")


class ShareLink(WireModel):
    """A persisted, externally accessible progress snapshot."""

    share_id: RecordId = Field(
        validation_alias=AliasChoices("share_id", "shareId", "id")
    )
    title: Optional[str] = None
    description: Optional[str] = None
    include_stats: bool = Field(
        True, validation_alias=AliasChoices("include_stats", "includeStats")
    )
    include_habits: bool = Field(
        True, validation_alias=AliasChoices("include_habits", "includeHabits")
    )
    created_at: Optional[dt.datetime] = None
    share_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("shareUrl", "share_url")
    )


class SessionUser(WireModel):
    """The authenticated identity."""

    id: RecordId
    email: str
    name: Optional[str] = None


class HabitCreate(BaseModel):
    """Body for creating a habit."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    emoji: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None


class HabitUpdate(BaseModel):
    """Partial update of a habit; only fields that were set are sent."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    emoji: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None


class ShareLinkCreate(BaseModel):
    """Body for creating a share link."""

    title: str = ""
    description: str = ""
    include_stats: bool = Field(True, serialization_alias="includeStats")
    include_habits: bool = Field(True, serialization_alias="includeHabits")
