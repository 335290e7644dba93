"""Progress history: statistics, weekly summaries and calendar months."""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Optional

from habitsync.api.client import HabitAPIClient
from habitsync.api.errors import APIError
from habitsync.api.models import ProgressRecord, ProgressStats, RecordId
from habitsync.store.habits import HabitStore
from habitsync.store.notifications import Notifier
from habitsync.store.state import MutationResult

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


@dataclass
class DaySummary:
    """Completions on one weekday of the last seven days."""

    day: str
    completed: int = 0
    total: int = 0


@dataclass
class CalendarMonth:
    """Progress records of one month."""

    year: int
    month: int
    habit_id: Optional[RecordId] = None
    records: list[ProgressRecord] = field(default_factory=list)

    def days(self) -> list[date]:
        """Every day of the month."""
        _, length = calendar.monthrange(self.year, self.month)
        return [date(self.year, self.month, day) for day in range(1, length + 1)]

    def records_on(self, day: date) -> list[ProgressRecord]:
        return [record for record in self.records if record.date == day]

    def day_status(self, day: date) -> str:
        """
        Classify a day.

        Returns:
            "none" (nothing tracked), "missed", "partial" or "complete"
        """
        records = self.records_on(day)
        if not records:
            return "none"

        completed = sum(1 for record in records if record.completed)
        if completed == 0:
            return "missed"
        if completed == len(records):
            return "complete"
        return "partial"

    def completed_count(self) -> int:
        """Number of completed records in the month."""
        return sum(1 for record in self.records if record.completed)


def get_day_of_week(day: date) -> int:
    """
    Get day of week where Sunday=0, Saturday=6.

    Args:
        day: Date to check

    Returns:
        Day of week (0-6)
    """
    # Python weekday: Monday=0, Sunday=6
    return (day.weekday() + 1) % 7


def completion_tier(rate: float) -> str:
    """
    Bucket a completion rate (percent).

    Returns:
        "high" from 80%, "medium" from 60%, otherwise "low"
    """
    if rate >= 80:
        return "high"
    elif rate >= 60:
        return "medium"
    else:
        return "low"


class ProgressService:
    """Reads progress history and routes history edits through the store."""

    def __init__(
        self,
        client: HabitAPIClient,
        store: HabitStore,
        notifier: Notifier,
        today: Callable[[], date] = date.today,
    ):
        """Initialize with backend client and habit store."""
        self.client = client
        self.store = store
        self.notifier = notifier
        self._today = today

    @property
    def _signed_in(self) -> bool:
        return self.store.session.is_authenticated

    async def get_stats(
        self, days: int = 30, habit_id: Optional[RecordId] = None
    ) -> Optional[ProgressStats]:
        """
        Get completion statistics for the last `days` days.

        Args:
            days: Size of the window
            habit_id: Restrict to one habit; all habits when None

        Returns:
            Statistics, or None without a session or on failure
        """
        if not self._signed_in:
            return None

        try:
            return await self.client.get_progress_stats(days=days, habit_id=habit_id)
        except APIError as e:
            logger.error(f"Error fetching stats: {e.message}")
            self.notifier.error("Failed to load statistics")
            return None

    async def get_recent_progress(
        self, days: int = 7, habit_id: Optional[RecordId] = None
    ) -> list[ProgressRecord]:
        """Get progress records from `days` days ago up to today."""
        if not self._signed_in:
            return []

        end_date = self._today()
        start_date = end_date - timedelta(days=days)

        try:
            return await self.client.get_progress(start_date, end_date, habit_id=habit_id)
        except APIError as e:
            logger.error(f"Error fetching recent progress: {e.message}")
            self.notifier.error("Failed to load recent progress")
            return []

    def weekly_summary(self, records: list[ProgressRecord]) -> list[DaySummary]:
        """
        Count completions per weekday over the last seven days.

        Args:
            records: Progress records covering at least the last week

        Returns:
            Seven rows ordered Sunday to Saturday
        """
        week = [DaySummary(day=name) for name in DAY_NAMES]
        today = self._today()

        for offset in range(6, -1, -1):
            day = today - timedelta(days=offset)
            day_records = [record for record in records if record.date == day]

            summary = week[get_day_of_week(day)]
            summary.completed = sum(1 for record in day_records if record.completed)
            summary.total = len(day_records)

        return week

    async def get_month(
        self, year: int, month: int, habit_id: Optional[RecordId] = None
    ) -> Optional[CalendarMonth]:
        """
        Get one month of progress (month is 1-indexed).

        Returns:
            The month, or None without a session or on failure
        """
        if not self._signed_in:
            return None

        try:
            records = await self.client.get_calendar(year, month, habit_id=habit_id)
        except APIError as e:
            logger.error(f"Error fetching month progress: {e.message}")
            self.notifier.error("Failed to load calendar")
            return None

        logger.debug(f"Loaded {len(records)} records for {year}-{month:02d}")
        return CalendarMonth(year=year, month=month, habit_id=habit_id, records=records)

    async def toggle_day(self, habit_id: RecordId, day: date) -> MutationResult:
        """Toggle a habit on any day, keeping the store's streaks current."""
        return await self.store.toggle_habit_completion(habit_id, day)

    async def remove_progress(self, progress_id: RecordId) -> MutationResult:
        """Delete one progress record."""
        return await self.store.delete_progress(progress_id)
