"""Habit/progress store: the client-side cache of the user's habits."""

import asyncio
import logging
from datetime import date
from typing import Callable, Optional, Union

from habitsync.api.client import HabitAPIClient
from habitsync.api.errors import APIError, user_message
from habitsync.api.models import HabitCreate, HabitUpdate, RecordId, SessionUser
from habitsync.session.provider import SessionProvider

from . import state as transitions
from .notifications import Notifier
from .state import HabitState, MutationResult

logger = logging.getLogger(__name__)

StateListener = Callable[[HabitState], None]


class HabitStore:
    """
    Owns the cached habits and today's progress entries.

    Every change produces a new immutable HabitState which is handed to
    subscribers. Operations call the backend first and only touch the cache
    once it has confirmed, except the today-entry patch after a toggle,
    which is always followed by a habit reload.

    Results that arrive after the session changed are dropped: each request
    remembers the session epoch it started in.
    """

    def __init__(
        self,
        client: HabitAPIClient,
        session: SessionProvider,
        notifier: Notifier,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the store and follow the session.

        Args:
            client: Backend client
            session: Session provider; a new session triggers a full load,
                losing the session clears the cache
            notifier: Where user-facing messages go
            today: Returns the local calendar day
        """
        self.client = client
        self.session = session
        self.notifier = notifier
        self._today = today
        self._state = HabitState()
        self._listeners: list[StateListener] = []
        self._epoch = 0
        self._tasks: set[asyncio.Task] = set()
        self.session_sync: Optional[asyncio.Task] = None

        session.subscribe(self._on_session_change)

    @property
    def state(self) -> HabitState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for new snapshots; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new_state: HabitState):
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)

    def _spawn(self, coro) -> asyncio.Task:
        """Start a follow-up task and keep a reference until it finishes."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch and self.session.is_authenticated

    def _on_session_change(self, user: Optional[SessionUser]):
        self._epoch += 1
        if user:
            self.session_sync = self._spawn(self.sync())
        else:
            self.session_sync = None
            self._commit(HabitState())

    async def wait_idle(self):
        """Wait until every follow-up task started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # Loading

    async def sync(self):
        """Load habits and today's progress side by side."""
        await asyncio.gather(self.fetch_habits(), self.fetch_today_progress())

    async def fetch_habits(self) -> bool:
        """
        Reload the active habits.

        Returns:
            True if the cache was replaced
        """
        if not self.session.is_authenticated:
            return False

        epoch = self._epoch
        self._commit(transitions.set_loading(self._state))

        try:
            habits = await self.client.get_habits(active=True)
        except APIError as e:
            if not self._is_current(epoch):
                return False
            logger.error(f"Error fetching habits: {e.message}")
            self._commit(transitions.set_error(self._state, e.message))
            self.notifier.error("Failed to load habits")
            return False

        if not self._is_current(epoch):
            logger.debug("Discarding habits loaded for a previous session")
            return False

        self._commit(transitions.set_ready(transitions.set_habits(self._state, habits)))
        logger.debug(f"Loaded {len(habits)} habits")
        return True

    async def fetch_today_progress(self) -> bool:
        """
        Reload today's entries.

        Returns:
            True if the cache was replaced
        """
        if not self.session.is_authenticated:
            return False

        epoch = self._epoch
        self._commit(transitions.set_loading(self._state))

        try:
            entries = await self.client.get_today_progress()
        except APIError as e:
            if not self._is_current(epoch):
                return False
            logger.error(f"Error fetching today progress: {e.message}")
            self._commit(transitions.set_error(self._state, e.message))
            self.notifier.error("Failed to load today's progress")
            return False

        if not self._is_current(epoch):
            logger.debug("Discarding today's progress loaded for a previous session")
            return False

        self._commit(
            transitions.set_ready(transitions.set_today_progress(self._state, entries))
        )
        return True

    # Mutations

    async def create_habit(self, data: Union[HabitCreate, dict]) -> MutationResult:
        """Create a habit; today's entries are reloaded afterwards."""
        if not self.session.is_authenticated:
            return MutationResult.skip()

        if not isinstance(data, HabitCreate):
            data = HabitCreate.model_validate(data)

        epoch = self._epoch
        try:
            habit = await self.client.create_habit(data)
        except APIError as e:
            logger.error(f"Error creating habit: {e.message}")
            self.notifier.error(user_message(e, "Failed to create habit"))
            return MutationResult(ok=False, error=e)

        if not self._is_current(epoch):
            return MutationResult(ok=True, data=habit)

        self._commit(transitions.set_ready(transitions.add_habit(self._state, habit)))
        self.notifier.success("Habit created successfully!")

        refresh = self._spawn(self.fetch_today_progress())
        return MutationResult(ok=True, data=habit, refresh=refresh)

    async def update_habit(
        self, habit_id: RecordId, updates: Union[HabitUpdate, dict]
    ) -> MutationResult:
        """Send a partial update and replace the cached habit in place."""
        if not self.session.is_authenticated:
            return MutationResult.skip()

        if not isinstance(updates, HabitUpdate):
            updates = HabitUpdate.model_validate(updates)

        epoch = self._epoch
        try:
            habit = await self.client.update_habit(habit_id, updates)
        except APIError as e:
            logger.error(f"Error updating habit {habit_id}: {e.message}")
            self.notifier.error(user_message(e, "Failed to update habit"))
            return MutationResult(ok=False, error=e)

        if not self._is_current(epoch):
            return MutationResult(ok=True, data=habit)

        self._commit(transitions.set_ready(transitions.update_habit(self._state, habit)))
        self.notifier.success("Habit updated successfully!")
        return MutationResult(ok=True, data=habit)

    async def delete_habit(self, habit_id: RecordId) -> MutationResult:
        """Delete a habit; today's entries are reloaded afterwards."""
        if not self.session.is_authenticated:
            return MutationResult.skip()

        epoch = self._epoch
        try:
            await self.client.delete_habit(habit_id)
        except APIError as e:
            logger.error(f"Error deleting habit {habit_id}: {e.message}")
            self.notifier.error(user_message(e, "Failed to delete habit"))
            return MutationResult(ok=False, error=e)

        if not self._is_current(epoch):
            return MutationResult(ok=True)

        self._commit(transitions.set_ready(transitions.remove_habit(self._state, habit_id)))
        self.notifier.success("Habit deleted successfully!")

        refresh = self._spawn(self.fetch_today_progress())
        return MutationResult(ok=True, refresh=refresh)

    async def toggle_habit_completion(
        self, habit_id: RecordId, day: Optional[date] = None
    ) -> MutationResult:
        """
        Flip a habit's completion for a day (today by default).

        The backend decides the resulting value. A toggle for today patches
        the cached entry right away; any toggle then reloads the habits to
        pick up new streaks. That reload is returned as `refresh` and is not
        awaited here.
        """
        if not self.session.is_authenticated:
            return MutationResult.skip()

        today = self._today()
        target = day or today

        epoch = self._epoch
        try:
            result = await self.client.toggle_progress(habit_id, target)
        except APIError as e:
            logger.error(f"Error toggling habit {habit_id} on {target}: {e.message}")
            self.notifier.error(user_message(e, "Failed to update progress"))
            return MutationResult(ok=False, error=e)

        if not self._is_current(epoch):
            return MutationResult(ok=True, data=result)

        new_state = self._state
        if target == today:
            new_state = transitions.patch_today_completion(
                new_state, habit_id, result.completed
            )
        self._commit(transitions.set_ready(new_state))

        refresh = self._spawn(self.fetch_habits())
        return MutationResult(ok=True, data=result, refresh=refresh)

    async def delete_progress(self, progress_id: RecordId) -> MutationResult:
        """Delete one progress record; habits and today's entries are reloaded."""
        if not self.session.is_authenticated:
            return MutationResult.skip()

        epoch = self._epoch
        try:
            await self.client.delete_progress(progress_id)
        except APIError as e:
            logger.error(f"Error removing progress {progress_id}: {e.message}")
            self.notifier.error(user_message(e, "Failed to remove progress"))
            return MutationResult(ok=False, error=e)

        if not self._is_current(epoch):
            return MutationResult(ok=True)

        refresh = self._spawn(self.sync())
        return MutationResult(ok=True, refresh=refresh)
