"""Single-flight execution of a coroutine."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    Runs at most one instance of an operation at a time.

    Callers arriving while the operation is in flight await the same task
    and observe its result instead of starting a second one. Once the task
    finishes, the next call starts a fresh run.
    """

    def __init__(self, name: str):
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        """Whether a run is currently active."""
        return self._task is not None and not self._task.done()

    async def run(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run `operation`, or join the run already in flight.

        Args:
            operation: Zero-argument coroutine function

        Returns:
            The result of the shared run
        """
        if self.in_flight:
            logger.debug(f"{self.name} already in progress, joining")
        else:
            self._task = asyncio.ensure_future(operation())

        # shield keeps one cancelled waiter from cancelling the shared run
        return await asyncio.shield(self._task)
