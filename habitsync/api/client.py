"""Habit tracker REST client."""

import asyncio
import datetime as dt
import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from .errors import InvalidResponseError, ServerError, TransportError
from .models import (
    Habit,
    HabitCreate,
    HabitUpdate,
    ProgressRecord,
    ProgressStats,
    RecordId,
    SessionUser,
    ShareableStats,
    ShareLink,
    ShareLinkCreate,
    TodayProgressEntry,
    ToggleResult,
)

logger = logging.getLogger(__name__)


class HabitAPIClient:
    """HTTP client for the habit tracker backend API."""

    def __init__(
        self,
        api_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_url: Backend API root (e.g., http://localhost:5000/api)
            timeout: Per-request timeout in seconds
            transport: Optional transport override, used by tests
        """
        self.api_url = api_url.rstrip("/")
        # A single cookie jar carries the session cookie on every request
        self._http = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "HabitAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self):
        """Close the underlying connection pool."""
        await self._http.aclose()
        logger.info("Closed backend client")

    async def request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Any] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Send a request to the backend and parse the response.

        Args:
            method: HTTP method
            endpoint: Path relative to the API root (e.g., "/habits")
            json: Optional body, sent as JSON
            params: Optional query parameters; None values are dropped

        Returns:
            Parsed JSON payload, or None when the response has no body

        Raises:
            ServerError: The backend answered with a non-success status
            TransportError: The request or response was lost in transit
            InvalidResponseError: A success response did not carry JSON
        """
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        logger.debug(f"{method} {endpoint}")
        try:
            response = await self._http.request(method, endpoint, json=json, params=params)
        except httpx.HTTPError as e:
            logger.error(f"API call failed for {endpoint}: {e}")
            raise TransportError(f"Network error: {e}", endpoint, cause=e) from e

        if not response.is_success:
            error = self._error_from_response(endpoint, response)
            logger.error(f"API call failed for {endpoint}: {error.message}")
            raise error

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"API call failed for {endpoint}: response is not JSON")
            raise InvalidResponseError(
                f"Unexpected response from {endpoint}", endpoint
            ) from e

    def _error_from_response(self, endpoint: str, response: httpx.Response) -> ServerError:
        """Build an error from the response body's message field."""
        message = None
        try:
            body = response.json()
            if isinstance(body, dict):
                message = body.get("message")
        except ValueError:
            pass

        if message:
            return ServerError(message, endpoint, response.status_code)
        return ServerError(
            f"Request failed (HTTP {response.status_code})",
            endpoint,
            response.status_code,
            has_message=False,
        )

    def _parse(self, endpoint: str, model: type[BaseModel], data: Any):
        """Validate a payload into `model`, raising InvalidResponseError on mismatch."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(
                f"API call failed for {endpoint}: unexpected {model.__name__} payload "
                f"({e.error_count()} errors)"
            )
            raise InvalidResponseError(
                f"Unexpected response from {endpoint}", endpoint
            ) from e

    def _parse_list(self, endpoint: str, model: type[BaseModel], data: Any) -> list:
        if data is None:
            return []
        if not isinstance(data, list):
            logger.error(f"API call failed for {endpoint}: expected a list")
            raise InvalidResponseError(f"Unexpected response from {endpoint}", endpoint)
        return [self._parse(endpoint, model, item) for item in data]

    def _parse_user(self, endpoint: str, data: Any) -> SessionUser:
        user = data.get("user") if isinstance(data, dict) else None
        return self._parse(endpoint, SessionUser, user)

    # Cookies

    def export_cookies(self) -> dict[str, str]:
        """Return the cookies currently held for the backend."""
        return {cookie.name: cookie.value for cookie in self._http.cookies.jar}

    def load_cookies(self, cookies: dict[str, str]):
        """Restore previously exported cookies."""
        for name, value in cookies.items():
            self._http.cookies.set(name, value)

    def clear_cookies(self):
        """Forget every cookie, including the session cookie."""
        self._http.cookies.clear()

    # Auth

    async def login(self, email: str, password: str) -> SessionUser:
        """Sign in with email and password."""
        data = await self.request(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        return self._parse_user("/auth/login", data)

    async def register(self, email: str, password: str, name: str) -> SessionUser:
        """Create an account and sign in."""
        data = await self.request(
            "POST",
            "/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        return self._parse_user("/auth/register", data)

    async def logout(self):
        """End the remote session."""
        await self.request("POST", "/auth/logout")

    async def get_session(self) -> Optional[SessionUser]:
        """
        Get the user of the current session.

        Returns:
            The session user, or None if the backend reports no session
        """
        data = await self.request("GET", "/auth/me")
        if not isinstance(data, dict) or not data.get("user"):
            return None
        return self._parse_user("/auth/me", data)

    # Habits

    async def get_habits(self, active: Optional[bool] = True) -> list[Habit]:
        """
        Get the user's habits.

        Args:
            active: Only active habits when True; all habits when None

        Returns:
            List of habits in backend order
        """
        params = {"active": "true" if active else "false"} if active is not None else None
        data = await self.request("GET", "/habits", params=params)
        return self._parse_list("/habits", Habit, data)

    async def create_habit(self, habit: HabitCreate) -> Habit:
        """Create a habit and return the stored record."""
        data = await self.request(
            "POST", "/habits", json=habit.model_dump(exclude_none=True)
        )
        return self._parse("/habits", Habit, data)

    async def update_habit(self, habit_id: RecordId, updates: HabitUpdate) -> Habit:
        """Send a partial update and return the updated habit."""
        data = await self.request(
            "PUT", f"/habits/{habit_id}", json=updates.model_dump(exclude_unset=True)
        )
        return self._parse(f"/habits/{habit_id}", Habit, data)

    async def delete_habit(self, habit_id: RecordId):
        """Delete a habit."""
        await self.request("DELETE", f"/habits/{habit_id}")

    # Progress

    async def get_today_progress(self) -> list[TodayProgressEntry]:
        """Get every active habit paired with today's completion."""
        data = await self.request("GET", "/progress/today")
        return self._parse_list("/progress/today", TodayProgressEntry, data)

    async def toggle_progress(self, habit_id: RecordId, day: dt.date) -> ToggleResult:
        """
        Flip the completion of a habit on a day.

        The backend creates the record when none exists yet and decides the
        resulting completed value.
        """
        data = await self.request(
            "POST",
            "/progress/toggle",
            json={"habitId": habit_id, "date": day.isoformat()},
        )
        return self._parse("/progress/toggle", ToggleResult, data)

    async def delete_progress(self, progress_id: RecordId):
        """Delete a single progress record."""
        await self.request("DELETE", f"/progress/{progress_id}")

    async def get_progress(
        self,
        start_date: dt.date,
        end_date: dt.date,
        habit_id: Optional[RecordId] = None,
    ) -> list[ProgressRecord]:
        """Get progress records between two days, inclusive."""
        data = await self.request(
            "GET",
            "/progress",
            params={
                "startDate": start_date.isoformat(),
                "endDate": end_date.isoformat(),
                "habitId": habit_id,
            },
        )
        return self._parse_list("/progress", ProgressRecord, data)

    async def get_progress_stats(
        self, days: int = 30, habit_id: Optional[RecordId] = None
    ) -> ProgressStats:
        """Get completion statistics over the last `days` days."""
        data = await self.request(
            "GET", "/progress/stats", params={"days": days, "habitId": habit_id}
        )
        return self._parse("/progress/stats", ProgressStats, data)

    async def get_calendar(
        self, year: int, month: int, habit_id: Optional[RecordId] = None
    ) -> list[ProgressRecord]:
        """Get the progress records of one month (month is 1-indexed)."""
        data = await self.request(
            "GET", f"/progress/calendar/{year}/{month}", params={"habitId": habit_id}
        )
        return self._parse_list(f"/progress/calendar/{year}/{month}", ProgressRecord, data)

    # Sharing

    async def get_share_stats(self) -> ShareableStats:
        """Get the statistics that a share link would publish."""
        data = await self.request("GET", "/share/stats")
        return self._parse("/share/stats", ShareableStats, data)

    async def create_share_link(self, link: ShareLinkCreate) -> ShareLink:
        """Create a share link."""
        data = await self.request(
            "POST", "/share/create", json=link.model_dump(by_alias=True)
        )
        return self._parse("/share/create", ShareLink, data)

    async def get_share_links(self) -> list[ShareLink]:
        """Get the share links created by the current user."""
        data = await self.request("GET", "/share/user/links")
        return self._parse_list("/share/user/links", ShareLink, data)

    async def get_shared(self, share_id: RecordId) -> dict:
        """Get the public content behind a share link."""
        return await self.request("GET", f"/share/{share_id}")

    async def delete_share_link(self, share_id: RecordId):
        """Delete a share link."""
        await self.request("DELETE", f"/share/{share_id}")


async def test_connection():
    """Test backend connection."""
    import os
    from dotenv import load_dotenv

    load_dotenv()

    api_url = os.getenv("HABITSYNC_API_URL")
    email = os.getenv("HABITSYNC_EMAIL")
    password = os.getenv("HABITSYNC_PASSWORD")

    if not api_url or not email or not password:
        print("Error: HABITSYNC_API_URL, HABITSYNC_EMAIL and HABITSYNC_PASSWORD must be set in .env file")
        return

    async with HabitAPIClient(api_url) as client:
        user = await client.login(email, password)
        print(f"\nSigned in as {user.email}")

        habits = await client.get_habits()
        print(f"\nFound {len(habits)} active habits")
        for habit in habits:
            print(f"  - {habit.emoji or ''} {habit.name}: {habit.current_streak} day streak")

        today = await client.get_today_progress()
        done = sum(1 for entry in today if entry.completed)
        print(f"\nToday: {done}/{len(today)} completed")

        await client.logout()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(test_connection())
