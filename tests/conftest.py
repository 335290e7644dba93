"""Shared fixtures: an in-memory fake of the habit tracker backend."""

import asyncio
import json
import re
from datetime import date
from typing import Optional

import httpx
import pytest

from habitsync.api.client import HabitAPIClient
from habitsync.session.provider import SessionProvider
from habitsync.session.storage import ClientStorage
from habitsync.store.habits import HabitStore
from habitsync.store.notifications import Notifier

TODAY = date(2026, 10, 19)
API_URL = "http://backend.test/api"
USER = {"id": 7, "email": "sam@example.com", "name": "Sam"}


def make_habit(habit_id, name, current_streak=0, longest_streak=None, **extra):
    habit = {
        "id": habit_id,
        "name": name,
        "emoji": "💧",
        "category": "health",
        "color": "blue",
        "current_streak": current_streak,
        "longest_streak": current_streak if longest_streak is None else longest_streak,
        "is_active": True,
    }
    habit.update(extra)
    return habit


class FakeBackend:
    """Serves the REST surface the client talks to, from plain dicts."""

    def __init__(self):
        self.habits: list[dict] = []
        self.progress: list[dict] = []
        self.share_links: list[dict] = []
        self.requests: list[tuple[str, str, Optional[dict]]] = []
        # (method, path) -> (status, body bytes) or exception to raise
        self.failures: dict[tuple[str, str], object] = {}
        self.logout_gate: Optional[asyncio.Event] = None
        self._next_id = 100

    def new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def fail(self, method: str, path: str, status: int = 500, body=None):
        """Make the next calls to an endpoint answer with an error."""
        content = json.dumps(body).encode() if body is not None else b"oops"
        self.answer(method, path, content, status=status)

    def answer(self, method: str, path: str, content: bytes, status: int = 200):
        """Make the next calls to an endpoint answer with a fixed raw body."""
        self.failures[(method, path)] = (status, content)

    def break_connection(self, method: str, path: str):
        self.failures[(method, path)] = httpx.ConnectError("connection refused")

    def calls(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.requests if m == method and p == path)

    def today_entries(self) -> list[dict]:
        entries = []
        for habit in self.habits:
            record = self._find_progress(habit["id"], TODAY.isoformat())
            entries.append(
                {
                    "habit": habit,
                    "completed": bool(record and record["completed"]),
                    "progress_id": record["id"] if record else None,
                    "date": TODAY.isoformat(),
                }
            )
        return entries

    def _find_progress(self, habit_id, day: str) -> Optional[dict]:
        for record in self.progress:
            if record["habit_id"] == habit_id and record["date"] == day:
                return record
        return None

    def _find_habit(self, habit_id) -> Optional[dict]:
        for habit in self.habits:
            if str(habit["id"]) == str(habit_id):
                return habit
        return None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        failure = self.failures.get((request.method, path))
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            status, content = failure
            return httpx.Response(status, content=content)

        return await self._route(request, path, body)

    async def _route(self, request: httpx.Request, path: str, body) -> httpx.Response:
        method = request.method

        # Auth
        if (method, path) == ("POST", "/auth/login"):
            if body["password"] != "secret":
                return httpx.Response(401, json={"message": "Invalid credentials"})
            return httpx.Response(
                200, json={"user": USER}, headers={"Set-Cookie": "session=abc123; Path=/"}
            )
        if (method, path) == ("POST", "/auth/register"):
            user = {"id": self.new_id(), "email": body["email"], "name": body["name"]}
            return httpx.Response(
                201, json={"user": user}, headers={"Set-Cookie": "session=new456; Path=/"}
            )
        if (method, path) == ("POST", "/auth/logout"):
            if self.logout_gate:
                await self.logout_gate.wait()
            return httpx.Response(200, json={"message": "Signed out"})
        if (method, path) == ("GET", "/auth/me"):
            if "session=" in request.headers.get("cookie", ""):
                return httpx.Response(200, json={"user": USER})
            return httpx.Response(401, json={"message": "Not authenticated"})

        # Habits
        if (method, path) == ("GET", "/habits"):
            return httpx.Response(200, json=[h for h in self.habits if h["is_active"]])
        if (method, path) == ("POST", "/habits"):
            habit = make_habit(self.new_id(), body["name"])
            habit.update(body)
            self.habits.append(habit)
            return httpx.Response(201, json=habit)
        match = re.fullmatch(r"/habits/(\w+)", path)
        if match:
            habit = self._find_habit(match.group(1))
            if habit is None:
                return httpx.Response(404, json={"message": "Habit not found"})
            if method == "PUT":
                habit.update(body)
                return httpx.Response(200, json=habit)
            if method == "DELETE":
                self.habits.remove(habit)
                return httpx.Response(204)

        # Progress
        if (method, path) == ("GET", "/progress/today"):
            return httpx.Response(200, json=self.today_entries())
        if (method, path) == ("POST", "/progress/toggle"):
            return self._toggle(body["habitId"], body["date"])
        if (method, path) == ("GET", "/progress"):
            start = request.url.params["startDate"]
            end = request.url.params["endDate"]
            records = [r for r in self.progress if start <= r["date"] <= end]
            return httpx.Response(200, json=records)
        if (method, path) == ("GET", "/progress/stats"):
            return httpx.Response(
                200,
                json={
                    "completedDays": 21,
                    "totalDays": int(request.url.params.get("days", 30)),
                    "completionRate": 70,
                    "missedDays": 9,
                },
            )
        match = re.fullmatch(r"/progress/calendar/(\d+)/(\d+)", path)
        if match:
            prefix = f"{int(match.group(1)):04d}-{int(match.group(2)):02d}-"
            return httpx.Response(
                200, json=[r for r in self.progress if r["date"].startswith(prefix)]
            )
        match = re.fullmatch(r"/progress/(\w+)", path)
        if match and method == "DELETE":
            self.progress = [r for r in self.progress if str(r["id"]) != match.group(1)]
            return httpx.Response(204)

        # Sharing
        if (method, path) == ("GET", "/share/stats"):
            return httpx.Response(
                200,
                json={
                    "stats": {
                        "totalHabits": len(self.habits),
                        "totalCompletions": sum(1 for r in self.progress if r["completed"]),
                        "longestStreak": max((h["longest_streak"] for h in self.habits), default=0),
                        "averageStreak": 2.5,
                    },
                    "topHabits": self.habits[:3],
                },
            )
        if (method, path) == ("POST", "/share/create"):
            share_id = f"s{self.new_id()}"
            link = {
                "share_id": share_id,
                "title": body["title"],
                "description": body["description"],
                "include_stats": body["includeStats"],
                "include_habits": body["includeHabits"],
                "created_at": "2026-10-19T08:00:00",
                "shareUrl": f"http://habits.test/shared/{share_id}",
            }
            self.share_links.append(link)
            return httpx.Response(201, json=link)
        if (method, path) == ("GET", "/share/user/links"):
            return httpx.Response(200, json=self.share_links)
        match = re.fullmatch(r"/share/(\w+)", path)
        if match:
            link = next((l for l in self.share_links if l["share_id"] == match.group(1)), None)
            if link is None:
                return httpx.Response(404, json={"message": "Share link not found"})
            if method == "DELETE":
                self.share_links.remove(link)
                return httpx.Response(204)
            return httpx.Response(200, json={"title": link["title"], "habits": self.habits})

        return httpx.Response(404, json={"message": f"No route for {method} {path}"})

    def _toggle(self, habit_id, day: str) -> httpx.Response:
        habit = self._find_habit(habit_id)
        if habit is None:
            return httpx.Response(404, json={"message": "Habit not found"})

        record = self._find_progress(habit["id"], day)
        if record is None:
            record = {"id": self.new_id(), "habit_id": habit["id"], "date": day, "completed": False}
            self.progress.append(record)
        record["completed"] = not record["completed"]

        # Stand-in for the server-side streak computation
        if day == TODAY.isoformat():
            step = 1 if record["completed"] else -1
            habit["current_streak"] = max(0, habit["current_streak"] + step)
            habit["longest_streak"] = max(habit["longest_streak"], habit["current_streak"])

        return httpx.Response(200, json={"completed": record["completed"]})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def client(backend):
    client = HabitAPIClient(API_URL, transport=httpx.MockTransport(backend.handler))
    yield client
    await client.close()


@pytest.fixture
def storage(tmp_path):
    return ClientStorage(str(tmp_path / "client.db"))


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def session(client, storage, notifier):
    return SessionProvider(client, storage, notifier, signout_timeout=0.5)


@pytest.fixture
def store(client, session, notifier):
    return HabitStore(client, session, notifier, today=lambda: TODAY)


@pytest.fixture
async def signed_in_store(session, store, notifier):
    """A store whose session is active and whose first load has finished."""
    await session.sign_in(USER["email"], "secret")
    await store.session_sync
    notifier.drain()
    return store
