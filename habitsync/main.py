"""Local FastAPI facade over the habit store."""

import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .api.client import HabitAPIClient
from .api.errors import NotAuthenticatedError
from .api.models import HabitCreate, HabitUpdate, RecordId
from .config import settings
from .services.progress import ProgressService, completion_tier
from .services.share import ShareService, quick_share_text
from .session.provider import SessionProvider
from .session.storage import ClientStorage
from .store.habits import HabitStore
from .store.notifications import Notifier
from .store.state import MutationResult

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str


class ToggleRequest(BaseModel):
    date: Optional[dt.date] = None


class ShareLinkRequest(BaseModel):
    title: str = ""
    description: str = ""
    include_stats: bool = True
    include_habits: bool = True


def parse_id(value: str) -> RecordId:
    """Path ids arrive as text; numeric ids are sent as integers."""
    return int(value) if value.isdigit() else value


def resolve_habit_id(store: HabitStore, value: str) -> RecordId:
    """Use the cached habit's own id so a path id matches it whatever its type."""
    habit = store.state.habit(value)
    return habit.id if habit else parse_id(value)


def serialize(value):
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [serialize(item) for item in value]
    return value


def envelope(result: MutationResult) -> JSONResponse:
    """Answer with {data, error}; failures use 502 since the backend refused."""
    body = {
        "data": serialize(result.data),
        "error": result.error.message if result.error else None,
    }
    if result.skipped:
        body["error"] = "Not signed in"
    return JSONResponse(body, status_code=200 if result.ok else 502)


# Dependencies


def get_session(request: Request) -> SessionProvider:
    return request.app.state.session


def get_store(request: Request) -> HabitStore:
    return request.app.state.store


def get_progress(request: Request) -> ProgressService:
    return request.app.state.progress


def get_share(request: Request) -> ShareService:
    return request.app.state.share


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def require_session(session: SessionProvider = Depends(get_session)) -> SessionProvider:
    if not session.is_authenticated:
        raise NotAuthenticatedError("Sign in first")
    return session


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "habitsync",
        "version": VERSION,
        "endpoints": {
            "auth": "/auth",
            "state": "/state",
            "habits": "/habits",
            "progress": "/progress",
            "share": "/share",
            "notifications": "/notifications",
        },
    }


@router.get("/status")
async def status(session: SessionProvider = Depends(get_session)):
    """Facade status endpoint."""
    return {
        "status": "running",
        "version": VERSION,
        "timestamp": dt.datetime.now().isoformat(),
        "api_url": settings.api_url,
        "signed_in": session.is_authenticated,
    }


# Auth


@router.post("/auth/login")
async def login(body: LoginRequest, session: SessionProvider = Depends(get_session)):
    result = await session.sign_in(body.email, body.password)
    return JSONResponse(
        {
            "data": serialize(result.user),
            "error": result.error.message if result.error else None,
        },
        status_code=200 if result.ok else 401,
    )


@router.post("/auth/register")
async def register(body: RegisterRequest, session: SessionProvider = Depends(get_session)):
    result = await session.sign_up(body.email, body.password, body.name)
    return JSONResponse(
        {
            "data": serialize(result.user),
            "error": result.error.message if result.error else None,
        },
        status_code=200 if result.ok else 400,
    )


@router.post("/auth/logout")
async def logout(session: SessionProvider = Depends(get_session)):
    await session.sign_out()
    return {"status": "signed_out"}


@router.get("/auth/session")
async def current_session(session: SessionProvider = Depends(get_session)):
    return {"user": serialize(session.user)}


# Habits and today's progress


@router.get("/state")
async def get_state(store: HabitStore = Depends(get_store)):
    """Current snapshot of the habit store."""
    return store.state.to_dict()


@router.post("/state/refresh", dependencies=[Depends(require_session)])
async def refresh_state(store: HabitStore = Depends(get_store)):
    """Reload habits and today's progress, then return the snapshot."""
    await store.sync()
    return store.state.to_dict()


@router.post("/habits", dependencies=[Depends(require_session)])
async def create_habit(body: HabitCreate, store: HabitStore = Depends(get_store)):
    return envelope(await store.create_habit(body))


@router.put("/habits/{habit_id}", dependencies=[Depends(require_session)])
async def update_habit(habit_id: str, body: HabitUpdate, store: HabitStore = Depends(get_store)):
    return envelope(await store.update_habit(resolve_habit_id(store, habit_id), body))


@router.delete("/habits/{habit_id}", dependencies=[Depends(require_session)])
async def delete_habit(habit_id: str, store: HabitStore = Depends(get_store)):
    return envelope(await store.delete_habit(resolve_habit_id(store, habit_id)))


@router.post("/habits/{habit_id}/toggle", dependencies=[Depends(require_session)])
async def toggle_habit(
    habit_id: str,
    body: Optional[ToggleRequest] = None,
    store: HabitStore = Depends(get_store),
):
    """Toggle completion; the streak reload continues after the response."""
    day = body.date if body else None
    result = await store.toggle_habit_completion(resolve_habit_id(store, habit_id), day)
    return envelope(result)


# Progress history


@router.get("/progress/stats", dependencies=[Depends(require_session)])
async def progress_stats(
    days: int = 30,
    habit_id: Optional[str] = None,
    progress: ProgressService = Depends(get_progress),
):
    stats = await progress.get_stats(
        days=days, habit_id=parse_id(habit_id) if habit_id else None
    )
    if stats is None:
        return JSONResponse({"stats": None, "error": "Failed to load statistics"}, status_code=502)
    return {"stats": serialize(stats), "tier": completion_tier(stats.completion_rate)}


@router.get("/progress/recent", dependencies=[Depends(require_session)])
async def recent_progress(
    days: int = 7,
    habit_id: Optional[str] = None,
    progress: ProgressService = Depends(get_progress),
):
    records = await progress.get_recent_progress(
        days=days, habit_id=parse_id(habit_id) if habit_id else None
    )
    weekly = progress.weekly_summary(records)
    return {
        "records": serialize(records),
        "weekly": [
            {"day": row.day, "completed": row.completed, "total": row.total}
            for row in weekly
        ],
    }


@router.get("/progress/calendar/{year}/{month}", dependencies=[Depends(require_session)])
async def calendar_month(
    year: int,
    month: int,
    habit_id: Optional[str] = None,
    progress: ProgressService = Depends(get_progress),
):
    result = await progress.get_month(
        year, month, habit_id=parse_id(habit_id) if habit_id else None
    )
    if result is None:
        return JSONResponse({"days": [], "error": "Failed to load calendar"}, status_code=502)
    return {
        "year": result.year,
        "month": result.month,
        "completed": result.completed_count(),
        "days": [
            {"date": day.isoformat(), "status": result.day_status(day)}
            for day in result.days()
        ],
        "records": serialize(result.records),
    }


@router.delete("/progress/{progress_id}", dependencies=[Depends(require_session)])
async def delete_progress(progress_id: str, progress: ProgressService = Depends(get_progress)):
    return envelope(await progress.remove_progress(parse_id(progress_id)))


# Sharing


@router.get("/share/stats", dependencies=[Depends(require_session)])
async def share_stats(share: ShareService = Depends(get_share)):
    stats = await share.get_stats()
    if stats is None:
        return JSONResponse({"stats": None, "error": "Failed to load stats"}, status_code=502)
    return {"stats": serialize(stats), "text": quick_share_text(stats)}


@router.get("/share/links", dependencies=[Depends(require_session)])
async def share_links(share: ShareService = Depends(get_share)):
    return {"links": serialize(await share.list_links())}


@router.post("/share/links", dependencies=[Depends(require_session)])
async def create_share_link(body: ShareLinkRequest, share: ShareService = Depends(get_share)):
    return envelope(
        await share.create_link(
            title=body.title,
            description=body.description,
            include_stats=body.include_stats,
            include_habits=body.include_habits,
        )
    )


@router.delete("/share/links/{share_id}", dependencies=[Depends(require_session)])
async def delete_share_link(share_id: str, share: ShareService = Depends(get_share)):
    return envelope(await share.delete_link(parse_id(share_id)))


@router.get("/share/{share_id}")
async def shared_progress(share_id: str, share: ShareService = Depends(get_share)):
    """Public view of a share link."""
    content = await share.get_shared(parse_id(share_id))
    if content is None:
        return JSONResponse({"error": "Shared progress not found"}, status_code=404)
    return content


@router.get("/notifications")
async def notifications(notifier: Notifier = Depends(get_notifier)):
    """Pending notifications, oldest first; reading them clears the list."""
    return {
        "notifications": [
            {
                "level": item.level,
                "message": item.message,
                "created_at": item.created_at.isoformat(),
            }
            for item in notifier.drain()
        ]
    }


def create_app(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    storage_path: Optional[str] = None,
    today: Callable[[], dt.date] = dt.date.today,
) -> FastAPI:
    """
    Build the facade application.

    Args:
        transport: Optional transport for the backend client, used by tests
        storage_path: Override of settings.storage_path
        today: Returns the local calendar day
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = HabitAPIClient(settings.api_url, settings.request_timeout, transport=transport)
        storage = ClientStorage(storage_path or settings.storage_path)
        notifier = Notifier(settings.notification_history)
        session = SessionProvider(client, storage, notifier, settings.signout_timeout)
        store = HabitStore(client, session, notifier, today=today)

        app.state.client = client
        app.state.notifier = notifier
        app.state.session = session
        app.state.store = store
        app.state.progress = ProgressService(client, store, notifier, today=today)
        app.state.share = ShareService(client, session, notifier)

        # Startup
        user = await session.restore()
        if user:
            logger.info(f"✓ Restored session for {user.email}")

        yield

        # Shutdown
        await store.wait_idle()
        await client.close()

    app = FastAPI(
        title="habitsync",
        description="Client-side habit and progress synchronization",
        version=VERSION,
        lifespan=lifespan,
    )
    app.include_router(router)

    @app.exception_handler(NotAuthenticatedError)
    async def not_authenticated(request: Request, exc: NotAuthenticatedError):
        return JSONResponse({"error": str(exc)}, status_code=401)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
