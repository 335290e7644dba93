"""Session provider: who is signed in, and how they sign in and out."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from habitsync.api.client import HabitAPIClient
from habitsync.api.errors import APIError, HabitSyncError, ServerError, user_message
from habitsync.api.models import SessionUser
from habitsync.store.notifications import Notifier

from .singleflight import SingleFlight
from .storage import ClientStorage

logger = logging.getLogger(__name__)

SESSION_COOKIES_KEY = "session_cookies"

SessionListener = Callable[[Optional[SessionUser]], None]


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a sign-in or sign-up attempt."""

    ok: bool
    user: Optional[SessionUser] = None
    error: Optional[HabitSyncError] = None


class SessionProvider:
    """Holds the authenticated user derived from the backend session cookie."""

    def __init__(
        self,
        client: HabitAPIClient,
        storage: ClientStorage,
        notifier: Notifier,
        signout_timeout: float = 2.0,
    ):
        """
        Initialize the provider.

        Args:
            client: Backend client whose cookie jar carries the session
            storage: Persisted client state, wiped on sign-out
            notifier: Where user-facing messages go
            signout_timeout: Seconds to wait for the remote sign-out
        """
        self.client = client
        self.storage = storage
        self.notifier = notifier
        self.signout_timeout = signout_timeout
        self._user: Optional[SessionUser] = None
        self._listeners: list[SessionListener] = []
        self._sign_out_flight = SingleFlight("sign-out")

    @property
    def user(self) -> Optional[SessionUser]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener for session changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_user(self, user: Optional[SessionUser]):
        if user == self._user:
            return

        self._user = user
        if user:
            logger.info(f"Session active for {user.email}")
        else:
            logger.info("Session cleared")

        for listener in list(self._listeners):
            listener(user)

    def _persist_cookies(self):
        self.storage.set(SESSION_COOKIES_KEY, self.client.export_cookies())

    async def restore(self) -> Optional[SessionUser]:
        """
        Resume a session saved by a previous run.

        Returns:
            The session user, or None when there is no valid session
        """
        cookies = self.storage.get(SESSION_COOKIES_KEY)
        if cookies:
            self.client.load_cookies(cookies)

        try:
            user = await self.client.get_session()
        except ServerError as e:
            if e.status_code not in (401, 403):
                logger.warning(f"Could not restore session: {e.message}")
            user = None
        except APIError as e:
            logger.warning(f"Could not restore session: {e.message}")
            user = None

        if user:
            self._persist_cookies()
        self._set_user(user)
        return user

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password."""
        try:
            user = await self.client.login(email, password)
        except APIError as e:
            self.notifier.error(user_message(e, "Login failed"))
            return AuthResult(ok=False, error=e)

        self._persist_cookies()
        self._set_user(user)
        self.notifier.success("Welcome back!")
        return AuthResult(ok=True, user=user)

    async def sign_up(self, email: str, password: str, name: str) -> AuthResult:
        """Create an account; the backend signs the new user in."""
        try:
            user = await self.client.register(email, password, name)
        except APIError as e:
            self.notifier.error(user_message(e, "Registration failed"))
            return AuthResult(ok=False, error=e)

        self._persist_cookies()
        self._set_user(user)
        self.notifier.success("Account created successfully!")
        return AuthResult(ok=True, user=user)

    async def sign_out(self):
        """
        Sign out and wipe client-held state.

        Concurrent calls share a single remote sign-out. Local state is
        cleared even when the remote call fails, so this always ends with
        no session.
        """
        await self._sign_out_flight.run(self._sign_out)

    async def _sign_out(self):
        logger.info("Signing out...")
        remote_ok = False
        try:
            await asyncio.wait_for(self.client.logout(), timeout=self.signout_timeout)
            remote_ok = True
        except asyncio.TimeoutError:
            logger.warning(f"Remote sign-out timed out after {self.signout_timeout}s")
        except APIError as e:
            logger.warning(f"Remote sign-out failed: {e.message}")
        finally:
            self.storage.clear()
            self.client.clear_cookies()
            self._set_user(None)

        if remote_ok:
            self.notifier.success("Logged out successfully")
        logger.info("✓ Signed out")
