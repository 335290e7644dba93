"""Share links for publishing progress."""

import logging
from typing import Optional

from habitsync.api.client import HabitAPIClient
from habitsync.api.errors import APIError, user_message
from habitsync.api.models import RecordId, ShareableStats, ShareLink, ShareLinkCreate
from habitsync.session.provider import SessionProvider
from habitsync.store.notifications import Notifier
from habitsync.store.state import MutationResult

logger = logging.getLogger(__name__)


class ShareService:
    """Creates, lists and deletes share links."""

    def __init__(self, client: HabitAPIClient, session: SessionProvider, notifier: Notifier):
        self.client = client
        self.session = session
        self.notifier = notifier

    async def get_stats(self) -> Optional[ShareableStats]:
        """Get the statistics a share link would publish."""
        if not self.session.is_authenticated:
            return None

        try:
            return await self.client.get_share_stats()
        except APIError as e:
            logger.error(f"Error fetching shareable stats: {e.message}")
            self.notifier.error("Failed to load stats")
            return None

    async def list_links(self) -> list[ShareLink]:
        """Get the current user's share links."""
        if not self.session.is_authenticated:
            return []

        try:
            return await self.client.get_share_links()
        except APIError as e:
            # The share screen still works without the list
            logger.error(f"Error fetching shared links: {e.message}")
            return []

    async def create_link(
        self,
        title: str = "",
        description: str = "",
        include_stats: bool = True,
        include_habits: bool = True,
    ) -> MutationResult:
        """Create a share link; the result data is the new ShareLink."""
        if not self.session.is_authenticated:
            return MutationResult.skip()

        request = ShareLinkCreate(
            title=title,
            description=description,
            include_stats=include_stats,
            include_habits=include_habits,
        )
        try:
            link = await self.client.create_share_link(request)
        except APIError as e:
            logger.error(f"Error creating share link: {e.message}")
            self.notifier.error(user_message(e, "Failed to create share link"))
            return MutationResult(ok=False, error=e)

        self.notifier.success("Share link created")
        logger.info(f"Created share link {link.share_id}")
        return MutationResult(ok=True, data=link)

    async def delete_link(self, share_id: RecordId) -> MutationResult:
        """Delete a share link."""
        if not self.session.is_authenticated:
            return MutationResult.skip()

        try:
            await self.client.delete_share_link(share_id)
        except APIError as e:
            logger.error(f"Error deleting share link {share_id}: {e.message}")
            self.notifier.error("Failed to delete share link")
            return MutationResult(ok=False, error=e)

        self.notifier.success("Share link deleted")
        return MutationResult(ok=True)

    async def get_shared(self, share_id: RecordId) -> Optional[dict]:
        """Get the public content of a share link; no session needed."""
        try:
            return await self.client.get_shared(share_id)
        except APIError as e:
            logger.error(f"Error fetching shared progress {share_id}: {e.message}")
            self.notifier.error(user_message(e, "Shared progress not found"))
            return None


def quick_share_text(shareable: ShareableStats) -> str:
    """Format a short progress update for pasting elsewhere."""
    stats = shareable.stats
    text = (
        "🎯 My Habit Progress Update!\n\n"
        f"📊 {stats.total_habits} active habits\n"
        f"✅ {stats.total_completions} total completions\n"
        f"🔥 {stats.longest_streak} day longest streak\n"
        f"📈 {stats.average_streak} day average streak\n\n"
    )

    if shareable.top_habits:
        top = shareable.top_habits[0]
        emoji = f"{top.emoji} " if top.emoji else ""
        text += f"🏆 Top habit: {emoji}{top.name} ({top.current_streak} day streak)\n\n"

    return text + "Track your habits too! 💪"
