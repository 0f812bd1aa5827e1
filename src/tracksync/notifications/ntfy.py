"""ntfy.sh notification provider."""

from __future__ import annotations

import logging

import httpx

from tracksync.notifications.base import Notification, NotificationLevel, Notifier

logger = logging.getLogger(__name__)

# https://docs.ntfy.sh/publish/#message-priority
LEVEL_PRIORITY: dict[NotificationLevel, int] = {
    "info": 2,
    "success": 3,
    "warning": 4,
    "error": 5,
}

# Emoji shortcodes per level; notification tags are appended as plain tags
LEVEL_EMOJI: dict[NotificationLevel, str] = {
    "info": "information_source",
    "success": "white_check_mark",
    "warning": "warning",
    "error": "rotating_light",
}


class NtfyNotifier(Notifier):
    """Publish sync outcomes to an ntfy topic.

    The client is created on first use and released by ``aclose``.
    """

    def __init__(
        self,
        server: str = "https://ntfy.sh",
        topic: str = "tracksync",
        timeout: float = 10.0,
    ) -> None:
        self.server = server.rstrip("/")
        self.topic = topic
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return f"{self.server}/{self.topic}"

    def headers_for(self, notification: Notification) -> dict[str, str]:
        """Build the ntfy publish headers for a notification."""
        tags = [LEVEL_EMOJI[notification.level], "jira", *notification.tags]
        return {
            "Title": notification.title,
            "Priority": str(LEVEL_PRIORITY[notification.level]),
            "Tags": ",".join(tags),
        }

    async def notify(self, notification: Notification) -> None:
        """Publish a notification. Delivery failures are logged only."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

        try:
            response = await self._client.post(self.url, content=notification.message, headers=self.headers_for(notification))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"ntfy publish to {self.topic} failed (HTTP {e.response.status_code})")
        except httpx.RequestError as e:
            logger.warning(f"ntfy publish to {self.topic} failed: {e}")
        else:
            logger.debug(f"ntfy notification sent: {notification.title}")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
