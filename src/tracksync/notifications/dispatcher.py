"""Delivery of operation-completed events to notifiers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tracksync.notifications.base import CompositeNotifier, ConsoleNotifier, Notification, Notifier, NullNotifier
from tracksync.notifications.ntfy import NtfyNotifier

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tracksync.config import NotificationConfig
    from tracksync.sync.results import SyncEvent

logger = logging.getLogger(__name__)

EVENT_TITLES = {
    "import_completed": "Jira import completed",
    "export_completed": "Jira export completed",
    "sync_completed": "Jira sync completed",
    "push_completed": "Jira push completed",
}


def create_notifier(config: NotificationConfig) -> Notifier:
    """Build the notifier selected in the configuration."""
    if not config.enabled or config.provider == "none":
        return NullNotifier()
    if config.provider == "ntfy":
        return CompositeNotifier([ConsoleNotifier(), NtfyNotifier(server=config.ntfy_server, topic=config.ntfy_topic)])
    return ConsoleNotifier()


def to_notification(event: SyncEvent) -> Notification:
    """Render an event; any failed item makes it a warning tagged ``partial``."""
    tags = [event.kind.removesuffix("_completed")]
    failed = bool(event.counts.get("failed"))
    if failed:
        tags.append("partial")

    body = event.message
    if event.counts:
        counts = ", ".join(f"{name}: {value}" for name, value in event.counts.items())
        body = f"{event.message} ({counts})"

    return Notification(
        title=EVENT_TITLES.get(event.kind, event.kind),
        message=body,
        level="warning" if failed else "success",
        tags=tags,
    )


class EventDispatcher:
    """Fire-and-forget delivery of sync events.

    ``dispatch`` never raises; a failing notifier is logged and the
    remaining events are still delivered.
    """

    def __init__(self, notifier: Notifier | None = None) -> None:
        self.notifier = notifier or NullNotifier()

    async def dispatch(self, events: Iterable[SyncEvent]) -> int:
        """Deliver events, returning how many were delivered."""
        delivered = 0
        for event in events:
            try:
                await self.notifier.notify(to_notification(event))
            except Exception as e:
                logger.warning(f"Failed to deliver {event.kind} event for workspace {event.workspace_id}: {e}")
                continue
            delivered += 1
        return delivered

    async def aclose(self) -> None:
        try:
            await self.notifier.aclose()
        except Exception as e:
            logger.warning(f"Failed to close notifier {type(self.notifier).__name__}: {e}")
