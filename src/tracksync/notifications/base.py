"""Base notification interface."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

from rich.console import Console

logger = logging.getLogger(__name__)

NotificationLevel = Literal["info", "success", "warning", "error"]


@dataclass
class Notification:
    """One message for the notification providers."""

    title: str
    message: str = ""
    level: NotificationLevel = "info"
    tags: list[str] = field(default_factory=list)  # Operation and outcome, e.g. ["export", "partial"]


class Notifier(ABC):
    """Abstract base class for notification providers."""

    @abstractmethod
    async def notify(self, notification: Notification) -> None:
        """Send a notification."""

    async def aclose(self) -> None:
        """Release provider resources."""


class ConsoleNotifier(Notifier):
    """Console notifier using Rich."""

    STYLES: dict[str, str] = {
        "info": "blue",
        "success": "green",
        "warning": "yellow",
        "error": "red",
    }
    ICONS: dict[str, str] = {
        "info": "i",
        "success": "+",
        "warning": "!",
        "error": "x",
    }

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def notify(self, notification: Notification) -> None:
        """Print notification to console with appropriate styling."""
        style = self.STYLES.get(notification.level, "blue")
        icon = self.ICONS.get(notification.level, "i")

        self.console.print(f"[{style}]\\[{icon}] {notification.title}[/{style}]")
        if notification.message:
            self.console.print(f"    {notification.message}")


class NullNotifier(Notifier):
    """No-op notifier for testing or when notifications are disabled."""

    async def notify(self, notification: Notification) -> None:
        """Do nothing."""


class CompositeNotifier(Notifier):
    """Sends notifications to several providers.

    A failing provider is logged and does not stop the others.
    """

    def __init__(self, notifiers: list[Notifier]) -> None:
        self.notifiers = notifiers

    async def notify(self, notification: Notification) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.notify(notification)
            except Exception as e:
                logger.warning(f"Notifier {type(notifier).__name__} failed: {e}")

    async def aclose(self) -> None:
        for notifier in self.notifiers:
            await notifier.aclose()
