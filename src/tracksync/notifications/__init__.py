"""Notification providers."""

from tracksync.notifications.base import CompositeNotifier, ConsoleNotifier, Notification, Notifier, NullNotifier
from tracksync.notifications.dispatcher import EventDispatcher, create_notifier
from tracksync.notifications.ntfy import NtfyNotifier

__all__ = [
    "CompositeNotifier",
    "ConsoleNotifier",
    "EventDispatcher",
    "Notification",
    "Notifier",
    "NtfyNotifier",
    "NullNotifier",
    "create_notifier",
]
