"""Status color and priority vocabulary translation.

All functions are total: unknown or missing input yields the documented
default instead of raising.
"""

from __future__ import annotations

from typing import Any

from tracksync.core.models import StatusColor, TaskPriority

# Jira status category color names -> internal palette
STATUS_COLOR_MAP: dict[str, StatusColor] = {
    "blue-gray": StatusColor.BLUE,
    "medium-gray": StatusColor.GRAY,
    "blue": StatusColor.BLUE,
    "green": StatusColor.GREEN,
    "yellow": StatusColor.YELLOW,
    "red": StatusColor.RED,
    "purple": StatusColor.PURPLE,
    "pink": StatusColor.PINK,
    "orange": StatusColor.ORANGE,
    "indigo": StatusColor.INDIGO,
    "teal": StatusColor.TEAL,
}

# Case-sensitive, matches the names Jira ships with
PRIORITY_MAP: dict[str, TaskPriority] = {
    "Highest": TaskPriority.CRITICAL,
    "High": TaskPriority.HIGH,
    "Medium": TaskPriority.MEDIUM,
    "Low": TaskPriority.LOW,
    "Lowest": TaskPriority.LOW,
}

TRACKER_PRIORITY_MAP: dict[TaskPriority, str] = {
    TaskPriority.CRITICAL: "Highest",
    TaskPriority.HIGH: "High",
    TaskPriority.MEDIUM: "Medium",
    TaskPriority.LOW: "Low",
}

DEFAULT_COLOR = StatusColor.GRAY
DEFAULT_PRIORITY = TaskPriority.MEDIUM
DEFAULT_TRACKER_PRIORITY = "Medium"


def translate_status_color(color_name: Any) -> StatusColor:
    """Map a tracker status category color to the internal palette."""
    if not isinstance(color_name, str):
        return DEFAULT_COLOR
    return STATUS_COLOR_MAP.get(color_name, DEFAULT_COLOR)


def translate_priority(priority_name: Any) -> TaskPriority:
    """Map a tracker priority name to the internal priority."""
    if not isinstance(priority_name, str):
        return DEFAULT_PRIORITY
    return PRIORITY_MAP.get(priority_name, DEFAULT_PRIORITY)


def priority_to_tracker(priority: Any) -> str:
    """Map an internal priority back to a tracker priority name."""
    try:
        return TRACKER_PRIORITY_MAP.get(TaskPriority(priority), DEFAULT_TRACKER_PRIORITY)
    except (TypeError, ValueError):
        return DEFAULT_TRACKER_PRIORITY
