"""Tracker synchronization engine."""

from tracksync.sync.orchestrator import SyncOrchestrator
from tracksync.sync.tracker_client import TrackerClient

__all__ = ["SyncOrchestrator", "TrackerClient"]
