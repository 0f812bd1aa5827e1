"""tracksync: import, export and sync tasks with Jira."""

__version__ = "0.1.0"
