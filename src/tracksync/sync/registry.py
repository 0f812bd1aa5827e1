"""External-id to local-id mapping, scoped to one integration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from tracksync.errors import ConflictError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from tracksync.core.models import ExternalProjectMapping, Status, Task
    from tracksync.core.store import DataStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Registration(Generic[T]):
    """Outcome of registering a batch of externally-linked entities."""

    by_external_id: dict[str, T] = field(default_factory=dict)
    created: list[T] = field(default_factory=list)


class IdentityRegistry:
    """Lookup and register tracker entities for one integration.

    Registering an entity that is already mapped returns the existing
    mapping. The storage uniqueness constraints are the only concurrency
    guard, so a duplicate-key rejection is treated as a lost race and
    resolved by re-reading the winning row.
    """

    def __init__(self, store: DataStore, integration_id: str) -> None:
        self.store = store
        self.integration_id = integration_id

    # =========================================================================
    # Projects
    # =========================================================================

    def lookup_project(self, external_project_id: str) -> ExternalProjectMapping | None:
        return self.store.get_project_mapping(self.integration_id, external_project_id)

    def register_project(self, mapping: ExternalProjectMapping) -> ExternalProjectMapping:
        """Persist a project mapping unless one exists for the same tracker project."""
        existing = self.lookup_project(mapping.external_project_id)
        if existing is not None:
            return existing

        try:
            return self.store.insert_project_mapping(mapping)
        except ConflictError:
            logger.warning(f"Project mapping for {mapping.external_project_id} was created concurrently, reusing it")
            winner = self.lookup_project(mapping.external_project_id)
            if winner is None:
                raise
            return winner

    # =========================================================================
    # Statuses
    # =========================================================================

    def lookup_status(self, external_id: str) -> Status | None:
        return self.store.find_status(self.integration_id, external_id)

    def register_statuses(self, statuses: Sequence[Status]) -> Registration[Status]:
        """Register tracker-origin statuses.

        A tracker status is stored once per integration and shared by every
        project that reports it.

        Args:
            statuses: Candidate statuses carrying external ids.

        Returns:
            Mapping of external id to stored status, plus the newly created ones.
        """
        result: Registration[Status] = Registration()
        pending: list[Status] = []
        for status in statuses:
            if not status.external_id or status.external_id in result.by_external_id:
                continue
            existing = self.lookup_status(status.external_id)
            if existing is not None:
                result.by_external_id[status.external_id] = existing
            else:
                pending.append(status)

        for status in self._insert_all(
            pending,
            self.store.insert_statuses,
            lambda s: self.lookup_status(s.external_id or ""),
            result,
        ):
            result.by_external_id[status.external_id or ""] = status
        return result

    # =========================================================================
    # Tasks
    # =========================================================================

    def lookup_task(self, external_id: str) -> Task | None:
        return self.lookup_tasks([external_id]).get(external_id)

    def lookup_tasks(self, external_ids: Sequence[str]) -> dict[str, Task]:
        return self.store.find_tasks(self.integration_id, list(external_ids))

    def register_tasks(self, tasks: Sequence[Task]) -> Registration[Task]:
        """Register tracker-linked tasks, reusing any already mapped.

        Tasks are inserted in the given order in one batch.
        """
        result: Registration[Task] = Registration()
        external_ids = [t.external_id for t in tasks if t.external_id]
        existing = self.lookup_tasks(external_ids)

        pending: list[Task] = []
        for task in tasks:
            if not task.external_id or task.external_id in result.by_external_id:
                continue
            if task.external_id in existing:
                result.by_external_id[task.external_id] = existing[task.external_id]
            else:
                pending.append(task)
                result.by_external_id[task.external_id] = task

        for task in self._insert_all(pending, self.store.insert_tasks, lambda t: self.lookup_task(t.external_id or ""), result):
            result.by_external_id[task.external_id or ""] = task
        return result

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _insert_all(
        self,
        items: list[T],
        insert: Callable[[Sequence[T]], list[T]],
        reread: Callable[[T], T | None],
        result: Registration[T],
    ) -> list[T]:
        """Insert a batch, falling back to row-by-row inserts on a conflict.

        Newly created items are appended to ``result.created``. Returns the
        stored item for every input, in order.
        """
        if not items:
            return []

        try:
            insert(items)
        except ConflictError:
            logger.warning(f"Duplicate key in batch of {len(items)}, retrying row by row")
        else:
            result.created.extend(items)
            return list(items)

        stored: list[T] = []
        for item in items:
            try:
                insert([item])
            except ConflictError:
                winner = reread(item)
                if winner is None:
                    raise
                logger.info("Entity was registered concurrently, reusing existing row")
                stored.append(winner)
            else:
                result.created.append(item)
                stored.append(item)
        return stored
