"""Parent-before-child insertion of tracker issues."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from tracksync.core.models import Task
    from tracksync.sync.registry import IdentityRegistry
    from tracksync.sync.tracker_client import TrackerIssue

logger = logging.getLogger(__name__)


@dataclass
class ResolveResult:
    """Outcome of a two-pass insert."""

    created: list[Task] = field(default_factory=list)
    reused: int = 0
    skipped_orphans: list[str] = field(default_factory=list)  # Issue keys
    rejected: list[str] = field(default_factory=list)  # Issue keys
    task_ids: dict[str, str] = field(default_factory=dict)  # External id -> local task id, batch and parents


class DependencyResolver:
    """Inserts root issues first, then children against the resolved parents.

    Only one level of nesting is handled. A child whose parent is neither in
    the batch nor already mapped is dropped and reported, never inserted
    with a dangling parent reference.
    """

    def __init__(self, registry: IdentityRegistry) -> None:
        self.registry = registry

    def insert(
        self,
        issues: Sequence[TrackerIssue],
        convert: Callable[[TrackerIssue, str | None], Task | None],
    ) -> ResolveResult:
        """Convert and insert a batch of issues in dependency order.

        Args:
            issues: Tracker issues, possibly carrying a parent reference.
            convert: Builds the local task for an issue and its resolved
                parent task id. Returning None rejects the issue.

        Returns:
            Created tasks, skipped and rejected issue keys, and the
            external id to local id map covering this batch.
        """
        result = ResolveResult()

        unique: dict[str, TrackerIssue] = {}
        for issue in issues:
            unique.setdefault(issue.id, issue)

        existing = self.registry.lookup_tasks(list(unique))
        result.task_ids = {ext_id: task.id for ext_id, task in existing.items()}
        result.reused = len(existing)

        roots = [i for i in unique.values() if not i.parent_id and i.id not in existing]
        children = [i for i in unique.values() if i.parent_id and i.id not in existing]

        # Pass 1: roots
        self._insert_pass(roots, lambda issue: convert(issue, None), result)

        # Pass 2: children, resolved against roots and prior mappings
        outside = {i.parent_id for i in children if i.parent_id and i.parent_id not in unique}
        for ext_id, task in self.registry.lookup_tasks(sorted(outside)).items():
            result.task_ids.setdefault(ext_id, task.id)

        resolvable = []
        for issue in children:
            if issue.parent_id in result.task_ids:
                resolvable.append(issue)
            else:
                logger.warning(f"Skipping {issue.key}: parent {issue.parent_id} is not imported")
                result.skipped_orphans.append(issue.key)

        self._insert_pass(resolvable, lambda issue: convert(issue, result.task_ids[issue.parent_id or ""]), result)

        logger.info(
            f"Inserted {len(result.created)} task(s), reused {result.reused}, "
            f"skipped {len(result.skipped_orphans)} orphan(s), rejected {len(result.rejected)}"
        )
        return result

    def _insert_pass(
        self,
        issues: list[TrackerIssue],
        build: Callable[[TrackerIssue], Task | None],
        result: ResolveResult,
    ) -> None:
        tasks: list[Task] = []
        for issue in issues:
            task = build(issue)
            if task is None:
                result.rejected.append(issue.key)
            else:
                tasks.append(task)

        registration = self.registry.register_tasks(tasks)
        result.created.extend(registration.created)
        for ext_id, task in registration.by_external_id.items():
            result.task_ids[ext_id] = task.id
