"""Snapshot comparison for polled resource lists.

Two snapshots are considered equal when they have the same length, the
same multiset of identities, and equal watched fields per identity.
Fields that are displayed but not watched are ignored on purpose, so a
list view is not redrawn for changes the user cannot see.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Watched fields per resource kind. An empty tuple compares identities only.
WATCHED_FIELDS: dict[str, tuple[str, ...]] = {
    "pods": ("status", "restarts", "age"),
    "deployments": ("replicas", "ready_replicas", "available_replicas", "updated_replicas"),
    "cronjobs": ("schedule", "suspended", "active_jobs", "age"),
    "secrets": ("type", "data_count", "age"),
    "namespaces": (),
    "custom_resources": (),
    "pod_events": ("type", "reason", "message", "count"),
}


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def default_identity(item: Any) -> Hashable:
    """"namespace/name" for resources, the value itself for plain strings."""
    if isinstance(item, str):
        return item
    identity = getattr(item, "identity", None)
    if isinstance(identity, str):
        return identity
    return f"{_field(item, 'namespace') or ''}/{_field(item, 'name')}"


@dataclass(frozen=True)
class SnapshotDiff:
    """Identities that differ between two snapshots."""

    added: frozenset[Hashable] = field(default_factory=frozenset)
    removed: frozenset[Hashable] = field(default_factory=frozenset)
    modified: frozenset[Hashable] = field(default_factory=frozenset)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.modified)


class ChangeDetector(Generic[T]):
    """Compare snapshots by identity and a configurable set of watched fields.

    Args:
        watched_fields: Attribute (or mapping key) names whose change counts
            as a modification. ``None`` compares whole items, which must then
            be hashable.
        identity: Function returning the identity of an item.
    """

    def __init__(
        self,
        watched_fields: Sequence[str] | None = (),
        identity: Callable[[T], Hashable] = default_identity,
    ) -> None:
        self.watched_fields = tuple(watched_fields) if watched_fields is not None else None
        self._identity = identity

    @classmethod
    def for_kind(cls, kind: str) -> ChangeDetector[Any]:
        """Detector configured with the watched fields of a resource kind."""
        return cls(WATCHED_FIELDS.get(kind, ()))

    def _watched(self, item: T) -> Hashable:
        if self.watched_fields is None:
            return item  # type: ignore[return-value]
        return tuple(_field(item, name) for name in self.watched_fields)

    def _fingerprints(self, snapshot: Sequence[T]) -> Counter[tuple[Hashable, Hashable]]:
        return Counter((self._identity(item), self._watched(item)) for item in snapshot)

    def has_changed(self, old: Sequence[T], new: Sequence[T]) -> bool:
        """Return True when ``new`` differs from ``old`` under this policy.

        Ordering never matters.
        """
        if len(old) != len(new):
            return True
        return self._fingerprints(old) != self._fingerprints(new)

    def diff(self, old: Sequence[T], new: Sequence[T]) -> SnapshotDiff:
        """Report which identities were added, removed or modified."""
        old_values: dict[Hashable, Counter[Hashable]] = defaultdict(Counter)
        new_values: dict[Hashable, Counter[Hashable]] = defaultdict(Counter)
        for item in old:
            old_values[self._identity(item)][self._watched(item)] += 1
        for item in new:
            new_values[self._identity(item)][self._watched(item)] += 1

        old_ids = set(old_values)
        new_ids = set(new_values)
        return SnapshotDiff(
            added=frozenset(new_ids - old_ids),
            removed=frozenset(old_ids - new_ids),
            modified=frozenset(
                key for key in old_ids & new_ids if old_values[key] != new_values[key]
            ),
        )
