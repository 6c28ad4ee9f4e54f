"""Base model for resource summaries shown in lists and detail views."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


def format_age(timestamp: str | None, now: datetime | None = None) -> str:
    """Render an ISO timestamp as a coarse age bucket ("3d", "4h", "12m", "9s").

    The bucket granularity is what keeps list watches quiet: the value only
    changes when the displayed unit rolls over.
    """
    if not timestamp:
        return "Unknown"
    try:
        created = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return "Unknown"
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    delta = (now or datetime.now(UTC)) - created
    if delta.days > 0:
        return f"{delta.days}d"
    hours, remainder = divmod(delta.seconds, 3600)
    if hours > 0:
        return f"{hours}h"
    minutes, seconds = divmod(remainder, 60)
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


class K8sEntityBase(BaseModel):
    """Base class for resource summaries."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )

    name: str = Field(description="Resource name")
    namespace: str | None = Field(default=None, description="Resource namespace")
    uid: str | None = Field(default=None, description="Kubernetes UID")
    creation_timestamp: str | None = Field(default=None, description="Creation time")

    _entity_name: ClassVar[str] = "entity"

    @property
    def identity(self) -> str:
        """Stable "namespace/name" key used when diffing snapshots."""
        return f"{self.namespace or ''}/{self.name}"

    @property
    def age(self) -> str:
        return format_age(self.creation_timestamp)


def _safe_get(obj: Any, *attrs: str, default: Any = None) -> Any:
    """Safely traverse nested attributes on kubernetes SDK objects."""
    current = obj
    for attr in attrs:
        if current is None:
            return default
        current = getattr(current, attr, None)
    return current if current is not None else default


def _dict_get(obj: Any, *keys: str, default: Any = None) -> Any:
    """Safely traverse nested keys on plain dict payloads (custom objects)."""
    current = obj
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key)
    return current if current is not None else default


def _get_timestamp(obj: Any) -> str | None:
    """Extract ISO timestamp string from a datetime or string."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)
