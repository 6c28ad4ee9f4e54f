"""Summaries of workload resources as returned by list/get calls."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import Field

from kube_console.integrations.kubernetes.models.base import (
    K8sEntityBase,
    _dict_get,
    _get_timestamp,
    _safe_get,
)


def _metadata_fields(obj: Any) -> dict[str, Any]:
    return {
        "name": _safe_get(obj, "metadata", "name", default=""),
        "namespace": _safe_get(obj, "metadata", "namespace"),
        "uid": _safe_get(obj, "metadata", "uid"),
        "creation_timestamp": _get_timestamp(_safe_get(obj, "metadata", "creation_timestamp")),
    }


class PodSummary(K8sEntityBase):
    """Pod list entry."""

    _entity_name: ClassVar[str] = "pod"

    status: str = Field(default="Unknown", description="Phase, or Terminating")
    restarts: int = Field(default=0, description="Total container restarts")
    containers: tuple[str, ...] = Field(default=(), description="Container names from spec")
    node_name: str | None = Field(default=None, description="Node the pod is running on")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PodSummary:
        """Create from a kubernetes V1Pod object."""
        if _safe_get(obj, "metadata", "deletion_timestamp") is not None:
            status = "Terminating"
        else:
            status = _safe_get(obj, "status", "phase", default="Unknown")

        statuses = _safe_get(obj, "status", "container_statuses") or []
        restarts = sum(getattr(cs, "restart_count", 0) or 0 for cs in statuses)
        spec_containers = _safe_get(obj, "spec", "containers") or []

        return cls(
            **_metadata_fields(obj),
            status=status,
            restarts=restarts,
            containers=tuple(c.name for c in spec_containers if getattr(c, "name", None)),
            node_name=_safe_get(obj, "spec", "node_name"),
        )


class DeploymentSummary(K8sEntityBase):
    """Deployment list entry."""

    _entity_name: ClassVar[str] = "deployment"

    replicas: int = Field(default=0, description="Desired replicas")
    ready_replicas: int = Field(default=0, description="Ready replicas")
    available_replicas: int = Field(default=0, description="Available replicas")
    updated_replicas: int = Field(default=0, description="Updated replicas")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> DeploymentSummary:
        """Create from a kubernetes V1Deployment object."""
        return cls(
            **_metadata_fields(obj),
            replicas=_safe_get(obj, "spec", "replicas", default=0),
            ready_replicas=_safe_get(obj, "status", "ready_replicas", default=0),
            available_replicas=_safe_get(obj, "status", "available_replicas", default=0),
            updated_replicas=_safe_get(obj, "status", "updated_replicas", default=0),
        )


class CronJobSummary(K8sEntityBase):
    """CronJob list entry."""

    _entity_name: ClassVar[str] = "cronjob"

    schedule: str = Field(default="Unknown", description="Cron schedule")
    suspended: bool = Field(default=False, description="Whether scheduling is suspended")
    active_jobs: int = Field(default=0, description="Currently running jobs")
    last_schedule_time: str | None = Field(default=None, description="Last schedule time")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> CronJobSummary:
        """Create from a kubernetes V1CronJob object."""
        return cls(
            **_metadata_fields(obj),
            schedule=_safe_get(obj, "spec", "schedule", default="Unknown"),
            suspended=bool(_safe_get(obj, "spec", "suspend", default=False)),
            active_jobs=len(_safe_get(obj, "status", "active") or []),
            last_schedule_time=_get_timestamp(_safe_get(obj, "status", "last_schedule_time")),
        )


class SecretSummary(K8sEntityBase):
    """Secret list entry. Values are never copied into the summary."""

    _entity_name: ClassVar[str] = "secret"

    type: str = Field(default="Opaque", description="Secret type")
    data_count: int = Field(default=0, description="Number of data keys")
    keys: tuple[str, ...] = Field(default=(), description="Data key names")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> SecretSummary:
        data = getattr(obj, "data", None) or {}
        return cls(
            **_metadata_fields(obj),
            type=getattr(obj, "type", None) or "Opaque",
            data_count=len(data),
            keys=tuple(sorted(data)),
        )


class NamespaceSummary(K8sEntityBase):
    """Namespace list entry."""

    _entity_name: ClassVar[str] = "namespace"

    phase: str = Field(default="Active", description="Namespace phase")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> NamespaceSummary:
        return cls(
            **_metadata_fields(obj),
            phase=_safe_get(obj, "status", "phase", default="Active"),
        )


class CustomResourceSummary(K8sEntityBase):
    """Custom resource list entry built from a CustomObjectsApi dict."""

    _entity_name: ClassVar[str] = "custom_resource"

    kind: str = Field(default="Unknown", description="Resource kind")
    api_version: str = Field(default="Unknown", description="apiVersion")
    resource_version: str | None = Field(default=None, description="metadata.resourceVersion")

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> CustomResourceSummary:
        return cls(
            name=_dict_get(obj, "metadata", "name", default="Unknown"),
            namespace=_dict_get(obj, "metadata", "namespace"),
            uid=_dict_get(obj, "metadata", "uid"),
            creation_timestamp=_dict_get(obj, "metadata", "creationTimestamp"),
            kind=obj.get("kind") or "Unknown",
            api_version=obj.get("apiVersion") or "Unknown",
            resource_version=_dict_get(obj, "metadata", "resourceVersion"),
        )


class PodEventSummary(K8sEntityBase):
    """Event attached to a pod, as shown in the pod detail view."""

    _entity_name: ClassVar[str] = "event"

    type: str = Field(default="Normal", description="Normal or Warning")
    reason: str = Field(default="Unknown", description="Short machine reason")
    message: str = Field(default="", description="Event message")
    count: int = Field(default=1, description="Occurrences")
    last_timestamp: str | None = Field(default=None, description="Last occurrence")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PodEventSummary:
        """Create from a kubernetes CoreV1Event object."""
        last = getattr(obj, "last_timestamp", None) or getattr(obj, "first_timestamp", None)
        return cls(
            **_metadata_fields(obj),
            type=getattr(obj, "type", None) or "Normal",
            reason=getattr(obj, "reason", None) or "Unknown",
            message=getattr(obj, "message", None) or "",
            count=getattr(obj, "count", None) or 1,
            last_timestamp=_get_timestamp(last),
        )
