"""CPU and memory usage reported by metrics-server."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from kube_console.integrations.kubernetes.models.base import K8sEntityBase, _dict_get

MEMORY_SUFFIXES = {
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
    "k": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "T": 1000**4,
}


def parse_cpu(value: str | None) -> int:
    """Parse a Kubernetes CPU quantity ("250m", "1", "250000n") to millicores."""
    if not value or value == "0":
        return 0
    value = str(value)
    if value.endswith("n"):
        return round(int(value[:-1]) / 1_000_000)
    if value.endswith("u"):
        return round(int(value[:-1]) / 1_000)
    if value.endswith("m"):
        return int(value[:-1])
    return round(float(value) * 1000)


def parse_memory(value: str | None) -> int:
    """Parse a Kubernetes memory quantity ("128Mi", "1G", "4096") to bytes."""
    if not value or value == "0":
        return 0
    value = str(value)
    for suffix, multiplier in MEMORY_SUFFIXES.items():
        if value.endswith(suffix):
            return int(float(value[: -len(suffix)]) * multiplier)
    return int(value)


class ContainerMetrics(BaseModel):
    """Usage of one container."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    cpu_millicores: int = Field(default=0, description="CPU usage in millicores")
    memory_bytes: int = Field(default=0, description="Memory usage in bytes")

    @property
    def cpu_display(self) -> str:
        if self.cpu_millicores >= 1000:
            return f"{self.cpu_millicores / 1000:.1f}"
        return f"{self.cpu_millicores}m"

    @property
    def memory_display(self) -> str:
        if self.memory_bytes >= 1024**3:
            return f"{self.memory_bytes / 1024**3:.1f}Gi"
        return f"{self.memory_bytes / 1024**2:.0f}Mi"


class PodMetricsSummary(K8sEntityBase):
    """Per-container usage of a pod.

    The sample timestamp is left out so two samples with the same usage
    compare equal.
    """

    _entity_name: ClassVar[str] = "pod_metrics"

    containers: tuple[ContainerMetrics, ...] = Field(default=(), description="Container usage")

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> PodMetricsSummary:
        """Create from a ``metrics.k8s.io/v1beta1`` PodMetrics payload."""
        return cls(
            name=_dict_get(obj, "metadata", "name", default="Unknown"),
            namespace=_dict_get(obj, "metadata", "namespace"),
            containers=tuple(
                ContainerMetrics(
                    name=c.get("name") or "Unknown",
                    cpu_millicores=parse_cpu(_dict_get(c, "usage", "cpu")),
                    memory_bytes=parse_memory(_dict_get(c, "usage", "memory")),
                )
                for c in obj.get("containers") or []
            ),
        )

    @property
    def total_cpu_millicores(self) -> int:
        return sum(c.cpu_millicores for c in self.containers)

    @property
    def total_memory_bytes(self) -> int:
        return sum(c.memory_bytes for c in self.containers)
