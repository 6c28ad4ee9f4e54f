"""Resource summary models."""

from kube_console.integrations.kubernetes.models.base import K8sEntityBase, format_age
from kube_console.integrations.kubernetes.models.metrics import ContainerMetrics, PodMetricsSummary
from kube_console.integrations.kubernetes.models.workloads import (
    CronJobSummary,
    CustomResourceSummary,
    DeploymentSummary,
    NamespaceSummary,
    PodEventSummary,
    PodSummary,
    SecretSummary,
)

__all__ = [
    "ContainerMetrics",
    "CronJobSummary",
    "CustomResourceSummary",
    "DeploymentSummary",
    "K8sEntityBase",
    "NamespaceSummary",
    "PodEventSummary",
    "PodMetricsSummary",
    "PodSummary",
    "SecretSummary",
    "format_age",
]
