"""Cluster access layer: API client, kubectl wrapper and configuration."""

from kube_console.integrations.kubernetes.client import KubernetesClient
from kube_console.integrations.kubernetes.config import (
    ClusterConfig,
    DefaultsConfig,
    KubeConsoleConfig,
    PortForwardConfig,
    SessionConfig,
    WatchConfig,
)
from kube_console.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
)
from kube_console.integrations.kubernetes.kubectl import (
    KubectlClient,
    KubectlCommandError,
    KubectlError,
    KubectlNotFoundError,
)

__all__ = [
    "ClusterConfig",
    "DefaultsConfig",
    "KubeConsoleConfig",
    "KubectlClient",
    "KubectlCommandError",
    "KubectlError",
    "KubectlNotFoundError",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesTimeoutError",
    "KubernetesValidationError",
    "PortForwardConfig",
    "SessionConfig",
    "WatchConfig",
]
