"""Configuration models for kube-console."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "kube-console" / "config.yaml"


class ClusterConfig(BaseModel):
    """Connection settings for one named cluster."""

    model_config = ConfigDict(extra="forbid", validate_default=True)

    context: str = ""
    kubeconfig: str = "~/.kube/config"
    namespace: str = "default"
    timeout: int = 30

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str) -> str:
        """Expand ~ in kubeconfig path."""
        return str(Path(v).expanduser())


class DefaultsConfig(BaseModel):
    """Request defaults shared by every cluster."""

    model_config = ConfigDict(extra="forbid")

    timeout: int = 30
    retry_attempts: int = 3
    kubectl: str = "kubectl"

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry_attempts must be at least 1")
        return v


class WatchConfig(BaseModel):
    """Poll intervals (seconds) per watched resource kind."""

    model_config = ConfigDict(extra="forbid")

    pods: float = 3.0
    deployments: float = 3.0
    cronjobs: float = 3.0
    secrets: float = 3.0
    namespaces: float = 5.0
    custom_resources: float = 5.0
    pod_detail: float = 3.0
    pod_events: float = 3.0
    pod_metrics: float = 10.0
    deployment_detail: float = 3.0
    cronjob_detail: float = 3.0
    secret_detail: float = 3.0
    custom_resource_detail: float = 5.0

    @field_validator("*")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll interval must be positive")
        return v

    def interval_for(self, kind: str) -> float:
        """Return the poll interval for a resource kind name."""
        return float(getattr(self, kind.replace("-", "_")))


class SessionConfig(BaseModel):
    """Settings for shell and log sessions."""

    model_config = ConfigDict(extra="forbid")

    shell_command: list[str] = ["/bin/bash"]
    term: str = "xterm-256color"
    log_tail_lines: int = 10
    output_buffer_bytes: int = 500
    scrollback_bytes: int = 256 * 1024
    default_columns: int = 80
    default_rows: int = 24
    terminate_timeout: float = 3.0

    @field_validator("shell_command")
    @classmethod
    def validate_shell_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("shell_command must not be empty")
        return v

    @field_validator("log_tail_lines", "output_buffer_bytes", "default_columns", "default_rows")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v


class PortForwardConfig(BaseModel):
    """Settings for kubectl port-forward processes."""

    model_config = ConfigDict(extra="forbid")

    address: str = "127.0.0.1"
    startup_timeout: float = 10.0
    terminate_timeout: float = 3.0


class KubeConsoleConfig(BaseModel):
    """Complete kube-console configuration."""

    model_config = ConfigDict(extra="forbid")

    clusters: dict[str, ClusterConfig] = {}
    active_cluster: str | None = None
    defaults: DefaultsConfig = DefaultsConfig()
    watch: WatchConfig = WatchConfig()
    sessions: SessionConfig = SessionConfig()
    port_forward: PortForwardConfig = PortForwardConfig()

    @classmethod
    def load(cls, path: Path | None = None) -> KubeConsoleConfig:
        """Load configuration from YAML, then apply environment overrides.

        A missing file is not an error; defaults are used instead.

        Args:
            path: Config file path. Defaults to
                ``~/.config/kube-console/config.yaml`` or ``KCON_CONFIG``.
        """
        if path is None:
            env_path = os.environ.get("KCON_CONFIG")
            path = Path(env_path).expanduser() if env_path else DEFAULT_CONFIG_PATH

        base: dict[str, Any] = {}
        if path.exists():
            data = yaml.safe_load(path.read_text()) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file {path} must contain a mapping")
            base = data
        return cls.from_env(base)

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> KubeConsoleConfig:
        """Create configuration with environment variable overrides.

        Supported environment variables:
            KCON_CONTEXT: Active cluster name or raw kubeconfig context
            KCON_NAMESPACE: Namespace for every configured cluster
            KCON_KUBECONFIG: Kubeconfig path for every configured cluster
            KCON_TIMEOUT: Request timeout in seconds for every cluster
            KCON_KUBECTL: Path to the kubectl binary
            KCON_LOG_TAIL: Lines of history shown when a log session opens
        """
        config_dict = dict(base_config) if base_config else {}
        defaults = dict(config_dict.get("defaults") or {})
        sessions = dict(config_dict.get("sessions") or {})

        if context := os.environ.get("KCON_CONTEXT"):
            config_dict["active_cluster"] = context
        if timeout := os.environ.get("KCON_TIMEOUT"):
            defaults["timeout"] = int(timeout)
        if kubectl := os.environ.get("KCON_KUBECTL"):
            defaults["kubectl"] = kubectl
        if tail := os.environ.get("KCON_LOG_TAIL"):
            sessions["log_tail_lines"] = int(tail)

        config_dict["defaults"] = defaults
        config_dict["sessions"] = sessions
        instance = cls.model_validate(config_dict)

        if not instance.clusters and (
            os.environ.get("KCON_KUBECONFIG") or os.environ.get("KCON_NAMESPACE")
        ):
            # Without configured clusters, overrides go to an implicit one that
            # keeps a raw context name from KCON_CONTEXT.
            instance.clusters["default"] = ClusterConfig(context=instance.active_cluster or "")
            instance.active_cluster = "default"

        if kubeconfig := os.environ.get("KCON_KUBECONFIG"):
            for cluster_cfg in instance.clusters.values():
                cluster_cfg.kubeconfig = str(Path(kubeconfig).expanduser())
        if namespace := os.environ.get("KCON_NAMESPACE"):
            for cluster_cfg in instance.clusters.values():
                cluster_cfg.namespace = namespace
        if timeout:
            for cluster_cfg in instance.clusters.values():
                cluster_cfg.timeout = int(timeout)

        return instance

    def _active(self) -> ClusterConfig | None:
        if self.active_cluster and self.active_cluster in self.clusters:
            return self.clusters[self.active_cluster]
        if not self.active_cluster and self.clusters:
            return next(iter(self.clusters.values()))
        return None

    def get_active_context(self) -> str | None:
        """Return the kubeconfig context to use.

        A named cluster resolves to its context; an unknown active_cluster
        is treated as a raw context name.
        """
        if cluster := self._active():
            return cluster.context or None
        return self.active_cluster

    def get_active_kubeconfig(self) -> str | None:
        if cluster := self._active():
            return cluster.kubeconfig
        return None

    def get_active_namespace(self) -> str:
        if cluster := self._active():
            return cluster.namespace
        return "default"

    def get_active_timeout(self) -> int:
        if cluster := self._active():
            return cluster.timeout
        return self.defaults.timeout
