"""Typed watches for the resource kinds shown by the console."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from functools import partial
from typing import Any

from kube_console.integrations.kubernetes.config import WatchConfig
from kube_console.integrations.kubernetes.models.metrics import PodMetricsSummary
from kube_console.integrations.kubernetes.models.workloads import (
    CronJobSummary,
    CustomResourceSummary,
    DeploymentSummary,
    NamespaceSummary,
    PodEventSummary,
    PodSummary,
    SecretSummary,
)
from kube_console.services.kubernetes.change_detector import ChangeDetector
from kube_console.services.kubernetes.snapshot_manager import ResourceSnapshotManager
from kube_console.services.kubernetes.watch import (
    WatchKey,
    WatchStreamEngine,
    WatchSubscription,
)

RESOURCE_KINDS = (
    "pods",
    "deployments",
    "cronjobs",
    "secrets",
    "namespaces",
)


class ResourceWatchService:
    """Subscribe to resource lists and pod details through the watch engine.

    Each ``watch_*`` call replaces an existing subscription for the same
    scope. Blocking list calls run in a worker thread.
    """

    def __init__(
        self,
        engine: WatchStreamEngine,
        snapshots: ResourceSnapshotManager,
        config: WatchConfig | None = None,
    ) -> None:
        self._engine = engine
        self._snapshots = snapshots
        self._config = config or WatchConfig()

    @staticmethod
    def _scope(namespaces: Iterable[str] | None) -> frozenset[str]:
        return frozenset(namespaces or ())

    def watch(
        self, kind: str, namespaces: Iterable[str] | None = None
    ) -> WatchSubscription[object]:
        """Watch one of :data:`RESOURCE_KINDS` by name."""
        handlers = {
            "pods": self.watch_pods,
            "deployments": self.watch_deployments,
            "cronjobs": self.watch_cron_jobs,
            "secrets": self.watch_secrets,
        }
        if kind == "namespaces":
            return self.watch_namespaces()  # type: ignore[return-value]
        if kind not in handlers:
            raise ValueError(f"Unknown resource kind: {kind}")
        return handlers[kind](namespaces)  # type: ignore[return-value]

    def watch_pods(self, namespaces: Iterable[str] | None = None) -> WatchSubscription[PodSummary]:
        scope = self._scope(namespaces)
        return self._engine.subscribe(
            WatchKey("pods", scope),
            partial(asyncio.to_thread, self._snapshots.list_pods, scope),
            self._config.interval_for("pods"),
            ChangeDetector.for_kind("pods"),
        )

    def watch_deployments(
        self, namespaces: Iterable[str] | None = None
    ) -> WatchSubscription[DeploymentSummary]:
        scope = self._scope(namespaces)
        return self._engine.subscribe(
            WatchKey("deployments", scope),
            partial(asyncio.to_thread, self._snapshots.list_deployments, scope),
            self._config.interval_for("deployments"),
            ChangeDetector.for_kind("deployments"),
        )

    def watch_cron_jobs(
        self, namespaces: Iterable[str] | None = None
    ) -> WatchSubscription[CronJobSummary]:
        scope = self._scope(namespaces)
        return self._engine.subscribe(
            WatchKey("cronjobs", scope),
            partial(asyncio.to_thread, self._snapshots.list_cron_jobs, scope),
            self._config.interval_for("cronjobs"),
            ChangeDetector.for_kind("cronjobs"),
        )

    def watch_secrets(
        self, namespaces: Iterable[str] | None = None
    ) -> WatchSubscription[SecretSummary]:
        scope = self._scope(namespaces)
        return self._engine.subscribe(
            WatchKey("secrets", scope),
            partial(asyncio.to_thread, self._snapshots.list_secrets, scope),
            self._config.interval_for("secrets"),
            ChangeDetector.for_kind("secrets"),
        )

    def watch_namespaces(self) -> WatchSubscription[NamespaceSummary]:
        return self._engine.subscribe(
            WatchKey("namespaces"),
            partial(asyncio.to_thread, self._snapshots.list_namespaces),
            self._config.interval_for("namespaces"),
            ChangeDetector(identity=lambda ns: ns.name),
        )

    def watch_custom_resources(
        self,
        group: str,
        version: str,
        plural: str,
        namespaces: Iterable[str] | None = None,
        *,
        cluster_scoped: bool = False,
    ) -> WatchSubscription[CustomResourceSummary]:
        scope = frozenset() if cluster_scoped else self._scope(namespaces)
        return self._engine.subscribe(
            WatchKey("custom_resources", scope, target=f"{group}/{version}/{plural}"),
            partial(
                asyncio.to_thread,
                self._snapshots.list_custom_resources,
                group,
                version,
                plural,
                scope,
                cluster_scoped=cluster_scoped,
            ),
            self._config.interval_for("custom_resources"),
            ChangeDetector.for_kind("custom_resources"),
        )

    def watch_pod(self, name: str, namespace: str) -> WatchSubscription[PodSummary]:
        """Detail watch of one pod.

        A deleted pod surfaces as a not-found error event.
        """
        return self._watch_detail(
            "pod_detail", name, namespace, partial(self._snapshots.get_pod, name, namespace)
        )

    def watch_pod_events(self, name: str, namespace: str) -> WatchSubscription[PodEventSummary]:
        return self._engine.subscribe(
            WatchKey("pod_events", frozenset({namespace}), target=name),
            partial(asyncio.to_thread, self._snapshots.list_pod_events, name, namespace),
            self._config.interval_for("pod_events"),
            ChangeDetector(
                ChangeDetector.for_kind("pod_events").watched_fields,
                identity=lambda ev: ev.uid or ev.name,
            ),
        )

    def watch_pod_metrics(self, name: str, namespace: str) -> WatchSubscription[PodMetricsSummary]:
        """Usage samples for one pod; an empty snapshot means no metrics yet."""
        return self._engine.subscribe(
            WatchKey("pod_metrics", frozenset({namespace}), target=name),
            partial(asyncio.to_thread, self._snapshots.get_pod_metrics, name, namespace),
            self._config.interval_for("pod_metrics"),
            ChangeDetector(watched_fields=None),
        )

    def _watch_detail(
        self, kind: str, target: str, namespace: str | None, get: Callable[[], Any]
    ) -> WatchSubscription[Any]:
        """Single-resource watch; any field change is emitted."""

        async def fetch() -> list[Any]:
            return [await asyncio.to_thread(get)]

        scope = frozenset({namespace}) if namespace else frozenset()
        return self._engine.subscribe(
            WatchKey(kind, scope, target=target),
            fetch,
            self._config.interval_for(kind),
            ChangeDetector(watched_fields=None),
        )

    def watch_deployment(self, name: str, namespace: str) -> WatchSubscription[DeploymentSummary]:
        return self._watch_detail(
            "deployment_detail",
            name,
            namespace,
            partial(self._snapshots.get_deployment, name, namespace),
        )

    def watch_cron_job(self, name: str, namespace: str) -> WatchSubscription[CronJobSummary]:
        return self._watch_detail(
            "cronjob_detail",
            name,
            namespace,
            partial(self._snapshots.get_cron_job, name, namespace),
        )

    def watch_secret(self, name: str, namespace: str) -> WatchSubscription[SecretSummary]:
        return self._watch_detail(
            "secret_detail",
            name,
            namespace,
            partial(self._snapshots.get_secret, name, namespace),
        )

    def watch_custom_resource(
        self,
        group: str,
        version: str,
        plural: str,
        name: str,
        namespace: str | None = None,
        *,
        cluster_scoped: bool = False,
    ) -> WatchSubscription[CustomResourceSummary]:
        return self._watch_detail(
            "custom_resource_detail",
            f"{group}/{version}/{plural}/{name}",
            None if cluster_scoped else namespace,
            partial(
                self._snapshots.get_custom_resource,
                group,
                version,
                plural,
                name,
                namespace,
                cluster_scoped=cluster_scoped,
            ),
        )
