"""Snapshot fetchers for the resource kinds the console watches.

Every ``list_*`` method returns the full point-in-time collection for a
namespace set; the watch engine diffs successive results. ``get_*`` methods
return one resource for detail views.
"""

from __future__ import annotations

from typing import Any

from kube_console.integrations.kubernetes.exceptions import KubernetesNotFoundError
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
from kube_console.services.kubernetes.base import K8sBaseManager

METRICS_API_GROUP = "metrics.k8s.io"
METRICS_API_VERSION = "v1beta1"


class ResourceSnapshotManager(K8sBaseManager):
    """Blocking list/get calls that produce resource snapshots.

    Namespaced lists are fetched one namespace at a time and concatenated in
    namespace order, so snapshots for the same scope are comparable.
    """

    _entity_name = "snapshot"

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    def list_pods(self, namespaces: set[str] | frozenset[str] | None = None) -> list[PodSummary]:
        pods: list[PodSummary] = []
        for ns in self._resolve_namespaces(namespaces):
            try:
                result = self._client.core_v1.list_namespaced_pod(
                    namespace=ns, **self._request_options()
                )
            except Exception as e:
                self._handle_api_error(e, "Pod", None, ns)
            pods.extend(PodSummary.from_k8s_object(pod) for pod in result.items)
        self._log.debug("listed_pods", count=len(pods))
        return pods

    def list_deployments(
        self, namespaces: set[str] | frozenset[str] | None = None
    ) -> list[DeploymentSummary]:
        deployments: list[DeploymentSummary] = []
        for ns in self._resolve_namespaces(namespaces):
            try:
                result = self._client.apps_v1.list_namespaced_deployment(
                    namespace=ns, **self._request_options()
                )
            except Exception as e:
                self._handle_api_error(e, "Deployment", None, ns)
            deployments.extend(DeploymentSummary.from_k8s_object(d) for d in result.items)
        self._log.debug("listed_deployments", count=len(deployments))
        return deployments

    def list_cron_jobs(
        self, namespaces: set[str] | frozenset[str] | None = None
    ) -> list[CronJobSummary]:
        cron_jobs: list[CronJobSummary] = []
        for ns in self._resolve_namespaces(namespaces):
            try:
                result = self._client.batch_v1.list_namespaced_cron_job(
                    namespace=ns, **self._request_options()
                )
            except Exception as e:
                self._handle_api_error(e, "CronJob", None, ns)
            cron_jobs.extend(CronJobSummary.from_k8s_object(cj) for cj in result.items)
        self._log.debug("listed_cron_jobs", count=len(cron_jobs))
        return cron_jobs

    def list_secrets(
        self, namespaces: set[str] | frozenset[str] | None = None
    ) -> list[SecretSummary]:
        secrets: list[SecretSummary] = []
        for ns in self._resolve_namespaces(namespaces):
            try:
                result = self._client.core_v1.list_namespaced_secret(
                    namespace=ns, **self._request_options()
                )
            except Exception as e:
                self._handle_api_error(e, "Secret", None, ns)
            secrets.extend(SecretSummary.from_k8s_object(s) for s in result.items)
        self._log.debug("listed_secrets", count=len(secrets))
        return secrets

    def list_namespaces(self) -> list[NamespaceSummary]:
        try:
            result = self._client.core_v1.list_namespace(**self._request_options())
        except Exception as e:
            self._handle_api_error(e, "Namespace")
        return [NamespaceSummary.from_k8s_object(ns) for ns in result.items]

    def list_custom_resources(
        self,
        group: str,
        version: str,
        plural: str,
        namespaces: set[str] | frozenset[str] | None = None,
        *,
        cluster_scoped: bool = False,
    ) -> list[CustomResourceSummary]:
        """List custom objects of one CRD.

        Args:
            group: API group (e.g., "cert-manager.io").
            version: API version (e.g., "v1").
            plural: Plural resource name (e.g., "certificates").
            namespaces: Namespaces to list; ignored for cluster-scoped CRDs.
            cluster_scoped: List with the cluster-wide endpoint.
        """
        api = self._client.custom_objects
        items: list[dict[str, Any]] = []
        if cluster_scoped:
            try:
                result = api.list_cluster_custom_object(
                    group, version, plural, **self._request_options()
                )
            except Exception as e:
                self._handle_api_error(e, plural)
            items.extend(result.get("items", []))
        else:
            for ns in self._resolve_namespaces(namespaces):
                try:
                    result = api.list_namespaced_custom_object(
                        group, version, ns, plural, **self._request_options()
                    )
                except Exception as e:
                    self._handle_api_error(e, plural, None, ns)
                items.extend(result.get("items", []))
        return [CustomResourceSummary.from_dict(item) for item in items]

    # -------------------------------------------------------------------------
    # Single resources
    # -------------------------------------------------------------------------

    def get_pod(self, name: str, namespace: str | None = None) -> PodSummary:
        """Get a single pod.

        Raises:
            KubernetesNotFoundError: If the pod does not exist.
        """
        ns = self._resolve_namespace(namespace)
        try:
            result = self._client.core_v1.read_namespaced_pod(
                name=name, namespace=ns, **self._request_options()
            )
        except Exception as e:
            self._handle_api_error(e, "Pod", name, ns)
        return PodSummary.from_k8s_object(result)

    def pod_exists(self, name: str, namespace: str | None = None) -> bool:
        """Return False only when the API says the pod is gone.

        Other failures (connection loss, auth) propagate to the caller.
        """
        try:
            self.get_pod(name, namespace)
        except KubernetesNotFoundError:
            return False
        return True

    def get_deployment(self, name: str, namespace: str | None = None) -> DeploymentSummary:
        ns = self._resolve_namespace(namespace)
        try:
            result = self._client.apps_v1.read_namespaced_deployment(
                name=name, namespace=ns, **self._request_options()
            )
        except Exception as e:
            self._handle_api_error(e, "Deployment", name, ns)
        return DeploymentSummary.from_k8s_object(result)

    def get_cron_job(self, name: str, namespace: str | None = None) -> CronJobSummary:
        ns = self._resolve_namespace(namespace)
        try:
            result = self._client.batch_v1.read_namespaced_cron_job(
                name=name, namespace=ns, **self._request_options()
            )
        except Exception as e:
            self._handle_api_error(e, "CronJob", name, ns)
        return CronJobSummary.from_k8s_object(result)

    def get_secret(self, name: str, namespace: str | None = None) -> SecretSummary:
        """Get a secret's metadata and key names; values are not kept."""
        ns = self._resolve_namespace(namespace)
        try:
            result = self._client.core_v1.read_namespaced_secret(
                name=name, namespace=ns, **self._request_options()
            )
        except Exception as e:
            self._handle_api_error(e, "Secret", name, ns)
        return SecretSummary.from_k8s_object(result)

    def get_custom_resource(
        self,
        group: str,
        version: str,
        plural: str,
        name: str,
        namespace: str | None = None,
        *,
        cluster_scoped: bool = False,
    ) -> CustomResourceSummary:
        api = self._client.custom_objects
        ns = None if cluster_scoped else self._resolve_namespace(namespace)
        try:
            if ns is None:
                result = api.get_cluster_custom_object(
                    group, version, plural, name, **self._request_options()
                )
            else:
                result = api.get_namespaced_custom_object(
                    group, version, ns, plural, name, **self._request_options()
                )
        except Exception as e:
            self._handle_api_error(e, plural, name, ns)
        return CustomResourceSummary.from_dict(result)

    def find_job_pod(self, job_name: str, namespace: str | None = None) -> PodSummary:
        """First pod created by a Job, found through its ``job-name`` label.

        Raises:
            KubernetesNotFoundError: If the job has no pods.
        """
        ns = self._resolve_namespace(namespace)
        try:
            result = self._client.core_v1.list_namespaced_pod(
                namespace=ns,
                label_selector=f"job-name={job_name}",
                **self._request_options(),
            )
        except Exception as e:
            self._handle_api_error(e, "Pod", None, ns)
        if not result.items:
            raise KubernetesNotFoundError(
                message=f"No pods found for job {job_name}",
                resource_type="Job",
                namespace=ns,
            )
        return PodSummary.from_k8s_object(result.items[0])

    def list_pod_events(self, name: str, namespace: str | None = None) -> list[PodEventSummary]:
        """Events whose involved object is the given pod, oldest first."""
        ns = self._resolve_namespace(namespace)
        try:
            result = self._client.core_v1.list_namespaced_event(
                namespace=ns,
                field_selector=f"involvedObject.name={name},involvedObject.kind=Pod",
                **self._request_options(),
            )
        except Exception as e:
            self._handle_api_error(e, "Event", name, ns)
        events = [PodEventSummary.from_k8s_object(ev) for ev in result.items]
        events.sort(key=lambda ev: ev.last_timestamp or "")
        return events

    def get_pod_metrics(self, name: str, namespace: str | None = None) -> list[PodMetricsSummary]:
        """Current usage of a pod from metrics-server.

        Returns an empty list when no sample exists, which includes clusters
        without metrics-server.
        """
        ns = self._resolve_namespace(namespace)
        try:
            result = self._client.custom_objects.get_namespaced_custom_object(
                METRICS_API_GROUP,
                METRICS_API_VERSION,
                ns,
                "pods",
                name,
                **self._request_options(),
            )
        except Exception as e:
            error = self._client.translate_api_exception(
                e, resource_type="PodMetrics", resource_name=name, namespace=ns
            )
            if isinstance(error, KubernetesNotFoundError):
                self._log.debug("pod_metrics_unavailable", pod=name, namespace=ns)
                return []
            raise error from e
        return [PodMetricsSummary.from_dict(result)]
