"""Kubernetes API client wrapper.

Wraps the official kubernetes Python client with lazy API group
initialization, credential reloading, retry helpers and translation of
both API and transport failures into :mod:`exceptions` types.
"""

from __future__ import annotations

import socket
import ssl
import threading
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
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

if TYPE_CHECKING:
    from kubernetes.client import (
        AppsV1Api,
        BatchV1Api,
        CoreV1Api,
        CustomObjectsApi,
        VersionApi,
    )

    from kube_console.integrations.kubernetes.config import KubeConsoleConfig

logger = structlog.get_logger()


class KubernetesClient:
    """Kubernetes API client for one active context.

    Example:
        ```python
        config = KubeConsoleConfig.load()
        with KubernetesClient(config) as client:
            pods = client.core_v1.list_namespaced_pod("default")
        ```
    """

    def __init__(self, config: KubeConsoleConfig) -> None:
        """Initialize the client and load kubeconfig.

        Args:
            config: Complete kube-console configuration.

        Raises:
            KubernetesConnectionError: If no usable configuration is found.
        """
        self._config = config
        self._retries = config.defaults.retry_attempts
        self._current_context: str | None = None
        self._lock = threading.Lock()

        self._core_v1: CoreV1Api | None = None
        self._apps_v1: AppsV1Api | None = None
        self._batch_v1: BatchV1Api | None = None
        self._custom_objects: CustomObjectsApi | None = None
        self._version_api: VersionApi | None = None

        self._load_config()

        logger.info(
            "kubernetes_client_initialized",
            context=self._current_context,
            default_namespace=config.get_active_namespace(),
        )

    def _load_config(self) -> None:
        """Load configuration from kubeconfig, falling back to in-cluster."""
        from kubernetes import config
        from kubernetes.config import ConfigException

        active_context = self._config.get_active_context()
        kubeconfig_path = self._config.get_active_kubeconfig()

        try:
            config.load_kube_config(
                config_file=kubeconfig_path,
                context=active_context,
            )
            self._current_context = active_context
            logger.debug("loaded_kubeconfig", context=active_context, kubeconfig=kubeconfig_path)
        except ConfigException:
            try:
                config.load_incluster_config()
                self._current_context = "in-cluster"
                logger.debug("loaded_incluster_config")
            except ConfigException as e:
                raise KubernetesConnectionError(
                    message="Cannot load Kubernetes configuration. "
                    "Ensure kubeconfig exists or running inside a cluster.",
                    original_error=e,
                ) from e

        self._invalidate_api_cache()

    def _invalidate_api_cache(self) -> None:
        self._core_v1 = None
        self._apps_v1 = None
        self._batch_v1 = None
        self._custom_objects = None
        self._version_api = None

    # =========================================================================
    # Lazy API Group Accessors
    # =========================================================================

    @property
    def core_v1(self) -> CoreV1Api:
        """CoreV1Api (pods, secrets, namespaces, events)."""
        if self._core_v1 is None:
            from kubernetes.client import CoreV1Api

            self._core_v1 = CoreV1Api()
        return self._core_v1

    @property
    def apps_v1(self) -> AppsV1Api:
        """AppsV1Api (deployments)."""
        if self._apps_v1 is None:
            from kubernetes.client import AppsV1Api

            self._apps_v1 = AppsV1Api()
        return self._apps_v1

    @property
    def batch_v1(self) -> BatchV1Api:
        """BatchV1Api (jobs, cronjobs)."""
        if self._batch_v1 is None:
            from kubernetes.client import BatchV1Api

            self._batch_v1 = BatchV1Api()
        return self._batch_v1

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """CustomObjectsApi for CRD-backed resources."""
        if self._custom_objects is None:
            from kubernetes.client import CustomObjectsApi

            self._custom_objects = CustomObjectsApi()
        return self._custom_objects

    @property
    def version_api(self) -> VersionApi:
        if self._version_api is None:
            from kubernetes.client import VersionApi

            self._version_api = VersionApi()
        return self._version_api

    # =========================================================================
    # Credentials
    # =========================================================================

    def refresh_credentials(self) -> None:
        """Reload kubeconfig so exec/auth-provider plugins mint a new token.

        Cached API objects are dropped; the next accessor call builds them
        against the refreshed default configuration.
        """
        with self._lock:
            logger.info("refreshing_credentials", context=self._current_context)
            self._load_config()

    def get_current_context(self) -> str:
        return self._current_context or "unknown"

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def translate_api_exception(
        e: BaseException,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a client or transport exception to a KubernetesError.

        ApiException statuses map to typed errors. urllib3 and socket level
        failures map to KubernetesConnectionError (or KubernetesTimeoutError)
        so callers can classify them without matching on message text.

        Args:
            e: The original exception.
            resource_type: Kind of resource being operated on.
            resource_name: Name of the resource.
            namespace: Namespace of the resource.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import (
            MaxRetryError,
            NewConnectionError,
            ProtocolError,
            ReadTimeoutError,
        )
        from urllib3.exceptions import TimeoutError as Urllib3TimeoutError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, MaxRetryError):
            reason = e.reason
            if isinstance(reason, Urllib3TimeoutError) and not isinstance(
                reason, NewConnectionError
            ):
                return KubernetesTimeoutError(original_error=e)
            return KubernetesConnectionError(original_error=e)

        # NewConnectionError subclasses urllib3's TimeoutError; test it first.
        if isinstance(e, (NewConnectionError, ProtocolError, ssl.SSLError, socket.gaierror)):
            return KubernetesConnectionError(original_error=e)

        if isinstance(e, (ReadTimeoutError, Urllib3TimeoutError, TimeoutError)):
            return KubernetesTimeoutError(original_error=e)

        if isinstance(e, ConnectionError):
            return KubernetesConnectionError(original_error=e)

        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = e.status

        # The client reports transport failures it caught itself as status 0.
        if not status:
            return KubernetesConnectionError(
                message=e.reason or "Failed to connect to Kubernetes cluster",
                original_error=e,
            )

        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
            )

        if status == 404:
            return KubernetesNotFoundError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status == 409:
            return KubernetesConflictError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status in (400, 422):
            return KubernetesValidationError(
                message=e.reason or "Validation failed",
                status_code=status,
            )

        if status == 504:
            return KubernetesTimeoutError(message=e.reason or "Gateway timeout", original_error=e)

        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    # =========================================================================
    # Retry / Connection Check
    # =========================================================================

    def make_retry_decorator(self) -> Any:
        """Create a retry decorator for transient connection errors.

        Returns:
            A tenacity retry decorator with exponential backoff.
        """
        return retry(
            retry=retry_if_exception_type(KubernetesConnectionError),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    def get_cluster_version(self) -> str:
        """Return the cluster version string (e.g., "v1.29").

        Raises:
            KubernetesError: Translated failure from the API server.
        """
        try:
            version_info = self.version_api.get_code(_request_timeout=self.timeout)
        except Exception as e:
            raise self.translate_api_exception(e) from e
        return f"v{version_info.major}.{version_info.minor}"

    def check_connection(self) -> bool:
        """Return True when the API server answers a version request."""
        try:
            self.get_cluster_version()
        except KubernetesError:
            return False
        return True

    def verify_connection(self) -> str:
        """Fetch the cluster version, retrying transient connection errors.

        Raises:
            KubernetesConnectionError: If every attempt failed.
        """
        return self.make_retry_decorator()(self.get_cluster_version)()

    # =========================================================================
    # Properties / Lifecycle
    # =========================================================================

    @property
    def default_namespace(self) -> str:
        return self._config.get_active_namespace()

    @property
    def timeout(self) -> int:
        return self._config.get_active_timeout()

    def close(self) -> None:
        self._invalidate_api_cache()
        logger.debug("kubernetes_client_closed")

    def __enter__(self) -> KubernetesClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
