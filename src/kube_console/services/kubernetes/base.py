"""Base manager for cluster-facing services.

Provides shared infrastructure for the managers: client access, namespace
resolution and API error translation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NoReturn

import structlog

if TYPE_CHECKING:
    from kube_console.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()


class K8sBaseManager:
    """Base class for managers that call the Kubernetes API.

    Subclasses set ``_entity_name`` for structured log context.

    Example:
        >>> class ResourceSnapshotManager(K8sBaseManager):
        ...     _entity_name = "snapshot"
    """

    _entity_name: str = ""

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client
        self._log = logger.bind(entity=self._entity_name)

    def _request_options(self) -> dict[str, Any]:
        """Keyword arguments passed to every API call (the request timeout)."""
        return {"_request_timeout": self._client.timeout}

    def _resolve_namespace(self, namespace: str | None) -> str:
        """Resolve namespace, falling back to the client default."""
        return namespace or self._client.default_namespace

    def _resolve_namespaces(self, namespaces: set[str] | frozenset[str] | None) -> list[str]:
        """Sorted namespace list; an empty or missing set means the default namespace."""
        if not namespaces:
            return [self._client.default_namespace]
        return sorted(namespaces)

    def _handle_api_error(
        self,
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> NoReturn:
        """Translate a client exception and re-raise it.

        Raises:
            KubernetesError: Always raises an appropriate subclass.
        """
        raise self._client.translate_api_exception(
            e,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        ) from e
