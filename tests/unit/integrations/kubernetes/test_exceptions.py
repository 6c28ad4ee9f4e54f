"""Unit tests for cluster access exceptions."""

from __future__ import annotations

import pytest

from kube_console.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestKubernetesError:
    """Tests for the base exception."""

    def test_message_only(self) -> None:
        """str() should be the message when nothing else is set."""
        assert str(KubernetesError("boom")) == "boom"

    def test_full_context(self) -> None:
        """str() should include status and resource location."""
        error = KubernetesError(
            "failed",
            status_code=500,
            resource_type="Pod",
            resource_name="web-0",
            namespace="apps",
        )
        assert str(error) == "failed (status: 500) [Pod/web-0 in apps]"

    def test_subclasses_share_base(self) -> None:
        """Every error type should be catchable as KubernetesError."""
        for cls in (
            KubernetesAuthError,
            KubernetesConflictError,
            KubernetesConnectionError,
            KubernetesNotFoundError,
            KubernetesTimeoutError,
            KubernetesValidationError,
        ):
            assert issubclass(cls, KubernetesError)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestConnectionErrors:
    """Tests for connection and timeout errors."""

    def test_connection_error_keeps_original(self) -> None:
        """KubernetesConnectionError should keep the underlying error."""
        cause = OSError("refused")
        error = KubernetesConnectionError(original_error=cause)
        assert error.original_error is cause
        assert error.message == "Failed to connect to Kubernetes cluster"

    def test_timeout_is_connection_error(self) -> None:
        """Timeouts should be handled like connection failures."""
        error = KubernetesTimeoutError(timeout_seconds=30)
        assert isinstance(error, KubernetesConnectionError)
        assert "(after 30s)" in error.message
        assert error.timeout_seconds == 30


@pytest.mark.unit
@pytest.mark.kubernetes
class TestAuthError:
    """Tests for KubernetesAuthError."""

    def test_401_means_expired_credentials(self) -> None:
        """A 401 should report expired credentials."""
        assert KubernetesAuthError(status_code=401).credentials_expired

    def test_403_is_not_expired(self) -> None:
        """A 403 is a permission problem, not an expired token."""
        assert not KubernetesAuthError(status_code=403).credentials_expired


@pytest.mark.unit
@pytest.mark.kubernetes
class TestResourceErrors:
    """Tests for not-found, conflict and validation errors."""

    def test_not_found_message(self) -> None:
        """KubernetesNotFoundError should build a message from the resource."""
        error = KubernetesNotFoundError(
            resource_type="Pod", resource_name="web-0", namespace="apps"
        )
        assert error.message == "Pod 'web-0' not found in namespace 'apps'"
        assert error.status_code == 404

    def test_not_found_default_message(self) -> None:
        """KubernetesNotFoundError should fall back to a generic message."""
        assert KubernetesNotFoundError().message == "Kubernetes resource not found"

    def test_conflict_message(self) -> None:
        """KubernetesConflictError should name the conflicting resource."""
        error = KubernetesConflictError(resource_type="Secret", resource_name="token")
        assert error.message == "Secret 'token' already exists"
        assert error.status_code == 409

    def test_validation_status(self) -> None:
        """KubernetesValidationError should default to 422."""
        assert KubernetesValidationError().status_code == 422
        assert KubernetesValidationError(status_code=400).status_code == 400
