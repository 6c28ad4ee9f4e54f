"""Unit tests for failure classification."""

from __future__ import annotations

import socket

import pytest
from kubernetes.client import ApiException

from kube_console.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
)
from kube_console.integrations.kubernetes.kubectl import KubectlCommandError
from kube_console.services.kubernetes.classifier import FailureKind, classify


@pytest.mark.unit
@pytest.mark.kubernetes
class TestStructuredClassification:
    """Typed errors are classified without looking at their text."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (KubernetesConnectionError(), FailureKind.CONNECTION_LOST),
            (KubernetesTimeoutError(timeout_seconds=5), FailureKind.CONNECTION_LOST),
            (KubernetesAuthError(status_code=401), FailureKind.CREDENTIAL_EXPIRED),
            (KubernetesAuthError(status_code=403), FailureKind.OTHER),
            (
                KubernetesNotFoundError(resource_type="Pod", resource_name="web"),
                FailureKind.NOT_FOUND,
            ),
            (KubernetesError("Internal error", status_code=500), FailureKind.OTHER),
            (socket.gaierror("Name or service not known"), FailureKind.CONNECTION_LOST),
            (ConnectionResetError(), FailureKind.CONNECTION_LOST),
            (TimeoutError(), FailureKind.CONNECTION_LOST),
            (ApiException(status=401), FailureKind.CREDENTIAL_EXPIRED),
            (ApiException(status=404), FailureKind.NOT_FOUND),
            (ApiException(status=0), FailureKind.CONNECTION_LOST),
            (ApiException(status=500), FailureKind.OTHER),
        ],
    )
    def test_classify(self, error: BaseException, expected: FailureKind) -> None:
        assert classify(error).kind is expected

    def test_not_found_message_is_not_reclassified(self) -> None:
        """A 404 whose text mentions a connection problem stays NOT_FOUND."""
        error = KubernetesNotFoundError(message="connection refused to pod")

        assert classify(error).kind is FailureKind.NOT_FOUND


@pytest.mark.unit
@pytest.mark.kubernetes
class TestTextClassification:
    """kubectl stderr and opaque errors fall back to message matching."""

    def test_kubectl_unable_to_connect(self) -> None:
        error = KubectlCommandError(
            "kubectl command failed",
            stderr="Unable to connect to the server: dial tcp 10.0.0.1:6443: i/o timeout",
        )

        assert classify(error).kind is FailureKind.CONNECTION_LOST

    def test_kubectl_must_be_logged_in(self) -> None:
        error = KubectlCommandError(
            "kubectl command failed",
            stderr="error: You must be logged in to the server (Unauthorized)",
        )

        assert classify(error).kind is FailureKind.CREDENTIAL_EXPIRED

    def test_kubectl_not_found(self) -> None:
        error = KubectlCommandError(
            "kubectl command failed",
            stderr='Error from server (NotFound): pods "web" not found',
        )

        assert classify(error).kind is FailureKind.NOT_FOUND

    def test_unrelated_error(self) -> None:
        assert classify(RuntimeError("boom")).kind is FailureKind.OTHER

    def test_chained_cause_is_inspected(self) -> None:
        try:
            try:
                raise OSError("[Errno 111] Connection refused")
            except OSError as inner:
                raise RuntimeError("request failed") from inner
        except RuntimeError as e:
            error = e

        assert classify(error).kind is FailureKind.CONNECTION_LOST

    def test_text_match_is_best_effort(self) -> None:
        """Any opaque error mentioning a refused connection counts as connection loss."""
        error = ValueError("invalid manifest: comment says connection refused")

        assert classify(error).kind is FailureKind.CONNECTION_LOST


@pytest.mark.unit
@pytest.mark.kubernetes
class TestMessages:
    def test_connection_lost_message(self) -> None:
        failure = classify(KubernetesConnectionError())

        assert failure.message.startswith("Failed to connect to Kubernetes cluster")

    def test_credential_message(self) -> None:
        failure = classify(KubernetesAuthError(status_code=401))

        assert "expired" in failure.message

    def test_other_message_uses_error_text(self) -> None:
        assert classify(RuntimeError("boom")).message == "boom"
        assert classify(RuntimeError()).message == "RuntimeError"
