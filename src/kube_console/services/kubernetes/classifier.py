"""Failure classification for cluster operations.

Structured exception types are checked first. Text matching is a fallback
for opaque error surfaces (kubectl stderr, wrapped third-party errors) and
is best-effort: an unrelated error whose message mentions a connection
failure is classified as connection-lost.
"""

from __future__ import annotations

import re
import socket
import ssl
from dataclasses import dataclass
from enum import StrEnum

from kube_console.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
)


class FailureKind(StrEnum):
    """How a failure should be handled."""

    CONNECTION_LOST = "connection_lost"
    CREDENTIAL_EXPIRED = "credential_expired"
    NOT_FOUND = "not_found"
    OTHER = "other"


@dataclass(frozen=True)
class ClassifiedFailure:
    """An error together with its classification."""

    kind: FailureKind
    error: BaseException

    @property
    def message(self) -> str:
        if self.kind is FailureKind.CONNECTION_LOST:
            return (
                "Failed to connect to Kubernetes cluster. Please check your network "
                "connection and cluster availability."
            )
        if self.kind is FailureKind.CREDENTIAL_EXPIRED:
            return "Kubernetes authentication token has expired. Refreshing credentials..."
        return str(self.error) or type(self.error).__name__


CONNECTION_PATTERNS = re.compile(
    "|".join(
        (
            r"connection refused",
            r"connection reset",
            r"connection closed",
            r"connection aborted",
            r"connection timed? ?out",
            r"network is unreachable",
            r"no route to host",
            r"failed to connect",
            r"unable to connect to the server",
            r"temporary failure in name resolution",
            r"name or service not known",
            r"no such host",
            r"i/o timeout",
            r"tls handshake",
            r"handshake (?:failure|timeout)",
            r"certificate verify failed",
            r"max retries exceeded",
            r"broken pipe",
        )
    ),
    re.IGNORECASE,
)

CREDENTIAL_PATTERNS = re.compile(
    r"\b401\b|unauthorized|token (?:is|has) expired|authentication token has expired"
    r"|you must be logged in to the server",
    re.IGNORECASE,
)

NOT_FOUND_PATTERNS = re.compile(r"\b404\b|notfound|\bnot found\b", re.IGNORECASE)


def _classify_structured(error: BaseException) -> FailureKind | None:
    if isinstance(error, KubernetesConnectionError):
        return FailureKind.CONNECTION_LOST
    if isinstance(error, KubernetesAuthError):
        return FailureKind.CREDENTIAL_EXPIRED if error.credentials_expired else FailureKind.OTHER
    if isinstance(error, KubernetesNotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(error, KubernetesError) and error.status_code is not None:
        return FailureKind.OTHER
    if isinstance(error, (TimeoutError, socket.gaierror, ssl.SSLError, ConnectionError)):
        return FailureKind.CONNECTION_LOST
    status = getattr(error, "status", None)
    if isinstance(status, int) and not isinstance(status, bool):
        if status == 401:
            return FailureKind.CREDENTIAL_EXPIRED
        if status == 404:
            return FailureKind.NOT_FOUND
        if status == 0:
            return FailureKind.CONNECTION_LOST
        return FailureKind.OTHER
    return None


def _error_text(error: BaseException) -> str:
    parts = [str(error)]
    stderr = getattr(error, "stderr", None)
    if stderr:
        parts.append(str(stderr))
    original = getattr(error, "original_error", None) or error.__cause__
    if original is not None and original is not error:
        parts.append(str(original))
    return " ".join(parts)


def classify(error: BaseException) -> ClassifiedFailure:
    """Classify an error from the cluster access layer.

    Args:
        error: Any exception raised by a ClusterAPI call.

    Returns:
        The classified failure.
    """
    kind = _classify_structured(error)
    if kind is None:
        text = _error_text(error)
        if CONNECTION_PATTERNS.search(text):
            kind = FailureKind.CONNECTION_LOST
        elif CREDENTIAL_PATTERNS.search(text):
            kind = FailureKind.CREDENTIAL_EXPIRED
        elif NOT_FOUND_PATTERNS.search(text):
            kind = FailureKind.NOT_FOUND
        else:
            kind = FailureKind.OTHER
    return ClassifiedFailure(kind=kind, error=error)
