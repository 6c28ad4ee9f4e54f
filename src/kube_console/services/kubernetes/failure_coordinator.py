"""Global handling of cluster connectivity failures.

One coordinator sits above every watch subscription. The first
connection-lost report suspends all subscriptions and surfaces a single
error; an explicit retry clears it and lets listeners restart their
watches. Expired credentials are refreshed once and the failing call is
re-run transparently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from kube_console.services.kubernetes.classifier import (
    ClassifiedFailure,
    FailureKind,
    classify,
)

logger = structlog.get_logger()

T = TypeVar("T")

CancelCallback = Callable[[], None]
FailureListener = Callable[[ClassifiedFailure], None]
RetryListener = Callable[[], None]


@dataclass
class FailureState:
    """Current blocking error and the subscriptions it will suspend."""

    current_error: ClassifiedFailure | None = None
    cancel_callbacks: list[CancelCallback] = field(default_factory=list)


class GlobalFailureCoordinator:
    """Suspend every watch on connection loss and resume on retry.

    Args:
        credential_refresher: Blocking callable that reloads credentials,
            usually ``KubernetesClient.refresh_credentials``. Run in a worker
            thread.
        connection_check: Coroutine function verifying the cluster is
            reachable before a retry is accepted.
    """

    def __init__(
        self,
        *,
        credential_refresher: Callable[[], Any] | None = None,
        connection_check: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._state = FailureState()
        self._credential_refresher = credential_refresher
        self._connection_check = connection_check
        self._failure_listeners: list[FailureListener] = []
        self._retry_listeners: list[RetryListener] = []
        self._refresh_task: asyncio.Task[None] | None = None
        self._log = logger.bind(entity="failure_coordinator")

    # =========================================================================
    # State
    # =========================================================================

    @property
    def current_error(self) -> ClassifiedFailure | None:
        return self._state.current_error

    @property
    def has_error(self) -> bool:
        return self._state.current_error is not None

    @property
    def cancel_callback_count(self) -> int:
        return len(self._state.cancel_callbacks)

    # =========================================================================
    # Registration
    # =========================================================================

    def register_cancel_callback(self, callback: CancelCallback) -> None:
        self._state.cancel_callbacks.append(callback)

    def unregister_cancel_callback(self, callback: CancelCallback) -> None:
        try:
            self._state.cancel_callbacks.remove(callback)
        except ValueError:
            pass

    def add_failure_listener(self, listener: FailureListener) -> Callable[[], None]:
        """Call ``listener`` once per blocking connection error.

        Returns:
            A function that removes the listener.
        """
        self._failure_listeners.append(listener)
        return lambda: self._remove(self._failure_listeners, listener)

    def add_retry_listener(self, listener: RetryListener) -> Callable[[], None]:
        """Call ``listener`` after every successful retry.

        Returns:
            A function that removes the listener.
        """
        self._retry_listeners.append(listener)
        return lambda: self._remove(self._retry_listeners, listener)

    @staticmethod
    def _remove(listeners: list[Any], listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    # =========================================================================
    # Failure handling
    # =========================================================================

    def report_failure(self, failure: ClassifiedFailure) -> bool:
        """Report a classified failure from a subscription.

        Only connection-lost failures are acted on, and only the first one
        while no error is showing.

        Returns:
            True if this report suspended the subscriptions.
        """
        if failure.kind is not FailureKind.CONNECTION_LOST:
            return False
        if self._state.current_error is not None:
            self._log.debug("connection_failure_already_reported", error=str(failure.error))
            return False

        self._state.current_error = failure
        callbacks = self._state.cancel_callbacks
        self._state.cancel_callbacks = []
        self._log.warning(
            "connection_lost",
            error=str(failure.error),
            suspended_watches=len(callbacks),
        )
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                self._log.warning("cancel_callback_failed", error=str(e))

        for listener in list(self._failure_listeners):
            try:
                listener(failure)
            except Exception as e:
                self._log.warning("failure_listener_failed", error=str(e))
        return True

    async def retry(self) -> bool:
        """Clear the blocking error and notify retry listeners.

        When a connection check is configured it must succeed first;
        otherwise the error stays in place.

        Returns:
            True if the error was cleared.
        """
        if self._connection_check is not None:
            try:
                await self._connection_check()
            except Exception as e:
                self._log.warning("retry_connection_check_failed", error=str(e))
                return False

        self._state.current_error = None
        self._log.info("connection_retry_succeeded", listeners=len(self._retry_listeners))
        for listener in list(self._retry_listeners):
            try:
                listener()
            except Exception as e:
                self._log.warning("retry_listener_failed", error=str(e))
        return True

    def acknowledge(self) -> None:
        """Clear the blocking error without restarting anything."""
        if self._state.current_error is not None:
            self._log.info("connection_error_acknowledged")
        self._state.current_error = None

    # =========================================================================
    # Credential refresh
    # =========================================================================

    async def refresh_credentials(self) -> None:
        """Reload credentials; concurrent callers share one refresh."""
        if self._credential_refresher is None:
            return
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._run_refresh())
        await asyncio.shield(self._refresh_task)

    async def _run_refresh(self) -> None:
        assert self._credential_refresher is not None
        self._log.info("refreshing_credentials")
        await asyncio.to_thread(self._credential_refresher)

    async def call_with_credential_refresh(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation``; on expired credentials refresh and run it once more.

        A second failure, of any kind, propagates to the caller.
        """
        try:
            return await operation()
        except Exception as e:
            if classify(e).kind is not FailureKind.CREDENTIAL_EXPIRED:
                raise
            self._log.info("credentials_expired", error=str(e))
        await self.refresh_credentials()
        return await operation()
