"""Polling watch engine.

A subscription fetches a snapshot immediately, then refetches on a fixed
interval and emits only when the change detector reports a difference.
Consumers read events with ``async for``; the iteration ends when the
subscription is cancelled or suspended by a connection loss.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from kube_console.services.kubernetes.change_detector import ChangeDetector, SnapshotDiff
from kube_console.services.kubernetes.classifier import (
    ClassifiedFailure,
    FailureKind,
    classify,
)
from kube_console.services.kubernetes.failure_coordinator import GlobalFailureCoordinator

logger = structlog.get_logger()

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[Sequence[T]]]

_END = object()


@dataclass(frozen=True)
class WatchKey:
    """Logical scope of a subscription.

    ``target`` distinguishes detail watches (a pod name) and custom
    resource watches (group/version/plural) of the same kind.
    """

    kind: str
    namespaces: frozenset[str] = frozenset()
    target: str | None = None


@dataclass(frozen=True)
class WatchEvent(Generic[T]):
    """Either a changed snapshot or a failure."""

    key: WatchKey
    snapshot: tuple[T, ...] | None = None
    diff: SnapshotDiff | None = None
    failure: ClassifiedFailure | None = None

    @property
    def is_error(self) -> bool:
        return self.failure is not None


class WatchSubscription(Generic[T]):
    """One polling loop over one logical scope.

    Not created directly; use :meth:`WatchStreamEngine.subscribe`.
    """

    def __init__(
        self,
        key: WatchKey,
        fetch: Fetcher[T],
        interval: float,
        detector: ChangeDetector[T],
        coordinator: GlobalFailureCoordinator | None = None,
        on_stopped: Callable[[WatchSubscription[Any]], None] | None = None,
    ) -> None:
        self.key = key
        self.interval = interval
        self.detector = detector
        self._fetch = fetch
        self._coordinator = coordinator
        self._on_stopped = on_stopped
        self._snapshot: tuple[T, ...] | None = None
        self._events: asyncio.Queue[Any] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._stopped = False
        self._suspended = False
        self._log = logger.bind(entity="watch", kind=key.kind, target=key.target)

    @property
    def snapshot(self) -> tuple[T, ...] | None:
        """Last emitted snapshot, or None before the first successful fetch."""
        return self._snapshot

    @property
    def cancelled(self) -> bool:
        return self._stopped

    @property
    def suspended(self) -> bool:
        """True when the loop stopped because the connection was lost."""
        return self._suspended

    def start(self) -> None:
        if self._task is not None or self._stopped:
            return
        if self._coordinator is not None:
            self._coordinator.register_cancel_callback(self._suspend)
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"watch:{self.key.kind}"
        )

    # =========================================================================
    # Poll loop
    # =========================================================================

    async def _fetch_once(self) -> tuple[T, ...]:
        if self._coordinator is not None:
            result = await self._coordinator.call_with_credential_refresh(self._fetch)
        else:
            result = await self._fetch()
        return tuple(result)

    async def _run(self) -> None:
        self._log.debug("watch_started", interval=self.interval)
        while not self._stopped:
            try:
                snapshot = await self._fetch_once()
            except Exception as e:
                failure = classify(e)
                if failure.kind is FailureKind.CONNECTION_LOST:
                    self._log.warning("watch_connection_lost", error=str(e))
                    self._events.put_nowait(WatchEvent(self.key, failure=failure))
                    self._halt(suspended=True)
                    if self._coordinator is not None:
                        self._coordinator.report_failure(failure)
                    return
                self._log.warning("watch_fetch_failed", error=str(e), failure=failure.kind.value)
                self._events.put_nowait(WatchEvent(self.key, failure=failure))
            else:
                self._apply(snapshot)
            await asyncio.sleep(self.interval)

    def _apply(self, snapshot: tuple[T, ...]) -> None:
        previous = self._snapshot
        if previous is not None and not self.detector.has_changed(previous, snapshot):
            return
        diff = self.detector.diff(previous or (), snapshot)
        self._snapshot = snapshot
        self._events.put_nowait(WatchEvent(self.key, snapshot=snapshot, diff=diff))

    # =========================================================================
    # Cancellation
    # =========================================================================

    def _halt(self, *, suspended: bool) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._suspended = suspended
        if self._coordinator is not None:
            self._coordinator.unregister_cancel_callback(self._suspend)
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._events.put_nowait(_END)
        if self._on_stopped is not None:
            self._on_stopped(self)

    def _suspend(self) -> None:
        """Cancel callback invoked by the coordinator on connection loss."""
        self._halt(suspended=True)

    def stop(self) -> None:
        """Stop polling and drop undelivered events. Idempotent."""
        self._halt(suspended=False)
        while not self._events.empty():
            self._events.get_nowait()
        self._events.put_nowait(_END)

    async def cancel(self) -> None:
        """Stop polling and wait for the loop to exit."""
        self.stop()
        if self._task is not None and self._task is not asyncio.current_task():
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    # =========================================================================
    # Consumption
    # =========================================================================

    def __aiter__(self) -> AsyncIterator[WatchEvent[T]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[WatchEvent[T]]:
        while True:
            event = await self._events.get()
            if event is _END:
                # Leave the marker so later iterations also end.
                self._events.put_nowait(_END)
                return
            yield event


class WatchStreamEngine:
    """Owns the active subscriptions, at most one per :class:`WatchKey`."""

    def __init__(self, coordinator: GlobalFailureCoordinator | None = None) -> None:
        self._coordinator = coordinator
        self._subscriptions: dict[WatchKey, WatchSubscription[Any]] = {}

    @property
    def subscriptions(self) -> dict[WatchKey, WatchSubscription[Any]]:
        return dict(self._subscriptions)

    def subscribe(
        self,
        key: WatchKey,
        fetch: Fetcher[T],
        interval: float,
        detector: ChangeDetector[T] | None = None,
    ) -> WatchSubscription[T]:
        """Start polling ``fetch`` for ``key``, replacing any prior subscription.

        Must be called with a running event loop.
        """
        existing = self._subscriptions.pop(key, None)
        if existing is not None:
            existing.stop()

        subscription: WatchSubscription[T] = WatchSubscription(
            key,
            fetch,
            interval,
            detector or ChangeDetector.for_kind(key.kind),
            coordinator=self._coordinator,
            on_stopped=self._forget,
        )
        self._subscriptions[key] = subscription
        subscription.start()
        return subscription

    def _forget(self, subscription: WatchSubscription[Any]) -> None:
        if self._subscriptions.get(subscription.key) is subscription:
            del self._subscriptions[subscription.key]

    async def unsubscribe(self, key: WatchKey) -> None:
        subscription = self._subscriptions.get(key)
        if subscription is not None:
            await subscription.cancel()

    async def cancel_all(self) -> None:
        for subscription in list(self._subscriptions.values()):
            await subscription.cancel()
