"""Unit tests for the polling watch engine."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from kube_console.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesNotFoundError,
)
from kube_console.services.kubernetes.classifier import FailureKind, classify
from kube_console.services.kubernetes.failure_coordinator import GlobalFailureCoordinator
from kube_console.services.kubernetes.watch import (
    WatchEvent,
    WatchKey,
    WatchStreamEngine,
    WatchSubscription,
)
from tests.unit.services.kubernetes.fakes import make_pod

INTERVAL = 0.01

POD_A = make_pod("a")
POD_B = make_pod("b")
POD_C = make_pod("c")


class ScriptedFetch:
    """Fetch function returning (or raising) scripted results in order.

    The last entry repeats once the script is exhausted.
    """

    def __init__(self, *results: Sequence[Any] | BaseException) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> Sequence[Any]:
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if isinstance(result, BaseException):
            raise result
        return result


async def take(subscription: WatchSubscription[Any], count: int) -> list[WatchEvent[Any]]:
    events: list[WatchEvent[Any]] = []
    async for event in subscription:
        events.append(event)
        if len(events) == count:
            break
    return events


async def drain(subscription: WatchSubscription[Any]) -> list[WatchEvent[Any]]:
    return [event async for event in subscription]


def snapshot_names(event: WatchEvent[Any]) -> list[str]:
    assert event.snapshot is not None
    return sorted(pod.name for pod in event.snapshot)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestEmission:
    """Snapshots are emitted only when they change."""

    @pytest.mark.asyncio
    async def test_constant_snapshot_emits_once(self) -> None:
        engine = WatchStreamEngine()
        fetch = ScriptedFetch([POD_A, POD_B])
        subscription = engine.subscribe(WatchKey("pods"), fetch, INTERVAL)
        consumer = asyncio.create_task(drain(subscription))

        await asyncio.sleep(INTERVAL * 10)
        await subscription.cancel()
        events = await asyncio.wait_for(consumer, 1.0)

        assert fetch.calls >= 3
        assert len(events) == 1
        assert snapshot_names(events[0]) == ["a", "b"]
        assert events[0].diff is not None
        assert events[0].diff.added == frozenset({"default/a", "default/b"})

    @pytest.mark.asyncio
    async def test_alternating_snapshots_emit_every_cycle(self) -> None:
        engine = WatchStreamEngine()
        fetch = ScriptedFetch([POD_A], [POD_A, POD_B], [POD_A], [POD_A, POD_B])
        subscription = engine.subscribe(WatchKey("pods"), fetch, 0.05)

        events = await asyncio.wait_for(take(subscription, 4), 2.0)
        calls = fetch.calls
        await subscription.cancel()

        assert calls == 4
        assert [len(e.snapshot or ()) for e in events] == [1, 2, 1, 2]

    @pytest.mark.asyncio
    async def test_reordered_snapshot_is_not_emitted(self) -> None:
        engine = WatchStreamEngine()
        fetch = ScriptedFetch([POD_A, POD_B], [POD_B, POD_A], [POD_B, POD_A, POD_C])
        subscription = engine.subscribe(WatchKey("pods"), fetch, INTERVAL)

        events = await asyncio.wait_for(take(subscription, 2), 1.0)
        await subscription.cancel()

        assert fetch.calls >= 3
        assert snapshot_names(events[1]) == ["a", "b", "c"]
        assert events[1].diff is not None
        assert events[1].diff.added == frozenset({"default/c"})

    @pytest.mark.asyncio
    async def test_snapshot_property_tracks_last_emission(self) -> None:
        engine = WatchStreamEngine()
        subscription = engine.subscribe(WatchKey("pods"), ScriptedFetch([POD_A]), INTERVAL)

        assert subscription.snapshot is None
        await asyncio.wait_for(take(subscription, 1), 1.0)
        await subscription.cancel()

        assert subscription.snapshot == (POD_A,)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestCancellation:
    """Tests for cancel, unsubscribe and replacement."""

    @pytest.mark.asyncio
    async def test_cancel_before_first_poll_emits_nothing(self) -> None:
        engine = WatchStreamEngine()
        fetch = ScriptedFetch([POD_A])
        subscription = engine.subscribe(WatchKey("pods"), fetch, INTERVAL)

        await subscription.cancel()
        events = await asyncio.wait_for(drain(subscription), 1.0)

        assert events == []
        assert fetch.calls == 0
        assert subscription.cancelled
        assert not subscription.suspended

    @pytest.mark.asyncio
    async def test_cancel_stops_polling(self) -> None:
        engine = WatchStreamEngine()
        fetch = ScriptedFetch([POD_A], [POD_B])
        subscription = engine.subscribe(WatchKey("pods"), fetch, INTERVAL)
        await asyncio.wait_for(take(subscription, 1), 1.0)

        await subscription.cancel()
        calls = fetch.calls
        await asyncio.sleep(INTERVAL * 5)

        assert fetch.calls == calls
        assert await asyncio.wait_for(drain(subscription), 1.0) == []

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self) -> None:
        engine = WatchStreamEngine()
        subscription = engine.subscribe(WatchKey("pods"), ScriptedFetch([POD_A]), INTERVAL)

        await subscription.cancel()
        await subscription.cancel()
        subscription.stop()

        assert engine.subscriptions == {}

    @pytest.mark.asyncio
    async def test_subscribe_replaces_existing_key(self) -> None:
        engine = WatchStreamEngine()
        key = WatchKey("pods", frozenset({"apps"}))
        first = engine.subscribe(key, ScriptedFetch([POD_A]), INTERVAL)
        second = engine.subscribe(key, ScriptedFetch([POD_B]), INTERVAL)

        assert first.cancelled
        assert engine.subscriptions == {key: second}
        await engine.cancel_all()

    @pytest.mark.asyncio
    async def test_distinct_scopes_coexist(self) -> None:
        engine = WatchStreamEngine()
        engine.subscribe(WatchKey("pods", frozenset({"a"})), ScriptedFetch([]), INTERVAL)
        engine.subscribe(WatchKey("pods", frozenset({"b"})), ScriptedFetch([]), INTERVAL)

        assert len(engine.subscriptions) == 2
        await engine.cancel_all()
        assert engine.subscriptions == {}

    @pytest.mark.asyncio
    async def test_unsubscribe_unregisters_from_coordinator(self) -> None:
        coordinator = GlobalFailureCoordinator()
        engine = WatchStreamEngine(coordinator)
        key = WatchKey("deployments")
        engine.subscribe(key, ScriptedFetch([]), INTERVAL)
        assert coordinator.cancel_callback_count == 1

        await engine.unsubscribe(key)
        await engine.unsubscribe(key)

        assert coordinator.cancel_callback_count == 0
        assert engine.subscriptions == {}


@pytest.mark.unit
@pytest.mark.kubernetes
class TestFailures:
    """Error events and coordination with the failure coordinator."""

    @pytest.mark.asyncio
    async def test_connection_loss_suspends_and_reports_once(self) -> None:
        coordinator = GlobalFailureCoordinator()
        listener = MagicMock()
        coordinator.add_failure_listener(listener)
        engine = WatchStreamEngine(coordinator)
        fetch = ScriptedFetch(
            [POD_A, POD_B],
            [POD_A, POD_B],
            [POD_A, POD_B, POD_C],
            ConnectionRefusedError("[Errno 111] Connection refused"),
        )
        other = engine.subscribe(WatchKey("deployments"), ScriptedFetch([]), INTERVAL)
        subscription = engine.subscribe(WatchKey("pods"), fetch, INTERVAL)

        events = await asyncio.wait_for(drain(subscription), 1.0)
        other_events = await asyncio.wait_for(drain(other), 1.0)
        await asyncio.sleep(INTERVAL * 5)

        assert [e.is_error for e in events] == [False, False, True]
        assert snapshot_names(events[0]) == ["a", "b"]
        assert snapshot_names(events[1]) == ["a", "b", "c"]
        assert events[2].failure is not None
        assert events[2].failure.kind is FailureKind.CONNECTION_LOST
        assert fetch.calls == 4
        listener.assert_called_once()
        assert coordinator.has_error
        assert subscription.suspended
        assert other.suspended
        assert not any(e.is_error for e in other_events)
        assert engine.subscriptions == {}

    @pytest.mark.asyncio
    async def test_other_failures_keep_polling(self) -> None:
        coordinator = GlobalFailureCoordinator()
        engine = WatchStreamEngine(coordinator)
        fetch = ScriptedFetch(KubernetesNotFoundError(), [POD_A])
        subscription = engine.subscribe(WatchKey("pod_detail", target="a"), fetch, INTERVAL)

        events = await asyncio.wait_for(take(subscription, 2), 1.0)
        await subscription.cancel()

        assert events[0].failure is not None
        assert events[0].failure.kind is FailureKind.NOT_FOUND
        assert events[1].snapshot == (POD_A,)
        assert not coordinator.has_error

    @pytest.mark.asyncio
    async def test_expired_credentials_are_refreshed_transparently(self) -> None:
        refresher = MagicMock()
        coordinator = GlobalFailureCoordinator(credential_refresher=refresher)
        engine = WatchStreamEngine(coordinator)
        fetch = ScriptedFetch(KubernetesAuthError(status_code=401), [POD_A])
        subscription = engine.subscribe(WatchKey("pods"), fetch, INTERVAL)

        events = await asyncio.wait_for(take(subscription, 1), 1.0)
        await subscription.cancel()

        assert not events[0].is_error
        assert events[0].snapshot == (POD_A,)
        refresher.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_external_report_suspends_subscription(self) -> None:
        coordinator = GlobalFailureCoordinator()
        engine = WatchStreamEngine(coordinator)
        subscription = engine.subscribe(WatchKey("secrets"), ScriptedFetch([]), INTERVAL)
        await asyncio.wait_for(take(subscription, 1), 1.0)

        coordinator.report_failure(classify(ConnectionResetError()))
        events = await asyncio.wait_for(drain(subscription), 1.0)

        assert events == []
        assert subscription.suspended
        assert engine.subscriptions == {}

    @pytest.mark.asyncio
    async def test_resubscribe_after_retry_starts_from_full_snapshot(self) -> None:
        """After reconnecting, the first event is the whole list, not a diff from before."""
        check = AsyncMock(side_effect=[ConnectionRefusedError("still down"), None])
        coordinator = GlobalFailureCoordinator(connection_check=check)
        on_retry = MagicMock()
        coordinator.add_retry_listener(on_retry)
        engine = WatchStreamEngine(coordinator)
        lost = engine.subscribe(
            WatchKey("pods"),
            ScriptedFetch([POD_A, POD_B], ConnectionResetError("connection reset by peer")),
            INTERVAL,
        )
        before = await asyncio.wait_for(drain(lost), 1.0)

        assert [e.is_error for e in before] == [False, True]
        assert await coordinator.retry() is False
        assert coordinator.has_error
        on_retry.assert_not_called()

        assert await coordinator.retry() is True
        assert not coordinator.has_error
        on_retry.assert_called_once_with()

        fetch = ScriptedFetch([POD_A, POD_B], [POD_A, POD_B, POD_C])
        resumed = engine.subscribe(WatchKey("pods"), fetch, INTERVAL)
        events = await asyncio.wait_for(take(resumed, 2), 1.0)
        await resumed.cancel()

        assert snapshot_names(events[0]) == ["a", "b"]
        assert events[0].diff is not None
        assert events[0].diff.added == {POD_A.identity, POD_B.identity}
        assert snapshot_names(events[1]) == ["a", "b", "c"]
        assert events[1].diff is not None
        assert events[1].diff.added == {POD_C.identity}
        assert not resumed.suspended
        assert check.await_count == 2
