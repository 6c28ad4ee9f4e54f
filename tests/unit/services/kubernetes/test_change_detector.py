"""Unit tests for ChangeDetector."""

from __future__ import annotations

import pytest

from kube_console.integrations.kubernetes.models.workloads import DeploymentSummary
from kube_console.services.kubernetes.change_detector import (
    WATCHED_FIELDS,
    ChangeDetector,
    default_identity,
)
from tests.unit.services.kubernetes.fakes import make_pod


@pytest.mark.unit
@pytest.mark.kubernetes
class TestIdentity:
    def test_resource_identity(self) -> None:
        assert default_identity(make_pod("web", "apps")) == "apps/web"

    def test_string_identity(self) -> None:
        assert default_identity("kube-system") == "kube-system"

    def test_mapping_identity(self) -> None:
        assert default_identity({"name": "tls", "namespace": "apps"}) == "apps/tls"


@pytest.mark.unit
@pytest.mark.kubernetes
class TestHasChanged:
    """Tests for ChangeDetector.has_changed."""

    @pytest.fixture
    def detector(self) -> ChangeDetector:
        return ChangeDetector.for_kind("pods")

    def test_identical_snapshots(self, detector: ChangeDetector) -> None:
        old = [make_pod("a"), make_pod("b")]
        new = [make_pod("a"), make_pod("b")]

        assert detector.has_changed(old, new) is False

    def test_order_does_not_matter(self, detector: ChangeDetector) -> None:
        old = [make_pod("a"), make_pod("b")]
        new = [make_pod("b"), make_pod("a")]

        assert detector.has_changed(old, new) is False

    def test_length_change(self, detector: ChangeDetector) -> None:
        assert detector.has_changed([make_pod("a")], [make_pod("a"), make_pod("b")]) is True

    def test_renamed_item(self, detector: ChangeDetector) -> None:
        assert detector.has_changed([make_pod("a")], [make_pod("c")]) is True

    def test_watched_field_change(self, detector: ChangeDetector) -> None:
        old = [make_pod("a", status="Pending")]
        new = [make_pod("a", status="Running")]

        assert detector.has_changed(old, new) is True

    def test_restart_count_change(self, detector: ChangeDetector) -> None:
        assert detector.has_changed([make_pod("a")], [make_pod("a", restarts=1)]) is True

    def test_unwatched_field_is_ignored(self, detector: ChangeDetector) -> None:
        """Node placement is shown in details only, not in the pod list."""
        old = [make_pod("a").model_copy(update={"node_name": "node-1"})]
        new = [make_pod("a").model_copy(update={"node_name": "node-2"})]

        assert detector.has_changed(old, new) is False

    def test_duplicate_identities_are_counted(self, detector: ChangeDetector) -> None:
        old = [make_pod("a"), make_pod("a"), make_pod("b")]
        new = [make_pod("a"), make_pod("b"), make_pod("b")]

        assert detector.has_changed(old, new) is True

    def test_empty_snapshots(self, detector: ChangeDetector) -> None:
        assert detector.has_changed([], []) is False

    def test_deployment_replicas(self) -> None:
        detector = ChangeDetector.for_kind("deployments")
        old = [DeploymentSummary(name="api", namespace="apps", replicas=3, ready_replicas=2)]
        new = [DeploymentSummary(name="api", namespace="apps", replicas=3, ready_replicas=3)]

        assert detector.has_changed(old, new) is True

    def test_identity_only_kind(self) -> None:
        detector = ChangeDetector(identity=lambda ns: ns)
        assert WATCHED_FIELDS["namespaces"] == ()
        assert detector.has_changed(["default", "apps"], ["apps", "default"]) is False
        assert detector.has_changed(["default"], ["apps"]) is True

    def test_full_equality(self) -> None:
        detector = ChangeDetector(watched_fields=None)
        pod = make_pod("a")

        assert detector.has_changed([pod], [pod.model_copy(update={"node_name": "n1"})]) is True
        assert detector.has_changed([pod], [make_pod("a")]) is False

    def test_unknown_kind_compares_identities(self) -> None:
        detector = ChangeDetector.for_kind("widgets")

        assert detector.watched_fields == ()


@pytest.mark.unit
@pytest.mark.kubernetes
class TestDiff:
    def test_added_removed_modified(self) -> None:
        detector = ChangeDetector.for_kind("pods")
        old = [make_pod("a"), make_pod("b"), make_pod("c")]
        new = [make_pod("a"), make_pod("b", status="Failed"), make_pod("d")]

        diff = detector.diff(old, new)

        assert diff.added == frozenset({"default/d"})
        assert diff.removed == frozenset({"default/c"})
        assert diff.modified == frozenset({"default/b"})
        assert diff.changed is True

    def test_no_difference(self) -> None:
        detector = ChangeDetector.for_kind("pods")

        assert detector.diff([make_pod("a")], [make_pod("a")]).changed is False
