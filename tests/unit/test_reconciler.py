"""Tests for the generic managed-resource reconciler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock, patch

import kopf
import pytest

from aws_cloud_operator.constants import (
    ANNOTATION_CREATE_SUCCEEDED,
    ANNOTATION_EXTERNAL_NAME,
    ANNOTATION_PAUSED,
    FINALIZER,
)
from aws_cloud_operator.errors import (
    InvalidParameterError,
    NotFoundError,
    ProviderConfigError,
    ThrottledError,
)
from aws_cloud_operator.reconciler.external import (
    ExternalContext,
    ExternalCreation,
    ExternalUpdate,
    HookedExternal,
    ResourceHooks,
)
from aws_cloud_operator.reconciler.managed import (
    DELETE_POLL_SECONDS,
    POLL_INTERVAL_SECONDS,
    ManagedReconciler,
    requeue_error,
)
from aws_cloud_operator.reconciler.resource import ManagedResource
from aws_cloud_operator.references import ReferenceField
from aws_cloud_operator.utils.conditions import get_condition


@pytest.fixture(autouse=True)
def no_events():
    with patch("aws_cloud_operator.utils.events.kopf.event"):
        yield


def _body(annotations=None, spec=None, status=None, deleting=False):
    metadata = {
        "name": "my-group",
        "uid": "uid-1",
        "generation": 2,
        "finalizers": [FINALIZER],
        "annotations": annotations or {},
    }
    if deleting:
        metadata["deletionTimestamp"] = "2024-01-01T00:00:00Z"
    body = {
        "apiVersion": "aws.cloud37.dev/v1alpha1",
        "kind": "ReplicationGroup",
        "metadata": metadata,
        "spec": {"forProvider": {"region": "us-east-1"}, **(spec or {})},
    }
    if status is not None:
        body["status"] = status
    return body


def _hooks(exists=True, up_to_date=True, diff=""):
    hooks = ResourceHooks(
        describe=Mock(return_value={"Status": "available"}),
        create=Mock(return_value=ExternalCreation(connection_details={"password": "p"})),
        update=Mock(return_value=ExternalUpdate()),
        delete=Mock(),
        generate_observation=Mock(return_value={"status": "available"}),
        is_up_to_date=Mock(return_value=(up_to_date, diff)),
    )
    if not exists:
        hooks.describe.side_effect = NotFoundError("not found")
    return hooks


def _reconciler(hooks, kube=None, reference_fields=()):
    kube = kube or Mock()
    kube.publish_connection_details.return_value = True
    connector = Mock()
    connector.connect.side_effect = lambda mr, kube_, hooks_, deadline=None: HookedExternal(
        hooks_, ExternalContext(gateway=MagicMock(), kube=kube_, region="us-east-1")
    )
    reconciler = ManagedReconciler("ReplicationGroup", hooks, connector, reference_fields, kube=kube)
    return reconciler, connector, kube


def _condition(patch_, condition_type):
    return get_condition(patch_.status["conditions"], condition_type)


class TestRequeueError:
    """Test cases for requeue_error."""

    def test_retryable_uses_backoff(self):
        """Test retryable errors requeue with exponential backoff."""
        error = requeue_error(ThrottledError("slow down"), retry=2)
        assert isinstance(error, kopf.TemporaryError)
        assert error.delay == 8.0

    def test_invalid_parameter_is_permanent(self):
        """Test invalid parameters wait for a spec change."""
        assert isinstance(requeue_error(InvalidParameterError("bad"), retry=0), kopf.PermanentError)

    def test_other_errors_requeue_at_poll_interval(self):
        """Test other errors requeue at the poll interval."""
        error = requeue_error(ProviderConfigError("missing"), retry=5)
        assert isinstance(error, kopf.TemporaryError)
        assert error.delay == POLL_INTERVAL_SECONDS


class TestManagedResource:
    """Test cases for the managed resource envelope."""

    def test_defaults(self):
        """Test defaults of an object with a minimal spec."""
        mr = ManagedResource(_body())

        assert mr.deletion_policy == "Delete"
        assert mr.management_policies == ["*"]
        assert mr.provider_config_name == "default"
        assert mr.connection_secret_ref is None
        assert not mr.paused

    def test_legacy_management_policy(self):
        """Test single-valued management policies."""
        mr = ManagedResource(_body(spec={"managementPolicy": "ObserveOnly"}))

        assert mr.should("Observe")
        assert not mr.should("Create")
        assert not mr.should("Delete")

    def test_apply_to_writes_only_changes(self):
        """Test only changed parts are written and removed observations are nulled."""
        mr = ManagedResource(_body(status={"atProvider": {"arn": "a", "status": "creating"}}))
        mr.at_provider = {"arn": "a"}
        mr.external_name = "ext"
        patch_ = kopf.Patch()

        mr.apply_to(patch_)

        assert "forProvider" not in patch_.spec
        assert patch_.metadata["annotations"] == {ANNOTATION_EXTERNAL_NAME: "ext"}
        assert patch_.status["atProvider"] == {"status": None, "arn": "a"}
        assert patch_.status["observedGeneration"] == 2


class TestReconcile:
    """Test cases for ManagedReconciler.reconcile."""

    def test_paused_skips_external_calls(self):
        """Test a paused object is marked unsynced and AWS is not called."""
        hooks = _hooks()
        reconciler, connector, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        reconciler.reconcile(_body(annotations={ANNOTATION_PAUSED: "true"}), patch_)

        connector.connect.assert_not_called()
        hooks.describe.assert_not_called()
        synced = _condition(patch_, "Synced")
        assert synced["status"] == "False"
        assert synced["reason"] == "ReconcilePaused"

    def test_deleting_object_is_ignored(self):
        """Test the create/update path does nothing for objects being deleted."""
        hooks = _hooks()
        reconciler, connector, _ = _reconciler(hooks)

        reconciler.reconcile(_body(deleting=True), kopf.Patch())

        connector.connect.assert_not_called()

    def test_adds_finalizer(self):
        """Test the finalizer is added on the first pass."""
        body = _body()
        body["metadata"]["finalizers"] = []
        reconciler, _, _ = _reconciler(_hooks())
        patch_ = kopf.Patch()

        reconciler.reconcile(body, patch_)

        assert FINALIZER in patch_.metadata["finalizers"]

    def test_creates_missing_resource(self):
        """Test a missing resource is created and the create is recorded."""
        hooks = _hooks(exists=False)
        body = _body(spec={"writeConnectionSecretToRef": {"namespace": "ns", "name": "conn"}})
        reconciler, _, kube = _reconciler(hooks)
        patch_ = kopf.Patch()

        reconciler.reconcile(body, patch_)

        hooks.create.assert_called_once()
        annotations = patch_.metadata["annotations"]
        assert annotations[ANNOTATION_EXTERNAL_NAME] == "my-group"
        assert ANNOTATION_CREATE_SUCCEEDED in annotations
        assert _condition(patch_, "Ready")["reason"] == "Creating"
        assert _condition(patch_, "Synced")["status"] == "True"
        kube.publish_connection_details.assert_called_once_with("ns", "conn", {"password": "p"})

    def test_external_name_is_kept(self):
        """Test an existing external name is not replaced by the object name."""
        hooks = _hooks()
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        reconciler.reconcile(_body(annotations={ANNOTATION_EXTERNAL_NAME: "legacy-id"}), patch_)

        mr = hooks.describe.call_args[0][1]
        assert mr.external_name == "legacy-id"
        assert "annotations" not in patch_.metadata

    def test_create_grace_period(self):
        """Test a recent create is not repeated while the resource is not visible."""
        hooks = _hooks(exists=False)
        stamp = datetime.now(timezone.utc).isoformat()
        reconciler, _, _ = _reconciler(hooks)

        with pytest.raises(kopf.TemporaryError):
            reconciler.reconcile(_body(annotations={ANNOTATION_CREATE_SUCCEEDED: stamp}), kopf.Patch())

        hooks.create.assert_not_called()

    def test_create_after_grace_period(self):
        """Test create is retried once the grace period passed."""
        hooks = _hooks(exists=False)
        stamp = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        reconciler, _, _ = _reconciler(hooks)

        reconciler.reconcile(_body(annotations={ANNOTATION_CREATE_SUCCEEDED: stamp}), kopf.Patch())

        hooks.create.assert_called_once()

    def test_create_forbidden_by_policy(self):
        """Test a missing resource is reported when creating is not allowed."""
        hooks = _hooks(exists=False)
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        with pytest.raises(kopf.TemporaryError, match="forbids creating"):
            reconciler.reconcile(_body(spec={"managementPolicies": ["Observe"]}), patch_)

        hooks.create.assert_not_called()
        assert _condition(patch_, "Synced")["status"] == "False"

    def test_up_to_date_does_nothing(self):
        """Test no mutating call is made when nothing drifted."""
        hooks = _hooks()
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        reconciler.reconcile(_body(), patch_)

        hooks.create.assert_not_called()
        hooks.update.assert_not_called()
        assert patch_.status["atProvider"] == {"status": "available"}
        assert _condition(patch_, "Synced")["status"] == "True"

    @patch("aws_cloud_operator.reconciler.managed.metrics")
    def test_drift_triggers_update(self, mock_metrics):
        """Test drift leads to exactly one update labelled by its class."""
        hooks = _hooks(up_to_date=False, diff="ReplicaCount: want 3 have 2")
        reconciler, _, _ = _reconciler(hooks)

        reconciler.reconcile(_body(), kopf.Patch())

        hooks.update.assert_called_once()
        mock_metrics.drift_detected_total.labels.assert_called_once_with(
            kind="ReplicationGroup", update_class="ReplicaCount"
        )

    def test_drift_ignored_without_update_policy(self):
        """Test drift is not corrected when updates are not allowed."""
        hooks = _hooks(up_to_date=False, diff="CacheNodeType")
        reconciler, _, _ = _reconciler(hooks)

        reconciler.reconcile(_body(spec={"managementPolicies": ["Observe", "Create", "Delete"]}), kopf.Patch())

        hooks.update.assert_not_called()

    def test_late_initialization_is_persisted(self):
        """Test late-initialized fields are written back to the spec."""
        hooks = _hooks()

        def late_init(mr, observed, ctx):
            mr.for_provider["snapshotWindow"] = "05:00-06:00"
            return True

        hooks.late_initialize = late_init
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        reconciler.reconcile(_body(), patch_)

        assert patch_.spec["forProvider"] == {"region": "us-east-1", "snapshotWindow": "05:00-06:00"}

    def test_invalid_parameter_is_permanent(self):
        """Test an invalid update stops retries until the spec changes."""
        hooks = _hooks(up_to_date=False, diff="EngineVersion")
        hooks.update.side_effect = InvalidParameterError("unable to parse version number")
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        with pytest.raises(kopf.PermanentError):
            reconciler.reconcile(_body(), patch_)

        synced = _condition(patch_, "Synced")
        assert synced["status"] == "False"
        assert "unable to parse version number" in synced["message"]

    def test_failed_observe_keeps_previous_observation(self):
        """Test a failed observe leaves status.atProvider untouched."""
        hooks = _hooks()
        hooks.is_up_to_date.side_effect = ThrottledError("Rate exceeded")
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        with pytest.raises(kopf.TemporaryError):
            reconciler.reconcile(_body(status={"atProvider": {"status": "creating"}}), patch_)

        assert "atProvider" not in patch_.status

    @patch("aws_cloud_operator.reconciler.managed.emit_references_pending")
    def test_pending_reference(self, mock_emit_pending):
        """Test unresolved references stop the pass before AWS is called."""
        kube = Mock()
        kube.get_object.return_value = None
        hooks = _hooks()
        fields = [ReferenceField("cacheSubnetGroupName", "CacheSubnetGroup")]
        reconciler, connector, _ = _reconciler(hooks, kube=kube, reference_fields=fields)
        body = _body(spec={"forProvider": {"cacheSubnetGroupNameRef": {"name": "sg"}}})
        patch_ = kopf.Patch()

        with pytest.raises(kopf.TemporaryError):
            reconciler.reconcile(body, patch_)

        connector.connect.assert_not_called()
        mock_emit_pending.assert_called_once()
        assert _condition(patch_, "Synced")["status"] == "False"


class TestDelete:
    """Test cases for ManagedReconciler.delete."""

    def test_orphan_releases_without_aws_calls(self):
        """Test orphaned objects are released without deleting in AWS."""
        hooks = _hooks()
        body = _body(
            annotations={ANNOTATION_EXTERNAL_NAME: "my-group"},
            spec={
                "deletionPolicy": "Orphan",
                "writeConnectionSecretToRef": {"namespace": "ns", "name": "conn"},
            },
            deleting=True,
        )
        reconciler, connector, kube = _reconciler(hooks)
        patch_ = kopf.Patch()

        reconciler.delete(body, patch_)

        connector.connect.assert_not_called()
        hooks.delete.assert_not_called()
        kube.delete_secret.assert_called_once_with("ns", "conn")
        assert patch_.metadata["finalizers"] is None

    def test_delete_waits_until_gone(self):
        """Test the finalizer is kept while the resource still exists."""
        hooks = _hooks()
        body = _body(annotations={ANNOTATION_EXTERNAL_NAME: "my-group"}, deleting=True)
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        with pytest.raises(kopf.TemporaryError) as exc_info:
            reconciler.delete(body, patch_)

        assert exc_info.value.delay == DELETE_POLL_SECONDS
        hooks.delete.assert_called_once()
        assert "finalizers" not in patch_.metadata
        assert _condition(patch_, "Ready")["reason"] == "Deleting"

    def test_delete_releases_when_gone(self):
        """Test the finalizer is removed once AWS reports the resource gone."""
        hooks = _hooks(exists=False)
        body = _body(annotations={ANNOTATION_EXTERNAL_NAME: "my-group"}, deleting=True)
        reconciler, _, _ = _reconciler(hooks)
        patch_ = kopf.Patch()

        reconciler.delete(body, patch_)

        hooks.delete.assert_not_called()
        assert patch_.metadata["finalizers"] is None

    def test_pre_delete_can_skip(self):
        """Test a pre-delete hook suppresses the delete call."""
        hooks = _hooks()
        hooks.pre_delete = Mock(return_value=True)
        body = _body(annotations={ANNOTATION_EXTERNAL_NAME: "my-group"}, deleting=True)
        reconciler, _, _ = _reconciler(hooks)

        with pytest.raises(kopf.TemporaryError):
            reconciler.delete(body, kopf.Patch())

        hooks.delete.assert_not_called()

    def test_delete_not_found_counts_as_success(self):
        """Test a resource vanishing between observe and delete is not an error."""
        hooks = _hooks()
        hooks.delete.side_effect = NotFoundError("gone")
        body = _body(annotations={ANNOTATION_EXTERNAL_NAME: "my-group"}, deleting=True)
        reconciler, _, _ = _reconciler(hooks)

        with pytest.raises(kopf.TemporaryError) as exc_info:
            reconciler.delete(body, kopf.Patch())

        assert exc_info.value.delay == DELETE_POLL_SECONDS

    def test_delete_skips_reference_resolution(self):
        """Test deletion does not wait for referenced objects."""
        kube = Mock()
        hooks = _hooks(exists=False)
        fields = [ReferenceField("cacheSubnetGroupName", "CacheSubnetGroup")]
        reconciler, _, _ = _reconciler(hooks, kube=kube, reference_fields=fields)
        body = _body(
            annotations={ANNOTATION_EXTERNAL_NAME: "my-group"},
            spec={"forProvider": {"cacheSubnetGroupNameRef": {"name": "sg"}}},
            deleting=True,
        )

        reconciler.delete(body, kopf.Patch())

        kube.get_object.assert_not_called()
