"""Tests for Kubernetes event utilities."""

from __future__ import annotations

from unittest.mock import patch

from aws_cloud_operator.utils.events import (
    emit_event,
    emit_external_created,
    emit_external_deleted,
    emit_external_updated,
    emit_reconcile_failed,
    emit_reconcile_started,
    emit_references_pending,
    emit_validate_failed,
    emit_validate_succeeded,
)

BODY = {
    "apiVersion": "aws.cloud37.dev/v1alpha1",
    "kind": "ReplicationGroup",
    "metadata": {"name": "test-resource", "uid": "uid-1"},
}


class TestEmitEvent:
    """Test cases for emit_event function."""

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_event_normal(self, mock_event):
        """Test emitting normal event."""
        emit_event(BODY, "TestReason", "Test message")

        mock_event.assert_called_once_with(
            BODY,
            reason="TestReason",
            message="Test message",
            type="Normal",
        )

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_event_warning(self, mock_event):
        """Test emitting warning event."""
        emit_event(BODY, "ErrorReason", "Error occurred", type_="Warning")

        mock_event.assert_called_once_with(
            BODY,
            reason="ErrorReason",
            message="Error occurred",
            type="Warning",
        )


class TestReconcileEvents:
    """Test cases for reconciliation events."""

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_reconcile_started(self, mock_event):
        """Test emitting reconcile started event."""
        emit_reconcile_started(BODY)

        call_args = mock_event.call_args
        assert call_args[0][0] == BODY
        assert "started" in call_args[1]["message"].lower()
        assert call_args[1]["type"] == "Normal"

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_reconcile_failed(self, mock_event):
        """Test emitting reconcile failed event."""
        emit_reconcile_failed(BODY, "cannot describe ElastiCache replication group: boom")

        call_args = mock_event.call_args
        assert call_args[1]["reason"] == "ReconcileFailed"
        assert call_args[1]["type"] == "Warning"
        assert "boom" in call_args[1]["message"]

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_references_pending(self, mock_event):
        """Test that unresolved references are reported as warnings."""
        emit_references_pending(BODY, "referenced Subnet a not found")

        call_args = mock_event.call_args
        assert call_args[1]["reason"] == "CannotResolveReferences"
        assert call_args[1]["type"] == "Warning"


class TestValidationEvents:
    """Test cases for validation events."""

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_validate_succeeded(self, mock_event):
        """Test emitting validation succeeded event."""
        emit_validate_succeeded(BODY)
        assert mock_event.call_args[1]["reason"] == "ValidateSucceeded"

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_validate_failed(self, mock_event):
        """Test emitting validation failed event."""
        emit_validate_failed(BODY, "credentials.source is required")

        call_args = mock_event.call_args
        assert call_args[1]["reason"] == "ValidateFailed"
        assert call_args[1]["type"] == "Warning"
        assert call_args[1]["message"] == "credentials.source is required"


class TestExternalResourceEvents:
    """Test cases for external resource lifecycle events."""

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_external_created(self, mock_event):
        """Test emitting created event."""
        emit_external_created(BODY, "my-group")

        call_args = mock_event.call_args
        assert call_args[1]["reason"] == "CreatedExternalResource"
        assert "my-group" in call_args[1]["message"]

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_external_updated_with_diff(self, mock_event):
        """Test that the update event carries the drift description."""
        emit_external_updated(BODY, "my-group", "ReplicaCount")

        message = mock_event.call_args[1]["message"]
        assert message.endswith(": ReplicaCount")

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_external_updated_without_diff(self, mock_event):
        """Test update event without a diff."""
        emit_external_updated(BODY, "my-group")

        assert mock_event.call_args[1]["message"] == "Successfully requested update of my-group"

    @patch("aws_cloud_operator.utils.events.kopf.event")
    def test_emit_external_deleted(self, mock_event):
        """Test emitting deleted event."""
        emit_external_deleted(BODY, "my-group")

        assert mock_event.call_args[1]["reason"] == "DeletedExternalResource"
