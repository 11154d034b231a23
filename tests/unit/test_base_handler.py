"""Tests for base handler functionality."""

from __future__ import annotations

from unittest.mock import Mock, patch

import kopf
import pytest

from aws_cloud_operator.constants import FINALIZER
from aws_cloud_operator.errors import ThrottledError
from aws_cloud_operator.handlers.base import BaseHandler

BODY = {"metadata": {"name": "test-resource", "uid": "uid-1"}}


class TestBaseHandler:
    """Test cases for BaseHandler class."""

    def test_init(self):
        """Test handler initialization."""
        handler = BaseHandler(kind="TestKind")
        assert handler.kind == "TestKind"
        assert handler.logger is not None

    def test_ensure_finalizer_adds_when_missing(self):
        """Test that finalizer is added when not present."""
        handler = BaseHandler(kind="TestKind")
        patch_ = kopf.Patch()

        handler.ensure_finalizer({"finalizers": []}, patch_)

        assert FINALIZER in patch_.metadata["finalizers"]

    def test_ensure_finalizer_no_patch_when_present(self):
        """Test that nothing is patched when the finalizer exists."""
        handler = BaseHandler(kind="TestKind")
        patch_ = kopf.Patch()

        handler.ensure_finalizer({"finalizers": [FINALIZER]}, patch_)

        assert "finalizers" not in patch_.metadata

    def test_ensure_finalizer_creates_list_when_absent(self):
        """Test that finalizers list is created when absent."""
        handler = BaseHandler(kind="TestKind")
        patch_ = kopf.Patch()

        handler.ensure_finalizer({}, patch_)

        assert patch_.metadata["finalizers"] == [FINALIZER]

    def test_remove_finalizer(self):
        """Test that finalizer is removed and others are kept."""
        handler = BaseHandler(kind="TestKind")
        patch_ = kopf.Patch()

        handler.remove_finalizer({"finalizers": [FINALIZER, "other-finalizer"]}, patch_)

        assert patch_.metadata["finalizers"] == ["other-finalizer"]

    def test_remove_finalizer_sets_none_when_empty(self):
        """Test that finalizers is set to None when last finalizer is removed."""
        handler = BaseHandler(kind="TestKind")
        patch_ = kopf.Patch()

        handler.remove_finalizer({"finalizers": [FINALIZER]}, patch_)

        assert patch_.metadata["finalizers"] is None

    @patch("aws_cloud_operator.handlers.base.emit_reconcile_started")
    @patch("aws_cloud_operator.handlers.base.metrics")
    def test_reconcile_with_metrics_success(self, mock_metrics, mock_emit_started):
        """Test successful reconciliation returns the result and records metrics."""
        handler = BaseHandler(kind="TestKind")
        reconcile_fn = Mock(return_value="done")

        assert handler.reconcile_with_metrics(BODY, reconcile_fn) == "done"

        reconcile_fn.assert_called_once()
        mock_emit_started.assert_called_once_with(BODY)
        mock_metrics.reconcile_total.labels.assert_any_call(kind="TestKind", result="started")
        mock_metrics.reconcile_total.labels.assert_any_call(kind="TestKind", result="success")
        assert mock_metrics.reconcile_duration_seconds.labels.called

    @patch("aws_cloud_operator.handlers.base.emit_reconcile_failed")
    @patch("aws_cloud_operator.handlers.base.emit_reconcile_started")
    @patch("aws_cloud_operator.handlers.base.metrics")
    @patch("aws_cloud_operator.handlers.base.sanitize_exception")
    def test_reconcile_with_metrics_failure(
        self, mock_sanitize, mock_metrics, mock_emit_started, mock_emit_failed
    ):
        """Test failed reconciliation with metrics and error handling."""
        handler = BaseHandler(kind="TestKind")
        test_error = ValueError("Test error")
        mock_sanitize.return_value = "Sanitized error"

        def failing_fn():
            raise test_error

        with pytest.raises(ValueError):
            handler.reconcile_with_metrics(BODY, failing_fn)

        mock_sanitize.assert_any_call(test_error)
        mock_emit_started.assert_called_once_with(BODY)
        mock_emit_failed.assert_called_once_with(BODY, "Reconciliation failed: Sanitized error")
        mock_metrics.error_total.labels.assert_called_with(kind="TestKind", error_type="ValueError")
        mock_metrics.reconcile_total.labels.assert_any_call(kind="TestKind", result="error")

    @patch("aws_cloud_operator.handlers.base.emit_reconcile_failed")
    @patch("aws_cloud_operator.handlers.base.emit_reconcile_started")
    @patch("aws_cloud_operator.handlers.base.metrics")
    def test_error_metric_uses_error_kind(self, mock_metrics, mock_emit_started, mock_emit_failed):
        """Test that operator errors are counted by their kind."""
        handler = BaseHandler(kind="TestKind")

        def failing_fn():
            raise ThrottledError("Rate exceeded")

        with pytest.raises(ThrottledError):
            handler.reconcile_with_metrics(BODY, failing_fn)

        mock_metrics.error_total.labels.assert_called_with(kind="TestKind", error_type="Throttled")

    @patch("aws_cloud_operator.handlers.base.metrics")
    def test_record_resource_status(self, mock_metrics):
        """Test readiness is recorded as a status metric."""
        handler = BaseHandler(kind="TestKind")

        handler.record_resource_status(True)
        mock_metrics.resource_status_total.labels.assert_called_with(kind="TestKind", status="ready")

        handler.record_resource_status(False)
        mock_metrics.resource_status_total.labels.assert_called_with(kind="TestKind", status="not_ready")
