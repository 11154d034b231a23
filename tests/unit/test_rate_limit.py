"""Tests for rate limiting utilities."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from kubernetes.client.exceptions import ApiException

from aws_cloud_operator.utils import rate_limit
from aws_cloud_operator.utils.rate_limit import (
    _Pacer,
    backoff_delay,
    handle_rate_limit_error,
    rate_limit_aws,
    rate_limit_k8s,
)


class TestRateLimitDecorators:
    """Test cases for API rate limiting decorators."""

    def test_rate_limit_k8s_decorator(self):
        """Test that k8s rate limiting decorator passes calls through."""
        call_count = 0

        @rate_limit_k8s
        def test_func():
            nonlocal call_count
            call_count += 1
            return "success"

        assert test_func() == "success"
        assert call_count == 1

    def test_rate_limit_aws_with_args(self):
        """Test AWS rate limiting with function arguments."""
        @rate_limit_aws
        def test_func(a, b, c=None):
            return f"{a}-{b}-{c}"

        assert test_func("x", "y", c="z") == "x-y-z"


class TestPacer:
    """Test cases for the call pacer."""

    @patch("aws_cloud_operator.utils.rate_limit.time.sleep")
    @patch("aws_cloud_operator.utils.rate_limit.time.monotonic")
    def test_sleeps_when_calls_are_too_fast(self, mock_monotonic, mock_sleep):
        """Test that the second call inside the interval waits."""
        mock_monotonic.side_effect = [10.0, 10.0, 10.1, 11.0]
        pacer = _Pacer(1.0)

        pacer.wait()
        pacer.wait()

        mock_sleep.assert_called_once()
        assert mock_sleep.call_args[0][0] == pytest.approx(0.9)

    @patch("aws_cloud_operator.utils.rate_limit.time.sleep")
    def test_zero_rate_never_sleeps(self, mock_sleep):
        """Test that a non-positive rate disables pacing."""
        pacer = _Pacer(0)

        pacer.wait()
        pacer.wait()

        mock_sleep.assert_not_called()


class TestHandleRateLimitError:
    """Test cases for Kubernetes 429 handling."""

    @patch("aws_cloud_operator.utils.rate_limit.time.sleep")
    def test_429_retries_with_backoff(self, mock_sleep):
        """Test that a 429 asks the caller to retry after backing off."""
        assert handle_rate_limit_error(ApiException(status=429), attempt=1) is True
        mock_sleep.assert_called_once_with(2)

    @patch("aws_cloud_operator.utils.rate_limit.time.sleep")
    def test_429_gives_up_after_max_retries(self, mock_sleep):
        """Test that retries stop after max_retries attempts."""
        assert handle_rate_limit_error(ApiException(status=429), attempt=3) is False
        mock_sleep.assert_not_called()

    def test_other_errors_not_retried(self):
        """Test that non rate-limit errors are not retried."""
        assert handle_rate_limit_error(ApiException(status=500), attempt=0) is False
        assert handle_rate_limit_error(ValueError("boom"), attempt=0) is False


class TestBackoffDelay:
    """Test cases for transient requeue backoff."""

    def test_exponential_growth(self):
        """Test that delays double with each retry."""
        with patch.object(rate_limit, "_RETRY_BACKOFF_BASE_SECONDS", 2.0), \
                patch.object(rate_limit, "_RETRY_BACKOFF_MAX_SECONDS", 300.0):
            assert backoff_delay(0) == 2.0
            assert backoff_delay(1) == 4.0
            assert backoff_delay(3) == 16.0

    def test_capped_at_maximum(self):
        """Test that delays never exceed the configured maximum."""
        with patch.object(rate_limit, "_RETRY_BACKOFF_BASE_SECONDS", 2.0), \
                patch.object(rate_limit, "_RETRY_BACKOFF_MAX_SECONDS", 300.0):
            assert backoff_delay(20) == 300.0
            assert backoff_delay(10_000) == 300.0
