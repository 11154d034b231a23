"""Rate limiting and backoff utilities for API calls."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

from kubernetes.client.exceptions import ApiException

from .. import metrics

_F = TypeVar("_F", bound=Callable[..., Any])

# Rate limit configuration
_K8S_RATE_LIMIT_PER_SECOND = float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0"))
_AWS_RATE_LIMIT_PER_SECOND = float(os.getenv("AWS_RATE_LIMIT_PER_SECOND", "5.0"))

_RETRY_BACKOFF_BASE_SECONDS = float(os.getenv("RETRY_BACKOFF_BASE_SECONDS", "2"))
_RETRY_BACKOFF_MAX_SECONDS = float(os.getenv("RETRY_BACKOFF_MAX_SECONDS", "300"))


class _Pacer:
    """Spaces calls at least ``1 / rate`` seconds apart across worker threads."""

    def __init__(self, rate_per_second: float) -> None:
        self.min_interval = 1.0 / rate_per_second if rate_per_second > 0 else 0.0
        self._last_call = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            delay = self._last_call + self.min_interval - now
            if delay > 0:
                time.sleep(delay)
            self._last_call = time.monotonic()


_k8s_pacer = _Pacer(_K8S_RATE_LIMIT_PER_SECOND)
_aws_pacer = _Pacer(_AWS_RATE_LIMIT_PER_SECOND)


def rate_limit_k8s(func: _F) -> _F:
    """Decorator to rate limit Kubernetes API calls."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _k8s_pacer.wait()
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def rate_limit_aws(func: _F) -> _F:
    """Decorator to rate limit AWS API calls.

    botocore retries throttled calls itself; this keeps a busy operator from
    provoking the throttling in the first place.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _aws_pacer.wait()
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def handle_rate_limit_error(e: Exception, attempt: int, max_retries: int = 3) -> bool:
    """Check if a Kubernetes API exception is a rate limit error and back off.

    Args:
        e: Exception raised by the Kubernetes client
        attempt: Number of retries already made for this call
        max_retries: Maximum number of retries

    Returns:
        True if the caller should retry the call, False otherwise
    """
    if not isinstance(e, ApiException):
        return False
    if e.status == 429 or (e.status == 503 and "rate limit" in str(e).lower()):
        metrics.rate_limit_hits_total.labels(api_type="k8s").inc()
        if attempt < max_retries:
            # 1s, 2s, 4s
            time.sleep(2 ** attempt)
            return True
    return False


def backoff_delay(retry: int) -> float:
    """Return the requeue delay for the given retry count of a transient failure."""
    return min(_RETRY_BACKOFF_BASE_SECONDS * (2 ** min(max(retry, 0), 30)), _RETRY_BACKOFF_MAX_SECONDS)
