"""Utility functions for the AWS Cloud Operator."""

from .conditions import (
    get_condition,
    is_condition_true,
    is_ready,
    set_ready_condition,
    set_synced_condition,
    update_condition,
)
from .context import get_context_dict, get_correlation_id, with_correlation_id
from .events import emit_event
from .rate_limit import backoff_delay, handle_rate_limit_error, rate_limit_aws, rate_limit_k8s
from .secrets import get_secret_value, publish_connection_details

__all__ = [
    "update_condition",
    "get_condition",
    "is_condition_true",
    "is_ready",
    "set_ready_condition",
    "set_synced_condition",
    "emit_event",
    "get_secret_value",
    "publish_connection_details",
    "rate_limit_k8s",
    "rate_limit_aws",
    "handle_rate_limit_error",
    "backoff_delay",
    "get_correlation_id",
    "with_correlation_id",
    "get_context_dict",
]
