"""Prometheus metrics for the AWS Cloud Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "aws_cloud_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "aws_cloud_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "aws_cloud_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "aws_cloud_operator_resource_status_total",
    "Observed readiness of managed resources",
    ["kind", "status"],
)

# External resource lifecycle metrics
external_operations_total = Counter(
    "aws_cloud_operator_external_operations_total",
    "Total number of create/update/delete operations issued for managed resources",
    ["kind", "operation", "result"],
)

# Configuration drift detection metrics
drift_detected_total = Counter(
    "aws_cloud_operator_drift_detected_total",
    "Total number of configuration drift detections",
    ["kind", "update_class"],
)

# Cross-resource reference metrics
reference_resolution_total = Counter(
    "aws_cloud_operator_reference_resolution_total",
    "Total number of reference resolutions",
    ["kind", "result"],
)

connection_secret_writes_total = Counter(
    "aws_cloud_operator_connection_secret_writes_total",
    "Total number of connection secret writes",
    ["kind"],
)

# API call metrics
api_call_total = Counter(
    "aws_cloud_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "aws_cloud_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "aws_cloud_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)
