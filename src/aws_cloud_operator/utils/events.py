"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_CREATED_EXTERNAL,
    EVENT_REASON_DELETED_EXTERNAL,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_REFERENCES_PENDING,
    EVENT_REASON_UPDATED_EXTERNAL,
    EVENT_REASON_VALIDATE_FAILED,
    EVENT_REASON_VALIDATE_SUCCEEDED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (apiVersion, kind and metadata are used)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_succeeded(body: dict[str, Any]) -> None:
    emit_event(body, EVENT_REASON_VALIDATE_SUCCEEDED, "Validation succeeded")


def emit_validate_failed(body: dict[str, Any], message: str) -> None:
    emit_event(body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_references_pending(body: dict[str, Any], message: str) -> None:
    emit_event(body, EVENT_REASON_REFERENCES_PENDING, message, type_="Warning")


def emit_external_created(body: dict[str, Any], external_name: str) -> None:
    emit_event(body, EVENT_REASON_CREATED_EXTERNAL, f"Successfully requested creation of {external_name}")


def emit_external_updated(body: dict[str, Any], external_name: str, diff: str = "") -> None:
    message = f"Successfully requested update of {external_name}"
    if diff:
        message = f"{message}: {diff}"
    emit_event(body, EVENT_REASON_UPDATED_EXTERNAL, message)


def emit_external_deleted(body: dict[str, Any], external_name: str) -> None:
    emit_event(body, EVENT_REASON_DELETED_EXTERNAL, f"Successfully requested deletion of {external_name}")
