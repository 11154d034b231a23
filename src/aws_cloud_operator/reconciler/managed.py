"""The generic managed-resource reconciler.

One pass resolves references, observes the external resource and then
creates, updates or does nothing. Deletion observes first and keeps the
finalizer until AWS reports the resource gone. Each kind plugs in its own
hooks; the reconciler itself knows nothing about AWS services.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Iterable

import kopf

from .. import metrics
from ..constants import (
    ANNOTATION_CREATE_SUCCEEDED,
    COND_READY,
    DELETION_POLICY_ORPHAN,
    MANAGEMENT_CREATE,
    MANAGEMENT_DELETE,
    MANAGEMENT_UPDATE,
    REASON_RECONCILE_PAUSED,
)
from ..errors import (
    CreatePendingError,
    ExternalResourceMissingError,
    InternalValidationError,
    InvalidParameterError,
    OperatorError,
    ReferencePendingError,
)
from ..handlers.base import BaseHandler
from ..kube import KubeClient
from ..references import ReferenceField, ReferenceResolver
from ..tracing import trace_span
from ..utils.conditions import (
    is_condition_true,
    set_creating_condition,
    set_deleting_condition,
    set_synced_condition,
)
from ..utils.context import with_correlation_id
from ..utils.deadline import Deadline
from ..utils.errors import sanitize_exception
from ..utils.events import (
    emit_external_created,
    emit_external_deleted,
    emit_external_updated,
    emit_references_pending,
)
from ..utils.rate_limit import backoff_delay
from .external import AWSConnector, ExternalObservation, HookedExternal, ResourceHooks
from .resource import ManagedResource

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "60"))
DELETE_POLL_SECONDS = int(os.getenv("DELETE_POLL_SECONDS", "15"))
CREATE_GRACE_SECONDS = int(os.getenv("CREATE_GRACE_SECONDS", "60"))

# Errors that need a spec change before retrying makes sense
PERMANENT_ERRORS = (InvalidParameterError, InternalValidationError)


def requeue_error(error: OperatorError, retry: int) -> kopf.TemporaryError | kopf.PermanentError:
    """Translate an operator error into the kopf error that schedules the next pass.

    Args:
        error: The error that ended the pass
        retry: kopf retry counter of the failed handler

    Returns:
        The kopf error to raise
    """
    if error.retryable:
        return kopf.TemporaryError(str(error), delay=backoff_delay(retry))
    if isinstance(error, PERMANENT_ERRORS):
        return kopf.PermanentError(str(error))
    return kopf.TemporaryError(str(error), delay=POLL_INTERVAL_SECONDS)


class ManagedReconciler(BaseHandler):
    """Drives observe, create, update and delete for one managed kind."""

    def __init__(
        self,
        kind: str,
        hooks: ResourceHooks,
        connector: AWSConnector,
        reference_fields: Iterable[ReferenceField] = (),
        kube: KubeClient | None = None,
    ) -> None:
        super().__init__(kind)
        self.hooks = hooks
        self.connector = connector
        self.reference_fields = tuple(reference_fields)
        self._kube = kube
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def kube(self) -> KubeClient:
        if self._kube is None:
            self._kube = KubeClient()
        return self._kube

    def _lock_for(self, uid: str) -> threading.Lock:
        # Change handlers and drift timers may run for the same object concurrently
        with self._locks_guard:
            return self._locks.setdefault(uid, threading.Lock())

    def _forget_lock(self, uid: str) -> None:
        with self._locks_guard:
            self._locks.pop(uid, None)

    # Entry points

    def reconcile(self, body: dict[str, Any], patch: kopf.Patch, retry: int = 0) -> None:
        """Run one reconciliation pass and write its outcome into ``patch``.

        Raises:
            kopf.TemporaryError: If the pass failed and should be retried
            kopf.PermanentError: If the pass failed until the spec changes
        """
        mr = ManagedResource(body)
        if mr.deleting:
            return

        with self._lock_for(mr.uid), with_correlation_id():
            self.ensure_finalizer(mr.meta, patch)
            if mr.paused:
                self.log_info(mr.meta, "Reconciliation is paused", reason=REASON_RECONCILE_PAUSED)
                mr.conditions = set_synced_condition(
                    mr.conditions,
                    False,
                    "Reconciliation is paused via the pause annotation",
                    reason=REASON_RECONCILE_PAUSED,
                    observed_generation=mr.generation,
                )
                mr.apply_to(patch)
                return

            try:
                self.reconcile_with_metrics(body, lambda: self._reconcile(mr, patch))
            except OperatorError as e:
                self._record_failure(mr, patch, e)
                raise requeue_error(e, retry) from e
            except Exception as e:
                self._record_failure(mr, patch, e)
                raise

    def delete(self, body: dict[str, Any], patch: kopf.Patch, retry: int = 0) -> None:
        """Run one deletion pass.

        Raises:
            kopf.TemporaryError: While AWS has not confirmed the deletion yet
        """
        mr = ManagedResource(body)
        with self._lock_for(mr.uid), with_correlation_id():
            try:
                released = self.reconcile_with_metrics(body, lambda: self._delete(mr, patch))
            except OperatorError as e:
                self._record_failure(mr, patch, e)
                raise requeue_error(e, retry) from e
            except Exception as e:
                self._record_failure(mr, patch, e)
                raise

        if released:
            self._forget_lock(mr.uid)
            return
        raise kopf.TemporaryError(
            f"waiting for {self.kind} {mr.external_name} to be deleted",
            delay=DELETE_POLL_SECONDS,
        )

    # Passes

    def _connect(self, mr: ManagedResource, resolve_references: bool = True) -> HookedExternal:
        if not mr.external_name:
            mr.external_name = mr.name

        if resolve_references and self.reference_fields:
            mr.for_provider = ReferenceResolver(self.kube).resolve(self.kind, mr.for_provider, self.reference_fields)

        return self.connector.connect(mr, self.kube, self.hooks, Deadline())

    def _observe(self, external: HookedExternal, mr: ManagedResource, late_init: bool = True) -> ExternalObservation:
        try:
            return external.observe(mr, late_init=late_init)
        except OperatorError:
            mr.rollback_observation()
            raise

    def _reconcile(self, mr: ManagedResource, patch: kopf.Patch) -> None:
        with trace_span(f"reconcile_{self.kind.lower()}", kind=self.kind, attributes={"resource.name": mr.name}):
            external = self._connect(mr)
            obs = self._observe(external, mr)

            if not obs.resource_exists:
                self._create(external, mr)
            else:
                self._publish(mr, obs.connection_details)
                if obs.late_initialized:
                    self.log_info(mr.meta, "Late-initialized spec.forProvider from AWS", reason="LateInitialized")
                if not obs.resource_up_to_date and mr.should(MANAGEMENT_UPDATE):
                    self._update(external, mr, obs)

            mr.conditions = set_synced_condition(mr.conditions, True, observed_generation=mr.generation)
            self.record_resource_status(is_condition_true(mr.conditions, COND_READY))
            mr.apply_to(patch)

    def _create(self, external: HookedExternal, mr: ManagedResource) -> None:
        if not mr.should(MANAGEMENT_CREATE):
            raise ExternalResourceMissingError(
                f"external resource {mr.external_name} does not exist and the management policy forbids creating it"
            )
        self._check_create_grace(mr)

        with trace_span(f"create_{self.kind.lower()}", kind=self.kind):
            try:
                creation = external.create(mr)
            except OperatorError:
                metrics.external_operations_total.labels(kind=self.kind, operation="create", result="error").inc()
                raise
        metrics.external_operations_total.labels(kind=self.kind, operation="create", result="success").inc()

        mr.annotations[ANNOTATION_CREATE_SUCCEEDED] = datetime.now(timezone.utc).isoformat()
        mr.conditions = set_creating_condition(mr.conditions, mr.generation)
        self._publish(mr, creation.connection_details)
        emit_external_created(mr.body, mr.external_name)
        self.log_info(mr.meta, f"Requested creation of {mr.external_name}", event="create", reason="Created")

    def _check_create_grace(self, mr: ManagedResource) -> None:
        stamp = mr.annotations.get(ANNOTATION_CREATE_SUCCEEDED)
        if not stamp:
            return
        try:
            created_at = datetime.fromisoformat(stamp)
        except ValueError:
            return
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        age = (datetime.now(timezone.utc) - created_at).total_seconds()
        if age < CREATE_GRACE_SECONDS:
            raise CreatePendingError(
                f"{mr.external_name} was created {int(age)}s ago but is not visible yet"
            )

    def _update(self, external: HookedExternal, mr: ManagedResource, obs: ExternalObservation) -> None:
        update_class = obs.diff.partition(":")[0] or "unknown"
        metrics.drift_detected_total.labels(kind=self.kind, update_class=update_class).inc()
        self.log_info(mr.meta, f"Drift detected: {obs.diff or 'unknown'}", event="drift", reason="DriftDetected")

        with trace_span(f"update_{self.kind.lower()}", kind=self.kind, attributes={"update.diff": obs.diff}):
            try:
                update = external.update(mr)
            except OperatorError:
                metrics.external_operations_total.labels(kind=self.kind, operation="update", result="error").inc()
                raise
        metrics.external_operations_total.labels(kind=self.kind, operation="update", result="success").inc()

        self._publish(mr, update.connection_details)
        emit_external_updated(mr.body, mr.external_name, update.diff or obs.diff)

    def _delete(self, mr: ManagedResource, patch: kopf.Patch) -> bool:
        """Return True once the object may be released."""
        with trace_span(f"delete_{self.kind.lower()}", kind=self.kind, attributes={"resource.name": mr.name}):
            if mr.deletion_policy == DELETION_POLICY_ORPHAN or not mr.should(MANAGEMENT_DELETE):
                self.log_info(mr.meta, f"Orphaning {mr.external_name or mr.name}", event="deletion", reason="Orphaned")
                self._release(mr, patch)
                return True
            if not mr.external_name:
                self._release(mr, patch)
                return True

            external = self._connect(mr, resolve_references=False)
            obs = self._observe(external, mr, late_init=False)
            if not obs.resource_exists:
                self._release(mr, patch)
                return True

            mr.conditions = set_deleting_condition(mr.conditions, mr.generation)
            try:
                issued = external.delete(mr)
            except OperatorError:
                metrics.external_operations_total.labels(kind=self.kind, operation="delete", result="error").inc()
                raise
            if issued:
                metrics.external_operations_total.labels(kind=self.kind, operation="delete", result="success").inc()
                emit_external_deleted(mr.body, mr.external_name)
            mr.apply_to(patch)
            return False

    # Bookkeeping

    def _publish(self, mr: ManagedResource, details: dict[str, str]) -> None:
        ref = mr.connection_secret_ref
        if not details or ref is None:
            return
        if self.kube.publish_connection_details(ref["namespace"], ref["name"], details):
            metrics.connection_secret_writes_total.labels(kind=self.kind).inc()

    def _release(self, mr: ManagedResource, patch: kopf.Patch) -> None:
        ref = mr.connection_secret_ref
        if ref is not None:
            self.kube.delete_secret(ref["namespace"], ref["name"])
        self.remove_finalizer(mr.meta, patch)
        self.log_info(mr.meta, f"Released {self.kind} {mr.name}", event="deletion", reason="Released")

    def _record_failure(self, mr: ManagedResource, patch: kopf.Patch, error: Exception) -> None:
        message = sanitize_exception(error)
        if isinstance(error, ReferencePendingError):
            emit_references_pending(mr.body, message)
        mr.conditions = set_synced_condition(mr.conditions, False, message, observed_generation=mr.generation)
        mr.apply_to(patch)
