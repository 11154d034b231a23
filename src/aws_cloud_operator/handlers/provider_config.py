"""Handler for ProviderConfig CRD."""

from __future__ import annotations

from typing import Any

import kopf

from .. import metrics
from ..builders.credentials import get_global_region, provider_partition, resolve_client_config
from ..constants import (
    API_GROUP_VERSION,
    CREDENTIALS_SOURCE_INJECTED_IDENTITY,
    CREDENTIALS_SOURCE_IRSA,
    CREDENTIALS_SOURCE_NONE,
    CREDENTIALS_SOURCE_POD_IDENTITY,
    CREDENTIALS_SOURCE_SECRET,
    CREDENTIALS_SOURCE_SERVICE_ACCOUNT,
    KIND_PROVIDER_CONFIG,
    REASON_AVAILABLE,
    REASON_UNAVAILABLE,
)
from ..errors import OperatorError
from ..kube import KubeClient
from ..services.aws.sts import STSGateway
from ..tracing import trace_span
from ..utils.conditions import set_auth_valid_condition, set_ready_condition
from ..utils.errors import sanitize_exception
from ..utils.events import emit_validate_failed, emit_validate_succeeded
from .base import BaseHandler

CREDENTIALS_SOURCES = (
    CREDENTIALS_SOURCE_NONE,
    CREDENTIALS_SOURCE_SECRET,
    CREDENTIALS_SOURCE_SERVICE_ACCOUNT,
    CREDENTIALS_SOURCE_IRSA,
    CREDENTIALS_SOURCE_POD_IDENTITY,
    CREDENTIALS_SOURCE_INJECTED_IDENTITY,
)


def validate_provider_config(spec: dict[str, Any]) -> list[str]:
    """Return the problems that make a ProviderConfig spec unusable."""
    problems = []
    credentials = spec.get("credentials") or {}
    source = credentials.get("source")
    if source not in CREDENTIALS_SOURCES:
        problems.append(f"credentials.source must be one of {', '.join(CREDENTIALS_SOURCES)}")
    if source == CREDENTIALS_SOURCE_SECRET:
        ref = credentials.get("secretRef") or {}
        if not ref.get("namespace") or not ref.get("name"):
            problems.append("credentials.secretRef.namespace and credentials.secretRef.name are required")
    for idx, role in enumerate(spec.get("assumeRoleChain") or []):
        if not role.get("roleARN"):
            problems.append(f"assumeRoleChain[{idx}].roleARN is required")
    endpoint = spec.get("endpoint")
    if endpoint is not None and not endpoint.get("url"):
        problems.append("endpoint.url is required when endpoint is set")
    return problems


class ProviderConfigHandler(BaseHandler):
    """Handler for ProviderConfig resources."""

    def __init__(self, kube: KubeClient | None = None, sts_factory: Any = STSGateway):
        """Initialize ProviderConfig handler."""
        super().__init__(KIND_PROVIDER_CONFIG)
        self._kube = kube
        self.sts_factory = sts_factory

    @property
    def kube(self) -> KubeClient:
        if self._kube is None:
            self._kube = KubeClient()
        return self._kube

    def reconcile(self, body: dict[str, Any], patch: kopf.Patch) -> None:
        """Validate the ProviderConfig and check its credentials against STS."""
        meta = body.get("metadata", {})
        spec = body.get("spec", {})
        status = body.get("status") or {}
        name = meta.get("name", "unknown")
        generation = meta.get("generation")

        with trace_span("reconcile_providerconfig", kind=KIND_PROVIDER_CONFIG, attributes={"providerconfig.name": name}):
            problems = validate_provider_config(spec)
            if problems:
                message = "; ".join(problems)
                emit_validate_failed(body, message)
                raise kopf.PermanentError(f"invalid ProviderConfig {name}: {message}")
            emit_validate_succeeded(body)

            conditions = list(status.get("conditions") or [])
            region = get_global_region(provider_partition(spec))
            identity: dict[str, Any] = {}
            with trace_span("verify_credentials", kind=KIND_PROVIDER_CONFIG):
                try:
                    client_config = resolve_client_config(body, region, self.kube, sts_factory=self.sts_factory)
                    identity = self.sts_factory(client_config).get_caller_identity()
                    auth_valid = True
                    auth_message = "Authentication successful"
                except OperatorError as e:
                    auth_valid = False
                    sanitized_error = sanitize_exception(e)
                    auth_message = f"Authentication failed: {sanitized_error}"
                    metrics.error_total.labels(kind=KIND_PROVIDER_CONFIG, error_type=e.kind).inc()
                    self.log_error(meta, f"Failed to verify credentials: {sanitized_error}", error=e, reason="AuthFailed")

            conditions = set_auth_valid_condition(conditions, auth_valid, auth_message, generation)
            if auth_valid:
                conditions = set_ready_condition(conditions, True, REASON_AVAILABLE, "", generation)
            else:
                conditions = set_ready_condition(
                    conditions, False, REASON_UNAVAILABLE, "ProviderConfig credentials are not valid", generation
                )
            self.record_resource_status(auth_valid)

            patch.status["conditions"] = conditions
            patch.status["observedGeneration"] = generation
            patch.status["accountId"] = identity.get("Account")
            patch.status["arn"] = identity.get("Arn")

    def delete(self, body: dict[str, Any], patch: kopf.Patch) -> None:
        """Handle ProviderConfig resource deletion."""
        meta = body.get("metadata", {})
        self.log_info(meta, "ProviderConfig is being deleted", event="deletion", reason="Deletion")
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = ProviderConfigHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
@kopf.on.update(API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
@kopf.on.resume(API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
def handle_provider_config(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle ProviderConfig resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(body, lambda: _handler.reconcile(body, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
def handle_provider_config_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle ProviderConfig resource deletion."""
    _handler.delete(body, patch)
