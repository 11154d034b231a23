"""The common envelope shared by every managed resource kind."""

from __future__ import annotations

import copy
from typing import Any

import kopf

from ..constants import (
    ANNOTATION_EXTERNAL_NAME,
    ANNOTATION_PAUSED,
    DEFAULT_PROVIDER_CONFIG,
    DELETION_POLICY_DELETE,
    MANAGEMENT_ALL,
    MANAGEMENT_CREATE,
    MANAGEMENT_DELETE,
    MANAGEMENT_LATE_INITIALIZE,
    MANAGEMENT_OBSERVE,
    MANAGEMENT_UPDATE,
)

# Single-valued managementPolicy values and the actions they allow
LEGACY_MANAGEMENT_POLICIES = {
    "FullControl": [MANAGEMENT_ALL],
    "ObserveOnly": [MANAGEMENT_OBSERVE],
    "OrphanOnDelete": [MANAGEMENT_OBSERVE, MANAGEMENT_CREATE, MANAGEMENT_UPDATE, MANAGEMENT_LATE_INITIALIZE],
}


class ManagedResource:
    """Working copy of a managed object for one reconciliation pass.

    Hooks read and mutate ``for_provider``, ``at_provider``, ``annotations``
    and ``conditions`` freely; nothing reaches the API server until
    :meth:`apply_to` writes the differences into a kopf patch.
    """

    def __init__(self, body: dict[str, Any]) -> None:
        self.body = body
        self._original = copy.deepcopy(dict(body))
        metadata = self._original.get("metadata") or {}
        spec = self._original.get("spec") or {}
        status = self._original.get("status") or {}

        self.kind: str = self._original.get("kind", "")
        self.name: str = metadata.get("name", "")
        self.uid: str = metadata.get("uid", "")
        self.generation: int = metadata.get("generation", 0)
        self.deletion_timestamp = metadata.get("deletionTimestamp")
        self.annotations: dict[str, str] = copy.deepcopy(metadata.get("annotations") or {})
        self.spec: dict[str, Any] = spec
        self.for_provider: dict[str, Any] = copy.deepcopy(spec.get("forProvider") or {})
        self.at_provider: dict[str, Any] = copy.deepcopy(status.get("atProvider") or {})
        self.conditions: list[dict[str, Any]] = copy.deepcopy(status.get("conditions") or [])

    @property
    def meta(self) -> dict[str, Any]:
        return self._original.get("metadata") or {}

    @property
    def external_name(self) -> str:
        return self.annotations.get(ANNOTATION_EXTERNAL_NAME, "")

    @external_name.setter
    def external_name(self, value: str) -> None:
        self.annotations[ANNOTATION_EXTERNAL_NAME] = value

    @property
    def deletion_policy(self) -> str:
        return self.spec.get("deletionPolicy") or DELETION_POLICY_DELETE

    @property
    def management_policies(self) -> list[str]:
        policies = self.spec.get("managementPolicies")
        if policies:
            return list(policies)
        legacy = self.spec.get("managementPolicy")
        if legacy:
            return list(LEGACY_MANAGEMENT_POLICIES.get(legacy, [legacy]))
        return [MANAGEMENT_ALL]

    def should(self, action: str) -> bool:
        """Return whether the management policies allow ``action``."""
        policies = self.management_policies
        return MANAGEMENT_ALL in policies or action in policies

    @property
    def provider_config_name(self) -> str:
        return (self.spec.get("providerConfigRef") or {}).get("name") or DEFAULT_PROVIDER_CONFIG

    @property
    def connection_secret_ref(self) -> dict[str, str] | None:
        ref = self.spec.get("writeConnectionSecretToRef") or {}
        if not ref.get("name") or not ref.get("namespace"):
            return None
        return {"namespace": ref["namespace"], "name": ref["name"]}

    @property
    def paused(self) -> bool:
        return self.annotations.get(ANNOTATION_PAUSED, "").lower() == "true"

    @property
    def deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    @property
    def initial_at_provider(self) -> dict[str, Any]:
        """status.atProvider as it was when the pass started."""
        return (self._original.get("status") or {}).get("atProvider") or {}

    def rollback_observation(self) -> None:
        """Restore status.atProvider to what the pass started with."""
        self.at_provider = copy.deepcopy(self.initial_at_provider)

    def apply_to(self, patch: kopf.Patch) -> None:
        """Write every change made during the pass into ``patch``."""
        original_spec = (self._original.get("spec") or {}).get("forProvider") or {}
        if self.for_provider != original_spec:
            patch.spec["forProvider"] = copy.deepcopy(self.for_provider)

        original_annotations = self.meta.get("annotations") or {}
        changed = {k: v for k, v in self.annotations.items() if original_annotations.get(k) != v}
        if changed:
            patch.metadata.setdefault("annotations", {}).update(changed)

        original_observation = (self._original.get("status") or {}).get("atProvider") or {}
        if self.at_provider != original_observation:
            at_provider: dict[str, Any] = {k: None for k in original_observation if k not in self.at_provider}
            at_provider.update(copy.deepcopy(self.at_provider))
            patch.status["atProvider"] = at_provider

        patch.status["conditions"] = self.conditions
        patch.status["observedGeneration"] = self.generation
