"""Resolution of cross-resource references into AWS identifiers.

A referenceable field ``<field>`` in ``spec.forProvider`` may be given as a
literal value, by name (``<field>Ref``), or by label selector
(``<field>Selector``). List fields use ``<field>Refs`` and ``<field>Selector``.
Each form is parsed into a tagged variant and the resolver dispatches on it;
resolved values are written back as literals, and selector results are also
recorded as refs so later passes resolve by name.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Union

from . import metrics
from .constants import ANNOTATION_EXTERNAL_NAME
from .errors import ReferencePendingError
from .kube import KubeClient
from .utils.conditions import is_ready

logger = logging.getLogger(__name__)

Extractor = Callable[[dict[str, Any]], Union[str, None]]


def external_name(obj: dict[str, Any]) -> str | None:
    """Extract the external-name annotation of a referenced object."""
    return ((obj.get("metadata") or {}).get("annotations") or {}).get(ANNOTATION_EXTERNAL_NAME)


def status_arn(obj: dict[str, Any]) -> str | None:
    """Extract the ARN reported in a referenced object's status."""
    return ((obj.get("status") or {}).get("atProvider") or {}).get("arn")


def for_provider_field(name: str) -> Extractor:
    """Return an extractor for a field of the referenced object's spec.forProvider."""
    def extract(obj: dict[str, Any]) -> str | None:
        return ((obj.get("spec") or {}).get("forProvider") or {}).get(name)
    return extract


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Ref:
    name: str


@dataclass(frozen=True)
class Selector:
    match_labels: tuple[tuple[str, str], ...]

    @property
    def labels(self) -> dict[str, str]:
        return dict(self.match_labels)


ReferenceValue = Union[Literal, Ref, Selector, list]


@dataclass(frozen=True)
class ReferenceField:
    """Declares one referenceable field of a managed kind."""

    field: str
    target_kind: str
    extractor: Extractor = external_name
    multi: bool = False
    ref_field: str = ""
    selector_field: str = ""

    @property
    def ref_key(self) -> str:
        return self.ref_field or (f"{self.field}Refs" if self.multi else f"{self.field}Ref")

    @property
    def selector_key(self) -> str:
        return self.selector_field or f"{self.field}Selector"


def parse_reference(for_provider: dict[str, Any], ref_field: ReferenceField) -> ReferenceValue | None:
    """Classify the form in which a field is given.

    A ref wins over a selector, and a selector is only consulted while the field
    has no value yet. Multi-value refs parse to a list of ``Ref`` in declared order.
    """
    refs = for_provider.get(ref_field.ref_key)
    if refs:
        if ref_field.multi:
            return [Ref(r["name"]) for r in refs]
        return Ref(refs["name"])

    current = for_provider.get(ref_field.field)
    selector = for_provider.get(ref_field.selector_key)
    if selector and not current:
        labels = selector.get("matchLabels") or {}
        return Selector(tuple(sorted(labels.items())))

    if current in (None, "", []):
        return None
    return Literal(current)


class ReferenceResolver:
    """Resolves the reference fields of a managed object before it is observed."""

    def __init__(self, kube: KubeClient) -> None:
        self.kube = kube

    def resolve(
        self,
        kind: str,
        for_provider: dict[str, Any],
        fields: tuple[ReferenceField, ...] | list[ReferenceField],
    ) -> dict[str, Any]:
        """Return a copy of ``for_provider`` with every reference resolved to a literal.

        Raises:
            ReferencePendingError: If any referenced object is missing, not ready,
                or has no identifier yet
        """
        resolved = copy.deepcopy(for_provider)
        for ref_field in fields:
            parsed = parse_reference(resolved, ref_field)
            if parsed is None or isinstance(parsed, Literal):
                continue
            try:
                self._resolve_field(resolved, ref_field, parsed)
            except ReferencePendingError:
                metrics.reference_resolution_total.labels(kind=kind, result="pending").inc()
                raise
            metrics.reference_resolution_total.labels(kind=kind, result="resolved").inc()
        return resolved

    def _resolve_field(self, for_provider: dict[str, Any], ref_field: ReferenceField, parsed: ReferenceValue) -> None:
        if isinstance(parsed, list):
            for_provider[ref_field.field] = [self._resolve_ref(ref_field, ref) for ref in parsed]
        elif isinstance(parsed, Ref):
            for_provider[ref_field.field] = self._resolve_ref(ref_field, parsed)
        elif ref_field.multi:
            selected = self._select_all(ref_field, parsed)
            for_provider[ref_field.field] = sorted(value for _, value in selected)
            for_provider[ref_field.ref_key] = [{"name": name} for name, _ in sorted(selected)]
        else:
            name, value = self._select_all(ref_field, parsed)[0]
            for_provider[ref_field.field] = value
            for_provider[ref_field.ref_key] = {"name": name}

    def _resolve_ref(self, ref_field: ReferenceField, ref: Ref) -> str:
        obj = self.kube.get_object(ref_field.target_kind, ref.name)
        if obj is None:
            raise ReferencePendingError(
                f"cannot resolve spec.forProvider.{ref_field.field}: "
                f"referenced {ref_field.target_kind} {ref.name} not found"
            )
        if not is_ready(obj):
            raise ReferencePendingError(
                f"cannot resolve spec.forProvider.{ref_field.field}: "
                f"referenced {ref_field.target_kind} {ref.name} is not ready"
            )
        value = ref_field.extractor(obj)
        if not value:
            raise ReferencePendingError(
                f"cannot resolve spec.forProvider.{ref_field.field}: "
                f"referenced {ref_field.target_kind} {ref.name} has no identifier yet"
            )
        return value

    def _candidates(self, ref_field: ReferenceField, selector: Selector) -> list[tuple[str, str]]:
        objects = self.kube.list_objects(ref_field.target_kind, selector.labels)
        candidates = []
        for obj in sorted(objects, key=lambda o: o.get("metadata", {}).get("name", "")):
            value = ref_field.extractor(obj)
            if is_ready(obj) and value:
                candidates.append((obj["metadata"]["name"], value))
        return candidates

    def _select_all(self, ref_field: ReferenceField, selector: Selector) -> list[tuple[str, str]]:
        candidates = self._candidates(ref_field, selector)
        if not candidates:
            raise ReferencePendingError(
                f"cannot resolve spec.forProvider.{ref_field.field}: "
                f"no ready {ref_field.target_kind} matches selector {selector.labels}"
            )
        return candidates
