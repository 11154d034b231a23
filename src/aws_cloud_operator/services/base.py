"""Gateway interfaces the diff helpers depend on.

Drift checks are written against these protocols; the boto3-backed gateways in
``services.aws`` implement them and tests substitute mocks.
"""

from __future__ import annotations

from typing import Any, Protocol


class ProvisionedProductAPI(Protocol):
    """Service Catalog operations used by the provisioned product reconciler."""

    def describe_provisioned_product(self, name: str, accept_language: str | None = None) -> dict[str, Any]:
        ...

    def describe_record(self, record_id: str, accept_language: str | None = None) -> dict[str, Any]:
        ...

    def describe_product(self, product_id: str | None = None, name: str | None = None) -> dict[str, Any]:
        ...

    def get_provisioned_product_outputs(self, name: str, accept_language: str | None = None) -> list[dict[str, Any]]:
        ...

    def get_stack_parameters(self, outputs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Parameters of the CloudFormation stack backing the product."""
        ...

    def provision_product(self, **params: Any) -> dict[str, Any]:
        ...

    def update_provisioned_product(self, **params: Any) -> dict[str, Any]:
        ...

    def terminate_provisioned_product(self, **params: Any) -> dict[str, Any]:
        ...
