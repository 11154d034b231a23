"""Service Catalog gateway, with the CloudFormation lookups behind provisioned products."""

from __future__ import annotations

from typing import Any

from ...utils.deadline import Deadline
from .base import AWSService
from .session import AWSClientConfig

# Output key under which Service Catalog exposes the backing stack
CLOUDFORMATION_STACK_ARN_OUTPUT_KEY = "CloudformationStackARN"


class ServiceCatalogGateway(AWSService):
    """Provisioned product, record and product operations."""

    service_name = "servicecatalog"
    already_exists_codes = frozenset({"DuplicateResourceException"})
    conflict_codes = frozenset({"ResourceInUseException"})

    def __init__(
        self,
        client_config: AWSClientConfig | None = None,
        deadline: Deadline | None = None,
        client: Any = None,
        cloudformation_client: Any = None,
    ) -> None:
        super().__init__(client_config, deadline, client)
        if cloudformation_client is None and client_config is not None:
            cloudformation_client = client_config.create_client("cloudformation")
        self.cloudformation = cloudformation_client

    def describe_provisioned_product(self, name: str, accept_language: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"Name": name}
        if accept_language:
            params["AcceptLanguage"] = accept_language
        return self._call("describe_provisioned_product", **params)

    def describe_record(self, record_id: str, accept_language: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"Id": record_id}
        if accept_language:
            params["AcceptLanguage"] = accept_language
        return self._call("describe_record", **params)

    def describe_product(self, product_id: str | None = None, name: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if product_id:
            params["Id"] = product_id
        if name:
            params["Name"] = name
        return self._call("describe_product", **params)

    def get_provisioned_product_outputs(self, name: str, accept_language: str | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"ProvisionedProductName": name}
        if accept_language:
            params["AcceptLanguage"] = accept_language
        return self._call("get_provisioned_product_outputs", **params).get("Outputs", [])

    def provision_product(self, **params: Any) -> dict[str, Any]:
        return self._call("provision_product", **params)

    def update_provisioned_product(self, **params: Any) -> dict[str, Any]:
        return self._call("update_provisioned_product", **params)

    def terminate_provisioned_product(self, **params: Any) -> dict[str, Any]:
        return self._call("terminate_provisioned_product", **params)

    def get_stack_parameters(self, outputs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Return the parameters of the CloudFormation stack named in the product outputs.

        Products without a stack ARN output have no parameters to compare.
        """
        stack_arn = next(
            (o.get("OutputValue") for o in outputs if o.get("OutputKey") == CLOUDFORMATION_STACK_ARN_OUTPUT_KEY),
            None,
        )
        if not stack_arn:
            return []
        response = self._invoke(self.cloudformation, "cloudformation", "describe_stacks", {"StackName": stack_arn})
        stacks = response.get("Stacks") or []
        if not stacks:
            return []
        return stacks[0].get("Parameters", [])
