"""Drift detection for Service Catalog provisioned products.

The real state of a provisioned product lives in the CloudFormation stack it
launched, so provisioning parameters are compared against that stack.
"""

from __future__ import annotations

from typing import Any

from ..constants import REASON_AVAILABLE, REASON_CREATING, REASON_DELETING, REASON_UNAVAILABLE
from ..errors import InternalValidationError
from ..services.base import ProvisionedProductAPI

STATUS_AVAILABLE = "AVAILABLE"
STATUS_UNDER_CHANGE = "UNDER_CHANGE"
STATUS_TAINTED = "TAINTED"
STATUS_ERROR = "ERROR"
STATUS_PLAN_IN_PROGRESS = "PLAN_IN_PROGRESS"

RECORD_TYPE_PROVISION = "PROVISION_PRODUCT"
RECORD_TYPE_UPDATE = "UPDATE_PROVISIONED_PRODUCT"
RECORD_TYPE_TERMINATE = "TERMINATE_PROVISIONED_PRODUCT"

MSG_UPDATING = "provisioned product is updating, availability depends on product"
MSG_PLAN_IN_PROGRESS = "provisioned product is awaiting plan approval"

# GetProvisionedProductOutputs fails this way when no provisioning ever succeeded
NO_SUCCESSFUL_RECORD_MESSAGE = "Last Successful Provisioning Record doesn't exist."


def parameters_to_map(parameters: list[dict[str, Any]] | None) -> dict[str, str]:
    """Normalize ``[{key, value}]`` or ``[{ParameterKey, ParameterValue}]`` into a dict."""
    result: dict[str, str] = {}
    for p in parameters or []:
        key = p.get("key", p.get("Key", p.get("ParameterKey")))
        value = p.get("value", p.get("Value", p.get("ParameterValue")))
        if key is not None:
            result[key] = "" if value is None else str(value)
    return result


def provisioning_parameters_changed(
    desired: list[dict[str, Any]] | None,
    stack_parameters: list[dict[str, Any]],
    last_parameters: list[dict[str, Any]] | None = None,
) -> bool:
    """Return whether the desired provisioning parameters drifted.

    Parameters are first compared with the last set applied through the
    operator, then with the stack. A desired key missing from the stack is
    drift; stack keys absent from desired are product defaults and ignored.
    """
    wanted = {k: v.strip() for k, v in parameters_to_map(desired).items()}
    if last_parameters is not None:
        last = {k: v.strip() for k, v in parameters_to_map(last_parameters).items()}
        if last != wanted:
            return True

    stack = parameters_to_map(stack_parameters)
    for key, value in wanted.items():
        if key not in stack or stack[key].strip() != value:
            return True
    return False


def resolve_product_ids(
    params: dict[str, Any],
    client: ProvisionedProductAPI,
) -> tuple[str | None, str | None]:
    """Resolve the desired product and provisioning artifact to their ids.

    Users may name either by id or by name; names are looked up through
    DescribeProduct.

    Raises:
        InternalValidationError: If the named artifact does not belong to the product
    """
    product_id = params.get("productId")
    artifact_id = params.get("provisioningArtifactId")
    if product_id and artifact_id:
        return product_id, artifact_id

    if product_id:
        product = client.describe_product(product_id=product_id)
    else:
        product = client.describe_product(name=params.get("productName"))
    product_id = product_id or (product.get("ProductViewSummary") or {}).get("ProductId")

    if not artifact_id:
        artifact_name = params.get("provisioningArtifactName")
        for artifact in product.get("ProvisioningArtifacts") or []:
            if artifact.get("Name") == artifact_name:
                artifact_id = artifact.get("Id")
                break
        else:
            raise InternalValidationError(f"provisioning artifact {artifact_name} not found")
    return product_id, artifact_id


def product_or_artifact_changed(
    params: dict[str, Any],
    detail: dict[str, Any],
    client: ProvisionedProductAPI,
) -> bool:
    product_id, artifact_id = resolve_product_ids(params, client)
    return product_id != detail.get("ProductId") or artifact_id != detail.get("ProvisioningArtifactId")


def ready_state(status: str | None, record_type: str | None, status_message: str | None = None) -> tuple[bool, str, str]:
    """Map a provisioned product status to the Ready condition.

    Returns:
        Tuple of (ready, reason, message)
    """
    if status == STATUS_AVAILABLE:
        return True, REASON_AVAILABLE, ""
    if status == STATUS_UNDER_CHANGE:
        if record_type == RECORD_TYPE_PROVISION:
            return False, REASON_CREATING, ""
        if record_type == RECORD_TYPE_TERMINATE:
            return False, REASON_DELETING, ""
        return False, REASON_UNAVAILABLE, MSG_UPDATING
    if status == STATUS_PLAN_IN_PROGRESS:
        return False, REASON_UNAVAILABLE, MSG_PLAN_IN_PROGRESS
    if status in (STATUS_ERROR, STATUS_TAINTED):
        message = f"provisioned product has status {status}"
        if status_message:
            message = f"{message}: {status_message}"
        return False, REASON_UNAVAILABLE, message
    return False, REASON_UNAVAILABLE, f"provisioned product has status {status or 'unknown'}"
