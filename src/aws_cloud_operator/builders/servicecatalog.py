"""Builders translating between ProvisionedProduct specs and Service Catalog shapes."""

from __future__ import annotations

from typing import Any

from ..utils.passwords import generate_idempotency_token


def _compact(params: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None and v != []}


def _parameters(params: dict[str, Any]) -> list[dict[str, str]]:
    return [
        {"Key": p["key"], "Value": "" if p.get("value") is None else str(p["value"])}
        for p in params.get("provisioningParameters") or []
    ]


def _product_fields(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "AcceptLanguage": params.get("acceptLanguage"),
        "PathId": params.get("pathId"),
        "PathName": params.get("pathName"),
        "ProductId": params.get("productId"),
        "ProductName": params.get("productName"),
        "ProvisioningArtifactId": params.get("provisioningArtifactId"),
        "ProvisioningArtifactName": params.get("provisioningArtifactName"),
        "ProvisioningParameters": _parameters(params),
    }


def build_provision_product_input(
    params: dict[str, Any],
    provisioned_product_name: str,
    tags: dict[str, str],
) -> dict[str, Any]:
    """Build ProvisionProduct parameters with a fresh idempotency token."""
    return _compact({
        **_product_fields(params),
        "ProvisionedProductName": provisioned_product_name,
        "NotificationArns": params.get("notificationArns"),
        "Tags": [{"Key": k, "Value": v} for k, v in sorted(tags.items())],
        "ProvisionToken": generate_idempotency_token(),
    })


def build_update_provisioned_product_input(params: dict[str, Any], provisioned_product_name: str) -> dict[str, Any]:
    return _compact({
        **_product_fields(params),
        "ProvisionedProductName": provisioned_product_name,
        "UpdateToken": generate_idempotency_token(),
    })


def build_terminate_provisioned_product_input(params: dict[str, Any], provisioned_product_name: str) -> dict[str, Any]:
    return _compact({
        "AcceptLanguage": params.get("acceptLanguage"),
        "ProvisionedProductName": provisioned_product_name,
        "TerminateToken": generate_idempotency_token(),
    })


def provisioned_product_observation(response: dict[str, Any]) -> dict[str, Any]:
    """Project DescribeProvisionedProduct output onto status.atProvider."""
    detail = response.get("ProvisionedProductDetail") or {}
    created = detail.get("CreatedTime")
    return {
        "arn": detail.get("Arn"),
        "createdTime": created.isoformat() if hasattr(created, "isoformat") else created,
        "id": detail.get("Id"),
        "status": detail.get("Status"),
        "statusMessage": detail.get("StatusMessage"),
        "lastProvisioningRecordId": detail.get("LastProvisioningRecordId"),
        "lastSuccessfulProvisioningRecordId": detail.get("LastSuccessfulProvisioningRecordId"),
        "launchRoleArn": detail.get("LaunchRoleArn"),
        "provisionedProductType": detail.get("Type"),
        "lastProductId": detail.get("ProductId"),
        "lastProvisioningArtifactId": detail.get("ProvisioningArtifactId"),
    }


def outputs_observation(outputs: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    return {
        o["OutputKey"]: {"description": o.get("Description"), "outputValue": o.get("OutputValue")}
        for o in outputs
        if o.get("OutputKey")
    }
