"""Handler for ProvisionedProduct CRD (Service Catalog provisioned products).

Drift is detected through the CloudFormation stack the product launched, and
progress through the provisioned product's last record.
"""

from __future__ import annotations

from typing import Any

import kopf

from ..builders.servicecatalog import (
    build_provision_product_input,
    build_terminate_provisioned_product_input,
    build_update_provisioned_product_input,
    outputs_observation,
    provisioned_product_observation,
)
from ..constants import ANNOTATION_CREATE_SUCCEEDED, API_GROUP_VERSION, KIND_PROVISIONED_PRODUCT
from ..diff.late_init import late_init_field
from ..diff.servicecatalog import (
    NO_SUCCESSFUL_RECORD_MESSAGE,
    STATUS_UNDER_CHANGE,
    product_or_artifact_changed,
    provisioning_parameters_changed,
    ready_state,
)
from ..diff.tags import desired_tags
from ..errors import AWSAPIError, UpdatePendingError, wrap_errors
from ..reconciler.external import (
    AWSConnector,
    ExternalContext,
    ExternalCreation,
    ExternalObservation,
    ExternalUpdate,
    ResourceHooks,
)
from ..reconciler.managed import POLL_INTERVAL_SECONDS, ManagedReconciler
from ..reconciler.resource import ManagedResource
from ..services.aws.servicecatalog import ServiceCatalogGateway
from ..utils.conditions import set_ready_condition

DEFAULT_ACCEPT_LANGUAGE = "en"

ERR_DESCRIBE = "cannot describe provisioned product"
ERR_DESCRIBE_RECORD = "cannot describe provisioned product record"
ERR_GET_OUTPUTS = "cannot get provisioned product outputs"
ERR_GET_STACK_PARAMETERS = "cannot get CloudFormation stack parameters"
ERR_CHECK_PRODUCT = "cannot check product or artifact"
ERR_PROVISION = "cannot provision product"
ERR_UPDATE = "cannot update provisioned product"
ERR_TERMINATE = "cannot terminate provisioned product"
MSG_UNDER_CHANGE = "Provisioned product is already under change, not updating"

_CACHE_DETAIL = "detail"
_CACHE_OUTPUTS = "outputs"
_CACHE_LAST_PARAMETERS = "last_parameters"


def _language(mr: ManagedResource) -> str | None:
    return mr.for_provider.get("acceptLanguage")


def _detail(ctx: ExternalContext) -> dict[str, Any]:
    return ctx.cache.get(_CACHE_DETAIL) or {}


def pre_observe(ctx: ExternalContext, mr: ManagedResource) -> None:
    ctx.cache[_CACHE_LAST_PARAMETERS] = mr.at_provider.get("lastProvisioningParameters")
    # Until the first create succeeds the product is known by its desired name
    name = mr.for_provider.get("name")
    if name and ANNOTATION_CREATE_SUCCEEDED not in mr.annotations:
        mr.external_name = name


def describe(ctx: ExternalContext[ServiceCatalogGateway], mr: ManagedResource) -> dict[str, Any]:
    with wrap_errors(ERR_DESCRIBE):
        response = ctx.gateway.describe_provisioned_product(mr.external_name, _language(mr))
    ctx.cache[_CACHE_DETAIL] = response.get("ProvisionedProductDetail") or {}
    return response


def late_initialize(mr: ManagedResource, response: dict[str, Any], ctx: ExternalContext) -> bool:
    return late_init_field(mr.for_provider, "acceptLanguage", DEFAULT_ACCEPT_LANGUAGE)


def is_up_to_date(
    ctx: ExternalContext[ServiceCatalogGateway],
    mr: ManagedResource,
    response: dict[str, Any],
) -> tuple[bool, str]:
    """Compare product, artifact and parameters with the provisioned stack."""
    detail = _detail(ctx)
    if detail.get("Status") == STATUS_UNDER_CHANGE:
        # Changes in flight would read as drift; wait for them to settle
        return True, ""

    try:
        outputs = ctx.gateway.get_provisioned_product_outputs(mr.external_name, _language(mr))
    except AWSAPIError as e:
        if NO_SUCCESSFUL_RECORD_MESSAGE in e.message:
            return False, "NoSuccessfulProvisioningRecord"
        raise e.with_context(ERR_GET_OUTPUTS) from e
    ctx.cache[_CACHE_OUTPUTS] = outputs

    with wrap_errors(ERR_GET_STACK_PARAMETERS):
        stack_parameters = ctx.gateway.get_stack_parameters(outputs)
    with wrap_errors(ERR_CHECK_PRODUCT):
        if product_or_artifact_changed(mr.for_provider, detail, ctx.gateway):
            return False, "ProductOrArtifact"

    if provisioning_parameters_changed(
        mr.for_provider.get("provisioningParameters"),
        stack_parameters,
        ctx.cache.get(_CACHE_LAST_PARAMETERS),
    ):
        return False, "ProvisioningParameters"
    return True, ""


def post_observe(
    ctx: ExternalContext[ServiceCatalogGateway],
    mr: ManagedResource,
    response: dict[str, Any],
    obs: ExternalObservation,
) -> ExternalObservation:
    detail = _detail(ctx)
    record: dict[str, Any] = {}
    if detail.get("LastRecordId"):
        with wrap_errors(ERR_DESCRIBE_RECORD):
            record = ctx.gateway.describe_record(detail["LastRecordId"], _language(mr)).get("RecordDetail") or {}

    record_type = record.get("RecordType")
    mr.at_provider["recordType"] = record_type
    mr.at_provider["outputs"] = outputs_observation(ctx.cache.get(_CACHE_OUTPUTS) or [])
    if ctx.cache.get(_CACHE_LAST_PARAMETERS) is not None:
        mr.at_provider["lastProvisioningParameters"] = ctx.cache[_CACHE_LAST_PARAMETERS]

    ready, reason, message = ready_state(detail.get("Status"), record_type, detail.get("StatusMessage"))
    mr.conditions = set_ready_condition(mr.conditions, ready, reason, message, mr.generation)
    return obs


def create(ctx: ExternalContext[ServiceCatalogGateway], mr: ManagedResource) -> ExternalCreation:
    name = mr.for_provider.get("name") or mr.external_name
    tags = desired_tags(mr.for_provider.get("tags"), KIND_PROVISIONED_PRODUCT, name)
    with wrap_errors(ERR_PROVISION):
        response = ctx.gateway.provision_product(**build_provision_product_input(mr.for_provider, name, tags))
    return ExternalCreation(response=response)


def post_create(ctx: ExternalContext, mr: ManagedResource, creation: ExternalCreation) -> None:
    """Adopt the name AWS recorded as the external name."""
    record = (creation.response or {}).get("RecordDetail") or {}
    if record.get("ProvisionedProductName"):
        mr.external_name = record["ProvisionedProductName"]
    mr.at_provider["lastProvisioningParameters"] = mr.for_provider.get("provisioningParameters") or []


def update(ctx: ExternalContext[ServiceCatalogGateway], mr: ManagedResource) -> ExternalUpdate:
    status = _detail(ctx).get("Status") or ""
    if status in ("", STATUS_UNDER_CHANGE):
        raise UpdatePendingError(MSG_UNDER_CHANGE)
    with wrap_errors(ERR_UPDATE):
        ctx.gateway.update_provisioned_product(
            **build_update_provisioned_product_input(mr.for_provider, mr.external_name)
        )
    return ExternalUpdate()


def post_update(ctx: ExternalContext, mr: ManagedResource, update: ExternalUpdate) -> None:
    mr.at_provider["lastProvisioningParameters"] = mr.for_provider.get("provisioningParameters") or []


def pre_delete(ctx: ExternalContext, mr: ManagedResource) -> bool:
    return _detail(ctx).get("Status") == STATUS_UNDER_CHANGE


def delete(ctx: ExternalContext[ServiceCatalogGateway], mr: ManagedResource) -> None:
    with wrap_errors(ERR_TERMINATE):
        ctx.gateway.terminate_provisioned_product(
            **build_terminate_provisioned_product_input(mr.for_provider, mr.external_name)
        )


HOOKS = ResourceHooks(
    describe=describe,
    create=create,
    update=update,
    delete=delete,
    generate_observation=provisioned_product_observation,
    pre_observe=pre_observe,
    post_observe=post_observe,
    post_create=post_create,
    post_update=post_update,
    pre_delete=pre_delete,
    late_initialize=late_initialize,
    is_up_to_date=is_up_to_date,
)

# Global handler instance
_reconciler = ManagedReconciler(KIND_PROVISIONED_PRODUCT, HOOKS, AWSConnector(ServiceCatalogGateway))


@kopf.on.create(API_GROUP_VERSION, KIND_PROVISIONED_PRODUCT)
@kopf.on.update(API_GROUP_VERSION, KIND_PROVISIONED_PRODUCT)
@kopf.on.resume(API_GROUP_VERSION, KIND_PROVISIONED_PRODUCT)
@kopf.timer(API_GROUP_VERSION, KIND_PROVISIONED_PRODUCT, interval=POLL_INTERVAL_SECONDS)
def handle_provisioned_product(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ProvisionedProduct reconciliation and drift detection."""
    _reconciler.reconcile(body, patch, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_PROVISIONED_PRODUCT)
def handle_provisioned_product_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ProvisionedProduct deletion."""
    _reconciler.delete(body, patch, retry)
