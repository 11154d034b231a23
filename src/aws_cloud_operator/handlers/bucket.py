"""Handler for Bucket CRD.

A bucket is observed as a whole and updated one sub-configuration per pass;
the next pass observes again and picks up the following one.
"""

from __future__ import annotations

from typing import Any

import kopf

from ..builders.bucket import bucket_connection_details, bucket_observation
from ..constants import API_GROUP_VERSION, KIND_BUCKET
from ..diff.late_init import late_init_field
from ..errors import wrap_errors
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
from ..reconciler.subresources import BUCKET_SUBRESOURCES, first_pending, observe_subresources
from ..services.aws.s3 import S3Gateway
from ..utils.conditions import set_available_condition

ERR_HEAD = "cannot get bucket"
ERR_LOCATION = "cannot get bucket location"
ERR_CREATE = "cannot create bucket"
ERR_DELETE = "cannot delete bucket"

_CACHE_SUBRESOURCES = "subresources"


def describe(ctx: ExternalContext[S3Gateway], mr: ManagedResource) -> dict[str, Any]:
    bucket = mr.external_name
    with wrap_errors(ERR_HEAD):
        ctx.gateway.head_bucket(bucket)
    with wrap_errors(ERR_LOCATION):
        region = ctx.gateway.get_bucket_location(bucket)
    if mr.deleting:
        return {"Name": bucket, "Region": region}

    statuses = []
    for sub in BUCKET_SUBRESOURCES:
        with wrap_errors(f"cannot observe bucket {sub.name.lower()}"):
            statuses.append((sub, sub.observe(ctx.gateway, bucket, mr.for_provider)))
    ctx.cache[_CACHE_SUBRESOURCES] = statuses
    return {"Name": bucket, "Region": region}


def late_initialize(mr: ManagedResource, observed: dict[str, Any], ctx: ExternalContext) -> bool:
    return late_init_field(mr.for_provider, "locationConstraint", observed["Region"])


def is_up_to_date(ctx: ExternalContext, mr: ManagedResource, observed: dict[str, Any]) -> tuple[bool, str]:
    pending = first_pending(ctx.cache.get(_CACHE_SUBRESOURCES) or [])
    if pending is None:
        return True, ""
    sub, status = pending
    return False, f"{sub.name}: {status.value}"


def post_observe(
    ctx: ExternalContext,
    mr: ManagedResource,
    observed: dict[str, Any],
    obs: ExternalObservation,
) -> ExternalObservation:
    mr.conditions = set_available_condition(mr.conditions, mr.generation)
    return obs


def create(ctx: ExternalContext[S3Gateway], mr: ManagedResource) -> ExternalCreation:
    params = mr.for_provider
    region = params.get("locationConstraint") or ctx.region
    with wrap_errors(ERR_CREATE):
        ctx.gateway.create_bucket(mr.external_name, region, params.get("acl"), params.get("objectOwnership"))
    return ExternalCreation(connection_details=bucket_connection_details({"Name": mr.external_name, "Region": region}))


def update(ctx: ExternalContext[S3Gateway], mr: ManagedResource) -> ExternalUpdate:
    statuses = ctx.cache.get(_CACHE_SUBRESOURCES)
    if statuses is None:
        statuses = observe_subresources(BUCKET_SUBRESOURCES, ctx.gateway, mr.external_name, mr.for_provider)
    pending = first_pending(statuses)
    if pending is None:
        return ExternalUpdate()

    sub, status = pending
    with wrap_errors(f"cannot update bucket {sub.name.lower()}"):
        sub.apply(ctx.gateway, mr.external_name, mr.for_provider, status)
    return ExternalUpdate(diff=f"{sub.name}: {status.value}")


def delete(ctx: ExternalContext[S3Gateway], mr: ManagedResource) -> None:
    with wrap_errors(ERR_DELETE):
        ctx.gateway.delete_bucket(mr.external_name)


HOOKS = ResourceHooks(
    describe=describe,
    create=create,
    update=update,
    delete=delete,
    generate_observation=bucket_observation,
    connection_details=bucket_connection_details,
    post_observe=post_observe,
    late_initialize=late_initialize,
    is_up_to_date=is_up_to_date,
)

# Global handler instance
_reconciler = ManagedReconciler(KIND_BUCKET, HOOKS, AWSConnector(S3Gateway))


@kopf.on.create(API_GROUP_VERSION, KIND_BUCKET)
@kopf.on.update(API_GROUP_VERSION, KIND_BUCKET)
@kopf.on.resume(API_GROUP_VERSION, KIND_BUCKET)
@kopf.timer(API_GROUP_VERSION, KIND_BUCKET, interval=POLL_INTERVAL_SECONDS)
def handle_bucket(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle Bucket reconciliation and drift detection."""
    _reconciler.reconcile(body, patch, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_BUCKET)
def handle_bucket_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle Bucket deletion."""
    _reconciler.delete(body, patch, retry)
