"""Handler for CacheSubnetGroup CRD."""

from __future__ import annotations

from typing import Any

import kopf

from ..builders.elasticache import build_cache_subnet_group_input, cache_subnet_group_observation
from ..constants import API_GROUP_VERSION, KIND_CACHE_SUBNET_GROUP, KIND_SUBNET
from ..diff.elasticache import cache_subnet_group_diff
from ..errors import wrap_errors
from ..references import ReferenceField
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
from ..services.aws.elasticache import ElastiCacheGateway
from ..utils.conditions import set_available_condition

ERR_DESCRIBE = "cannot describe ElastiCache cache subnet group"
ERR_CREATE = "cannot create ElastiCache cache subnet group"
ERR_MODIFY = "cannot modify ElastiCache cache subnet group"
ERR_DELETE = "cannot delete ElastiCache cache subnet group"

REFERENCE_FIELDS = (ReferenceField("subnetIds", KIND_SUBNET, multi=True),)


def describe(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> dict[str, Any]:
    with wrap_errors(ERR_DESCRIBE):
        return ctx.gateway.describe_cache_subnet_group(mr.external_name)


def is_up_to_date(ctx: ExternalContext, mr: ManagedResource, sg: dict[str, Any]) -> tuple[bool, str]:
    diff = cache_subnet_group_diff(mr.for_provider, sg)
    return not diff, diff


def post_observe(
    ctx: ExternalContext,
    mr: ManagedResource,
    sg: dict[str, Any],
    obs: ExternalObservation,
) -> ExternalObservation:
    # Subnet groups have no lifecycle status; existing means usable
    mr.conditions = set_available_condition(mr.conditions, mr.generation)
    return obs


def create(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> ExternalCreation:
    with wrap_errors(ERR_CREATE):
        response = ctx.gateway.create_cache_subnet_group(
            **build_cache_subnet_group_input(mr.for_provider, mr.external_name)
        )
    return ExternalCreation(response=response)


def update(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> ExternalUpdate:
    with wrap_errors(ERR_MODIFY):
        ctx.gateway.modify_cache_subnet_group(**build_cache_subnet_group_input(mr.for_provider, mr.external_name))
    return ExternalUpdate()


def delete(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> None:
    with wrap_errors(ERR_DELETE):
        ctx.gateway.delete_cache_subnet_group(mr.external_name)


HOOKS = ResourceHooks(
    describe=describe,
    create=create,
    update=update,
    delete=delete,
    generate_observation=cache_subnet_group_observation,
    post_observe=post_observe,
    is_up_to_date=is_up_to_date,
)

# Global handler instance
_reconciler = ManagedReconciler(
    KIND_CACHE_SUBNET_GROUP,
    HOOKS,
    AWSConnector(ElastiCacheGateway),
    REFERENCE_FIELDS,
)


@kopf.on.create(API_GROUP_VERSION, KIND_CACHE_SUBNET_GROUP)
@kopf.on.update(API_GROUP_VERSION, KIND_CACHE_SUBNET_GROUP)
@kopf.on.resume(API_GROUP_VERSION, KIND_CACHE_SUBNET_GROUP)
@kopf.timer(API_GROUP_VERSION, KIND_CACHE_SUBNET_GROUP, interval=POLL_INTERVAL_SECONDS)
def handle_cache_subnet_group(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle CacheSubnetGroup reconciliation and drift detection."""
    _reconciler.reconcile(body, patch, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_CACHE_SUBNET_GROUP)
def handle_cache_subnet_group_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle CacheSubnetGroup deletion."""
    _reconciler.delete(body, patch, retry)
