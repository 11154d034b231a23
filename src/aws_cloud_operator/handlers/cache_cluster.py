"""Handler for CacheCluster CRD (single ElastiCache clusters)."""

from __future__ import annotations

from typing import Any

import kopf

from ..builders.elasticache import (
    build_create_cache_cluster_input,
    build_modify_cache_cluster_input,
    cache_cluster_connection_details,
    cache_cluster_observation,
)
from ..constants import (
    API_GROUP_VERSION,
    KIND_CACHE_CLUSTER,
    KIND_CACHE_PARAMETER_GROUP,
    KIND_CACHE_SUBNET_GROUP,
    KIND_REPLICATION_GROUP,
    KIND_SECURITY_GROUP,
    KIND_TOPIC,
)
from ..diff.elasticache import cache_cluster_diff, late_initialize_cache_cluster
from ..diff.tags import desired_tags
from ..errors import wrap_errors
from ..references import ReferenceField, status_arn
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
from ..utils.conditions import (
    set_available_condition,
    set_creating_condition,
    set_deleting_condition,
    set_unavailable_condition,
)

STATUS_AVAILABLE = "available"
STATUS_CREATING = "creating"
STATUS_DELETING = "deleting"
STATUS_DELETED = "deleted"

ERR_DESCRIBE = "cannot describe ElastiCache cache cluster"
ERR_CREATE = "cannot create ElastiCache cache cluster"
ERR_MODIFY = "cannot modify ElastiCache cache cluster"
ERR_DELETE = "cannot delete ElastiCache cache cluster"

_CACHE_CLUSTER = "cache_cluster"

REFERENCE_FIELDS = (
    ReferenceField("cacheParameterGroupName", KIND_CACHE_PARAMETER_GROUP),
    ReferenceField("cacheSubnetGroupName", KIND_CACHE_SUBNET_GROUP),
    ReferenceField("securityGroupIds", KIND_SECURITY_GROUP, multi=True),
    ReferenceField("notificationTopicArn", KIND_TOPIC, extractor=status_arn),
    ReferenceField("replicationGroupId", KIND_REPLICATION_GROUP),
)


def describe(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> dict[str, Any]:
    with wrap_errors(ERR_DESCRIBE):
        cc = ctx.gateway.describe_cache_cluster(mr.external_name)
    ctx.cache[_CACHE_CLUSTER] = cc
    return cc


def late_initialize(mr: ManagedResource, cc: dict[str, Any], ctx: ExternalContext) -> bool:
    return late_initialize_cache_cluster(mr.for_provider, cc)


def is_up_to_date(ctx: ExternalContext, mr: ManagedResource, cc: dict[str, Any]) -> tuple[bool, str]:
    diff = cache_cluster_diff(mr.for_provider, cc)
    return not diff, diff


def post_observe(
    ctx: ExternalContext,
    mr: ManagedResource,
    cc: dict[str, Any],
    obs: ExternalObservation,
) -> ExternalObservation:
    status = cc.get("CacheClusterStatus")
    if status == STATUS_AVAILABLE:
        mr.conditions = set_available_condition(mr.conditions, mr.generation)
    elif status == STATUS_CREATING:
        mr.conditions = set_creating_condition(mr.conditions, mr.generation)
    elif status in (STATUS_DELETING, STATUS_DELETED):
        mr.conditions = set_deleting_condition(mr.conditions, mr.generation)
    else:
        mr.conditions = set_unavailable_condition(
            mr.conditions, f"cache cluster is {status or 'in an unknown state'}", mr.generation
        )
    return obs


def create(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> ExternalCreation:
    tags = desired_tags(mr.for_provider.get("tags"), KIND_CACHE_CLUSTER, mr.external_name)
    with wrap_errors(ERR_CREATE):
        response = ctx.gateway.create_cache_cluster(
            **build_create_cache_cluster_input(mr.for_provider, mr.external_name, tags)
        )
    return ExternalCreation(response=response)


def update(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> ExternalUpdate:
    cc = ctx.cache.get(_CACHE_CLUSTER) or {}
    if cc.get("CacheClusterStatus") != STATUS_AVAILABLE:
        return ExternalUpdate()
    with wrap_errors(ERR_MODIFY):
        ctx.gateway.modify_cache_cluster(**build_modify_cache_cluster_input(mr.for_provider, mr.external_name, cc))
    return ExternalUpdate(diff=cache_cluster_diff(mr.for_provider, cc))


def pre_delete(ctx: ExternalContext, mr: ManagedResource) -> bool:
    cc = ctx.cache.get(_CACHE_CLUSTER) or {}
    return cc.get("CacheClusterStatus") in (STATUS_DELETING, STATUS_DELETED)


def delete(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> None:
    with wrap_errors(ERR_DELETE):
        ctx.gateway.delete_cache_cluster(mr.external_name)


HOOKS = ResourceHooks(
    describe=describe,
    create=create,
    update=update,
    delete=delete,
    generate_observation=cache_cluster_observation,
    connection_details=cache_cluster_connection_details,
    post_observe=post_observe,
    pre_delete=pre_delete,
    late_initialize=late_initialize,
    is_up_to_date=is_up_to_date,
)

# Global handler instance
_reconciler = ManagedReconciler(KIND_CACHE_CLUSTER, HOOKS, AWSConnector(ElastiCacheGateway), REFERENCE_FIELDS)


@kopf.on.create(API_GROUP_VERSION, KIND_CACHE_CLUSTER)
@kopf.on.update(API_GROUP_VERSION, KIND_CACHE_CLUSTER)
@kopf.on.resume(API_GROUP_VERSION, KIND_CACHE_CLUSTER)
@kopf.timer(API_GROUP_VERSION, KIND_CACHE_CLUSTER, interval=POLL_INTERVAL_SECONDS)
def handle_cache_cluster(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle CacheCluster reconciliation and drift detection."""
    _reconciler.reconcile(body, patch, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_CACHE_CLUSTER)
def handle_cache_cluster_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle CacheCluster deletion."""
    _reconciler.delete(body, patch, retry)
