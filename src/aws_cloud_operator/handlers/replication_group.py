"""Handler for ReplicationGroup CRD (ElastiCache Redis replication groups)."""

from __future__ import annotations

import logging
from typing import Any

import kopf

from ..builders.elasticache import (
    apply_immediately,
    build_create_replication_group_input,
    build_modify_replication_group_input,
    build_shard_configuration_input,
    replication_group_connection_details,
    replication_group_observation,
)
from ..constants import (
    API_GROUP_VERSION,
    CONNECTION_KEY_PASSWORD,
    KIND_CACHE_PARAMETER_GROUP,
    KIND_CACHE_SUBNET_GROUP,
    KIND_REPLICATION_GROUP,
    KIND_SECURITY_GROUP,
    KIND_TOPIC,
)
from ..diff.elasticache import (
    UpdateClass,
    classify_replication_group_update,
    late_initialize_replication_group,
    replica_count_change,
    replication_group_needs_update,
)
from ..diff.tags import desired_tags, diff_tags
from ..errors import AWSAPIError, NotFoundError, ReferencePendingError, wrap_errors
from ..references import ReferenceField, for_provider_field, status_arn
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
from ..utils.passwords import generate_auth_token

logger = logging.getLogger(__name__)

STATUS_AVAILABLE = "available"
STATUS_CREATING = "creating"
STATUS_DELETING = "deleting"

ERR_DESCRIBE = "cannot describe ElastiCache replication group"
ERR_LIST_CACHE_CLUSTERS = "cannot get cache cluster list"
ERR_CREATE = "cannot create ElastiCache replication group"
ERR_MODIFY = "cannot modify ElastiCache replication group"
ERR_SHARD_CONFIGURATION = "cannot modify ElastiCache replication group shard configuration"
ERR_NUM_CACHE_CLUSTERS = "cannot modify ElastiCache replication group num cache clusters"
ERR_LIST_TAGS = "cannot list tags"
ERR_UPDATE_TAGS = "cannot update tags"
ERR_DELETE = "cannot delete ElastiCache replication group"

DEFAULT_AUTH_TOKEN_KEY = "password"
ATP_LAST_APPLIED_STRATEGY = "lastAppliedAuthTokenUpdateStrategy"

_CACHE_GROUP = "replication_group"
_CACHE_MEMBERS = "member_clusters"
_CACHE_TAGS = "tags"
_CACHE_AUTH_TOKEN = "auth_token"
_CACHE_AUTH_CHANGED = "auth_token_changed"

REFERENCE_FIELDS = (
    ReferenceField("cacheParameterGroupName", KIND_CACHE_PARAMETER_GROUP),
    ReferenceField("cacheSubnetGroupName", KIND_CACHE_SUBNET_GROUP),
    ReferenceField("securityGroupIds", KIND_SECURITY_GROUP, multi=True),
    ReferenceField(
        "cacheSecurityGroupNames",
        KIND_SECURITY_GROUP,
        extractor=for_provider_field("groupName"),
        multi=True,
    ),
    ReferenceField("notificationTopicArn", KIND_TOPIC, extractor=status_arn),
)


def _tags(mr: ManagedResource) -> dict[str, str]:
    return desired_tags(mr.for_provider.get("tags"), KIND_REPLICATION_GROUP, mr.external_name)


def describe(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> dict[str, Any]:
    """Describe the group and all of its member clusters."""
    with wrap_errors(ERR_DESCRIBE):
        rg = ctx.gateway.describe_replication_group(mr.external_name)

    members = []
    for cluster_id in rg.get("MemberClusters") or []:
        try:
            members.append(ctx.gateway.describe_cache_cluster(cluster_id))
        except NotFoundError as e:
            # A listed member that cannot be found is an inconsistency, not absence of the group
            raise AWSAPIError(f"{ERR_LIST_CACHE_CLUSTERS}: {e.message}", e.code) from e
        except AWSAPIError as e:
            raise e.with_context(ERR_LIST_CACHE_CLUSTERS) from e

    ctx.cache[_CACHE_GROUP] = rg
    ctx.cache[_CACHE_MEMBERS] = members
    return rg


def late_initialize(mr: ManagedResource, rg: dict[str, Any], ctx: ExternalContext) -> bool:
    members = ctx.cache.get(_CACHE_MEMBERS) or []
    return late_initialize_replication_group(mr.for_provider, rg, members[0] if members else None)


def is_up_to_date(
    ctx: ExternalContext[ElastiCacheGateway],
    mr: ManagedResource,
    rg: dict[str, Any],
) -> tuple[bool, str]:
    """Classify drift; tags are only listed once the group is available."""
    members = ctx.cache.get(_CACHE_MEMBERS) or []
    observed_tags = None
    if rg.get("Status") == STATUS_AVAILABLE and rg.get("ARN"):
        with wrap_errors(ERR_LIST_TAGS):
            observed_tags = ctx.gateway.list_tags(rg["ARN"])
        ctx.cache[_CACHE_TAGS] = observed_tags

    token_changed = auth_token_changed(ctx, mr)
    ctx.cache[_CACHE_AUTH_CHANGED] = token_changed

    update_class = classify_replication_group_update(
        mr.for_provider, rg, members, _tags(mr), observed_tags, auth_token_changed=token_changed
    )
    if update_class is None:
        return True, ""
    if update_class == UpdateClass.MODIFY:
        return False, f"{update_class.value}: {replication_group_needs_update(mr.for_provider, rg, members)}"
    return False, update_class.value


def post_observe(
    ctx: ExternalContext,
    mr: ManagedResource,
    rg: dict[str, Any],
    obs: ExternalObservation,
) -> ExternalObservation:
    status = rg.get("Status")
    if status == STATUS_AVAILABLE:
        mr.conditions = set_available_condition(mr.conditions, mr.generation)
    elif status == STATUS_CREATING:
        mr.conditions = set_creating_condition(mr.conditions, mr.generation)
    elif status == STATUS_DELETING:
        mr.conditions = set_deleting_condition(mr.conditions, mr.generation)
    else:
        mr.conditions = set_unavailable_condition(
            mr.conditions, f"replication group is {status or 'in an unknown state'}", mr.generation
        )
    return obs


def _auth_token(ctx: ExternalContext, mr: ManagedResource) -> str | None:
    if not mr.for_provider.get("authEnabled"):
        return None
    ref = mr.for_provider.get("authTokenSecretRef")
    if not ref:
        return generate_auth_token()
    return _secret_auth_token(ctx, ref)


def _secret_auth_token(ctx: ExternalContext, ref: dict[str, str]) -> str:
    try:
        return ctx.kube.get_secret_value(ref["namespace"], ref["name"], ref.get("key", DEFAULT_AUTH_TOKEN_KEY))
    except ValueError as e:
        raise ReferencePendingError(f"cannot get auth token secret: {e}") from e


def _published_auth_token(ctx: ExternalContext, mr: ManagedResource) -> str | None:
    ref = mr.connection_secret_ref
    if ref is None:
        return None
    try:
        return ctx.kube.get_secret_value(ref["namespace"], ref["name"], CONNECTION_KEY_PASSWORD)
    except ValueError:
        # Not published yet
        return None


def auth_token_changed(ctx: ExternalContext, mr: ManagedResource) -> bool:
    """Compare the desired auth token and update strategy with the applied ones.

    The applied token is the one published to the connection secret. Without
    ``authTokenSecretRef`` the published token stays the desired one. AWS does
    not report the update strategy, so the last applied one is kept in
    ``status.atProvider``.
    """
    last_applied = mr.initial_at_provider.get(ATP_LAST_APPLIED_STRATEGY)
    if last_applied is not None:
        mr.at_provider[ATP_LAST_APPLIED_STRATEGY] = last_applied

    ref = mr.for_provider.get("authTokenSecretRef")
    if not ref and not mr.for_provider.get("authEnabled"):
        return False
    if mr.deleting or mr.connection_secret_ref is None:
        # Nowhere to read the applied token from
        return False

    current = _published_auth_token(ctx, mr)
    desired = _secret_auth_token(ctx, ref) if ref else current
    if desired is None:
        return False
    ctx.cache[_CACHE_AUTH_TOKEN] = desired
    return desired != current or last_applied != mr.for_provider.get("authTokenUpdateStrategy")


def create(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> ExternalCreation:
    """Create the group; the auth token is surfaced in the result exactly once."""
    auth_token = _auth_token(ctx, mr)
    params = build_create_replication_group_input(mr.for_provider, mr.external_name, _tags(mr), auth_token)
    with wrap_errors(ERR_CREATE):
        response = ctx.gateway.create_replication_group(**params)

    details = {}
    if auth_token:
        details[CONNECTION_KEY_PASSWORD] = auth_token
    return ExternalCreation(connection_details=details, response=response)


def update(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> ExternalUpdate:
    """Apply the highest-priority drifted update class, and only that one."""
    rg = ctx.cache.get(_CACHE_GROUP) or {}
    if rg.get("Status") != STATUS_AVAILABLE:
        # AWS rejects modifications until the group is available again
        return ExternalUpdate()

    # Re-read: the group may have changed since it was observed
    rg = describe(ctx, mr)
    members = ctx.cache.get(_CACHE_MEMBERS) or []
    observed_tags = ctx.cache.get(_CACHE_TAGS)
    tags = _tags(mr)
    token_changed = bool(ctx.cache.get(_CACHE_AUTH_CHANGED))
    update_class = classify_replication_group_update(
        mr.for_provider, rg, members, tags, observed_tags, auth_token_changed=token_changed
    )
    details = {}

    if update_class == UpdateClass.SHARD_CONFIGURATION:
        with wrap_errors(ERR_SHARD_CONFIGURATION):
            ctx.gateway.modify_replication_group_shard_configuration(
                **build_shard_configuration_input(mr.for_provider, mr.external_name, rg)
            )
    elif update_class == UpdateClass.REPLICA_COUNT:
        with wrap_errors(ERR_NUM_CACHE_CLUSTERS):
            increase, new_replica_count = replica_count_change(mr.for_provider["numCacheClusters"], len(members))
            if increase:
                ctx.gateway.increase_replica_count(
                    mr.external_name, new_replica_count, apply_immediately=apply_immediately(mr.for_provider)
                )
            else:
                ctx.gateway.decrease_replica_count(
                    mr.external_name, new_replica_count, apply_immediately=apply_immediately(mr.for_provider)
                )
    elif update_class in (UpdateClass.MODIFY, UpdateClass.AUTH_TOKEN):
        auth_token = ctx.cache.get(_CACHE_AUTH_TOKEN) if token_changed else None
        with wrap_errors(ERR_MODIFY):
            ctx.gateway.modify_replication_group(
                **build_modify_replication_group_input(mr.for_provider, mr.external_name, rg, auth_token)
            )
        if auth_token:
            strategy = mr.for_provider.get("authTokenUpdateStrategy")
            if strategy:
                mr.at_provider[ATP_LAST_APPLIED_STRATEGY] = strategy
            else:
                mr.at_provider.pop(ATP_LAST_APPLIED_STRATEGY, None)
            details[CONNECTION_KEY_PASSWORD] = auth_token
    elif update_class == UpdateClass.TAGS:
        add, remove = diff_tags(tags, observed_tags or {})
        with wrap_errors(ERR_UPDATE_TAGS):
            if remove:
                ctx.gateway.remove_tags(rg["ARN"], remove)
            if add:
                ctx.gateway.add_tags(rg["ARN"], add)

    return ExternalUpdate(connection_details=details, diff=update_class.value if update_class else "")


def pre_delete(ctx: ExternalContext, mr: ManagedResource) -> bool:
    rg = ctx.cache.get(_CACHE_GROUP) or {}
    return rg.get("Status") == STATUS_DELETING


def delete(ctx: ExternalContext[ElastiCacheGateway], mr: ManagedResource) -> None:
    with wrap_errors(ERR_DELETE):
        ctx.gateway.delete_replication_group(
            mr.external_name,
            retain_primary_cluster=bool(mr.for_provider.get("retainPrimaryCluster", False)),
        )


HOOKS = ResourceHooks(
    describe=describe,
    create=create,
    update=update,
    delete=delete,
    generate_observation=replication_group_observation,
    connection_details=replication_group_connection_details,
    post_observe=post_observe,
    pre_delete=pre_delete,
    late_initialize=late_initialize,
    is_up_to_date=is_up_to_date,
)

# Global handler instance
_reconciler = ManagedReconciler(
    KIND_REPLICATION_GROUP,
    HOOKS,
    AWSConnector(ElastiCacheGateway),
    REFERENCE_FIELDS,
)


@kopf.on.create(API_GROUP_VERSION, KIND_REPLICATION_GROUP)
@kopf.on.update(API_GROUP_VERSION, KIND_REPLICATION_GROUP)
@kopf.on.resume(API_GROUP_VERSION, KIND_REPLICATION_GROUP)
@kopf.timer(API_GROUP_VERSION, KIND_REPLICATION_GROUP, interval=POLL_INTERVAL_SECONDS)
def handle_replication_group(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ReplicationGroup reconciliation and drift detection."""
    _reconciler.reconcile(body, patch, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_REPLICATION_GROUP)
def handle_replication_group_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ReplicationGroup deletion."""
    _reconciler.delete(body, patch, retry)
