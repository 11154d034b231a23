"""Drift detection and late initialization for ElastiCache resources.

All functions are pure: they take the desired ``forProvider`` mapping and the
shapes returned by the ElastiCache API and never call AWS. Desired fields that
are unset never count as drift; late initialization fills them in from AWS.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, NamedTuple

from ..errors import InvalidParameterError
from .late_init import late_init_field
from .tags import tags_need_update

MAX_REPLICAS = 5
MIN_REPLICAS = 1


class UpdateClass(str, Enum):
    """Disjoint kinds of replication group modification, in the order they are applied."""

    SHARD_CONFIGURATION = "ShardConfiguration"
    REPLICA_COUNT = "ReplicaCount"
    MODIFY = "Modify"
    AUTH_TOKEN = "AuthToken"
    TAGS = "Tags"


class Version(NamedTuple):
    major: int
    minor: int | None
    patch: int | None


_VERSION_RE = re.compile(r"^(\d+)(?:\.(\d+|x))?(?:\.(\d+|x))?$")


def parse_version(version: str) -> Version:
    """Parse ``major[.minor[.patch]]``; an ``x`` component counts as unspecified.

    Raises:
        InvalidParameterError: If the version cannot be parsed
    """
    match = _VERSION_RE.match((version or "").strip())
    if not match:
        raise InvalidParameterError("unable to parse version number")
    major, minor, patch = match.groups()
    return Version(
        int(major),
        int(minor) if minor and minor != "x" else None,
        int(patch) if patch and patch != "x" else None,
    )


def normalize_engine_version(version: str | None) -> str | None:
    """Return the engine version in the form ModifyReplicationGroup accepts.

    Redis 6 and later are addressed as ``major.minor`` (or ``major.x``);
    older engines keep their full version.

    Raises:
        InvalidParameterError: If the version cannot be parsed
    """
    if version is None:
        return None
    parsed = parse_version(version)
    if parsed.major < 6:
        return version
    if parsed.minor is None:
        return f"{parsed.major}.x"
    return f"{parsed.major}.{parsed.minor}"


def version_matches(desired: str | None, observed: str | None) -> bool:
    """Compare engine versions at the precision the desired version specifies.

    Patch versions only matter before Redis 6, where they were user selectable.
    """
    if desired is None or desired == observed:
        return True
    if observed is None:
        return False
    try:
        want = parse_version(desired)
        have = parse_version(observed)
    except InvalidParameterError:
        return False
    if want.major != have.major:
        return False
    if want.minor is not None and want.minor != have.minor:
        return False
    if want.major < 6 and want.patch is not None and want.patch != have.patch:
        return False
    return True


def automatic_failover_enabled(status: str | None) -> bool | None:
    """Translate the AutomaticFailover status into the desired-state boolean."""
    if not status:
        return None
    return status in ("enabled", "enabling")


def multi_az_enabled(status: str | None) -> bool | None:
    if not status:
        return None
    return status == "enabled"


def _differs(desired: Any, observed: Any) -> bool:
    return desired is not None and desired != observed


def _int_differs(desired: int | None, observed: int | None) -> bool:
    if desired is None:
        return False
    return desired != (observed or 0)


def _set_differs(desired: list[str] | None, observed: list[str]) -> bool:
    if desired is None:
        return False
    return len(desired) != len(observed) or set(desired) != set(observed)


def _parameter_group_name(cc: dict[str, Any]) -> str | None:
    return (cc.get("CacheParameterGroup") or {}).get("CacheParameterGroupName")


def _security_group_ids(cc: dict[str, Any]) -> list[str]:
    return [sg["SecurityGroupId"] for sg in cc.get("SecurityGroups") or [] if sg.get("SecurityGroupId")]


def _cache_security_group_names(cc: dict[str, Any]) -> list[str]:
    return [
        sg["CacheSecurityGroupName"]
        for sg in cc.get("CacheSecurityGroups") or []
        if sg.get("CacheSecurityGroupName")
    ]


# Replication groups


def late_initialize_replication_group(
    params: dict[str, Any],
    rg: dict[str, Any],
    cc: dict[str, Any] | None = None,
) -> bool:
    """Fill unset desired fields from the group and its first member cluster.

    Returns:
        True if ``params`` changed
    """
    changed = False
    changed |= late_init_field(params, "atRestEncryptionEnabled", rg.get("AtRestEncryptionEnabled"))
    changed |= late_init_field(params, "authEnabled", rg.get("AuthTokenEnabled"))
    changed |= late_init_field(
        params, "automaticFailoverEnabled", automatic_failover_enabled(rg.get("AutomaticFailover"))
    )
    changed |= late_init_field(params, "snapshotRetentionLimit", rg.get("SnapshotRetentionLimit"))
    changed |= late_init_field(params, "snapshotWindow", rg.get("SnapshotWindow"))
    changed |= late_init_field(params, "snapshottingClusterId", rg.get("SnapshottingClusterId"))
    changed |= late_init_field(params, "transitEncryptionEnabled", rg.get("TransitEncryptionEnabled"))
    changed |= late_initialize_log_delivery(params, rg)

    if not cc:
        return changed

    notification = cc.get("NotificationConfiguration") or {}
    changed |= late_init_field(params, "engineVersion", cc.get("EngineVersion"))
    changed |= late_init_field(params, "cacheParameterGroupName", _parameter_group_name(cc))
    changed |= late_init_field(params, "notificationTopicArn", notification.get("TopicArn"))
    changed |= late_init_field(params, "notificationTopicStatus", notification.get("TopicStatus"))
    changed |= late_init_field(params, "preferredMaintenanceWindow", cc.get("PreferredMaintenanceWindow"))
    changed |= late_init_field(params, "securityGroupIds", _security_group_ids(cc))
    changed |= late_init_field(params, "cacheSecurityGroupNames", _cache_security_group_names(cc))
    return changed


def shard_configuration_needs_update(params: dict[str, Any], rg: dict[str, Any]) -> bool:
    num_node_groups = params.get("numNodeGroups")
    return num_node_groups is not None and num_node_groups != len(rg.get("NodeGroups") or [])


def num_cache_clusters_needs_update(params: dict[str, Any], cc_list: list[dict[str, Any]]) -> bool:
    num_cache_clusters = params.get("numCacheClusters")
    return num_cache_clusters is not None and num_cache_clusters != len(cc_list)


def member_cluster_needs_update(params: dict[str, Any], cc: dict[str, Any]) -> str:
    """Return the first cluster-level field that drifted on a member cluster, or ""."""
    if not version_matches(params.get("engineVersion"), cc.get("EngineVersion")):
        return "EngineVersion"

    if cc.get("CacheParameterGroup") and _differs(params.get("cacheParameterGroupName"), _parameter_group_name(cc)):
        return "CacheParameterGroup"

    notification = cc.get("NotificationConfiguration")
    if notification:
        if _differs(params.get("notificationTopicArn"), notification.get("TopicArn")):
            return "NotificationTopicARN"
        if _differs(params.get("notificationTopicStatus"), notification.get("TopicStatus")):
            return "NotificationTopicStatus"
    elif params.get("notificationTopicArn"):
        return "NotificationTopicARN"

    window = params.get("preferredMaintenanceWindow")
    if window is not None and window.lower() != (cc.get("PreferredMaintenanceWindow") or "").lower():
        return "PreferredMaintenanceWindow"

    if _set_differs(params.get("securityGroupIds"), _security_group_ids(cc)):
        return "SecurityGroupIds"
    if _set_differs(params.get("cacheSecurityGroupNames"), _cache_security_group_names(cc)):
        return "CacheSecurityGroupNames"
    return ""


def replication_group_needs_update(
    params: dict[str, Any],
    rg: dict[str, Any],
    cc_list: list[dict[str, Any]],
) -> str:
    """Return the name of the first drifted group-level field, or "" if none drifted."""
    if _differs(params.get("automaticFailoverEnabled"), automatic_failover_enabled(rg.get("AutomaticFailover"))):
        return "AutomaticFailover"
    if _differs(params.get("cacheNodeType"), rg.get("CacheNodeType")):
        return "CacheNodeType"
    if _int_differs(params.get("snapshotRetentionLimit"), rg.get("SnapshotRetentionLimit")):
        return "SnapshotRetentionLimit"
    if _differs(params.get("snapshotWindow"), rg.get("SnapshotWindow")):
        return "SnapshotWindow"
    if params.get("multiAZEnabled") is not None and bool(params["multiAZEnabled"]) != bool(
        multi_az_enabled(rg.get("MultiAZ"))
    ):
        return "MultiAZ"
    if log_delivery_needs_update(params, rg):
        return "LogDeliveryConfiguration"
    if num_cache_clusters_needs_update(params, cc_list):
        return "NumCacheClusters"
    for cc in cc_list:
        reason = member_cluster_needs_update(params, cc)
        if reason:
            return reason
    return ""


def classify_replication_group_update(
    params: dict[str, Any],
    rg: dict[str, Any],
    cc_list: list[dict[str, Any]],
    desired_tags: dict[str, str] | None = None,
    observed_tags: dict[str, str] | None = None,
    auth_token_changed: bool = False,
) -> UpdateClass | None:
    """Return the single update class to apply next, or None if nothing drifted.

    Tags are only compared when ``observed_tags`` is given. An auth token change
    is applied through ModifyReplicationGroup after any other modification.
    """
    if shard_configuration_needs_update(params, rg):
        return UpdateClass.SHARD_CONFIGURATION
    if num_cache_clusters_needs_update(params, cc_list):
        return UpdateClass.REPLICA_COUNT
    if replication_group_needs_update(params, rg, cc_list):
        return UpdateClass.MODIFY
    if auth_token_changed:
        return UpdateClass.AUTH_TOKEN
    if observed_tags is not None and tags_need_update(desired_tags or {}, observed_tags):
        return UpdateClass.TAGS
    return None


def replica_count_change(desired_cache_clusters: int, existing_cache_clusters: int) -> tuple[bool, int]:
    """Translate a desired cluster count into an increase/decrease of replicas.

    Returns:
        Tuple of (increase, new replica count)

    Raises:
        InvalidParameterError: If the new replica count is out of bounds
    """
    new_replica_count = desired_cache_clusters - 1
    if new_replica_count < MIN_REPLICAS:
        raise InvalidParameterError(f"at least {MIN_REPLICAS} replica is required")
    if new_replica_count > MAX_REPLICAS:
        raise InvalidParameterError(f"maximum of {MAX_REPLICAS} replicas are allowed")
    return desired_cache_clusters > existing_cache_clusters, new_replica_count


# Log delivery

# spec key -> ElastiCache LogType
LOG_TYPES = {"slowLogs": "slow-log", "engineLogs": "engine-log"}

# Statuses in which AWS is delivering, or about to deliver, logs
_LOG_DELIVERY_ACTIVE = ("active", "enabling", "modifying")


def _destination_details_to_spec(details: dict[str, Any] | None) -> dict[str, Any] | None:
    if not details:
        return None
    spec: dict[str, Any] = {}
    cloudwatch = details.get("CloudWatchLogsDetails") or {}
    if cloudwatch.get("LogGroup"):
        spec["cloudWatchLogsDetails"] = {"logGroup": cloudwatch["LogGroup"]}
    firehose = details.get("KinesisFirehoseDetails") or {}
    if firehose.get("DeliveryStream"):
        spec["kinesisFirehoseDetails"] = {"deliveryStream": firehose["DeliveryStream"]}
    return spec or None


def observed_log_delivery(rg: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return the group's log delivery configurations keyed like ``logDeliveryConfiguration``."""
    by_type = {log_type: key for key, log_type in LOG_TYPES.items()}
    observed = {}
    for conf in rg.get("LogDeliveryConfigurations") or []:
        key = by_type.get(conf.get("LogType"))
        if key is None:
            continue
        entry = {
            "enabled": conf.get("Status") in _LOG_DELIVERY_ACTIVE,
            "destinationType": conf.get("DestinationType"),
            "destinationDetails": _destination_details_to_spec(conf.get("DestinationDetails")),
            "logFormat": conf.get("LogFormat"),
        }
        observed[key] = {k: v for k, v in entry.items() if v is not None}
    return observed


def _log_enabled(conf: dict[str, Any] | None) -> bool:
    return bool(conf) and conf.get("enabled", True) is not False


def log_delivery_needs_update(params: dict[str, Any], rg: dict[str, Any]) -> bool:
    """Compare each declared log type with what AWS delivers.

    An undeclared ``logDeliveryConfiguration`` is never drift; once declared,
    a log type missing from it must not be delivered.
    """
    desired = params.get("logDeliveryConfiguration")
    if desired is None:
        return False
    observed = observed_log_delivery(rg)
    for key in LOG_TYPES:
        want = desired.get(key)
        have = observed.get(key)
        if not _log_enabled(want):
            if have and have["enabled"]:
                return True
            continue
        if not have or not have["enabled"]:
            return True
        for field in ("destinationType", "destinationDetails", "logFormat"):
            if _differs(want.get(field), have.get(field)):
                return True
    return False


def late_initialize_log_delivery(params: dict[str, Any], rg: dict[str, Any]) -> bool:
    """Adopt the delivered log types when ``logDeliveryConfiguration`` is undeclared."""
    enabled = {key: conf for key, conf in observed_log_delivery(rg).items() if conf["enabled"]}
    if not enabled:
        return False
    return late_init_field(params, "logDeliveryConfiguration", enabled)


# Cache clusters


def late_initialize_cache_cluster(params: dict[str, Any], cc: dict[str, Any]) -> bool:
    changed = False
    changed |= late_init_field(params, "snapshotRetentionLimit", cc.get("SnapshotRetentionLimit"))
    changed |= late_init_field(params, "snapshotWindow", cc.get("SnapshotWindow"))
    changed |= late_init_field(params, "cacheSubnetGroupName", cc.get("CacheSubnetGroupName"))
    changed |= late_init_field(params, "engineVersion", cc.get("EngineVersion"))
    changed |= late_init_field(params, "preferredAvailabilityZone", cc.get("PreferredAvailabilityZone"))
    changed |= late_init_field(params, "preferredMaintenanceWindow", cc.get("PreferredMaintenanceWindow"))
    changed |= late_init_field(params, "replicationGroupId", cc.get("ReplicationGroupId"))
    changed |= late_init_field(
        params, "notificationTopicArn", (cc.get("NotificationConfiguration") or {}).get("TopicArn")
    )
    changed |= late_init_field(params, "cacheParameterGroupName", _parameter_group_name(cc))
    return changed


def cache_cluster_diff(params: dict[str, Any], cc: dict[str, Any]) -> str:
    """Return the name of the first drifted cache cluster field, or ""."""
    if _differs(params.get("cacheNodeType"), cc.get("CacheNodeType")):
        return "CacheNodeType"
    if not version_matches(params.get("engineVersion"), cc.get("EngineVersion")):
        return "EngineVersion"
    if _differs(params.get("numCacheNodes"), cc.get("NumCacheNodes")):
        return "NumCacheNodes"
    window = params.get("preferredMaintenanceWindow")
    if window is not None and window.lower() != (cc.get("PreferredMaintenanceWindow") or "").lower():
        return "PreferredMaintenanceWindow"
    if _int_differs(params.get("snapshotRetentionLimit"), cc.get("SnapshotRetentionLimit")):
        return "SnapshotRetentionLimit"
    if _differs(params.get("snapshotWindow"), cc.get("SnapshotWindow")):
        return "SnapshotWindow"
    if _set_differs(params.get("securityGroupIds"), _security_group_ids(cc)):
        return "SecurityGroupIds"
    if cc.get("CacheParameterGroup") and _differs(params.get("cacheParameterGroupName"), _parameter_group_name(cc)):
        return "CacheParameterGroup"
    notification = cc.get("NotificationConfiguration")
    if notification and _differs(params.get("notificationTopicArn"), notification.get("TopicArn")):
        return "NotificationTopicARN"
    return ""


# Cache subnet groups


def cache_subnet_group_diff(params: dict[str, Any], sg: dict[str, Any]) -> str:
    if _differs(params.get("description"), sg.get("CacheSubnetGroupDescription")):
        return "Description"
    observed_subnets = [s["SubnetIdentifier"] for s in sg.get("Subnets") or [] if s.get("SubnetIdentifier")]
    if _set_differs(params.get("subnetIds"), observed_subnets):
        return "SubnetIds"
    return ""
