"""Builders translating between ElastiCache forProvider specs and AWS shapes."""

from __future__ import annotations

from typing import Any

from ..constants import (
    CONNECTION_KEY_ENDPOINT,
    CONNECTION_KEY_PORT,
    CONNECTION_KEY_READER_ENDPOINT,
    CONNECTION_KEY_READER_PORT,
)
from ..diff.elasticache import LOG_TYPES, normalize_engine_version, observed_log_delivery


def _compact(params: dict[str, Any]) -> dict[str, Any]:
    """Drop unset parameters so AWS applies its own defaults."""
    return {k: v for k, v in params.items() if v is not None and v != []}


def _tag_list(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


def _endpoint(endpoint: dict[str, Any] | None) -> dict[str, Any] | None:
    if not endpoint:
        return None
    return {"address": endpoint.get("Address"), "port": endpoint.get("Port")}


def _endpoint_details(endpoint: dict[str, Any] | None, address_key: str, port_key: str) -> dict[str, str]:
    if not endpoint or not endpoint.get("Address"):
        return {}
    details = {address_key: endpoint["Address"]}
    if endpoint.get("Port") is not None:
        details[port_key] = str(endpoint["Port"])
    return details


# Replication groups


def apply_immediately(params: dict[str, Any]) -> bool:
    """Modifications apply immediately unless ``applyModificationsImmediately`` is false."""
    return params.get("applyModificationsImmediately", True) is not False


def _destination_details(details: dict[str, Any] | None) -> dict[str, Any] | None:
    if not details:
        return None
    return _compact({
        "CloudWatchLogsDetails": _compact({
            "LogGroup": (details.get("cloudWatchLogsDetails") or {}).get("logGroup"),
        }) or None,
        "KinesisFirehoseDetails": _compact({
            "DeliveryStream": (details.get("kinesisFirehoseDetails") or {}).get("deliveryStream"),
        }) or None,
    }) or None


def _log_delivery_request(log_type: str, conf: dict[str, Any]) -> dict[str, Any]:
    return _compact({
        "LogType": log_type,
        "DestinationType": conf.get("destinationType"),
        "DestinationDetails": _destination_details(conf.get("destinationDetails")),
        "LogFormat": conf.get("logFormat"),
        "Enabled": conf.get("enabled", True),
    })


def build_log_delivery_requests(
    params: dict[str, Any],
    rg: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Build LogDeliveryConfigurations aligned with what the group delivers today.

    A log type AWS delivers but the spec no longer declares is disabled
    explicitly, since AWS ignores an absent entry. A disabled log type AWS
    has never delivered is left out; AWS rejects disabling it.
    """
    desired = params.get("logDeliveryConfiguration") or {}
    observed = observed_log_delivery(rg) if rg is not None else {}
    requests = []
    for key, log_type in LOG_TYPES.items():
        want = desired.get(key)
        have = observed.get(key)
        if want is None:
            if params.get("logDeliveryConfiguration") is not None and have and have["enabled"]:
                requests.append({"LogType": log_type, "Enabled": False})
            continue
        if want.get("enabled", True) is False and not have:
            continue
        requests.append(_log_delivery_request(log_type, want))
    return requests


def build_create_replication_group_input(
    params: dict[str, Any],
    replication_group_id: str,
    tags: dict[str, str],
    auth_token: str | None = None,
) -> dict[str, Any]:
    """Build CreateReplicationGroup parameters.

    Args:
        params: Resolved spec.forProvider
        replication_group_id: External name of the group
        tags: Full tag set, provider-managed tags included
        auth_token: Auth token to set, if auth is enabled

    Returns:
        Keyword arguments for create_replication_group
    """
    node_groups = [
        _compact({
            "NodeGroupId": ng.get("nodeGroupId"),
            "Slots": ng.get("slots"),
            "ReplicaCount": ng.get("replicaCount"),
            "PrimaryAvailabilityZone": ng.get("primaryAvailabilityZone"),
            "ReplicaAvailabilityZones": ng.get("replicaAvailabilityZones"),
        })
        for ng in params.get("nodeGroupConfiguration") or []
    ]
    return _compact({
        "ReplicationGroupId": replication_group_id,
        "ReplicationGroupDescription": params.get("replicationGroupDescription"),
        "AtRestEncryptionEnabled": params.get("atRestEncryptionEnabled"),
        "AuthToken": auth_token,
        "AutomaticFailoverEnabled": params.get("automaticFailoverEnabled"),
        "MultiAZEnabled": params.get("multiAZEnabled"),
        "CacheNodeType": params.get("cacheNodeType"),
        "CacheParameterGroupName": params.get("cacheParameterGroupName"),
        "CacheSecurityGroupNames": params.get("cacheSecurityGroupNames"),
        "CacheSubnetGroupName": params.get("cacheSubnetGroupName"),
        "Engine": params.get("engine"),
        "EngineVersion": params.get("engineVersion"),
        "LogDeliveryConfigurations": build_log_delivery_requests(params),
        "NodeGroupConfiguration": node_groups,
        "NotificationTopicArn": params.get("notificationTopicArn"),
        "NumCacheClusters": params.get("numCacheClusters"),
        "NumNodeGroups": params.get("numNodeGroups"),
        "Port": params.get("port"),
        "PreferredCacheClusterAZs": params.get("preferredCacheClusterAZs"),
        "PreferredMaintenanceWindow": params.get("preferredMaintenanceWindow"),
        "PrimaryClusterId": params.get("primaryClusterId"),
        "ReplicasPerNodeGroup": params.get("replicasPerNodeGroup"),
        "SecurityGroupIds": params.get("securityGroupIds"),
        "SnapshotArns": params.get("snapshotArns"),
        "SnapshotName": params.get("snapshotName"),
        "SnapshotRetentionLimit": params.get("snapshotRetentionLimit"),
        "SnapshotWindow": params.get("snapshotWindow"),
        "Tags": _tag_list(tags),
        "TransitEncryptionEnabled": params.get("transitEncryptionEnabled"),
    })


def build_modify_replication_group_input(
    params: dict[str, Any],
    replication_group_id: str,
    rg: dict[str, Any] | None = None,
    auth_token: str | None = None,
) -> dict[str, Any]:
    """Build ModifyReplicationGroup parameters from the mutable fields.

    The node type is only sent when it differs from ``rg``, since AWS rejects
    a scale request to the current type.

    ``auth_token`` is set when the token changed; it is sent together with
    ``authTokenUpdateStrategy`` when the spec declares one.

    Raises:
        InvalidParameterError: If the engine version cannot be parsed
    """
    cache_node_type = params.get("cacheNodeType")
    if rg is not None and cache_node_type == rg.get("CacheNodeType"):
        cache_node_type = None
    return _compact({
        "ReplicationGroupId": replication_group_id,
        "ApplyImmediately": apply_immediately(params),
        "AuthToken": auth_token,
        "AuthTokenUpdateStrategy": params.get("authTokenUpdateStrategy") if auth_token else None,
        "AutomaticFailoverEnabled": params.get("automaticFailoverEnabled"),
        "MultiAZEnabled": params.get("multiAZEnabled"),
        "CacheNodeType": cache_node_type,
        "CacheParameterGroupName": params.get("cacheParameterGroupName"),
        "CacheSecurityGroupNames": params.get("cacheSecurityGroupNames"),
        "EngineVersion": normalize_engine_version(params.get("engineVersion")),
        "LogDeliveryConfigurations": build_log_delivery_requests(params, rg),
        "NotificationTopicArn": params.get("notificationTopicArn"),
        "NotificationTopicStatus": params.get("notificationTopicStatus"),
        "PreferredMaintenanceWindow": params.get("preferredMaintenanceWindow"),
        "PrimaryClusterId": params.get("primaryClusterId"),
        "SecurityGroupIds": params.get("securityGroupIds"),
        "SnapshotRetentionLimit": params.get("snapshotRetentionLimit"),
        "SnapshotWindow": params.get("snapshotWindow"),
        "SnapshottingClusterId": params.get("snapshottingClusterId"),
    })


def build_shard_configuration_input(
    params: dict[str, Any],
    replication_group_id: str,
    rg: dict[str, Any],
) -> dict[str, Any]:
    """Build ModifyReplicationGroupShardConfiguration parameters.

    When scaling in, the first node groups beyond the desired count are removed.
    """
    desired = params["numNodeGroups"]
    node_group_ids = [ng.get("NodeGroupId") for ng in rg.get("NodeGroups") or []]
    remove = node_group_ids[: len(node_group_ids) - desired] if desired < len(node_group_ids) else None
    return _compact({
        "ReplicationGroupId": replication_group_id,
        "ApplyImmediately": apply_immediately(params),
        "NodeGroupCount": desired,
        "NodeGroupsToRemove": remove,
    })


def replication_group_observation(rg: dict[str, Any]) -> dict[str, Any]:
    """Project DescribeReplicationGroups output onto status.atProvider."""
    pending = rg.get("PendingModifiedValues") or {}
    resharding = (pending.get("Resharding") or {}).get("SlotMigration") or {}
    node_groups = []
    for ng in rg.get("NodeGroups") or []:
        node_groups.append({
            "nodeGroupId": ng.get("NodeGroupId"),
            "slots": ng.get("Slots"),
            "status": ng.get("Status"),
            "primaryEndpoint": _endpoint(ng.get("PrimaryEndpoint")),
            "readerEndpoint": _endpoint(ng.get("ReaderEndpoint")),
            "nodeGroupMembers": [
                {
                    "cacheClusterId": m.get("CacheClusterId"),
                    "cacheNodeId": m.get("CacheNodeId"),
                    "currentRole": m.get("CurrentRole"),
                    "preferredAvailabilityZone": m.get("PreferredAvailabilityZone"),
                    "readEndpoint": _endpoint(m.get("ReadEndpoint")),
                }
                for m in ng.get("NodeGroupMembers") or []
            ],
        })

    observation = {
        "arn": rg.get("ARN"),
        "status": rg.get("Status"),
        "clusterEnabled": rg.get("ClusterEnabled"),
        "automaticFailoverStatus": rg.get("AutomaticFailover"),
        "multiAZ": rg.get("MultiAZ"),
        "configurationEndpoint": _endpoint(rg.get("ConfigurationEndpoint")),
        "memberClusters": list(rg.get("MemberClusters") or []),
        "nodeGroups": node_groups,
        "logDeliveryConfigurations": [
            _compact({
                "logType": conf.get("LogType"),
                "destinationType": conf.get("DestinationType"),
                "logFormat": conf.get("LogFormat"),
                "status": conf.get("Status"),
                "message": conf.get("Message"),
            })
            for conf in rg.get("LogDeliveryConfigurations") or []
        ],
    }
    if pending:
        observation["pendingModifiedValues"] = _compact({
            "automaticFailoverStatus": pending.get("AutomaticFailoverStatus"),
            "primaryClusterId": pending.get("PrimaryClusterId"),
            "reshardingProgressPercentage": resharding.get("ProgressPercentage"),
        })
    return observation


def replication_group_connection_details(rg: dict[str, Any]) -> dict[str, str]:
    """Endpoint details of a replication group.

    Cluster-mode groups expose the configuration endpoint; other groups expose
    the primary and reader endpoints of their single node group.
    """
    if rg.get("ClusterEnabled"):
        return _endpoint_details(rg.get("ConfigurationEndpoint"), CONNECTION_KEY_ENDPOINT, CONNECTION_KEY_PORT)

    node_groups = rg.get("NodeGroups") or []
    if not node_groups:
        return {}
    details = _endpoint_details(node_groups[0].get("PrimaryEndpoint"), CONNECTION_KEY_ENDPOINT, CONNECTION_KEY_PORT)
    details.update(
        _endpoint_details(
            node_groups[0].get("ReaderEndpoint"), CONNECTION_KEY_READER_ENDPOINT, CONNECTION_KEY_READER_PORT
        )
    )
    return details


# Cache clusters


def build_create_cache_cluster_input(
    params: dict[str, Any],
    cache_cluster_id: str,
    tags: dict[str, str],
) -> dict[str, Any]:
    return _compact({
        "CacheClusterId": cache_cluster_id,
        "AZMode": params.get("azMode"),
        "CacheNodeType": params.get("cacheNodeType"),
        "CacheParameterGroupName": params.get("cacheParameterGroupName"),
        "CacheSecurityGroupNames": params.get("cacheSecurityGroupNames"),
        "CacheSubnetGroupName": params.get("cacheSubnetGroupName"),
        "Engine": params.get("engine"),
        "EngineVersion": params.get("engineVersion"),
        "NotificationTopicArn": params.get("notificationTopicArn"),
        "NumCacheNodes": params.get("numCacheNodes"),
        "Port": params.get("port"),
        "PreferredAvailabilityZone": params.get("preferredAvailabilityZone"),
        "PreferredAvailabilityZones": params.get("preferredAvailabilityZones"),
        "PreferredMaintenanceWindow": params.get("preferredMaintenanceWindow"),
        "ReplicationGroupId": params.get("replicationGroupId"),
        "SecurityGroupIds": params.get("securityGroupIds"),
        "SnapshotArns": params.get("snapshotArns"),
        "SnapshotName": params.get("snapshotName"),
        "SnapshotRetentionLimit": params.get("snapshotRetentionLimit"),
        "SnapshotWindow": params.get("snapshotWindow"),
        "Tags": _tag_list(tags),
    })


def build_modify_cache_cluster_input(
    params: dict[str, Any],
    cache_cluster_id: str,
    cc: dict[str, Any] | None = None,
) -> dict[str, Any]:
    cache_node_type = params.get("cacheNodeType")
    if cc is not None and cache_node_type == cc.get("CacheNodeType"):
        cache_node_type = None
    return _compact({
        "CacheClusterId": cache_cluster_id,
        "ApplyImmediately": params.get("applyImmediately", True),
        "AZMode": params.get("azMode"),
        "CacheNodeIdsToRemove": params.get("cacheNodeIdsToRemove"),
        "CacheNodeType": cache_node_type,
        "CacheParameterGroupName": params.get("cacheParameterGroupName"),
        "CacheSecurityGroupNames": params.get("cacheSecurityGroupNames"),
        "EngineVersion": params.get("engineVersion"),
        "NewAvailabilityZones": params.get("newAvailabilityZones"),
        "NotificationTopicArn": params.get("notificationTopicArn"),
        "NumCacheNodes": params.get("numCacheNodes"),
        "PreferredMaintenanceWindow": params.get("preferredMaintenanceWindow"),
        "SecurityGroupIds": params.get("securityGroupIds"),
        "SnapshotRetentionLimit": params.get("snapshotRetentionLimit"),
        "SnapshotWindow": params.get("snapshotWindow"),
    })


def cache_cluster_observation(cc: dict[str, Any]) -> dict[str, Any]:
    return {
        "arn": cc.get("ARN"),
        "cacheClusterStatus": cc.get("CacheClusterStatus"),
        "clientDownloadLandingPage": cc.get("ClientDownloadLandingPage"),
        "configurationEndpoint": _endpoint(cc.get("ConfigurationEndpoint")),
        "cacheNodes": [
            {
                "cacheNodeId": node.get("CacheNodeId"),
                "cacheNodeStatus": node.get("CacheNodeStatus"),
                "customerAvailabilityZone": node.get("CustomerAvailabilityZone"),
                "endpoint": _endpoint(node.get("Endpoint")),
                "parameterGroupStatus": node.get("ParameterGroupStatus"),
            }
            for node in cc.get("CacheNodes") or []
        ],
        "pendingModifiedValues": _compact({
            "cacheNodeType": (cc.get("PendingModifiedValues") or {}).get("CacheNodeType"),
            "engineVersion": (cc.get("PendingModifiedValues") or {}).get("EngineVersion"),
            "numCacheNodes": (cc.get("PendingModifiedValues") or {}).get("NumCacheNodes"),
        }),
    }


def cache_cluster_connection_details(cc: dict[str, Any]) -> dict[str, str]:
    """Memcached clusters expose a configuration endpoint, Redis clusters their first node."""
    if cc.get("ConfigurationEndpoint"):
        return _endpoint_details(cc["ConfigurationEndpoint"], CONNECTION_KEY_ENDPOINT, CONNECTION_KEY_PORT)
    nodes = cc.get("CacheNodes") or []
    if not nodes:
        return {}
    return _endpoint_details(nodes[0].get("Endpoint"), CONNECTION_KEY_ENDPOINT, CONNECTION_KEY_PORT)


# Cache subnet groups


def build_cache_subnet_group_input(params: dict[str, Any], name: str) -> dict[str, Any]:
    return _compact({
        "CacheSubnetGroupName": name,
        "CacheSubnetGroupDescription": params.get("description"),
        "SubnetIds": params.get("subnetIds"),
    })


def cache_subnet_group_observation(sg: dict[str, Any]) -> dict[str, Any]:
    return {
        "arn": sg.get("ARN"),
        "vpcId": sg.get("VpcId"),
        "subnets": [
            {
                "subnetIdentifier": s.get("SubnetIdentifier"),
                "subnetAvailabilityZone": (s.get("SubnetAvailabilityZone") or {}).get("Name"),
            }
            for s in sg.get("Subnets") or []
        ],
    }
