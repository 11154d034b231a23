"""ElastiCache gateway."""

from __future__ import annotations

from typing import Any

from .base import AWSService


class ElastiCacheGateway(AWSService):
    """Replication group, cache cluster, subnet group and tag operations."""

    service_name = "elasticache"
    not_found_codes = frozenset({
        "ReplicationGroupNotFoundFault",
        "ReplicationGroupNotFound",
        "CacheClusterNotFound",
        "CacheClusterNotFoundFault",
        "CacheSubnetGroupNotFoundFault",
        "CacheSubnetGroupNotFound",
    })
    already_exists_codes = frozenset({
        "ReplicationGroupAlreadyExists",
        "ReplicationGroupAlreadyExistsFault",
        "CacheClusterAlreadyExists",
        "CacheClusterAlreadyExistsFault",
        "CacheSubnetGroupAlreadyExists",
        "CacheSubnetGroupAlreadyExistsFault",
    })
    conflict_codes = frozenset({
        "InvalidReplicationGroupState",
        "InvalidReplicationGroupStateFault",
        "InvalidCacheClusterState",
        "InvalidCacheClusterStateFault",
    })

    # Replication groups

    def describe_replication_group(self, replication_group_id: str) -> dict[str, Any]:
        response = self._call("describe_replication_groups", ReplicationGroupId=replication_group_id)
        return self._first(response, "ReplicationGroups", replication_group_id)

    def create_replication_group(self, **params: Any) -> dict[str, Any]:
        return self._call("create_replication_group", **params).get("ReplicationGroup", {})

    def modify_replication_group(self, **params: Any) -> dict[str, Any]:
        return self._call("modify_replication_group", **params).get("ReplicationGroup", {})

    def modify_replication_group_shard_configuration(self, **params: Any) -> dict[str, Any]:
        return self._call("modify_replication_group_shard_configuration", **params).get("ReplicationGroup", {})

    def increase_replica_count(
        self,
        replication_group_id: str,
        new_replica_count: int,
        apply_immediately: bool = True,
    ) -> dict[str, Any]:
        return self._call(
            "increase_replica_count",
            ReplicationGroupId=replication_group_id,
            NewReplicaCount=new_replica_count,
            ApplyImmediately=apply_immediately,
        ).get("ReplicationGroup", {})

    def decrease_replica_count(
        self,
        replication_group_id: str,
        new_replica_count: int,
        apply_immediately: bool = True,
    ) -> dict[str, Any]:
        return self._call(
            "decrease_replica_count",
            ReplicationGroupId=replication_group_id,
            NewReplicaCount=new_replica_count,
            ApplyImmediately=apply_immediately,
        ).get("ReplicationGroup", {})

    def delete_replication_group(self, replication_group_id: str, retain_primary_cluster: bool = False) -> None:
        self._call(
            "delete_replication_group",
            ReplicationGroupId=replication_group_id,
            RetainPrimaryCluster=retain_primary_cluster,
        )

    # Cache clusters

    def describe_cache_cluster(self, cache_cluster_id: str) -> dict[str, Any]:
        response = self._call(
            "describe_cache_clusters",
            CacheClusterId=cache_cluster_id,
            ShowCacheNodeInfo=True,
        )
        return self._first(response, "CacheClusters", cache_cluster_id)

    def create_cache_cluster(self, **params: Any) -> dict[str, Any]:
        return self._call("create_cache_cluster", **params).get("CacheCluster", {})

    def modify_cache_cluster(self, **params: Any) -> dict[str, Any]:
        return self._call("modify_cache_cluster", **params).get("CacheCluster", {})

    def delete_cache_cluster(self, cache_cluster_id: str) -> None:
        self._call("delete_cache_cluster", CacheClusterId=cache_cluster_id)

    # Cache subnet groups

    def describe_cache_subnet_group(self, name: str) -> dict[str, Any]:
        response = self._call("describe_cache_subnet_groups", CacheSubnetGroupName=name)
        return self._first(response, "CacheSubnetGroups", name)

    def create_cache_subnet_group(self, **params: Any) -> dict[str, Any]:
        return self._call("create_cache_subnet_group", **params).get("CacheSubnetGroup", {})

    def modify_cache_subnet_group(self, **params: Any) -> dict[str, Any]:
        return self._call("modify_cache_subnet_group", **params).get("CacheSubnetGroup", {})

    def delete_cache_subnet_group(self, name: str) -> None:
        self._call("delete_cache_subnet_group", CacheSubnetGroupName=name)

    # Tags

    def list_tags(self, arn: str) -> dict[str, str]:
        response = self._call("list_tags_for_resource", ResourceName=arn)
        return {t["Key"]: t.get("Value", "") for t in response.get("TagList", [])}

    def add_tags(self, arn: str, tags: dict[str, str]) -> None:
        self._call(
            "add_tags_to_resource",
            ResourceName=arn,
            Tags=[{"Key": k, "Value": v} for k, v in sorted(tags.items())],
        )

    def remove_tags(self, arn: str, keys: list[str]) -> None:
        self._call("remove_tags_from_resource", ResourceName=arn, TagKeys=list(keys))
