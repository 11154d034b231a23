"""Tests for ElastiCache drift detection, late initialization and builders."""

from __future__ import annotations

import pytest

from aws_cloud_operator.builders.elasticache import (
    build_create_replication_group_input,
    build_log_delivery_requests,
    build_modify_replication_group_input,
    build_shard_configuration_input,
    cache_cluster_connection_details,
    replication_group_connection_details,
    replication_group_observation,
)
from aws_cloud_operator.diff.elasticache import (
    UpdateClass,
    cache_subnet_group_diff,
    classify_replication_group_update,
    late_initialize_replication_group,
    log_delivery_needs_update,
    normalize_engine_version,
    replica_count_change,
    replication_group_needs_update,
    version_matches,
)
from aws_cloud_operator.errors import InvalidParameterError


def _rg(**overrides):
    rg = {
        "ReplicationGroupId": "rg",
        "ARN": "arn:aws:elasticache:us-east-1:123:replicationgroup:rg",
        "Status": "available",
        "AutomaticFailover": "enabled",
        "CacheNodeType": "cache.t3.micro",
        "SnapshotRetentionLimit": 0,
        "MemberClusters": ["rg-001", "rg-002"],
        "NodeGroups": [{"NodeGroupId": "0001"}],
    }
    rg.update(overrides)
    return rg


def _cc(**overrides):
    cc = {
        "CacheClusterId": "rg-001",
        "EngineVersion": "6.2.6",
        "CacheParameterGroup": {"CacheParameterGroupName": "default.redis6.x"},
        "PreferredMaintenanceWindow": "sun:05:00-sun:06:00",
        "SecurityGroups": [{"SecurityGroupId": "sg-1"}],
    }
    cc.update(overrides)
    return cc


class TestEngineVersion:
    """Test cases for engine version handling."""

    @pytest.mark.parametrize(
        ("version", "expected"),
        [("5.0.6", "5.0.6"), ("6.2.6", "6.2"), ("6.x", "6.x"), ("7", "7.x"), (None, None)],
    )
    def test_normalize(self, version, expected):
        """Test versions are normalized per engine generation."""
        assert normalize_engine_version(version) == expected

    def test_normalize_invalid(self):
        """Test unparseable versions are rejected."""
        with pytest.raises(InvalidParameterError):
            normalize_engine_version("latest")

    @pytest.mark.parametrize(
        ("desired", "observed", "matches"),
        [
            ("6.x", "6.2.6", True),
            ("6.2", "6.2.6", True),
            ("6.2", "6.0.5", False),
            ("7.0", "6.2.6", False),
            ("5.0", "5.0.6", True),
            ("5.0.6", "5.0.5", False),
            (None, "6.2.6", True),
        ],
    )
    def test_version_matches(self, desired, observed, matches):
        """Test versions compare at the precision given."""
        assert version_matches(desired, observed) is matches


class TestLateInitializeReplicationGroup:
    """Test cases for replication group late initialization."""

    def test_fills_from_group_and_cluster(self):
        """Test unset fields are filled from the group and first member."""
        params = {}

        changed = late_initialize_replication_group(params, _rg(SnapshotWindow="05:00-06:00"), _cc())

        assert changed
        assert params["automaticFailoverEnabled"] is True
        assert params["snapshotWindow"] == "05:00-06:00"
        assert params["snapshotRetentionLimit"] == 0
        assert params["engineVersion"] == "6.2.6"
        assert params["cacheParameterGroupName"] == "default.redis6.x"
        assert params["securityGroupIds"] == ["sg-1"]

    def test_keeps_user_values(self):
        """Test user values are never overwritten."""
        params = {"automaticFailoverEnabled": False, "engineVersion": "6.x"}

        late_initialize_replication_group(params, _rg(), _cc())

        assert params["automaticFailoverEnabled"] is False
        assert params["engineVersion"] == "6.x"


class TestReplicationGroupDiff:
    """Test cases for replication group drift detection."""

    def test_up_to_date(self):
        """Test no drift when desired matches observed."""
        params = {"cacheNodeType": "cache.t3.micro", "numCacheClusters": 2, "engineVersion": "6.x"}
        assert replication_group_needs_update(params, _rg(), [_cc(), _cc(CacheClusterId="rg-002")]) == ""

    def test_unset_fields_never_drift(self):
        """Test unset desired fields are ignored."""
        assert replication_group_needs_update({}, _rg(CacheNodeType="cache.m5.large"), [_cc()]) == ""

    def test_zero_retention_matches_missing(self):
        """Test a retention limit of 0 matches an unreported limit."""
        params = {"snapshotRetentionLimit": 0}
        assert replication_group_needs_update(params, _rg(SnapshotRetentionLimit=None), [_cc()]) == ""

    def test_node_type_drift(self):
        """Test node type changes are detected."""
        assert replication_group_needs_update({"cacheNodeType": "cache.m5.large"}, _rg(), [_cc()]) == "CacheNodeType"

    def test_member_cluster_drift(self):
        """Test cluster-level fields are compared on each member."""
        params = {"securityGroupIds": ["sg-1", "sg-2"]}
        assert replication_group_needs_update(params, _rg(), [_cc()]) == "SecurityGroupIds"

    def test_maintenance_window_case_insensitive(self):
        """Test maintenance windows compare without case."""
        params = {"preferredMaintenanceWindow": "SUN:05:00-SUN:06:00"}
        assert replication_group_needs_update(params, _rg(), [_cc()]) == ""


class TestClassifyReplicationGroupUpdate:
    """Test cases for update classification."""

    def test_shard_configuration_first(self):
        """Test shard changes take priority over everything else."""
        params = {"numNodeGroups": 2, "numCacheClusters": 3, "cacheNodeType": "cache.m5.large"}
        assert classify_replication_group_update(params, _rg(), [_cc()]) is UpdateClass.SHARD_CONFIGURATION

    def test_replica_count_before_modify(self):
        """Test replica changes are applied before other modifications."""
        params = {"numCacheClusters": 3, "cacheNodeType": "cache.m5.large"}
        assert classify_replication_group_update(params, _rg(), [_cc(), _cc()]) is UpdateClass.REPLICA_COUNT

    def test_modify(self):
        """Test other field changes classify as a modification."""
        assert classify_replication_group_update({"snapshotWindow": "01:00-02:00"}, _rg(), [_cc()]) is UpdateClass.MODIFY

    def test_tags_last(self):
        """Test tag drift is reported only when nothing else drifted."""
        result = classify_replication_group_update({}, _rg(), [_cc()], {"a": "1"}, {"a": "2"})
        assert result is UpdateClass.TAGS

    def test_tags_ignored_without_observation(self):
        """Test tags are not compared when they were not observed."""
        assert classify_replication_group_update({}, _rg(), [_cc()], {"a": "1"}, None) is None

    def test_auth_token_after_modify(self):
        """Test a token change waits for other modifications but precedes tags."""
        params = {"snapshotWindow": "01:00-02:00"}
        assert classify_replication_group_update(params, _rg(), [_cc()], auth_token_changed=True) is UpdateClass.MODIFY
        result = classify_replication_group_update({}, _rg(), [_cc()], {"a": "1"}, {"a": "2"}, auth_token_changed=True)
        assert result is UpdateClass.AUTH_TOKEN


class TestReplicaCountChange:
    """Test cases for replica_count_change."""

    def test_increase(self):
        """Test growing the group."""
        assert replica_count_change(3, 2) == (True, 2)

    def test_decrease(self):
        """Test shrinking the group."""
        assert replica_count_change(2, 4) == (False, 1)

    def test_too_few_replicas(self):
        """Test a single-node group cannot be reached by removing replicas."""
        with pytest.raises(InvalidParameterError, match="^at least 1 replica is required$"):
            replica_count_change(1, 2)

    def test_too_many_replicas(self):
        """Test the replica count is capped."""
        with pytest.raises(InvalidParameterError, match="^maximum of 5 replicas are allowed$"):
            replica_count_change(7, 2)

    def test_largest_group(self):
        """Test the largest allowed group."""
        assert replica_count_change(6, 2) == (True, 5)


class TestReplicationGroupBuilders:
    """Test cases for replication group request builders."""

    def test_create_input_compacts_and_tags(self):
        """Test unset fields are dropped and tags are sorted."""
        params = {"replicationGroupDescription": "d", "engine": "redis", "securityGroupIds": []}

        result = build_create_replication_group_input(params, "rg", {"b": "2", "a": "1"}, auth_token="t" * 16)

        assert result["ReplicationGroupId"] == "rg"
        assert result["AuthToken"] == "t" * 16
        assert result["Tags"] == [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "2"}]
        assert "SecurityGroupIds" not in result
        assert "CacheNodeType" not in result

    def test_modify_omits_unchanged_node_type(self):
        """Test the node type is only sent when it changes."""
        params = {"cacheNodeType": "cache.t3.micro", "engineVersion": "6.2.6"}

        result = build_modify_replication_group_input(params, "rg", _rg())

        assert "CacheNodeType" not in result
        assert result["EngineVersion"] == "6.2"
        assert result["ApplyImmediately"] is True

    def test_shard_scale_in_removes_first_groups(self):
        """Test scaling in removes the first excess node groups."""
        rg = _rg(NodeGroups=[{"NodeGroupId": "0001"}, {"NodeGroupId": "0002"}, {"NodeGroupId": "0003"}])

        result = build_shard_configuration_input({"numNodeGroups": 2}, "rg", rg)

        assert result == {
            "ReplicationGroupId": "rg",
            "ApplyImmediately": True,
            "NodeGroupCount": 2,
            "NodeGroupsToRemove": ["0001"],
        }

    def test_shard_scale_out(self):
        """Test scaling out removes nothing."""
        result = build_shard_configuration_input({"numNodeGroups": 3}, "rg", _rg())
        assert "NodeGroupsToRemove" not in result

    def test_connection_details_cluster_mode(self):
        """Test cluster-mode groups publish the configuration endpoint."""
        rg = _rg(ClusterEnabled=True, ConfigurationEndpoint={"Address": "cfg.example", "Port": 6379})
        assert replication_group_connection_details(rg) == {"endpoint": "cfg.example", "port": "6379"}

    def test_connection_details_primary_and_reader(self):
        """Test non cluster-mode groups publish primary and reader endpoints."""
        rg = _rg(
            ClusterEnabled=False,
            NodeGroups=[{
                "NodeGroupId": "0001",
                "PrimaryEndpoint": {"Address": "primary.example", "Port": 6379},
                "ReaderEndpoint": {"Address": "reader.example", "Port": 6379},
            }],
        )
        assert replication_group_connection_details(rg) == {
            "endpoint": "primary.example",
            "port": "6379",
            "readerEndpoint": "reader.example",
            "readerPort": "6379",
        }

    def test_connection_details_before_endpoints(self):
        """Test a group without endpoints publishes nothing."""
        assert replication_group_connection_details(_rg(NodeGroups=[])) == {}


class TestCacheClusterAndSubnetGroup:
    """Test cases for cache cluster and subnet group helpers."""

    def test_cache_cluster_node_endpoint(self):
        """Test Redis clusters publish their first node endpoint."""
        cc = {"CacheNodes": [{"Endpoint": {"Address": "node.example", "Port": 6379}}]}
        assert cache_cluster_connection_details(cc) == {"endpoint": "node.example", "port": "6379"}

    def test_subnet_group_diff(self):
        """Test subnet sets compare without order."""
        sg = {
            "CacheSubnetGroupDescription": "d",
            "Subnets": [{"SubnetIdentifier": "subnet-2"}, {"SubnetIdentifier": "subnet-1"}],
        }
        assert cache_subnet_group_diff({"description": "d", "subnetIds": ["subnet-1", "subnet-2"]}, sg) == ""
        assert cache_subnet_group_diff({"subnetIds": ["subnet-1"]}, sg) == "SubnetIds"
        assert cache_subnet_group_diff({"description": "new"}, sg) == "Description"


SLOW_LOG = {
    "LogType": "slow-log",
    "DestinationType": "cloudwatch-logs",
    "DestinationDetails": {"CloudWatchLogsDetails": {"LogGroup": "redis-slow"}},
    "LogFormat": "json",
    "Status": "active",
}

SLOW_LOG_SPEC = {
    "destinationType": "cloudwatch-logs",
    "destinationDetails": {"cloudWatchLogsDetails": {"logGroup": "redis-slow"}},
    "logFormat": "json",
}


class TestLogDelivery:
    """Test cases for log delivery configuration."""

    def test_undeclared_is_never_drift(self):
        """Test groups without a declared configuration keep what AWS delivers."""
        assert not log_delivery_needs_update({}, _rg(LogDeliveryConfigurations=[SLOW_LOG]))

    def test_matching_configuration(self):
        """Test a delivered log type matching the spec is not drift."""
        params = {"logDeliveryConfiguration": {"slowLogs": dict(SLOW_LOG_SPEC)}}
        assert not log_delivery_needs_update(params, _rg(LogDeliveryConfigurations=[SLOW_LOG]))

    def test_missing_log_type_is_drift(self):
        """Test a declared log type AWS does not deliver is drift."""
        params = {"logDeliveryConfiguration": {"slowLogs": dict(SLOW_LOG_SPEC)}}
        assert log_delivery_needs_update(params, _rg())

    def test_destination_change_is_drift(self):
        """Test a new log group is drift."""
        spec = dict(SLOW_LOG_SPEC, destinationDetails={"cloudWatchLogsDetails": {"logGroup": "other"}})
        params = {"logDeliveryConfiguration": {"slowLogs": spec}}
        assert log_delivery_needs_update(params, _rg(LogDeliveryConfigurations=[SLOW_LOG]))

    def test_removed_log_type_is_drift(self):
        """Test a delivered log type dropped from the spec is drift."""
        params = {"logDeliveryConfiguration": {}}
        assert log_delivery_needs_update(params, _rg(LogDeliveryConfigurations=[SLOW_LOG]))

    def test_disabled_log_type_not_delivered(self):
        """Test a disabled log type that AWS does not deliver is not drift."""
        params = {"logDeliveryConfiguration": {"engineLogs": {"enabled": False}}}
        assert not log_delivery_needs_update(params, _rg())

    def test_needs_update_names_field(self):
        """Test log delivery drift is reported by replication_group_needs_update."""
        params = {"logDeliveryConfiguration": {"slowLogs": dict(SLOW_LOG_SPEC)}}
        assert replication_group_needs_update(params, _rg(), [_cc()]) == "LogDeliveryConfiguration"

    def test_late_initialize_from_group(self):
        """Test delivered log types are adopted when nothing is declared."""
        params = {}

        late_initialize_replication_group(params, _rg(LogDeliveryConfigurations=[SLOW_LOG]), _cc())

        assert params["logDeliveryConfiguration"] == {"slowLogs": dict(SLOW_LOG_SPEC, enabled=True)}
        assert not log_delivery_needs_update(params, _rg(LogDeliveryConfigurations=[SLOW_LOG]))

    def test_late_initialize_keeps_declared(self):
        """Test a declared configuration is not extended from AWS."""
        params = {"logDeliveryConfiguration": {}}

        late_initialize_replication_group(params, _rg(LogDeliveryConfigurations=[SLOW_LOG]), _cc())

        assert params["logDeliveryConfiguration"] == {}

    def test_create_carries_entries(self):
        """Test the declared log types are sent on create."""
        params = {"logDeliveryConfiguration": {"slowLogs": dict(SLOW_LOG_SPEC)}}

        result = build_create_replication_group_input(params, "rg", {})

        assert result["LogDeliveryConfigurations"] == [{
            "LogType": "slow-log",
            "DestinationType": "cloudwatch-logs",
            "DestinationDetails": {"CloudWatchLogsDetails": {"LogGroup": "redis-slow"}},
            "LogFormat": "json",
            "Enabled": True,
        }]

    def test_modify_disables_removed_log_type(self):
        """Test a log type dropped from the spec is disabled explicitly."""
        engine_spec = {
            "destinationType": "kinesis-firehose",
            "destinationDetails": {"kinesisFirehoseDetails": {"deliveryStream": "engine"}},
            "logFormat": "text",
        }
        params = {"logDeliveryConfiguration": {"engineLogs": engine_spec}}

        result = build_modify_replication_group_input(params, "rg", _rg(LogDeliveryConfigurations=[SLOW_LOG]))

        assert result["LogDeliveryConfigurations"] == [
            {"LogType": "slow-log", "Enabled": False},
            {
                "LogType": "engine-log",
                "DestinationType": "kinesis-firehose",
                "DestinationDetails": {"KinesisFirehoseDetails": {"DeliveryStream": "engine"}},
                "LogFormat": "text",
                "Enabled": True,
            },
        ]

    def test_modify_skips_disabled_log_type_not_delivered(self):
        """Test disabling a log type AWS never delivered is not requested."""
        params = {"logDeliveryConfiguration": {"slowLogs": {"enabled": False}}}

        assert build_log_delivery_requests(params, _rg()) == []

    def test_modify_without_declared_configuration(self):
        """Test nothing is sent for an undeclared configuration."""
        result = build_modify_replication_group_input({}, "rg", _rg(LogDeliveryConfigurations=[SLOW_LOG]))

        assert "LogDeliveryConfigurations" not in result

    def test_observation(self):
        """Test log delivery status is reported in the observation."""
        observation = replication_group_observation(_rg(LogDeliveryConfigurations=[SLOW_LOG]))

        assert observation["logDeliveryConfigurations"] == [{
            "logType": "slow-log",
            "destinationType": "cloudwatch-logs",
            "logFormat": "json",
            "status": "active",
        }]
