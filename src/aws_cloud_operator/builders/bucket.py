"""Builders translating Bucket specs into S3 request shapes."""

from __future__ import annotations

from typing import Any

from ..constants import CONNECTION_KEY_ENDPOINT, CONNECTION_KEY_REGION

DEFAULT_SSE_ALGORITHM = "AES256"


def partition_for_region(region: str) -> str:
    if region.startswith("cn-"):
        return "aws-cn"
    if region.startswith("us-gov-"):
        return "aws-us-gov"
    return "aws"


def bucket_arn(name: str, region: str) -> str:
    return f"arn:{partition_for_region(region)}:s3:::{name}"


def build_cors_rules(cors: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert ``corsConfiguration.corsRules`` into S3 CORSRules.

    Args:
        cors: The corsConfiguration block of the spec

    Returns:
        List of CORS rules as S3 expects them
    """
    rules = []
    for rule in cors.get("corsRules") or []:
        aws_rule: dict[str, Any] = {
            "AllowedMethods": list(rule.get("allowedMethods") or []),
            "AllowedOrigins": list(rule.get("allowedOrigins") or []),
        }
        if rule.get("allowedHeaders"):
            aws_rule["AllowedHeaders"] = list(rule["allowedHeaders"])
        if rule.get("exposeHeaders"):
            aws_rule["ExposeHeaders"] = list(rule["exposeHeaders"])
        if rule.get("maxAgeSeconds") is not None:
            aws_rule["MaxAgeSeconds"] = int(rule["maxAgeSeconds"])
        if rule.get("id"):
            aws_rule["ID"] = rule["id"]
        rules.append(aws_rule)
    return rules


def build_encryption_rules(sse: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert ``serverSideEncryptionConfiguration.rules`` into S3 encryption rules."""
    rules = []
    for rule in sse.get("rules") or []:
        default = rule.get("applyServerSideEncryptionByDefault") or {}
        by_default: dict[str, Any] = {"SSEAlgorithm": default.get("sseAlgorithm", DEFAULT_SSE_ALGORITHM)}
        if default.get("kmsMasterKeyId"):
            by_default["KMSMasterKeyID"] = default["kmsMasterKeyId"]
        aws_rule: dict[str, Any] = {"ApplyServerSideEncryptionByDefault": by_default}
        if rule.get("bucketKeyEnabled") is not None:
            aws_rule["BucketKeyEnabled"] = bool(rule["bucketKeyEnabled"])
        rules.append(aws_rule)
    return rules


# Spec keys whose S3 name is not the key with its first letter upper-cased
_AWS_KEY_NAMES = {"id": "ID", "uri": "URI", "replicaKmsKeyId": "ReplicaKmsKeyID"}


def to_aws_shape(value: Any) -> Any:
    """Convert a camelCase spec value into the PascalCase shape S3 expects.

    Unset fields are dropped.
    """
    if isinstance(value, dict):
        return {
            _AWS_KEY_NAMES.get(k, k[:1].upper() + k[1:]): to_aws_shape(v)
            for k, v in value.items()
            if v is not None
        }
    if isinstance(value, list):
        return [to_aws_shape(v) for v in value]
    return value


def build_lifecycle_rules(lifecycle: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert ``lifecycleConfiguration.rules`` into S3 lifecycle rules.

    A rule without a filter applies to every object, which S3 spells as an
    empty prefix filter.
    """
    rules = []
    for rule in lifecycle.get("rules") or []:
        aws_rule = to_aws_shape(rule)
        aws_rule.setdefault("Filter", {"Prefix": ""})
        rules.append(aws_rule)
    return rules


def build_logging_enabled(logging_config: dict[str, Any]) -> dict[str, Any]:
    return to_aws_shape({
        "targetBucket": logging_config.get("targetBucket"),
        "targetPrefix": logging_config.get("targetPrefix", ""),
        "targetGrants": logging_config.get("targetGrants"),
    })


def build_notification_configuration(notification: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
    """Convert ``notificationConfiguration`` into an S3 NotificationConfiguration.

    Every list is present, so a put replaces all of them.
    """
    configuration = {
        "TopicConfigurations": to_aws_shape(notification.get("topicConfigurations") or []),
        "QueueConfigurations": to_aws_shape(notification.get("queueConfigurations") or []),
        "LambdaFunctionConfigurations": to_aws_shape(notification.get("lambdaFunctionConfigurations") or []),
    }
    for entries in configuration.values():
        for entry in entries:
            # Notification IDs are spelled Id
            if "ID" in entry:
                entry["Id"] = entry.pop("ID")
    return configuration


def build_replication_configuration(replication: dict[str, Any]) -> dict[str, Any]:
    return {"Role": replication.get("role", ""), "Rules": to_aws_shape(replication.get("rules") or [])}


def build_website_configuration(website: dict[str, Any]) -> dict[str, Any]:
    return to_aws_shape({
        "errorDocument": website.get("errorDocument"),
        "indexDocument": website.get("indexDocument"),
        "redirectAllRequestsTo": website.get("redirectAllRequestsTo"),
        "routingRules": website.get("routingRules") or None,
    })


def bucket_observation(observed: dict[str, Any]) -> dict[str, Any]:
    return {
        "arn": bucket_arn(observed["Name"], observed["Region"]),
        "region": observed["Region"],
    }


def bucket_connection_details(observed: dict[str, Any]) -> dict[str, str]:
    return {CONNECTION_KEY_ENDPOINT: observed["Name"], CONNECTION_KEY_REGION: observed["Region"]}
