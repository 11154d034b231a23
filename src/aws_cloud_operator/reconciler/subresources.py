"""Sub-resource orchestration for managed objects composed of independent configurations.

An S3 bucket is one managed object whose versioning, lifecycle, website and
other settings are read and written through separate API calls. Each setting gets a
:class:`SubResource` that reports whether AWS matches the desired state and
knows how to apply or remove it. The bucket reconciler applies the first
setting that is not :attr:`SubResourceStatus.UPDATED` per pass.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from ..builders.bucket import (
    DEFAULT_SSE_ALGORITHM,
    build_cors_rules,
    build_encryption_rules,
    build_lifecycle_rules,
    build_logging_enabled,
    build_notification_configuration,
    build_replication_configuration,
    build_website_configuration,
)
from ..constants import KIND_BUCKET
from ..diff.tags import desired_tags, tags_need_update
from ..services.aws.s3 import S3Gateway

VERSIONING_SUSPENDED = "Suspended"
ACCELERATION_SUSPENDED = "Suspended"
PAYER_BUCKET_OWNER = "BucketOwner"

# Tags AWS attaches itself; they cannot be set or removed by callers
SYSTEM_TAG_PREFIX = "aws:"


class SubResourceStatus(str, Enum):
    UPDATED = "Updated"
    NEEDS_UPDATE = "NeedsUpdate"
    NEEDS_DELETION = "NeedsDeletion"


class SubResource:
    """One independently-modifiable bucket configuration."""

    name = ""

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        raise NotImplementedError

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        raise NotImplementedError

    def apply(self, gateway: S3Gateway, bucket: str, params: dict[str, Any], status: SubResourceStatus) -> None:
        if status == SubResourceStatus.NEEDS_UPDATE:
            self.create(gateway, bucket, params)
        elif status == SubResourceStatus.NEEDS_DELETION:
            self.delete(gateway, bucket, params)


class Versioning(SubResource):
    """Absent versioning resets to Suspended; S3 cannot return to Unversioned."""

    name = "Versioning"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = params.get("versioningConfiguration")
        observed = gateway.get_bucket_versioning(bucket)
        if not desired:
            if observed.get("Status") == "Enabled":
                return SubResourceStatus.NEEDS_DELETION
            return SubResourceStatus.UPDATED
        if desired.get("status") != observed.get("Status"):
            return SubResourceStatus.NEEDS_UPDATE
        if desired.get("mfaDelete") and desired["mfaDelete"] != observed.get("MFADelete"):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        desired = params["versioningConfiguration"]
        gateway.put_bucket_versioning(bucket, desired["status"], desired.get("mfaDelete"))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_versioning(bucket, VERSIONING_SUSPENDED)


class Tagging(SubResource):
    name = "Tagging"

    def _desired(self, bucket: str, params: dict[str, Any]) -> dict[str, str]:
        return desired_tags(params.get("tags"), KIND_BUCKET, bucket)

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        observed = {k: v for k, v in gateway.get_bucket_tagging(bucket).items() if not k.startswith(SYSTEM_TAG_PREFIX)}
        desired = self._desired(bucket, params)
        if not desired:
            return SubResourceStatus.NEEDS_DELETION if observed else SubResourceStatus.UPDATED
        if tags_need_update(desired, observed):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_tagging(bucket, self._desired(bucket, params))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.delete_bucket_tagging(bucket)


def _normalize_cors(rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # S3 returns header and method lists in its own order
    normalized = []
    for rule in rules:
        normalized.append({
            k: sorted(v) if isinstance(v, list) else v
            for k, v in rule.items()
        })
    return normalized


class CORS(SubResource):
    name = "CORS"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = params.get("corsConfiguration")
        observed = gateway.get_bucket_cors(bucket)
        if not desired:
            return SubResourceStatus.UPDATED if observed is None else SubResourceStatus.NEEDS_DELETION
        if observed is None:
            return SubResourceStatus.NEEDS_UPDATE
        if _normalize_cors(build_cors_rules(desired)) != _normalize_cors(observed):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_cors(bucket, build_cors_rules(params["corsConfiguration"]))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.delete_bucket_cors(bucket)


def is_default_encryption(rules: list[dict[str, Any]]) -> bool:
    """Return whether ``rules`` is the SSE-S3 default S3 applies to every new bucket."""
    if len(rules) != 1:
        return False
    by_default = rules[0].get("ApplyServerSideEncryptionByDefault") or {}
    return by_default.get("SSEAlgorithm") == DEFAULT_SSE_ALGORITHM and not by_default.get("KMSMasterKeyID")


def _normalize_encryption(rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
    normalized = []
    for rule in rules:
        by_default = rule.get("ApplyServerSideEncryptionByDefault") or {}
        normalized.append({
            "SSEAlgorithm": by_default.get("SSEAlgorithm"),
            "KMSMasterKeyID": by_default.get("KMSMasterKeyID"),
            "BucketKeyEnabled": bool(rule.get("BucketKeyEnabled", False)),
        })
    return normalized


class ServerSideEncryption(SubResource):
    name = "ServerSideEncryption"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = params.get("serverSideEncryptionConfiguration")
        observed = gateway.get_bucket_encryption(bucket)
        if not desired:
            if observed is None or is_default_encryption(observed):
                return SubResourceStatus.UPDATED
            return SubResourceStatus.NEEDS_DELETION
        if observed is None:
            return SubResourceStatus.NEEDS_UPDATE
        if _normalize_encryption(build_encryption_rules(desired)) != _normalize_encryption(observed):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_encryption(bucket, build_encryption_rules(params["serverSideEncryptionConfiguration"]))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.delete_bucket_encryption(bucket)


class Acceleration(SubResource):
    name = "Acceleration"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = (params.get("accelerateConfiguration") or {}).get("status")
        observed = gateway.get_bucket_accelerate_status(bucket)
        if not desired:
            return SubResourceStatus.NEEDS_DELETION if observed == "Enabled" else SubResourceStatus.UPDATED
        if desired != (observed or ACCELERATION_SUSPENDED):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_accelerate_status(bucket, params["accelerateConfiguration"]["status"])

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_accelerate_status(bucket, ACCELERATION_SUSPENDED)


class RequestPayment(SubResource):
    name = "RequestPayment"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = (params.get("paymentConfiguration") or {}).get("payer")
        observed = gateway.get_bucket_request_payer(bucket)
        if not desired:
            return SubResourceStatus.UPDATED if observed == PAYER_BUCKET_OWNER else SubResourceStatus.NEEDS_DELETION
        if desired != observed:
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_request_payer(bucket, params["paymentConfiguration"]["payer"])

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_request_payer(bucket, PAYER_BUCKET_OWNER)


def _comparable(value: Any, key: str = "") -> Any:
    """Normalize an S3 configuration for comparison.

    IDs S3 may assign and empty values are dropped. Lists other than rules
    compare without order.
    """
    if isinstance(value, dict):
        return {
            k: _comparable(v, k)
            for k, v in value.items()
            if k not in ("ID", "Id") and v not in (None, [], {})
        }
    if isinstance(value, list):
        items = [_comparable(v) for v in value]
        if key == "Rules":
            # Lifecycle and replication rules apply in order
            return items
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, default=str))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if key == "Date" and isinstance(value, str):
        return value[:10]
    if key == "Name" and isinstance(value, str):
        return value.lower()
    return value


class Lifecycle(SubResource):
    name = "Lifecycle"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = build_lifecycle_rules(params.get("lifecycleConfiguration") or {})
        observed = gateway.get_bucket_lifecycle_configuration(bucket)
        if not desired:
            return SubResourceStatus.NEEDS_DELETION if observed else SubResourceStatus.UPDATED
        if _comparable({"Rules": desired}) != _comparable({"Rules": observed or []}):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_lifecycle_configuration(bucket, build_lifecycle_rules(params["lifecycleConfiguration"]))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.delete_bucket_lifecycle(bucket)


class Logging(SubResource):
    """Server access logging; removing the configuration turns logging off."""

    name = "Logging"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = params.get("loggingConfiguration")
        observed = gateway.get_bucket_logging(bucket)
        if not desired:
            return SubResourceStatus.NEEDS_DELETION if observed else SubResourceStatus.UPDATED
        if _comparable(build_logging_enabled(desired)) != _comparable(observed or {}):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_logging(bucket, build_logging_enabled(params["loggingConfiguration"]))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_logging(bucket, None)


class Notification(SubResource):
    """Event notifications; S3 has no delete call, an empty configuration clears them."""

    name = "Notification"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = params.get("notificationConfiguration")
        observed = gateway.get_bucket_notification_configuration(bucket)
        if not desired:
            if any(observed.values()):
                return SubResourceStatus.NEEDS_DELETION
            return SubResourceStatus.UPDATED
        if _comparable(build_notification_configuration(desired)) != _comparable(observed):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_notification_configuration(
            bucket, build_notification_configuration(params["notificationConfiguration"])
        )

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_notification_configuration(bucket, {})


class Replication(SubResource):
    """Cross-bucket replication; S3 requires versioning, which is applied first."""

    name = "Replication"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = params.get("replicationConfiguration")
        observed = gateway.get_bucket_replication(bucket)
        if not desired:
            return SubResourceStatus.UPDATED if observed is None else SubResourceStatus.NEEDS_DELETION
        if observed is None:
            return SubResourceStatus.NEEDS_UPDATE
        if _comparable(build_replication_configuration(desired)) != _comparable(observed):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_replication(bucket, build_replication_configuration(params["replicationConfiguration"]))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.delete_bucket_replication(bucket)


class Website(SubResource):
    name = "Website"

    def observe(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> SubResourceStatus:
        desired = params.get("websiteConfiguration")
        observed = gateway.get_bucket_website(bucket)
        if not desired:
            return SubResourceStatus.NEEDS_DELETION if observed else SubResourceStatus.UPDATED
        if _comparable(build_website_configuration(desired)) != _comparable(observed or {}):
            return SubResourceStatus.NEEDS_UPDATE
        return SubResourceStatus.UPDATED

    def create(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.put_bucket_website(bucket, build_website_configuration(params["websiteConfiguration"]))

    def delete(self, gateway: S3Gateway, bucket: str, params: dict[str, Any]) -> None:
        gateway.delete_bucket_website(bucket)


# Applied in this order, one per pass
BUCKET_SUBRESOURCES: tuple[SubResource, ...] = (
    Versioning(),
    Tagging(),
    CORS(),
    ServerSideEncryption(),
    Acceleration(),
    RequestPayment(),
    Lifecycle(),
    Logging(),
    Notification(),
    Replication(),
    Website(),
)


def observe_subresources(
    subresources: tuple[SubResource, ...],
    gateway: S3Gateway,
    bucket: str,
    params: dict[str, Any],
) -> list[tuple[SubResource, SubResourceStatus]]:
    return [(sub, sub.observe(gateway, bucket, params)) for sub in subresources]


def first_pending(
    statuses: list[tuple[SubResource, SubResourceStatus]],
) -> tuple[SubResource, SubResourceStatus] | None:
    """Return the first sub-resource that is not up to date, if any."""
    for sub, status in statuses:
        if status != SubResourceStatus.UPDATED:
            return sub, status
    return None
