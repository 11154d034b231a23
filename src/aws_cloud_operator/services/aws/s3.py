"""S3 gateway for buckets and their sub-configurations."""

from __future__ import annotations

from typing import Any

from ...errors import AWSAPIError
from .base import AWSService

# Regions where CreateBucket must not carry a LocationConstraint
DEFAULT_REGIONS = ("us-east-1", "")

NOTIFICATION_KEYS = ("TopicConfigurations", "QueueConfigurations", "LambdaFunctionConfigurations")
WEBSITE_KEYS = ("ErrorDocument", "IndexDocument", "RedirectAllRequestsTo", "RoutingRules")


class S3Gateway(AWSService):
    """Bucket lifecycle and sub-configuration operations."""

    service_name = "s3"
    not_found_codes = frozenset({"NoSuchBucket"})
    already_exists_codes = frozenset({"BucketAlreadyOwnedByYou"})
    conflict_codes = frozenset({"OperationAborted"})

    def _get_optional(self, operation: str, missing_codes: tuple[str, ...], **kwargs: Any) -> dict[str, Any] | None:
        """Call a Get* operation; return None if the sub-configuration is not set."""
        try:
            return self._call(operation, **kwargs)
        except AWSAPIError as e:
            if e.code in missing_codes:
                return None
            raise

    # Bucket

    def head_bucket(self, bucket: str) -> dict[str, Any]:
        return self._call("head_bucket", Bucket=bucket)

    def create_bucket(self, bucket: str, region: str, acl: str | None = None, object_ownership: str | None = None) -> None:
        params: dict[str, Any] = {"Bucket": bucket}
        if region not in DEFAULT_REGIONS:
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        if acl:
            params["ACL"] = acl
        if object_ownership:
            params["ObjectOwnership"] = object_ownership
        self._call("create_bucket", **params)

    def delete_bucket(self, bucket: str) -> None:
        self._call("delete_bucket", Bucket=bucket)

    def get_bucket_location(self, bucket: str) -> str:
        # us-east-1 is reported as an empty location
        return self._call("get_bucket_location", Bucket=bucket).get("LocationConstraint") or "us-east-1"

    # Versioning

    def get_bucket_versioning(self, bucket: str) -> dict[str, Any]:
        response = self._call("get_bucket_versioning", Bucket=bucket)
        return {k: v for k, v in response.items() if k in ("Status", "MFADelete")}

    def put_bucket_versioning(self, bucket: str, status: str, mfa_delete: str | None = None) -> None:
        configuration = {"Status": status}
        if mfa_delete:
            configuration["MFADelete"] = mfa_delete
        self._call("put_bucket_versioning", Bucket=bucket, VersioningConfiguration=configuration)

    # Tagging

    def get_bucket_tagging(self, bucket: str) -> dict[str, str]:
        response = self._get_optional("get_bucket_tagging", ("NoSuchTagSet", "NoSuchTagSetError"), Bucket=bucket)
        if response is None:
            return {}
        return {t["Key"]: t.get("Value", "") for t in response.get("TagSet", [])}

    def put_bucket_tagging(self, bucket: str, tags: dict[str, str]) -> None:
        self._call(
            "put_bucket_tagging",
            Bucket=bucket,
            Tagging={"TagSet": [{"Key": k, "Value": v} for k, v in sorted(tags.items())]},
        )

    def delete_bucket_tagging(self, bucket: str) -> None:
        self._call("delete_bucket_tagging", Bucket=bucket)

    # CORS

    def get_bucket_cors(self, bucket: str) -> list[dict[str, Any]] | None:
        response = self._get_optional("get_bucket_cors", ("NoSuchCORSConfiguration",), Bucket=bucket)
        return None if response is None else response.get("CORSRules", [])

    def put_bucket_cors(self, bucket: str, rules: list[dict[str, Any]]) -> None:
        self._call("put_bucket_cors", Bucket=bucket, CORSConfiguration={"CORSRules": rules})

    def delete_bucket_cors(self, bucket: str) -> None:
        self._call("delete_bucket_cors", Bucket=bucket)

    # Server-side encryption

    def get_bucket_encryption(self, bucket: str) -> list[dict[str, Any]] | None:
        response = self._get_optional(
            "get_bucket_encryption", ("ServerSideEncryptionConfigurationNotFoundError",), Bucket=bucket
        )
        if response is None:
            return None
        return response.get("ServerSideEncryptionConfiguration", {}).get("Rules", [])

    def put_bucket_encryption(self, bucket: str, rules: list[dict[str, Any]]) -> None:
        self._call(
            "put_bucket_encryption",
            Bucket=bucket,
            ServerSideEncryptionConfiguration={"Rules": rules},
        )

    def delete_bucket_encryption(self, bucket: str) -> None:
        self._call("delete_bucket_encryption", Bucket=bucket)

    # Transfer acceleration

    def get_bucket_accelerate_status(self, bucket: str) -> str | None:
        return self._call("get_bucket_accelerate_configuration", Bucket=bucket).get("Status")

    def put_bucket_accelerate_status(self, bucket: str, status: str) -> None:
        self._call(
            "put_bucket_accelerate_configuration",
            Bucket=bucket,
            AccelerateConfiguration={"Status": status},
        )

    # Request payment

    def get_bucket_request_payer(self, bucket: str) -> str:
        return self._call("get_bucket_request_payment", Bucket=bucket).get("Payer", "BucketOwner")

    def put_bucket_request_payer(self, bucket: str, payer: str) -> None:
        self._call("put_bucket_request_payment", Bucket=bucket, RequestPaymentConfiguration={"Payer": payer})

    # Lifecycle

    def get_bucket_lifecycle_configuration(self, bucket: str) -> list[dict[str, Any]] | None:
        response = self._get_optional(
            "get_bucket_lifecycle_configuration", ("NoSuchLifecycleConfiguration",), Bucket=bucket
        )
        return None if response is None else response.get("Rules", [])

    def put_bucket_lifecycle_configuration(self, bucket: str, rules: list[dict[str, Any]]) -> None:
        self._call("put_bucket_lifecycle_configuration", Bucket=bucket, LifecycleConfiguration={"Rules": rules})

    def delete_bucket_lifecycle(self, bucket: str) -> None:
        self._call("delete_bucket_lifecycle", Bucket=bucket)

    # Server access logging

    def get_bucket_logging(self, bucket: str) -> dict[str, Any] | None:
        return self._call("get_bucket_logging", Bucket=bucket).get("LoggingEnabled")

    def put_bucket_logging(self, bucket: str, logging_enabled: dict[str, Any] | None) -> None:
        # An empty status turns logging off
        status = {"LoggingEnabled": logging_enabled} if logging_enabled else {}
        self._call("put_bucket_logging", Bucket=bucket, BucketLoggingStatus=status)

    # Event notifications

    def get_bucket_notification_configuration(self, bucket: str) -> dict[str, list[dict[str, Any]]]:
        response = self._call("get_bucket_notification_configuration", Bucket=bucket)
        return {k: response.get(k) or [] for k in NOTIFICATION_KEYS}

    def put_bucket_notification_configuration(self, bucket: str, configuration: dict[str, Any]) -> None:
        self._call(
            "put_bucket_notification_configuration",
            Bucket=bucket,
            NotificationConfiguration=configuration,
        )

    # Replication

    def get_bucket_replication(self, bucket: str) -> dict[str, Any] | None:
        response = self._get_optional(
            "get_bucket_replication", ("ReplicationConfigurationNotFoundError",), Bucket=bucket
        )
        return None if response is None else response.get("ReplicationConfiguration")

    def put_bucket_replication(self, bucket: str, configuration: dict[str, Any]) -> None:
        self._call("put_bucket_replication", Bucket=bucket, ReplicationConfiguration=configuration)

    def delete_bucket_replication(self, bucket: str) -> None:
        self._call("delete_bucket_replication", Bucket=bucket)

    # Static website hosting

    def get_bucket_website(self, bucket: str) -> dict[str, Any] | None:
        response = self._get_optional("get_bucket_website", ("NoSuchWebsiteConfiguration",), Bucket=bucket)
        if response is None:
            return None
        return {k: response[k] for k in WEBSITE_KEYS if response.get(k)}

    def put_bucket_website(self, bucket: str, configuration: dict[str, Any]) -> None:
        self._call("put_bucket_website", Bucket=bucket, WebsiteConfiguration=configuration)

    def delete_bucket_website(self, bucket: str) -> None:
        self._call("delete_bucket_website", Bucket=bucket)
