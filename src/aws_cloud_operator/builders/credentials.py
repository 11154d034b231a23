"""Builds per-pass AWS client configuration from a ProviderConfig."""

from __future__ import annotations

import configparser
import logging
from typing import Any, Callable

from ..constants import (
    ANNOTATION_ENDPOINT_SERVICE_ID,
    ANNOTATION_ENDPOINT_SIGNING_REGION,
    ANNOTATION_ENDPOINT_URL,
    CONTROLLER_NAME,
    CREDENTIALS_SOURCE_INJECTED_IDENTITY,
    CREDENTIALS_SOURCE_IRSA,
    CREDENTIALS_SOURCE_NONE,
    CREDENTIALS_SOURCE_POD_IDENTITY,
    CREDENTIALS_SOURCE_SECRET,
    CREDENTIALS_SOURCE_SERVICE_ACCOUNT,
)
from ..errors import ProviderConfigError
from ..kube import KubeClient
from ..services.aws.session import AWSClientConfig, EndpointOverride
from ..services.aws.sts import STSGateway

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"
DEFAULT_CREDENTIALS_KEY = "credentials"

# Section name no real profile uses, so [DEFAULT] is parsed as an ordinary profile
_NO_DEFAULTS_SECTION = "\x00defaults"

AMBIENT_SOURCES = {
    CREDENTIALS_SOURCE_SERVICE_ACCOUNT,
    CREDENTIALS_SOURCE_IRSA,
    CREDENTIALS_SOURCE_POD_IDENTITY,
    CREDENTIALS_SOURCE_INJECTED_IDENTITY,
}


def get_global_region(partition: str | None) -> str:
    """Return the pseudo-region used for partition-global services (IAM, STS, ...)."""
    if not partition:
        return "aws-global"
    return f"{partition}-global"


def provider_partition(spec: dict[str, Any]) -> str | None:
    """Return the partition a ProviderConfig spec names under ``credentials``."""
    return (spec.get("credentials") or {}).get("partition") or None


def parse_credentials_file(data: str, profile: str = DEFAULT_PROFILE) -> tuple[str, str, str | None]:
    """Extract credentials for ``profile`` from a shared-credentials (INI) document.

    Section and key names match case-insensitively and keys outside any
    section belong to the default profile.

    Returns:
        Tuple of (access key id, secret access key, session token or None)

    Raises:
        ProviderConfigError: If the document cannot be parsed or lacks the profile
    """
    parser = configparser.ConfigParser(interpolation=None, default_section=_NO_DEFAULTS_SECTION, strict=False)
    try:
        try:
            parser.read_string(data)
        except configparser.MissingSectionHeaderError:
            parser.read_string(f"[{DEFAULT_PROFILE}]\n{data}")
    except configparser.Error as e:
        raise ProviderConfigError(f"cannot parse credentials secret: {e}") from e

    section = next((s for s in parser.sections() if s.strip().lower() == profile.lower()), None)
    if section is None:
        raise ProviderConfigError(f"cannot get {profile} profile in credentials secret")

    values = parser[section]
    return (
        values.get("aws_access_key_id", ""),
        values.get("aws_secret_access_key", ""),
        values.get("aws_session_token") or None,
    )


def resolve_region(
    provider_config: dict[str, Any],
    region: str | None = None,
    global_resource: bool = False,
) -> str:
    """Resolve the region a managed resource is reconciled in.

    Raises:
        ProviderConfigError: If neither the resource nor the ProviderConfig names a region
    """
    spec = provider_config.get("spec") or {}
    if global_resource:
        return get_global_region(provider_partition(spec))
    region = region or spec.get("region")
    if not region:
        raise ProviderConfigError("region must be set on the resource or its ProviderConfig")
    return region


def resolve_endpoint(
    provider_config: dict[str, Any],
    annotations: dict[str, str] | None = None,
) -> EndpointOverride | None:
    """Return the endpoint override from resource annotations or the ProviderConfig."""
    annotations = annotations or {}
    url = annotations.get(ANNOTATION_ENDPOINT_URL)
    if url:
        service_id = annotations.get(ANNOTATION_ENDPOINT_SERVICE_ID)
        return EndpointOverride(
            url=url,
            signing_region=annotations.get(ANNOTATION_ENDPOINT_SIGNING_REGION),
            services=[service_id] if service_id else [],
        )

    endpoint = (provider_config.get("spec") or {}).get("endpoint") or {}
    if endpoint.get("url"):
        return EndpointOverride(
            url=endpoint["url"],
            signing_region=endpoint.get("signingRegion"),
            services=list(endpoint.get("services") or []),
        )
    return None


def resolve_client_config(
    provider_config: dict[str, Any],
    region: str,
    kube: KubeClient,
    annotations: dict[str, str] | None = None,
    sts_factory: Callable[[AWSClientConfig], STSGateway] = STSGateway,
) -> AWSClientConfig:
    """Produce the AWS client configuration for one reconciliation pass.

    Nothing is cached: the ProviderConfig and its secret are read again on every
    pass so rotated credentials take effect immediately.

    Raises:
        ProviderConfigError: If the credentials cannot be resolved
    """
    spec = provider_config.get("spec") or {}
    name = (provider_config.get("metadata") or {}).get("name", "unknown")
    credentials = spec.get("credentials") or {}
    source = credentials.get("source")
    endpoint = resolve_endpoint(provider_config, annotations)

    if source == CREDENTIALS_SOURCE_SECRET:
        access_key_id, secret_access_key, session_token = _credentials_from_secret(credentials, kube)
        client_config = AWSClientConfig(
            region=region,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            session_token=session_token,
            endpoint=endpoint,
        )
    elif source in AMBIENT_SOURCES or source == CREDENTIALS_SOURCE_NONE:
        client_config = AWSClientConfig(region=region, endpoint=endpoint)
    else:
        raise ProviderConfigError(f"ProviderConfig {name}: unsupported credentials source {source!r}")

    for role in spec.get("assumeRoleChain") or []:
        client_config = _assume_role(client_config, role, sts_factory)

    return client_config


def _credentials_from_secret(credentials: dict[str, Any], kube: KubeClient) -> tuple[str, str, str | None]:
    ref = credentials.get("secretRef") or {}
    if not ref.get("name") or not ref.get("namespace"):
        raise ProviderConfigError("credentials.secretRef with namespace and name is required for source Secret")

    key = ref.get("key", DEFAULT_CREDENTIALS_KEY)
    try:
        data = kube.read_secret_data(ref["namespace"], ref["name"])
    except ValueError as e:
        raise ProviderConfigError(f"cannot get credentials secret: {e}") from e
    if key not in data:
        raise ProviderConfigError(f"cannot get credentials secret: key '{key}' not found in secret '{ref['name']}'")

    return parse_credentials_file(data[key], credentials.get("profile") or DEFAULT_PROFILE)


def _assume_role(
    client_config: AWSClientConfig,
    role: dict[str, Any],
    sts_factory: Callable[[AWSClientConfig], STSGateway],
) -> AWSClientConfig:
    role_arn = role.get("roleARN")
    if not role_arn:
        raise ProviderConfigError("assumeRoleChain entries require roleARN")

    logger.debug(f"Assuming role {role_arn}")
    creds = sts_factory(client_config).assume_role(role_arn, CONTROLLER_NAME, role.get("externalID"))
    return AWSClientConfig(
        region=client_config.region,
        access_key_id=creds["AccessKeyId"],
        secret_access_key=creds["SecretAccessKey"],
        session_token=creds.get("SessionToken"),
        endpoint=client_config.endpoint,
    )
