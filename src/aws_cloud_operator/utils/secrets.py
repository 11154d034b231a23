"""Utilities for managing Kubernetes secrets."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from kubernetes import client

from ..constants import API_GROUP, CONTROLLER_NAME, FIELD_MANAGER


def _decode(value: str | bytes) -> str:
    # Depending on the client version values arrive base64 encoded or raw
    if isinstance(value, bytes):
        return value.decode("utf-8")
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value


def _encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("utf-8")


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
) -> str:
    """Get a value from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key in the secret

    Returns:
        Secret value

    Raises:
        ValueError: If secret or key not found
    """
    data = read_secret_data(api, namespace, secret_name)
    if key not in data:
        raise ValueError(f"Key '{key}' not found in secret '{secret_name}'")
    return data[key]


def read_secret_data(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
) -> dict[str, str]:
    """Read all data from a Kubernetes secret.

    Raises:
        ValueError: If secret not found
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise
    return {key: _decode(value) for key, value in (secret.data or {}).items()}


def publish_connection_details(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    details: dict[str, str],
    owner_references: list[dict[str, Any]] | None = None,
) -> bool:
    """Merge connection details into a secret, creating it when absent.

    Keys already present in the secret and absent from ``details`` are kept,
    so a value published once (such as a generated password) survives later
    writes that only carry endpoints.

    Returns:
        True if the secret was created or changed
    """
    try:
        existing = read_secret_data(api, namespace, secret_name)
    except ValueError:
        existing = None

    if existing is None:
        secret = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=secret_name,
                namespace=namespace,
                owner_references=owner_references or [],
                labels={f"{API_GROUP}/managed-by": CONTROLLER_NAME},
            ),
            type="connection.aws.cloud37.dev/v1alpha1",
            data={k: _encode(v) for k, v in details.items()},
        )
        api.create_namespaced_secret(namespace=namespace, body=secret, field_manager=FIELD_MANAGER)
        return True

    changed = {k: v for k, v in details.items() if existing.get(k) != v}
    if not changed:
        return False

    api.patch_namespaced_secret(
        name=secret_name,
        namespace=namespace,
        body={"data": {k: _encode(v) for k, v in changed.items()}},
        field_manager=FIELD_MANAGER,
    )
    return True


def delete_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
) -> None:
    """Delete a Kubernetes secret; a secret that is already gone is not an error."""
    try:
        api.delete_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status != 404:
            raise
