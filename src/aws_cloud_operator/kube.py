"""Access to the Kubernetes API for managed objects, ProviderConfigs and secrets."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from kubernetes import client, config

from . import metrics
from .constants import API_GROUP, API_VERSION, KIND_PROVIDER_CONFIG, PLURALS
from .errors import ProviderConfigError
from .utils.rate_limit import handle_rate_limit_error, rate_limit_k8s
from .utils.secrets import delete_secret, get_secret_value, publish_connection_details, read_secret_data

logger = logging.getLogger(__name__)

_config_loaded = False


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    global _config_loaded
    if _config_loaded:
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    _config_loaded = True


def get_k8s_client() -> client.CustomObjectsApi:
    """Get Kubernetes CustomObjectsApi client."""
    load_kube_config()
    return client.CustomObjectsApi()


def get_core_client() -> client.CoreV1Api:
    """Get Kubernetes CoreV1Api client."""
    load_kube_config()
    return client.CoreV1Api()


class KubeClient:
    """Thin wrapper over the Kubernetes clients used during reconciliation.

    Clients are created lazily so the object can be built at import time and
    replaced with mocks in tests.
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi | None = None,
        core_api: client.CoreV1Api | None = None,
    ) -> None:
        self._custom_api = custom_api
        self._core_api = core_api

    @property
    def custom_api(self) -> client.CustomObjectsApi:
        if self._custom_api is None:
            self._custom_api = get_k8s_client()
        return self._custom_api

    @property
    def core_api(self) -> client.CoreV1Api:
        if self._core_api is None:
            self._core_api = get_core_client()
        return self._core_api

    def _call(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        attempt = 0
        while True:
            start_time = time.time()
            try:
                result = rate_limit_k8s(fn)(**kwargs)
                metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
                return result
            except Exception as e:
                metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
                if handle_rate_limit_error(e, attempt):
                    attempt += 1
                    continue
                raise
            finally:
                duration = time.time() - start_time
                metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    def get_object(self, kind: str, name: str) -> dict[str, Any] | None:
        """Get a cluster-scoped object of our API group, or None if it does not exist."""
        try:
            return self._call(
                f"get_{kind.lower()}",
                self.custom_api.get_cluster_custom_object,
                group=API_GROUP,
                version=API_VERSION,
                plural=PLURALS[kind],
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def list_objects(self, kind: str, match_labels: dict[str, str] | None = None) -> list[dict[str, Any]]:
        """List cluster-scoped objects of our API group matching the given labels."""
        label_selector = ",".join(f"{k}={v}" for k, v in sorted((match_labels or {}).items()))
        result = self._call(
            f"list_{kind.lower()}",
            self.custom_api.list_cluster_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            plural=PLURALS[kind],
            label_selector=label_selector,
        )
        return list(result.get("items", []))

    def get_provider_config(self, name: str) -> dict[str, Any]:
        """Get a ProviderConfig; read on every pass so credential changes apply at once.

        Raises:
            ProviderConfigError: If the ProviderConfig does not exist
        """
        provider_config = self.get_object(KIND_PROVIDER_CONFIG, name)
        if provider_config is None:
            raise ProviderConfigError(f"cannot get ProviderConfig {name}: not found")
        return provider_config

    def read_secret_data(self, namespace: str, name: str) -> dict[str, str]:
        return self._call("read_secret", read_secret_data, api=self.core_api, namespace=namespace, secret_name=name)

    def get_secret_value(self, namespace: str, name: str, key: str) -> str:
        return self._call(
            "read_secret", get_secret_value, api=self.core_api, namespace=namespace, secret_name=name, key=key
        )

    def publish_connection_details(self, namespace: str, name: str, details: dict[str, str]) -> bool:
        return self._call(
            "publish_secret",
            publish_connection_details,
            api=self.core_api,
            namespace=namespace,
            secret_name=name,
            details=details,
        )

    def delete_secret(self, namespace: str, name: str) -> None:
        self._call("delete_secret", delete_secret, api=self.core_api, namespace=namespace, secret_name=name)
