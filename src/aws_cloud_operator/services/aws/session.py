"""AWS client configuration produced by the credential resolver."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import boto3
from botocore.config import Config

_MAX_ATTEMPTS = int(os.getenv("AWS_MAX_ATTEMPTS", "3"))
_CONNECT_TIMEOUT = float(os.getenv("AWS_CONNECT_TIMEOUT_SECONDS", "10"))
_READ_TIMEOUT = float(os.getenv("AWS_READ_TIMEOUT_SECONDS", "30"))


def _normalize_service_id(service_id: str) -> str:
    return service_id.replace(" ", "").replace("-", "").lower()


@dataclass
class EndpointOverride:
    """Custom endpoint for one or all services (``services`` empty means all)."""

    url: str
    signing_region: str | None = None
    services: list[str] = field(default_factory=list)

    def applies_to(self, service_name: str) -> bool:
        if not self.services:
            return True
        wanted = _normalize_service_id(service_name)
        return any(_normalize_service_id(s) == wanted for s in self.services)


@dataclass
class AWSClientConfig:
    """Everything needed to build boto3 clients for one reconciliation pass."""

    region: str
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    endpoint: EndpointOverride | None = None

    @property
    def has_static_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def create_session(self) -> boto3.session.Session:
        if self.has_static_credentials:
            return boto3.session.Session(
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                aws_session_token=self.session_token,
                region_name=self.region,
            )
        # Ambient credential chain, e.g. web identity tokens projected into the pod
        return boto3.session.Session(region_name=self.region)

    def create_client(self, service_name: str) -> Any:
        """Create a boto3 client for ``service_name`` honoring endpoint overrides."""
        region = self.region
        kwargs: dict[str, Any] = {}
        if self.endpoint is not None and self.endpoint.applies_to(service_name):
            kwargs["endpoint_url"] = self.endpoint.url
            if self.endpoint.signing_region:
                region = self.endpoint.signing_region

        botocore_config = Config(
            region_name=region,
            connect_timeout=_CONNECT_TIMEOUT,
            read_timeout=_READ_TIMEOUT,
            retries={"max_attempts": _MAX_ATTEMPTS, "mode": "standard"},
        )
        return self.create_session().client(service_name, region_name=region, config=botocore_config, **kwargs)
