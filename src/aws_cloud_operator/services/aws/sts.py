"""STS gateway used to validate ProviderConfigs and assume roles."""

from __future__ import annotations

from typing import Any

from .base import AWSService


class STSGateway(AWSService):
    service_name = "sts"

    def get_caller_identity(self) -> dict[str, Any]:
        return self._call("get_caller_identity")

    def assume_role(self, role_arn: str, session_name: str, external_id: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"RoleArn": role_arn, "RoleSessionName": session_name}
        if external_id:
            params["ExternalId"] = external_id
        return self._call("assume_role", **params)["Credentials"]
