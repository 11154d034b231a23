"""Common plumbing for the per-service AWS gateways."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable

from botocore.exceptions import ClientError, ConnectTimeoutError, EndpointConnectionError, ReadTimeoutError

from ... import metrics
from ...errors import (
    AlreadyExistsError,
    AWSAPIError,
    ConflictError,
    InvalidParameterError,
    NotFoundError,
    PermissionDeniedError,
    ThrottledError,
    TransportError,
)
from ...tracing import trace_span
from ...utils.deadline import Deadline
from ...utils.errors import sanitize_dict
from ...utils.rate_limit import rate_limit_aws
from .session import AWSClientConfig

logger = logging.getLogger(__name__)

COMMON_NOT_FOUND_CODES = frozenset({"NotFound", "404", "ResourceNotFoundException", "NoSuchEntity"})

THROTTLING_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "RequestThrottled",
    "RequestThrottledException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "SlowDown",
    "PriorRequestNotComplete",
    "ProvisionedThroughputExceededException",
})

INVALID_PARAMETER_CODES = frozenset({
    "InvalidParameterValue",
    "InvalidParameterCombination",
    "InvalidParameterException",
    "InvalidParametersException",
    "InvalidParameterValueException",
    "MissingParameter",
    "ValidationError",
    "ValidationException",
    "InvalidArgument",
    "MalformedXML",
    "InvalidRequest",
})

PERMISSION_DENIED_CODES = frozenset({
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "ExpiredTokenException",
    "AuthFailure",
    "403",
})


def classify_client_error(
    error: ClientError,
    not_found_codes: Iterable[str] = (),
    already_exists_codes: Iterable[str] = (),
    conflict_codes: Iterable[str] = (),
) -> AWSAPIError:
    """Map a botocore ClientError to one of the typed error kinds.

    The AWS error code is preserved on the returned error.
    """
    err = error.response.get("Error", {})
    code = str(err.get("Code", ""))
    message = err.get("Message") or str(error)

    if code in COMMON_NOT_FOUND_CODES or code in not_found_codes:
        return NotFoundError(message, code)
    if code in already_exists_codes:
        return AlreadyExistsError(message, code)
    if code in THROTTLING_CODES:
        return ThrottledError(message, code)
    if code in conflict_codes:
        return ConflictError(message, code)
    if code in PERMISSION_DENIED_CODES:
        return PermissionDeniedError(message, code)
    if code in INVALID_PARAMETER_CODES:
        return InvalidParameterError(message, code)
    return AWSAPIError(message, code)


class AWSService:
    """Base class for a gateway over a single AWS service.

    Subclasses expose only the operations their reconcilers use and declare the
    service specific error codes that mean not-found, already-exists or conflict.
    """

    service_name = ""
    not_found_codes: frozenset[str] = frozenset()
    already_exists_codes: frozenset[str] = frozenset()
    conflict_codes: frozenset[str] = frozenset()

    def __init__(
        self,
        client_config: AWSClientConfig | None = None,
        deadline: Deadline | None = None,
        client: Any = None,
    ) -> None:
        self.config = client_config
        self.deadline = deadline
        if client is None and client_config is not None:
            client = client_config.create_client(self.service_name)
        self.client = client

    def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        return self._invoke(self.client, self.service_name, operation, kwargs)

    def _invoke(self, aws_client: Any, service: str, operation: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        if self.deadline is not None:
            self.deadline.check(f"{service}:{operation}")

        start_time = time.time()
        result = "success"
        try:
            with trace_span(f"aws.{service}.{operation}", attributes={"aws.service": service, "aws.operation": operation}):
                return rate_limit_aws(getattr(aws_client, operation))(**kwargs)
        except ClientError as e:
            error = classify_client_error(e, self.not_found_codes, self.already_exists_codes, self.conflict_codes)
            result = error.kind
            if not isinstance(error, (NotFoundError, AlreadyExistsError)):
                logger.error(f"AWS call {service}:{operation} failed with {error.code}: {error.message}")
                logger.debug(f"Request parameters: {sanitize_dict(kwargs)}")
            raise error from e
        except (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError) as e:
            result = TransportError.kind
            logger.error(f"AWS call {service}:{operation} failed: {e}")
            raise TransportError(str(e)) from e
        finally:
            metrics.api_call_total.labels(api_type=service, operation=operation, result=result).inc()
            metrics.api_call_duration_seconds.labels(api_type=service, operation=operation).observe(
                time.time() - start_time
            )

    @staticmethod
    def _first(response: dict[str, Any], key: str, identifier: str) -> dict[str, Any]:
        items = response.get(key) or []
        if not items:
            raise NotFoundError(f"{identifier} not found in {key}", "NotFound")
        return items[0]
