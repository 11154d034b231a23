"""Typed error kinds raised by gateways, resolvers and reconcilers.

Every failure that can end a reconciliation pass is one of these classes. AWS
error codes are mapped to a class once, at the gateway boundary, and the class
alone decides how the pass is requeued.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator


class OperatorError(Exception):
    """Base class for all errors that end a reconciliation pass."""

    retryable = False
    kind = "Unknown"

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def with_context(self, context: str) -> OperatorError:
        """Return an error of the same class with ``context`` prefixed to its message."""
        return type(self)(f"{context}: {self.message}", self.code)

    def __str__(self) -> str:
        return self.message


class AWSAPIError(OperatorError):
    """An AWS API call failed for a reason with no more specific classification."""

    kind = "AWSAPIError"


class NotFoundError(AWSAPIError):
    kind = "NotFound"


class AlreadyExistsError(AWSAPIError):
    kind = "AlreadyExists"


class ThrottledError(AWSAPIError):
    kind = "Throttled"
    retryable = True


class ConflictError(AWSAPIError):
    """The resource is in a state that does not accept the request yet."""

    kind = "Conflict"
    retryable = True


class TransportError(AWSAPIError):
    kind = "Transport"
    retryable = True


class InvalidParameterError(AWSAPIError):
    kind = "InvalidParameter"


class PermissionDeniedError(AWSAPIError):
    kind = "PermissionDenied"


class DeadlineExceededError(OperatorError):
    kind = "DeadlineExceeded"
    retryable = True


class UpdatePendingError(OperatorError):
    kind = "UpdatePending"
    retryable = True


class CreatePendingError(OperatorError):
    kind = "CreatePending"
    retryable = True


class ReferencePendingError(OperatorError):
    """A referenced object is missing, not ready, or carries no identifier yet."""

    kind = "DependencyNotReady"
    retryable = True


class ProviderConfigError(OperatorError):
    kind = "ProviderConfig"


class ExternalResourceMissingError(OperatorError):
    """The external resource does not exist and the management policy forbids creating it."""

    kind = "ExternalResourceMissing"


class InternalValidationError(OperatorError):
    kind = "InternalValidation"


@contextmanager
def wrap_errors(context: str) -> Iterator[None]:
    """Prefix ``context`` to any operator error raised in the block, keeping its class."""
    try:
        yield
    except OperatorError as e:
        raise e.with_context(context) from e
