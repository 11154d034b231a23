"""External-resource clients assembled from per-kind hook functions.

Each managed kind supplies a :class:`ResourceHooks` value; :class:`HookedExternal`
runs the generic observe/create/update/delete protocol over it. Hooks other
than the describe/create/update/delete generators are optional.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

from ..builders.credentials import resolve_client_config, resolve_region
from ..constants import MANAGEMENT_LATE_INITIALIZE
from ..errors import AlreadyExistsError, NotFoundError
from ..kube import KubeClient
from ..utils.deadline import Deadline
from .resource import ManagedResource

logger = logging.getLogger(__name__)

G = TypeVar("G")


@dataclass
class ExternalObservation:
    resource_exists: bool = False
    resource_up_to_date: bool = False
    connection_details: dict[str, str] = field(default_factory=dict)
    diff: str = ""
    late_initialized: bool = False


@dataclass
class ExternalCreation:
    connection_details: dict[str, str] = field(default_factory=dict)
    response: Any = None


@dataclass
class ExternalUpdate:
    connection_details: dict[str, str] = field(default_factory=dict)
    diff: str = ""


@dataclass
class ExternalContext(Generic[G]):
    """Everything hooks may use during one pass.

    ``cache`` carries values between hooks of the same pass, for example the
    member clusters described during observe.
    """

    gateway: G
    kube: KubeClient
    region: str = ""
    cache: dict[str, Any] = field(default_factory=dict)


def _noop(*args: Any, **kwargs: Any) -> None:
    return None


def _no_observation(observed: Any) -> dict[str, Any]:
    return {}


def _no_connection_details(observed: Any) -> dict[str, str]:
    return {}


def _pass_observation(ctx: ExternalContext, mr: ManagedResource, observed: Any, obs: ExternalObservation) -> ExternalObservation:
    return obs


def _never_skip(ctx: ExternalContext, mr: ManagedResource) -> bool:
    return False


def _no_late_init(mr: ManagedResource, observed: Any, ctx: ExternalContext) -> bool:
    return False


def _always_up_to_date(ctx: ExternalContext, mr: ManagedResource, observed: Any) -> tuple[bool, str]:
    return True, ""


@dataclass
class ResourceHooks:
    """Per-kind behaviour plugged into the generic external client.

    ``describe`` raises :class:`NotFoundError` when the resource does not
    exist. ``create`` returns connection details to publish, ``update``
    returns a description of what it changed.
    """

    describe: Callable[[ExternalContext, ManagedResource], Any]
    create: Callable[[ExternalContext, ManagedResource], ExternalCreation]
    update: Callable[[ExternalContext, ManagedResource], ExternalUpdate]
    delete: Callable[[ExternalContext, ManagedResource], None]
    generate_observation: Callable[[Any], dict[str, Any]] = _no_observation
    connection_details: Callable[[Any], dict[str, str]] = _no_connection_details
    pre_observe: Callable[[ExternalContext, ManagedResource], None] = _noop
    post_observe: Callable[[ExternalContext, ManagedResource, Any, ExternalObservation], ExternalObservation] = (
        _pass_observation
    )
    pre_create: Callable[[ExternalContext, ManagedResource], None] = _noop
    post_create: Callable[[ExternalContext, ManagedResource, ExternalCreation], None] = _noop
    pre_update: Callable[[ExternalContext, ManagedResource], None] = _noop
    post_update: Callable[[ExternalContext, ManagedResource, ExternalUpdate], None] = _noop
    pre_delete: Callable[[ExternalContext, ManagedResource], bool] = _never_skip
    post_delete: Callable[[ExternalContext, ManagedResource], None] = _noop
    late_initialize: Callable[[ManagedResource, Any, ExternalContext], bool] = _no_late_init
    is_up_to_date: Callable[[ExternalContext, ManagedResource, Any], tuple[bool, str]] = _always_up_to_date


class HookedExternal:
    """Runs the observe/create/update/delete protocol for one managed object."""

    def __init__(self, hooks: ResourceHooks, ctx: ExternalContext) -> None:
        self.hooks = hooks
        self.ctx = ctx

    def observe(self, mr: ManagedResource, late_init: bool = True) -> ExternalObservation:
        """Describe the resource and compare it with the desired state.

        Issues no mutating AWS call. Late initialization changes ``mr.for_provider``
        only, which the caller persists.
        """
        hooks = self.hooks
        hooks.pre_observe(self.ctx, mr)
        try:
            observed = hooks.describe(self.ctx, mr)
        except NotFoundError:
            return ExternalObservation(resource_exists=False)

        late_initialized = False
        if late_init and mr.should(MANAGEMENT_LATE_INITIALIZE) and not mr.deleting:
            late_initialized = hooks.late_initialize(mr, observed, self.ctx)

        mr.at_provider = hooks.generate_observation(observed)
        up_to_date, diff = hooks.is_up_to_date(self.ctx, mr, observed)
        obs = ExternalObservation(
            resource_exists=True,
            resource_up_to_date=up_to_date,
            connection_details=hooks.connection_details(observed),
            diff=diff,
            late_initialized=late_initialized,
        )
        return hooks.post_observe(self.ctx, mr, observed, obs)

    def create(self, mr: ManagedResource) -> ExternalCreation:
        """Create the resource; an already-exists answer counts as success."""
        self.hooks.pre_create(self.ctx, mr)
        try:
            creation = self.hooks.create(self.ctx, mr)
        except AlreadyExistsError:
            logger.info(f"{mr.kind} {mr.external_name} already exists, treating create as successful")
            creation = ExternalCreation()
        self.hooks.post_create(self.ctx, mr, creation)
        return creation

    def update(self, mr: ManagedResource) -> ExternalUpdate:
        self.hooks.pre_update(self.ctx, mr)
        update = self.hooks.update(self.ctx, mr)
        self.hooks.post_update(self.ctx, mr, update)
        return update

    def delete(self, mr: ManagedResource) -> bool:
        """Delete the resource; a not-found answer counts as success.

        Returns:
            False if a pre-delete hook suppressed the call
        """
        if self.hooks.pre_delete(self.ctx, mr):
            return False
        try:
            self.hooks.delete(self.ctx, mr)
        except NotFoundError:
            logger.info(f"{mr.kind} {mr.external_name} is already gone")
        self.hooks.post_delete(self.ctx, mr)
        return True


class AWSConnector:
    """Builds the per-pass external client: ProviderConfig, region, credentials, gateway.

    Nothing is cached between passes.
    """

    def __init__(self, gateway_cls: Callable[..., Any], global_resource: bool = False) -> None:
        self.gateway_cls = gateway_cls
        self.global_resource = global_resource

    def connect(
        self,
        mr: ManagedResource,
        kube: KubeClient,
        hooks: ResourceHooks,
        deadline: Deadline | None = None,
    ) -> HookedExternal:
        """Resolve credentials for ``mr`` and return a client for its external resource.

        Raises:
            ProviderConfigError: If the ProviderConfig is missing or unusable
        """
        provider_config = kube.get_provider_config(mr.provider_config_name)
        region = resolve_region(provider_config, mr.for_provider.get("region"), self.global_resource)
        client_config = resolve_client_config(provider_config, region, kube, mr.annotations)
        gateway = self.gateway_cls(client_config, deadline=deadline)
        return HookedExternal(hooks, ExternalContext(gateway=gateway, kube=kube, region=region))
