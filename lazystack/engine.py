"""
Engine - the orchestrator port and a local, in-process implementation.

The Engine is the only thing that settles resource fields. Programs talk
to it through the Resource constructor; it decides when each resource is
created and resolves the resource's urn, id and output fields.

LocalEngine implements:
- A FIFO callback queue drained by run() (single-threaded, cooperative)
- Dependency-ordered registration: a resource is created only after every
  Deferred in its inputs, its depends_on resources and its parent settle
- URN assignment: urn:lazystack:{stack}::{project}::{qualified_type}::{name}
- Dry-run preview: urns resolve, providers are never called, ids and
  outputs stay pending forever
- A recorded dependency graph (urn -> set of urns) and creation order

Execution flow for one resource:
1. register_resource() records the urn and its dependency edges
2. A join over everything the resource waits on is subscribed
3. When the join resolves, creation is scheduled with call_soon()
4. run() executes the creation: the provider returns (id, outputs)
5. The resource's deferred fields resolve and dependents wake up
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Mapping
from typing import Any, Callable, Optional, TYPE_CHECKING

from .convert import to_external
from .deferred import join, lift
from .errors import ConfigValidationError

if TYPE_CHECKING:
    from .providers import Provider
    from .resource import Resource


logger = logging.getLogger(__name__)

URN_PREFIX = "urn:lazystack"


class Engine(ABC):
    """Abstract orchestrator the declaration primitives talk to."""

    def __init__(self, project: str, stack: str, *, dry_run: bool = False):
        self.project = project
        self.stack = stack
        self.dry_run = dry_run

    @abstractmethod
    def register_resource(self, resource: "Resource", inputs: dict, options: dict) -> str:
        """
        Register a resource and schedule its creation.

        Args:
            resource: The handle whose fields the engine will settle
            inputs: Externally converted inputs (may contain Deferreds)
            options: Externally converted options

        Returns:
            The resource urn
        """

    @abstractmethod
    def call_soon(self, callback: Callable[[], None]) -> None:
        """Schedule a callback on the engine's loop."""

    @abstractmethod
    def run(self) -> int:
        """Run scheduled callbacks until none are left. Returns how many ran."""

    def make_urn(self, qualified_type: str, name: str) -> str:
        return f"{URN_PREFIX}:{self.stack}::{self.project}::{qualified_type}::{name}"


def _replace_resources(value: Any) -> Any:
    """Replace Resource handles nested in inputs by their urn Deferred."""
    from .resource import Resource

    if isinstance(value, Resource):
        return value.urn
    if isinstance(value, Mapping):
        return {k: _replace_resources(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_replace_resources(v) for v in value]
    return value


class LocalEngine(Engine):
    """
    In-process engine that drives resolution with a callback queue.

    Providers are looked up by package (the part of the type before the
    first ":"); unknown packages fall back to the default provider.
    """

    def __init__(
        self,
        project: str = "project",
        stack: str = "dev",
        *,
        dry_run: bool = False,
        providers: Optional[dict[str, "Provider"]] = None,
        default_provider: Optional["Provider"] = None,
    ):
        from .providers import EchoProvider, default_providers

        super().__init__(project, stack, dry_run=dry_run)
        self._queue: deque[Callable[[], None]] = deque()
        self._providers = default_providers()
        self._providers.update(providers or {})
        self._default_provider = default_provider or EchoProvider()

        self.resources: dict[str, "Resource"] = {}
        self.dependencies: dict[str, set[str]] = {}
        self.created: list[str] = []
        self.failed: dict[str, Exception] = {}

    def register_provider(self, package: str, provider: "Provider") -> None:
        """Route resources of the given package to a provider."""
        self._providers[package] = provider

    def provider_for(self, type_: str, override: Optional["Provider"] = None) -> "Provider":
        if override is not None:
            return override
        package = type_.split(":", 1)[0]
        return self._providers.get(package, self._default_provider)

    def call_soon(self, callback: Callable[[], None]) -> None:
        self._queue.append(callback)

    def run(self) -> int:
        count = 0
        while self._queue:
            callback = self._queue.popleft()
            callback()
            count += 1
        logger.debug(f"Engine drained {count} callbacks")
        return count

    def register_resource(self, resource: "Resource", inputs: dict, options: dict) -> str:
        parent = options.get("parent")
        qualified_type = resource.type
        if parent is not None:
            qualified_type = f"{parent.qualified_type}${resource.type}"
        resource.qualified_type = qualified_type

        urn = self.make_urn(qualified_type, resource.name)
        if urn in self.resources:
            raise ConfigValidationError(f"Duplicate resource URN '{urn}'")

        waiting = lift(_replace_resources(inputs))
        explicit = list(options.get("depends_on") or [])
        if parent is not None:
            explicit.append(parent)

        self.resources[urn] = resource
        self.dependencies[urn] = set()
        self._record_dependencies(urn, (*waiting.resources, *explicit))
        logger.debug(f"Registered {urn} (depends on {len(self.dependencies[urn])})")

        gates = [dep.urn for dep in explicit]
        if not self.dry_run:
            gates.insert(0, waiting)
        provider = options.get("provider")

        def on_ready(values):
            # flattening inside the inputs may add secrecy and resources late
            self._record_dependencies(urn, waiting.resources)
            secret = waiting.is_secret
            resolved = values[0] if not self.dry_run else None
            self.call_soon(lambda: self._create(resource, urn, resolved, provider, secret))

        def on_error(error):
            self.call_soon(lambda: self._abort(resource, urn, error))

        join(gates).subscribe(on_ready, on_error)
        return urn

    def _record_dependencies(self, urn: str, dependencies) -> None:
        self.dependencies[urn].update(dep.urn_text for dep in dependencies if dep.urn_text)

    def _create(self, resource: "Resource", urn: str, inputs: Optional[dict],
                provider_override: Optional["Provider"], secret: bool) -> None:
        if self.dry_run:
            logger.info(f"  preview {urn}", extra={"urn": urn})
            resource._preview(urn)
            return

        if resource.is_component:
            resource._complete(urn, None, {}, secret=secret)
            self.created.append(urn)
            return

        provider = self.provider_for(resource.type, provider_override)
        try:
            resource_id, outputs = provider.create(urn, resource.type, resource.name, to_external(inputs))
        except Exception as exc:
            logger.error(f"  FAIL {urn}: {exc}", extra={"urn": urn})
            self._abort(resource, urn, exc)
            return

        logger.info(
            f"  created {urn} (id={resource_id})",
            extra={"urn": urn, "metadata": {"type": resource.type, "id": resource_id}},
        )
        resource._complete(urn, resource_id, outputs, secret=secret)
        self.created.append(urn)

    def _abort(self, resource: "Resource", urn: str, error: Exception) -> None:
        self.failed[urn] = error
        resource._abort(error)

    def __repr__(self) -> str:
        mode = "preview" if self.dry_run else "update"
        return f"LocalEngine(project={self.project}, stack={self.stack}, mode={mode}, resources={len(self.resources)})"
