"""Service registry.

The registry owns the set of registered services and flattens their tools and
prompts into one caller-visible namespace. Resources are listed as
``<service>:<name>`` and resolved by URI; a URI is an address, so two services
can never expose the same one under either policy.

Registration is explicit: callers build a ``ServiceRegistry`` and hand it the
services to serve. There is no module-level registry.

Naming policy
-------------
Two services may declare the same tool or prompt name. How the registry
reacts is fixed per registry by ``NamingPolicy``:

- ``REJECT`` (default): registering a service whose tool or prompt name is
  already exposed fails with ``AmbiguousTool``; nothing changes.
- ``QUALIFY``: the first registrant keeps the bare name and the later entry is
  exposed as ``<service>.<name>``. Every entry also resolves by its qualified
  name. Exposed names are decided at registration and never change.

Concurrency
-----------
Writers (``register``/``unregister``) serialize on a lock and publish a new
immutable ``_Table``; readers grab the current table reference without locking,
so they never observe a half-applied registration and never wait on a writer.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from threading import Lock
from types import MappingProxyType
from typing import Generic, TypeVar

from toolproxy.errors import (
    AmbiguousTool,
    DuplicateServiceName,
    InvalidService,
    MethodNotFound,
    NotFound,
)
from toolproxy.logging import get_logger
from toolproxy.metrics import record_registry_size
from toolproxy.schemas.mcp import PromptDefinition, ResourceDefinition, ToolDefinition
from toolproxy.services.base import Prompt, Resource, Service, Tool

logger = get_logger(__name__)

QUALIFIER = "."
RESOURCE_PREFIX = ":"

T = TypeVar("T", Tool, Prompt, Resource)


class NamingPolicy(StrEnum):
    """How identically named tools from different services are exposed."""

    REJECT = "reject"
    QUALIFY = "qualify"


@dataclass(frozen=True)
class Entry(Generic[T]):
    """A resolved tool, prompt or resource together with its owning service."""

    exposed_name: str
    service: Service
    item: T

    @property
    def qualified_name(self) -> str:
        return f"{self.service.name}{QUALIFIER}{self.item.name}"


@dataclass(frozen=True)
class _Table:
    """Immutable snapshot of everything registered."""

    services: tuple[Service, ...] = ()
    tools: tuple[Entry[Tool], ...] = ()
    prompts: tuple[Entry[Prompt], ...] = ()
    resources: tuple[Entry[Resource], ...] = ()
    tool_index: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    prompt_index: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    resource_index: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))


def _index(entries: Iterable[Entry]) -> MappingProxyType:
    index: dict[str, Entry] = {}
    for entry in entries:
        index.setdefault(entry.qualified_name, entry)
    # Exposed names win over qualified aliases
    for entry in entries:
        index[entry.exposed_name] = entry
    return MappingProxyType(index)


def _build_table(
    services: tuple[Service, ...],
    tools: tuple[Entry[Tool], ...],
    prompts: tuple[Entry[Prompt], ...],
    resources: tuple[Entry[Resource], ...],
) -> _Table:
    return _Table(
        services=services,
        tools=tools,
        prompts=prompts,
        resources=resources,
        tool_index=_index(tools),
        prompt_index=_index(prompts),
        resource_index=MappingProxyType({e.item.uri: e for e in resources}),
    )


class ServiceRegistry:
    """Registry of services and their tools and prompts.

    Usage:
        registry = ServiceRegistry(policy=NamingPolicy.REJECT)
        registry.register(demo_service())
        entry = registry.resolve("echo")
    """

    def __init__(
        self,
        services: Iterable[Service] = (),
        policy: NamingPolicy | str = NamingPolicy.REJECT,
    ) -> None:
        self.policy = NamingPolicy(policy)
        self._lock = Lock()
        self._table = _Table()
        for service in services:
            self.register(service)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def register(self, service: Service) -> None:
        """Register a service.

        Raises:
            DuplicateServiceName: A service with this name is registered.
            InvalidService: The declaration is inconsistent.
            AmbiguousTool: A name collides under the ``REJECT`` policy, or a
                resource URI is already served by another service.
        """
        problems = service.problems()
        if problems:
            raise InvalidService(
                f"Service '{service.name}' is invalid: {'; '.join(problems)}",
                data={"problems": problems},
            )

        with self._lock:
            table = self._table
            if any(s.name == service.name for s in table.services):
                raise DuplicateServiceName(f"Service '{service.name}' is already registered")

            tools = self._expose(service, service.tools, table.tools, "tool")
            prompts = self._expose(service, service.prompts, table.prompts, "prompt")
            resources = self._expose_resources(service, table)

            all_tools = table.tools + tools
            self._table = _build_table(
                table.services + (service,),
                all_tools,
                table.prompts + prompts,
                table.resources + resources,
            )
            size = len(self._table.services)

        logger.info(
            "service_registered",
            service=service.name,
            tools=[e.exposed_name for e in tools],
            prompts=[e.exposed_name for e in prompts],
            resources=[e.exposed_name for e in resources],
        )
        record_registry_size(size, len(all_tools))

    @staticmethod
    def _expose_resources(service: Service, table: _Table) -> tuple[Entry[Resource], ...]:
        entries = []
        for resource in service.resources:
            owner = table.resource_index.get(resource.uri)
            if owner is not None:
                raise AmbiguousTool(
                    f"Resource '{resource.uri}' of service '{service.name}' is already "
                    f"exposed by service '{owner.service.name}'",
                    data={"uri": resource.uri, "services": [owner.service.name, service.name]},
                )
            exposed = f"{service.name}{RESOURCE_PREFIX}{resource.name}"
            entries.append(Entry(exposed_name=exposed, service=service, item=resource))
        return tuple(entries)

    def _expose(
        self,
        service: Service,
        items: tuple[T, ...],
        existing: tuple[Entry[T], ...],
        kind: str,
    ) -> tuple[Entry[T], ...]:
        taken = {e.exposed_name: e for e in existing}
        entries = []
        for item in items:
            name = item.name
            if name in taken:
                if self.policy is NamingPolicy.REJECT:
                    raise AmbiguousTool(
                        f"{kind.capitalize()} '{name}' of service '{service.name}' is already "
                        f"exposed by service '{taken[name].service.name}'",
                        data={"name": name, "services": [taken[name].service.name, service.name]},
                    )
                name = f"{service.name}{QUALIFIER}{item.name}"
                if name in taken:
                    raise AmbiguousTool(
                        f"{kind.capitalize()} name '{name}' is already exposed",
                        data={"name": name},
                    )
            entries.append(Entry(exposed_name=name, service=service, item=item))
            taken[name] = entries[-1]
        return tuple(entries)

    def unregister(self, name: str) -> Service:
        """Remove a service and all its entries.

        Raises:
            NotFound: No service with this name is registered.
        """
        with self._lock:
            table = self._table
            service = next((s for s in table.services if s.name == name), None)
            if service is None:
                raise NotFound(f"Service '{name}' is not registered")

            tools = tuple(e for e in table.tools if e.service is not service)
            self._table = _build_table(
                tuple(s for s in table.services if s is not service),
                tools,
                tuple(e for e in table.prompts if e.service is not service),
                tuple(e for e in table.resources if e.service is not service),
            )
            size = len(self._table.services)

        logger.info("service_unregistered", service=name)
        record_registry_size(size, len(tools))
        return service

    def clear(self) -> None:
        """Unregister every service, most recent first."""
        for service in reversed(self.services()):
            self.unregister(service.name)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def resolve(self, name: str) -> Entry[Tool]:
        """Resolve a caller-visible tool name.

        Raises:
            MethodNotFound: No registered service exposes this tool.
        """
        entry = self._table.tool_index.get(name)
        if entry is None:
            raise MethodNotFound(f"Tool '{name}' not found", data={"name": name})
        return entry

    def resolve_prompt(self, name: str) -> Entry[Prompt]:
        """Resolve a caller-visible prompt name.

        Raises:
            MethodNotFound: No registered service exposes this prompt.
        """
        entry = self._table.prompt_index.get(name)
        if entry is None:
            raise MethodNotFound(f"Prompt '{name}' not found", data={"name": name})
        return entry

    def resolve_resource(self, uri: str) -> Entry[Resource]:
        """Resolve a resource by its URI.

        Raises:
            NotFound: No registered service exposes this URI.
        """
        entry = self._table.resource_index.get(uri)
        if entry is None:
            raise NotFound(f"Resource '{uri}' not found", data={"uri": uri})
        return entry

    def get(self, name: str) -> Service | None:
        """Get a service by name."""
        return next((s for s in self._table.services if s.name == name), None)

    def services(self) -> list[Service]:
        """List services in registration order."""
        return list(self._table.services)

    def list_tools(self) -> list[ToolDefinition]:
        """Discovery payload: services in registration order, tools in declaration order."""
        return [
            e.item.to_definition(e.exposed_name, service=e.service.name) for e in self._table.tools
        ]

    def list_prompts(self) -> list[PromptDefinition]:
        """Discovery payload for prompts, ordered like ``list_tools``."""
        return [
            e.item.to_definition(e.exposed_name, service=e.service.name) for e in self._table.prompts
        ]

    def list_resources(self) -> list[ResourceDefinition]:
        return [
            e.item.to_definition(e.exposed_name, service=e.service.name) for e in self._table.resources
        ]

    def __len__(self) -> int:
        return len(self._table.services)

    def __contains__(self, name: object) -> bool:
        return any(s.name == name for s in self._table.services)
