"""Service descriptors, registry and built-in services."""

from toolproxy.services.base import CallContext, Handler, Prompt, Resource, ResourceReader, Service, Tool
from toolproxy.services.registry import Entry, NamingPolicy, ServiceRegistry

__all__ = [
    "CallContext",
    "Entry",
    "Handler",
    "NamingPolicy",
    "Prompt",
    "Resource",
    "ResourceReader",
    "Service",
    "ServiceRegistry",
    "Tool",
]
