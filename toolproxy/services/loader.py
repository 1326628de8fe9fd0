"""Load provider services named in configuration.

Providers are referenced as ``"package.module:attribute"``. The attribute may
be a ``Service``, a list of services, or a zero-argument callable returning
either.
"""

import importlib
from collections.abc import Iterable

from toolproxy.errors import InvalidService
from toolproxy.services.base import Service


def load_services(reference: str) -> list[Service]:
    """Import ``reference`` and return the services it provides.

    Raises:
        InvalidService: The reference is malformed, cannot be imported, or does
            not produce services.
    """
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise InvalidService(f"Service reference '{reference}' must look like 'module:attribute'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise InvalidService(f"Cannot import service module '{module_name}': {e}") from e

    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise InvalidService(f"Module '{module_name}' has no attribute '{attribute}'") from e

    if callable(target) and not isinstance(target, Service):
        target = target()
    if isinstance(target, Service):
        return [target]
    if isinstance(target, Iterable) and not isinstance(target, str | bytes):
        services = list(target)
        if all(isinstance(s, Service) for s in services):
            return services
    raise InvalidService(f"'{reference}' did not produce Service objects")


def load_all(references: Iterable[str]) -> list[Service]:
    """Load every reference, preserving order."""
    return [service for reference in references for service in load_services(reference)]
