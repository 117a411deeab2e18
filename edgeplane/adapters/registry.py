"""Adapter Registry — maps a resource kind to the adapter that reconciles it."""

import logging
from typing import Dict, List, Optional

from edgeplane.adapters import crontriggers, records, routes
from edgeplane.adapters.accounts import AccountResolver
from edgeplane.adapters.base import RemoteResourceAdapter
from edgeplane.adapters.unimplemented import UnimplementedAdapter
from edgeplane.errors import KindUnsupportedError

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Kind → adapter table, resolved by the scheduler before each invocation.

    Kinds registered with an UnimplementedAdapter (or never registered at
    all) resolve to KindUnsupportedError, distinct from a PermanentError.
    """

    def __init__(self):
        self._adapters: Dict[str, RemoteResourceAdapter] = {}

    def register(self, kind: str, adapter: RemoteResourceAdapter) -> None:
        """Register (or replace) the adapter for a kind."""
        self._adapters[kind] = adapter
        logger.debug("registered adapter %s for kind %s", type(adapter).__name__, kind)

    def register_unsupported(self, kind: str, detail: str = "adapter not implemented") -> None:
        """Make a kind known while reporting it as unsupported."""
        self._adapters[kind] = UnimplementedAdapter(kind, detail)

    def unregister(self, kind: str) -> None:
        self._adapters.pop(kind, None)

    def is_supported(self, kind: str) -> bool:
        adapter = self._adapters.get(kind)
        return adapter is not None and getattr(adapter, "implemented", True)

    def resolve(self, kind: str) -> RemoteResourceAdapter:
        """The implemented adapter for a kind, or KindUnsupportedError."""
        adapter = self._adapters.get(kind)
        if adapter is None:
            raise KindUnsupportedError(kind, "no adapter registered")
        if not getattr(adapter, "implemented", True):
            raise KindUnsupportedError(kind, getattr(adapter, "detail", ""))
        return adapter

    def supported_kinds(self) -> List[str]:
        return sorted(k for k in self._adapters if self.is_supported(k))

    def unsupported_kinds(self) -> List[str]:
        return sorted(k for k in self._adapters if not self.is_supported(k))

    def kinds(self) -> List[str]:
        return sorted(self._adapters)


UNIMPLEMENTED_KINDS = ("workers.Domain", "workers.KVNamespace", "workers.Subdomain")


def default_registry(service, account_id: Optional[str] = None) -> AdapterRegistry:
    """
    Registry wired with the reference adapters over one transport.

    `service` must implement every transport protocol the adapters use,
    e.g. InMemoryEdgeService.
    """
    registry = AdapterRegistry()
    registry.register(records.KIND, records.RecordAdapter(service))
    registry.register(routes.KIND, routes.RouteAdapter(service))
    registry.register(
        crontriggers.KIND,
        crontriggers.CronTriggerAdapter(service, AccountResolver(service, account_id)),
    )
    for kind in UNIMPLEMENTED_KINDS:
        registry.register_unsupported(kind)
    return registry
