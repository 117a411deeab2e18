"""Placeholder adapter for resource kinds whose mapping has not been built yet."""

from edgeplane.adapters.base import InvocationContext
from edgeplane.errors import KindUnsupportedError
from edgeplane.models.outcome import Observation


class UnimplementedAdapter:
    """
    Capability set with nothing in it.

    Registered so that a kind is known to the registry while still being
    reported as unsupported, a feature-completeness signal rather than a
    runtime fault.
    """

    implemented = False

    def __init__(self, kind: str, detail: str = "adapter not implemented"):
        self.kind = kind
        self.detail = detail

    def _unsupported(self) -> KindUnsupportedError:
        return KindUnsupportedError(self.kind, self.detail)

    def create(self, params: dict, ctx: InvocationContext) -> Observation:
        raise self._unsupported()

    def fetch(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        raise self._unsupported()

    def update(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        raise self._unsupported()

    def delete(self, identifier: str, params: dict, ctx: InvocationContext) -> None:
        raise self._unsupported()

    def is_up_to_date(self, params: dict, observation: Observation) -> bool:
        return False
