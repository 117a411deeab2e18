"""
Worker Route adapter (kind "workers.Route").

Binding: the route's URL pattern (a natural key). The service also assigns
a route id, but every call first locates the route by listing the zone's
routes and matching the pattern, so only the pattern needs to be bound.

Parameters:
  zone       zone id (required)
  pattern    URL pattern, e.g. "example.com/api/*" (required)
  script     worker script to route to; unset disables the worker
"""

import logging
from typing import List, Optional, Protocol

from edgeplane.adapters.base import InvocationContext, call_remote
from edgeplane.adapters.drift import FieldSpec, compare_fields
from edgeplane.errors import InvalidParametersError, NotFoundError
from edgeplane.models.outcome import Observation

logger = logging.getLogger(__name__)

KIND = "workers.Route"

ROUTE_FIELDS = (
    FieldSpec("pattern", optional=False),
    FieldSpec("script"),
)


class RoutesClient(Protocol):
    """Transport for zone-scoped worker route calls."""

    def list_worker_routes(self, zone_id: str) -> List[dict]: ...

    def create_worker_route(self, zone_id: str, payload: dict) -> dict: ...

    def update_worker_route(self, zone_id: str, route_id: str, payload: dict) -> dict: ...

    def delete_worker_route(self, zone_id: str, route_id: str) -> None: ...


class RouteAdapter:
    """Maps declared worker routes onto the zone's route API."""

    def __init__(self, client: RoutesClient):
        self.client = client

    def _zone(self, params: dict) -> str:
        zone = params.get("zone")
        if not zone:
            raise InvalidParametersError("workers.Route requires a zone")
        return zone

    def _payload(self, params: dict) -> dict:
        pattern = params.get("pattern")
        if not pattern:
            raise InvalidParametersError("workers.Route requires a pattern")
        return {"pattern": pattern, "script": params.get("script") or ""}

    def _observe(self, route: dict) -> Observation:
        return Observation(
            identifier=route["pattern"],
            fields={
                "id": route.get("id"),
                "pattern": route["pattern"],
                # An empty script means the route has no worker attached
                "script": route.get("script") or None,
            },
        )

    def _find(self, zone: str, pattern: str, ctx: InvocationContext) -> dict:
        routes = call_remote(ctx, self.client.list_worker_routes, zone)
        route = next((r for r in routes if r.get("pattern") == pattern), None)
        if route is None:
            raise NotFoundError(f"worker route {pattern!r} not found in zone {zone}")
        return route

    def create(self, params: dict, ctx: InvocationContext) -> Observation:
        zone = self._zone(params)
        route = call_remote(ctx, self.client.create_worker_route, zone, self._payload(params))
        return self._observe(route)

    def fetch(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        return self._observe(self._find(self._zone(params), identifier, ctx))

    def update(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        zone = self._zone(params)
        payload = self._payload(params)
        existing = self._find(zone, identifier, ctx)
        route = call_remote(
            ctx, self.client.update_worker_route, zone, existing["id"], payload
        )
        return self._observe(route)

    def delete(self, identifier: str, params: dict, ctx: InvocationContext) -> None:
        zone = self._zone(params)
        try:
            existing = self._find(zone, identifier, ctx)
            call_remote(ctx, self.client.delete_worker_route, zone, existing["id"])
        except NotFoundError:
            logger.debug("worker route %s already absent", identifier)

    def is_up_to_date(self, params: dict, observation: Observation) -> bool:
        desired: Optional[str] = params.get("script") or None
        if desired is None and observation.fields.get("script") is not None:
            # Declared without a worker but one is attached
            return False
        normalized = dict(params, script=desired)
        return compare_fields(normalized, observation.fields, ROUTE_FIELDS).up_to_date
