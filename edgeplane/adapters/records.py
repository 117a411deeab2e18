"""
DNS Record adapter (kind "dns.Record").

Binding: the service-assigned record id.

Parameters:
  zone        zone id the record lives in (required)
  type        record type, e.g. "A", "CNAME", "SRV", "TLSA" (default "A")
  name        record name (required)
  content     record content (required)
  ttl         seconds; 1 means automatic
  proxied     route through the edge proxy
  priority    MX/SRV priority
  weight, port   SRV only
"""

import logging
from typing import Optional, Protocol

from edgeplane.adapters.base import InvocationContext, call_remote
from edgeplane.adapters.drift import FieldSpec, as_bool, as_int, compare_fields
from edgeplane.errors import InvalidParametersError, NotFoundError
from edgeplane.models.outcome import Observation

logger = logging.getLogger(__name__)

KIND = "dns.Record"

RECORD_FIELDS = (
    FieldSpec("name", optional=False),
    FieldSpec("content", optional=False),
    FieldSpec("type"),
    FieldSpec("ttl", normalize=as_int),
    FieldSpec("proxied", normalize=as_bool),
    FieldSpec("priority", normalize=as_int),
)

# Fields copied from the remote record into status.at_provider
_OBSERVED_KEYS = (
    "id", "type", "name", "content", "ttl", "proxied", "proxiable",
    "priority", "created_on", "modified_on",
)


class RecordsClient(Protocol):
    """Transport for zone-scoped DNS record calls."""

    def create_dns_record(self, zone_id: str, payload: dict) -> dict: ...

    def get_dns_record(self, zone_id: str, record_id: str) -> dict: ...

    def update_dns_record(self, zone_id: str, record_id: str, payload: dict) -> dict: ...

    def delete_dns_record(self, zone_id: str, record_id: str) -> None: ...


def parse_tlsa_content(content: str) -> dict:
    """Split "usage selector matching_type certificate" into the TLSA data payload."""
    parts = content.split()
    if len(parts) != 4:
        raise InvalidParametersError(
            "TLSA content must have 4 space-separated fields "
            f"(usage selector matching_type certificate), got {len(parts)}"
        )

    def _bounded(label: str, raw: str, upper: int) -> int:
        try:
            value = int(raw)
        except ValueError:
            value = -1
        if not 0 <= value <= upper:
            raise InvalidParametersError(f"TLSA {label} must be 0-{upper}, got: {raw}")
        return value

    return {
        "usage": _bounded("usage", parts[0], 3),
        "selector": _bounded("selector", parts[1], 1),
        "matching_type": _bounded("matching_type", parts[2], 2),
        "certificate": parts[3],
    }


def build_payload(params: dict) -> dict:
    """Full-replace request body for create and update."""
    record_type = params.get("type") or "A"
    payload = {
        "type": record_type,
        "name": params["name"],
        "content": params["content"],
    }
    if params.get("ttl") is not None:
        payload["ttl"] = int(params["ttl"])
    if params.get("proxied") is not None:
        payload["proxied"] = as_bool(params["proxied"])
    if params.get("priority") is not None:
        payload["priority"] = int(params["priority"])

    if record_type == "SRV" and all(
        params.get(k) is not None for k in ("priority", "weight", "port")
    ):
        payload["data"] = {
            "priority": int(params["priority"]),
            "weight": int(params["weight"]),
            "port": int(params["port"]),
            "target": params["content"],
        }
        payload.pop("priority")
        payload["content"] = ""
    elif record_type == "TLSA":
        payload["data"] = parse_tlsa_content(params["content"])
        payload["content"] = ""
    return payload


class RecordAdapter:
    """Maps declared DNS records onto the zone's record API."""

    def __init__(self, client: RecordsClient):
        self.client = client

    def _zone(self, params: dict) -> str:
        zone = params.get("zone")
        if not zone:
            raise InvalidParametersError("dns.Record requires a zone")
        return zone

    def _validate(self, params: dict) -> None:
        for required in ("name", "content"):
            if not params.get(required):
                raise InvalidParametersError(f"dns.Record requires {required}")
        if params.get("proxied") is not None:
            try:
                as_bool(params["proxied"])
            except ValueError as e:
                raise InvalidParametersError(f"dns.Record proxied: {e}")

    def _observe(self, record: dict) -> Observation:
        return Observation(
            identifier=str(record["id"]),
            fields={k: record[k] for k in _OBSERVED_KEYS if k in record},
        )

    def create(self, params: dict, ctx: InvocationContext) -> Observation:
        zone = self._zone(params)
        self._validate(params)
        record = call_remote(ctx, self.client.create_dns_record, zone, build_payload(params))
        return self._observe(record)

    def fetch(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        record = call_remote(ctx, self.client.get_dns_record, self._zone(params), identifier)
        return self._observe(record)

    def update(self, identifier: str, params: dict, ctx: InvocationContext) -> Observation:
        zone = self._zone(params)
        self._validate(params)
        record = call_remote(
            ctx, self.client.update_dns_record, zone, identifier, build_payload(params)
        )
        return self._observe(record)

    def delete(self, identifier: str, params: dict, ctx: InvocationContext) -> None:
        try:
            call_remote(ctx, self.client.delete_dns_record, self._zone(params), identifier)
        except NotFoundError:
            logger.debug("dns record %s already absent", identifier)

    def late_initialize(self, params: dict, observation: Observation) -> Optional[dict]:
        """Adopt proxied and priority from the remote record when left unset."""
        updated = dict(params)
        changed = False
        for key in ("proxied", "priority"):
            if updated.get(key) is None and observation.fields.get(key) is not None:
                updated[key] = observation.fields[key]
                changed = True
        return updated if changed else None

    def is_up_to_date(self, params: dict, observation: Observation) -> bool:
        report = compare_fields(params, observation.fields, RECORD_FIELDS)
        if not report.up_to_date:
            logger.debug("dns record %s: %s", observation.identifier, report.describe())
        return report.up_to_date
