"""
In-process fake of the edge platform.

Implements the records, routes, cron trigger and accounts transports with
dict-backed state, a call log and fault injection, for tests and the demo
API. Failures are raised as RemoteAPIError the way a real transport would,
so adapters exercise their error classification.
"""

import threading
from collections import defaultdict, deque
from datetime import datetime
from typing import Deque, Dict, List, Optional, Tuple
from uuid import uuid4

from edgeplane.errors import RECORD_NOT_FOUND_CODE, RemoteAPIError


class InMemoryEdgeService:
    """Dict-backed stand-in for the remote edge platform."""

    def __init__(self, accounts: Optional[List[dict]] = None):
        self.records: Dict[str, Dict[str, dict]] = defaultdict(dict)       # zone → id → record
        self.routes: Dict[str, Dict[str, dict]] = defaultdict(dict)        # zone → id → route
        self.cron_triggers: Dict[Tuple[str, str], List[dict]] = {}         # (account, script) → triggers
        self.accounts: List[dict] = list(accounts) if accounts is not None else [
            {"id": "acc_default", "name": "default"}
        ]
        self.calls: List[Tuple] = []
        self._faults: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._ids: Deque[str] = deque()
        self._lock = threading.RLock()

    # Test controls

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        """Make the next `times` calls of an operation raise `error`."""
        with self._lock:
            for _ in range(times):
                self._faults[operation].append(error)

    def queue_ids(self, *ids: str) -> None:
        """Ids handed out, in order, to the next created objects."""
        with self._lock:
            self._ids.extend(ids)

    def call_count(self, operation: str) -> int:
        with self._lock:
            return sum(1 for c in self.calls if c[0] == operation)

    def reset_calls(self) -> None:
        with self._lock:
            self.calls.clear()

    def _enter(self, operation: str, *args) -> None:
        self.calls.append((operation,) + args)
        faults = self._faults.get(operation)
        if faults:
            raise faults.popleft()

    def _next_id(self) -> str:
        return self._ids.popleft() if self._ids else uuid4().hex

    # Accounts

    def list_accounts(self) -> List[dict]:
        with self._lock:
            self._enter("list_accounts")
            return [dict(a) for a in self.accounts]

    # DNS records

    def _record_from_payload(self, payload: dict) -> dict:
        record = {k: v for k, v in payload.items() if k != "data"}
        data = payload.get("data")
        if data and record.get("type") == "SRV":
            record["content"] = data["target"]
            record["priority"] = data["priority"]
            record["weight"] = data["weight"]
            record["port"] = data["port"]
        elif data and record.get("type") == "TLSA":
            record["content"] = " ".join(
                str(data[k]) for k in ("usage", "selector", "matching_type", "certificate")
            )
        record.setdefault("ttl", 1)
        record.setdefault("proxied", False)
        record["proxiable"] = record.get("type", "A") in ("A", "AAAA", "CNAME")
        return record

    def _record_not_found(self, record_id: str) -> RemoteAPIError:
        return RemoteAPIError(
            f"Record does not exist. ({RECORD_NOT_FOUND_CODE}) {record_id}",
            status_code=404,
            error_codes=[RECORD_NOT_FOUND_CODE],
        )

    def create_dns_record(self, zone_id: str, payload: dict) -> dict:
        with self._lock:
            self._enter("create_dns_record", zone_id, payload)
            now = datetime.utcnow().isoformat()
            record = self._record_from_payload(payload)
            record.update({"id": self._next_id(), "created_on": now, "modified_on": now})
            self.records[zone_id][record["id"]] = record
            return dict(record)

    def get_dns_record(self, zone_id: str, record_id: str) -> dict:
        with self._lock:
            self._enter("get_dns_record", zone_id, record_id)
            record = self.records[zone_id].get(record_id)
            if record is None:
                raise self._record_not_found(record_id)
            return dict(record)

    def update_dns_record(self, zone_id: str, record_id: str, payload: dict) -> dict:
        with self._lock:
            self._enter("update_dns_record", zone_id, record_id, payload)
            existing = self.records[zone_id].get(record_id)
            if existing is None:
                raise self._record_not_found(record_id)
            record = self._record_from_payload(payload)
            record.update({
                "id": record_id,
                "created_on": existing["created_on"],
                "modified_on": datetime.utcnow().isoformat(),
            })
            self.records[zone_id][record_id] = record
            return dict(record)

    def delete_dns_record(self, zone_id: str, record_id: str) -> None:
        with self._lock:
            self._enter("delete_dns_record", zone_id, record_id)
            if self.records[zone_id].pop(record_id, None) is None:
                raise self._record_not_found(record_id)

    # Worker routes

    def list_worker_routes(self, zone_id: str) -> List[dict]:
        with self._lock:
            self._enter("list_worker_routes", zone_id)
            return [dict(r) for r in self.routes[zone_id].values()]

    def create_worker_route(self, zone_id: str, payload: dict) -> dict:
        with self._lock:
            self._enter("create_worker_route", zone_id, payload)
            if any(r["pattern"] == payload["pattern"] for r in self.routes[zone_id].values()):
                raise RemoteAPIError(
                    f"route pattern {payload['pattern']} is already in use", status_code=409
                )
            route = {"id": self._next_id(), "pattern": payload["pattern"],
                     "script": payload.get("script", "")}
            self.routes[zone_id][route["id"]] = route
            return dict(route)

    def update_worker_route(self, zone_id: str, route_id: str, payload: dict) -> dict:
        with self._lock:
            self._enter("update_worker_route", zone_id, route_id, payload)
            if route_id not in self.routes[zone_id]:
                raise RemoteAPIError(f"route {route_id} not found", status_code=404)
            route = {"id": route_id, "pattern": payload["pattern"],
                     "script": payload.get("script", "")}
            self.routes[zone_id][route_id] = route
            return dict(route)

    def delete_worker_route(self, zone_id: str, route_id: str) -> None:
        with self._lock:
            self._enter("delete_worker_route", zone_id, route_id)
            if self.routes[zone_id].pop(route_id, None) is None:
                raise RemoteAPIError(f"route {route_id} not found", status_code=404)

    # Worker cron triggers

    def get_cron_triggers(self, account_id: str, script_name: str) -> List[dict]:
        with self._lock:
            self._enter("get_cron_triggers", account_id, script_name)
            return [dict(t) for t in self.cron_triggers.get((account_id, script_name), [])]

    def update_cron_triggers(
        self, account_id: str, script_name: str, crons: List[str]
    ) -> List[dict]:
        with self._lock:
            self._enter("update_cron_triggers", account_id, script_name, list(crons))
            now = datetime.utcnow().isoformat()
            triggers = [{"cron": c, "created_on": now, "modified_on": now} for c in crons]
            if triggers:
                self.cron_triggers[(account_id, script_name)] = triggers
            else:
                self.cron_triggers.pop((account_id, script_name), None)
            return [dict(t) for t in triggers]
