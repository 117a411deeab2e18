"""Tests for the Scheduler."""

import asyncio
import threading
from datetime import datetime, timedelta

import pytest

from edgeplane.adapters.fake import InMemoryEdgeService
from edgeplane.adapters.records import RecordAdapter
from edgeplane.adapters.registry import AdapterRegistry, default_registry
from edgeplane.errors import RemoteAPIError
from edgeplane.events.store import EventStore
from edgeplane.identity.binding import EXTERNAL_NAME_ANNOTATION
from edgeplane.models.outcome import Observation, OutcomeKind
from edgeplane.models.reconciler import KindConfig, ReconcilerConfig
from edgeplane.models.resource import (
    ConditionReason,
    ConditionType,
    DeclaredResource,
    ResourceMetadata,
)
from edgeplane.reconciler.scheduler import Scheduler, backoff_delay
from edgeplane.reconciler.status import is_ready
from edgeplane.store.resources import ResourceStore


def _make_record(name: str = "www", **overrides) -> DeclaredResource:
    params = {"zone": "z1", "type": "A", "name": f"{name}.example.com", "content": "1.2.3.4"}
    params.update(overrides)
    return DeclaredResource(
        kind="dns.Record",
        metadata=ResourceMetadata(name=name),
        parameters=params,
    )


class TestBackoff:
    def test_exponential_and_capped(self):
        config = ReconcilerConfig(error_backoff_base_seconds=1.0, error_backoff_max_seconds=30.0)
        kind = KindConfig(poll_interval_seconds=600)
        assert [backoff_delay(n, config, kind) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]
        assert backoff_delay(10, config, kind) == 30.0

    def test_never_longer_than_poll_interval(self):
        config = ReconcilerConfig(error_backoff_base_seconds=100.0, error_backoff_max_seconds=1000.0)
        assert backoff_delay(3, config, KindConfig(poll_interval_seconds=60)) == 60.0


class TestSchedulerReconcile:
    def setup_method(self):
        self.service = InMemoryEdgeService()
        self.store = ResourceStore()
        self.events = EventStore(db_path=":memory:")
        self.scheduler = Scheduler(
            store=self.store,
            registry=default_registry(self.service),
            event_store=self.events,
        )

    def test_create_binds_and_persists_status(self):
        self.service.queue_ids("abc123")
        self.store.save(_make_record())
        outcome = self.scheduler.reconcile("dns.Record/www")
        assert outcome.kind == OutcomeKind.SYNCED

        stored = self.store.get("dns.Record/www")
        assert stored.metadata.annotations[EXTERNAL_NAME_ANNOTATION] == "abc123"
        assert is_ready(stored)
        assert stored.status.observed_generation == 1
        assert stored.status.at_provider["id"] == "abc123"

    def test_steady_state_makes_no_mutating_calls(self):
        self.store.save(_make_record())
        self.scheduler.reconcile("dns.Record/www")
        self.service.reset_calls()
        self.scheduler.reconcile("dns.Record/www")
        assert [c[0] for c in self.service.calls] == ["get_dns_record"]

    def test_missing_resource(self):
        assert self.scheduler.reconcile("dns.Record/nope") is None

    def test_deletion_removes_resource_after_remote_delete(self):
        self.store.save(_make_record())
        self.scheduler.reconcile("dns.Record/www")
        self.store.request_deletion("dns.Record/www")

        outcome = self.scheduler.reconcile("dns.Record/www")
        assert outcome.kind == OutcomeKind.DELETED
        assert self.store.get("dns.Record/www") is None
        assert self.service.records["z1"] == {}
        assert self.scheduler.requeue_state("dns.Record/www") is None

    def test_failed_delete_keeps_resource(self):
        self.store.save(_make_record())
        self.scheduler.reconcile("dns.Record/www")
        self.store.request_deletion("dns.Record/www")
        self.service.fail_next("delete_dns_record", RemoteAPIError("overloaded", status_code=503))

        outcome = self.scheduler.reconcile("dns.Record/www")
        assert outcome.kind == OutcomeKind.TRANSIENT_ERROR
        stored = self.store.get("dns.Record/www")
        assert stored is not None
        assert EXTERNAL_NAME_ANNOTATION in stored.metadata.annotations

    def test_unsupported_kind(self):
        self.store.save(DeclaredResource(kind="workers.Domain", metadata=ResourceMetadata(name="d")))
        outcome = self.scheduler.reconcile("workers.Domain/d")
        assert outcome.kind == OutcomeKind.KIND_UNSUPPORTED
        ready = self.store.get("workers.Domain/d").status.get_condition(ConditionType.READY)
        assert ready.reason == ConditionReason.KIND_UNSUPPORTED
        assert self.service.calls == []

    def test_every_invocation_is_recorded(self):
        self.store.save(_make_record())
        self.scheduler.reconcile("dns.Record/www")
        self.service.fail_next("get_dns_record", RemoteAPIError("bad token", status_code=403))
        self.scheduler.reconcile("dns.Record/www")

        events = self.events.query_by_resource("dns.Record/www")
        assert [e.outcome for e in events] == [OutcomeKind.SYNCED, OutcomeKind.PERMANENT_ERROR]
        assert events[0].reason == ConditionReason.RECONCILE_SUCCESS
        assert events[1].reason == ConditionReason.RECONCILE_ERROR

    def test_late_initialized_parameters_written_back(self):
        self.store.save(_make_record())
        self.scheduler.reconcile("dns.Record/www")
        # proxied defaults to False on the remote side
        self.scheduler.reconcile("dns.Record/www")
        assert self.store.get("dns.Record/www").parameters["proxied"] is False


class TestSchedulerTiming:
    def setup_method(self):
        self.service = InMemoryEdgeService()
        self.store = ResourceStore()
        self.config = ReconcilerConfig(
            error_backoff_base_seconds=2.0,
            default_kind=KindConfig(poll_interval_seconds=300),
        )
        self.scheduler = Scheduler(
            store=self.store,
            registry=default_registry(self.service),
            config=self.config,
        )
        self.now = datetime(2026, 5, 1, 12, 0, 0)

    def test_new_resource_is_due(self):
        self.store.save(_make_record())
        assert self.scheduler.due(self.now) == ["dns.Record/www"]

    def test_success_schedules_next_poll(self):
        self.store.save(_make_record())
        self.scheduler.reconcile("dns.Record/www", now=self.now)
        state = self.scheduler.requeue_state("dns.Record/www")
        assert state.next_attempt_at == self.now + timedelta(seconds=300)
        assert self.scheduler.due(self.now + timedelta(seconds=299)) == []
        assert self.scheduler.due(self.now + timedelta(seconds=300)) == ["dns.Record/www"]

    def test_failure_backs_off(self):
        self.store.save(_make_record())
        error = RemoteAPIError("overloaded", status_code=503)
        self.service.fail_next("create_dns_record", error, times=2)

        self.scheduler.reconcile("dns.Record/www", now=self.now)
        state = self.scheduler.requeue_state("dns.Record/www")
        assert state.consecutive_failures == 1
        assert state.next_attempt_at == self.now + timedelta(seconds=2)

        later = self.now + timedelta(seconds=2)
        self.scheduler.reconcile("dns.Record/www", now=later)
        state = self.scheduler.requeue_state("dns.Record/www")
        assert state.consecutive_failures == 2
        assert state.next_attempt_at == later + timedelta(seconds=4)

        self.scheduler.reconcile("dns.Record/www", now=later)
        assert self.scheduler.requeue_state("dns.Record/www").consecutive_failures == 0

    def test_parameter_change_makes_resource_due_immediately(self):
        self.store.save(_make_record())
        self.scheduler.reconcile("dns.Record/www", now=self.now)
        assert self.scheduler.due(self.now) == []

        resource = self.store.get("dns.Record/www")
        resource.parameters["content"] = "5.6.7.8"
        self.store.save(resource)
        assert self.scheduler.due(self.now) == ["dns.Record/www"]

    def test_status_writes_do_not_retrigger(self):
        self.store.save(_make_record(proxied=False))
        self.scheduler.reconcile("dns.Record/www", now=self.now)
        assert self.scheduler.due(self.now + timedelta(seconds=1)) == []

    def test_reconcile_due_runs_each_due_resource(self):
        self.store.save(_make_record("a"))
        self.store.save(_make_record("b"))
        outcomes = self.scheduler.reconcile_due(self.now)
        assert sorted(o.resource_key for o in outcomes) == ["dns.Record/a", "dns.Record/b"]
        assert self.service.call_count("create_dns_record") == 2
        assert self.scheduler.reconcile_due(self.now) == []
        self.scheduler.shutdown()


class BlockingAdapter:
    """Record adapter whose create blocks until released."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.creates = 0
        self.deletes = 0

    def create(self, params, ctx):
        self.creates += 1
        self.started.set()
        self.release.wait(timeout=5)
        return Observation(identifier="abc123", fields=dict(params))

    def fetch(self, identifier, params, ctx):
        return Observation(identifier=identifier, fields=dict(params))

    def update(self, identifier, params, ctx):
        return Observation(identifier=identifier, fields=dict(params))

    def delete(self, identifier, params, ctx):
        self.deletes += 1

    def is_up_to_date(self, params, observation):
        return True


class TestSerialization:
    def test_resource_in_flight_is_not_reconciled_twice(self):
        store = ResourceStore()
        adapter = BlockingAdapter()
        scheduler = Scheduler(store=store, registry=AdapterRegistry())
        scheduler.register_kind("dns.Record", adapter)
        store.save(_make_record())

        worker = threading.Thread(target=scheduler.reconcile, args=("dns.Record/www",))
        worker.start()
        assert adapter.started.wait(timeout=5)

        assert scheduler.reconcile("dns.Record/www") is None
        assert scheduler.due() == []

        adapter.release.set()
        worker.join(timeout=5)
        assert adapter.creates == 1
        # Deferred request runs on the next pass
        assert scheduler.due() == ["dns.Record/www"]


class TestConcurrentWriters:
    """Declarations and deletion requests arriving while a pass is binding the resource."""

    def setup_method(self):
        self.store = ResourceStore()
        self.adapter = BlockingAdapter()
        self.scheduler = Scheduler(store=self.store, registry=AdapterRegistry())
        self.scheduler.register_kind("dns.Record", self.adapter)
        self.store.save(_make_record())

    def _start_pass(self) -> threading.Thread:
        worker = threading.Thread(target=self.scheduler.reconcile, args=("dns.Record/www",))
        worker.start()
        assert self.adapter.started.wait(timeout=5)
        return worker

    def _finish_pass(self, worker: threading.Thread) -> None:
        self.adapter.release.set()
        worker.join(timeout=5)

    def test_declaration_during_create_keeps_binding(self):
        worker = self._start_pass()
        self.store.declare(_make_record(content="5.6.7.8"))
        self._finish_pass(worker)

        stored = self.store.get("dns.Record/www")
        assert stored.metadata.annotations[EXTERNAL_NAME_ANNOTATION] == "abc123"
        assert stored.parameters["content"] == "5.6.7.8"

        outcome = self.scheduler.reconcile("dns.Record/www")
        assert outcome.kind == OutcomeKind.SYNCED
        assert self.adapter.creates == 1

    def test_deletion_during_create_deletes_remote_object(self):
        worker = self._start_pass()
        self.store.request_deletion("dns.Record/www")
        self._finish_pass(worker)

        stored = self.store.get("dns.Record/www")
        assert stored.deletion_requested
        assert stored.metadata.annotations[EXTERNAL_NAME_ANNOTATION] == "abc123"
        assert self.scheduler.due() == ["dns.Record/www"]

        outcome = self.scheduler.reconcile("dns.Record/www")
        assert outcome.kind == OutcomeKind.DELETED
        assert self.adapter.deletes == 1
        assert self.store.get("dns.Record/www") is None

    def test_stale_declaration_after_pass_keeps_binding(self):
        self.adapter.release.set()
        stale = self.store.get("dns.Record/www")
        self.scheduler.reconcile("dns.Record/www")

        stale.parameters["content"] = "5.6.7.8"
        self.store.declare(stale)
        assert self.store.get("dns.Record/www").metadata.annotations[EXTERNAL_NAME_ANNOTATION] == "abc123"

        self.scheduler.reconcile("dns.Record/www")
        assert self.adapter.creates == 1


class TestRegisterKind:
    def test_kind_config_override(self):
        scheduler = Scheduler(store=ResourceStore(), registry=AdapterRegistry())
        scheduler.register_kind(
            "dns.Record",
            RecordAdapter(InMemoryEdgeService()),
            KindConfig(poll_interval_seconds=120, max_concurrent_reconciles=2),
        )
        assert scheduler.config.for_kind("dns.Record").poll_interval_seconds == 120
        assert scheduler.registry.is_supported("dns.Record")

    def test_callers_config_is_not_mutated(self):
        config = ReconcilerConfig()
        scheduler = Scheduler(store=ResourceStore(), registry=AdapterRegistry(), config=config)
        scheduler.register_kind(
            "dns.Record",
            RecordAdapter(InMemoryEdgeService()),
            KindConfig(poll_interval_seconds=120),
        )
        assert config.kinds == {}
        assert "dns.Record" in scheduler.config.kinds

    def test_updated_config_is_copied(self):
        scheduler = Scheduler(store=ResourceStore(), registry=AdapterRegistry())
        new_config = ReconcilerConfig()
        scheduler.update_config(new_config)
        scheduler.register_kind(
            "dns.Record",
            RecordAdapter(InMemoryEdgeService()),
            KindConfig(poll_interval_seconds=120),
        )
        assert new_config.kinds == {}


class TestRunAsync:
    def test_stops_on_event(self):
        store = ResourceStore()
        scheduler = Scheduler(
            store=store,
            registry=default_registry(InMemoryEdgeService()),
            config=ReconcilerConfig(heartbeat_interval_seconds=0.01),
        )
        store.save(_make_record())

        async def _run():
            stop = asyncio.Event()
            task = asyncio.create_task(scheduler.run_async(stop))
            await asyncio.sleep(0.1)
            assert scheduler.status == "running"
            stop.set()
            await task

        asyncio.run(_run())
        assert scheduler.status == "stopped"
        assert store.get("dns.Record/www").status.observed_generation == 1
        scheduler.shutdown()
