"""
Scheduler — the heartbeat of edgeplane.

Decides when each declared resource is reconciled and runs the Convergence
Engine for it on a per-kind worker pool.

A resource is due when:
  - it has never been reconciled,
  - its poll interval has elapsed since the last successful pass,
  - its error backoff has elapsed since the last failed pass, or
  - the store reported a new resource or a new generation.

The same resource is never reconciled twice at once: a resource already in
flight is skipped and marked to run again once the current pass finishes.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from edgeplane.adapters.base import InvocationContext, RemoteResourceAdapter
from edgeplane.adapters.registry import AdapterRegistry
from edgeplane.errors import KindUnsupportedError
from edgeplane.events.store import EventStore
from edgeplane.identity.binding import IdentityBinding, default_binding
from edgeplane.models.outcome import OutcomeKind, ReconcileOutcome, ReconcileStage
from edgeplane.models.reconciler import KindConfig, ReconcilerConfig, RequeueState
from edgeplane.models.resource import ConditionReason, DeclaredResource
from edgeplane.reconciler.engine import ConvergenceEngine
from edgeplane.reconciler.status import apply_outcome, error_reason
from edgeplane.store.resources import REMOVED, SAVED, ResourceStore

logger = logging.getLogger(__name__)


def backoff_delay(consecutive_failures: int, config: ReconcilerConfig, kind_config: KindConfig) -> float:
    """Seconds to wait before retrying after `consecutive_failures` failed passes."""
    exponent = max(consecutive_failures - 1, 0)
    delay = config.error_backoff_base_seconds * (2 ** exponent)
    return min(delay, config.error_backoff_max_seconds, float(kind_config.poll_interval_seconds))


class Scheduler:
    """
    Dispatches engine invocations for every declared resource in the store.

    States:
      STOPPED → RUNNING (run_async) → STOPPED
    """

    def __init__(
        self,
        store: ResourceStore,
        registry: AdapterRegistry,
        event_store: Optional[EventStore] = None,
        config: Optional[ReconcilerConfig] = None,
        binding: Optional[IdentityBinding] = None,
    ):
        self.store = store
        self.registry = registry
        self.event_store = event_store
        self.config = config or ReconcilerConfig()
        self.binding = binding or default_binding

        self._requeue: Dict[str, RequeueState] = {}
        self._generations: Dict[str, int] = {}
        self._pending: Set[str] = set()
        self._in_flight: Set[str] = set()
        self._rerun: Set[str] = set()
        self._pools: Dict[str, ThreadPoolExecutor] = {}
        self._lock = threading.RLock()
        self._running = False
        self._invocations = 0

        self.store.subscribe(self._on_change)

    @property
    def status(self) -> str:
        """Current scheduler status."""
        return "running" if self._running else "stopped"

    def register_kind(
        self,
        kind: str,
        adapter: RemoteResourceAdapter,
        config: Optional[KindConfig] = None,
    ) -> None:
        """Register an adapter for a kind, optionally with its own scheduling knobs."""
        self.registry.register(kind, adapter)
        if config is not None:
            with self._lock:
                # The current config may be shared with the caller
                self.config = self.config.model_copy(deep=True)
                self.config.kinds[kind] = config
                self._shutdown_pool(kind)

    def update_config(self, config: ReconcilerConfig) -> None:
        """Replace the configuration; worker pools are rebuilt on next use."""
        with self._lock:
            self.config = config.model_copy(deep=True)
            for kind in list(self._pools):
                self._shutdown_pool(kind)

    # Change notifications

    def _on_change(self, key: str, change: str, resource: Optional[DeclaredResource]) -> None:
        with self._lock:
            if change == REMOVED:
                self._requeue.pop(key, None)
                self._generations.pop(key, None)
                self._pending.discard(key)
                return
            if change != SAVED or resource is None:
                return
            generation = resource.metadata.generation
            # Status writes keep the generation and must not retrigger a pass
            if self._generations.get(key) != generation:
                self._generations[key] = generation
                self._pending.add(key)
                logger.debug("%s: generation %d declared, marked due", key, generation)

    def mark_due(self, key: str) -> None:
        """Make a resource due on the next pass."""
        with self._lock:
            self._pending.add(key)

    # Scheduling

    def due(self, now: Optional[datetime] = None) -> List[str]:
        """Keys of resources whose next pass is due, excluding those in flight."""
        now = now or datetime.utcnow()
        keys = [r.key for r in self.store.list()]
        with self._lock:
            result = []
            for key in keys:
                if key in self._in_flight:
                    continue
                state = self._requeue.get(key)
                if key in self._pending or state is None or state.next_attempt_at <= now:
                    result.append(key)
            return sorted(result)

    def requeue_state(self, key: str) -> Optional[RequeueState]:
        with self._lock:
            state = self._requeue.get(key)
            return state.model_copy() if state else None

    def _schedule_next(
        self, key: str, outcome: ReconcileOutcome, kind_config: KindConfig, now: datetime
    ) -> None:
        with self._lock:
            if outcome.kind == OutcomeKind.DELETED:
                self._requeue.pop(key, None)
                return

            state = self._requeue.get(key)
            if state is None:
                state = RequeueState(resource_key=key, next_attempt_at=now)
                self._requeue[key] = state

            if outcome.is_error:
                state.consecutive_failures += 1
                delay = backoff_delay(state.consecutive_failures, self.config, kind_config)
            else:
                state.consecutive_failures = 0
                delay = float(kind_config.poll_interval_seconds)

            state.next_attempt_at = now + timedelta(seconds=delay)
            state.last_outcome = outcome.kind
            state.last_reconciled_at = now

    # Invocation

    def reconcile(self, key: str, now: Optional[datetime] = None) -> Optional[ReconcileOutcome]:
        """
        Run one engine invocation for a resource.

        Returns None when the resource is not in the store or is already
        being reconciled (it is then re-run after the current pass).
        """
        with self._lock:
            if key in self._in_flight:
                self._rerun.add(key)
                logger.debug("%s: already in flight, deferring", key)
                return None
            self._in_flight.add(key)
            self._pending.discard(key)

        try:
            return self._reconcile(key, now or datetime.utcnow())
        finally:
            with self._lock:
                self._in_flight.discard(key)
                if key in self._rerun:
                    self._rerun.discard(key)
                    self._pending.add(key)

    def _reconcile(self, key: str, now: datetime) -> Optional[ReconcileOutcome]:
        resource = self.store.get(key)
        if resource is None:
            return None

        kind_config = self.config.for_kind(resource.kind)
        try:
            adapter = self.registry.resolve(resource.kind)
        except KindUnsupportedError as e:
            logger.warning("%s: %s", key, e)
            outcome = ReconcileOutcome(
                resource_key=key,
                kind=OutcomeKind.KIND_UNSUPPORTED,
                stage=ReconcileStage.RESOLVE,
                message=str(e),
            )
        else:
            ctx = InvocationContext.with_timeout(kind_config.invocation_timeout_seconds)
            engine = ConvergenceEngine(adapter, self.binding)
            outcome = engine.reconcile(resource, ctx)

        with self._lock:
            self._invocations += 1
        self._persist(resource, outcome)
        self._schedule_next(key, outcome, kind_config, now)
        self._record(resource.kind, outcome)
        return outcome

    def _persist(self, reconciled: DeclaredResource, outcome: ReconcileOutcome) -> None:
        """Write the outcome back to the store, or remove a deleted resource."""
        key = reconciled.key
        if outcome.kind == OutcomeKind.DELETED:
            self.store.remove(key)
            logger.info("%s: removed from store after remote deletion", key)
            return

        generation = reconciled.metadata.generation

        def _write_back(latest: DeclaredResource) -> DeclaredResource:
            applied = outcome
            if (
                applied.late_initialized_parameters is not None
                and latest.metadata.generation != generation
            ):
                # Parameters changed during the pass; keep the newer ones
                applied = applied.model_copy(update={"late_initialized_parameters": None})
            updated = apply_outcome(latest, applied, self.binding)
            if applied.kind == OutcomeKind.SYNCED:
                updated.status.observed_generation = generation
            return updated

        # Applied under the store lock so concurrent declarations keep the binding
        self.store.update(key, _write_back)

    def _record(self, kind: str, outcome: ReconcileOutcome) -> None:
        if self.event_store is None:
            return
        reason = (
            ConditionReason.RECONCILE_SUCCESS if outcome.succeeded else error_reason(outcome)
        )
        self.event_store.record(kind, outcome, reason)

    # Worker pools

    def _pool(self, kind: str) -> ThreadPoolExecutor:
        with self._lock:
            pool = self._pools.get(kind)
            if pool is None:
                workers = self.config.for_kind(kind).max_concurrent_reconciles
                pool = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix=f"reconcile-{kind}"
                )
                self._pools[kind] = pool
            return pool

    def _shutdown_pool(self, kind: str) -> None:
        pool = self._pools.pop(kind, None)
        if pool is not None:
            pool.shutdown(wait=False)

    def reconcile_due(self, now: Optional[datetime] = None) -> List[ReconcileOutcome]:
        """
        Run every due resource through its kind's worker pool.
        Returns the outcomes of the invocations that ran.
        """
        now = now or datetime.utcnow()
        futures = []
        for key in self.due(now):
            resource = self.store.get(key)
            if resource is None:
                continue
            futures.append(self._pool(resource.kind).submit(self.reconcile, key, now))

        outcomes = []
        for future in futures:
            outcome = future.result()
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def stats(self) -> dict:
        """Snapshot of scheduler state for the status endpoint."""
        with self._lock:
            failing = {
                key: state.consecutive_failures
                for key, state in self._requeue.items()
                if state.consecutive_failures
            }
            return {
                "status": self.status,
                "tracked_resources": len(self._requeue),
                "pending": sorted(self._pending),
                "in_flight": sorted(self._in_flight),
                "failing": failing,
                "invocations": self._invocations,
            }

    def shutdown(self) -> None:
        with self._lock:
            for kind in list(self._pools):
                self._shutdown_pool(kind)

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run the scheduler loop asynchronously."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                await asyncio.to_thread(self.reconcile_due)
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.config.heartbeat_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
