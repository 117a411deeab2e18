"""
Convergence Engine — drives one remote object toward its declared state.

States (per invocation, never persisted):
  OBSERVING → {NOT_EXISTING, EXISTING_STALE, EXISTING_CURRENT} → ACTING → DONE

Each invocation is a single attempt: at most one create, one update or one
delete call reaches the remote service. Retrying is the scheduler's job.
The engine never mutates the declared resource; it returns a
ReconcileOutcome which apply_outcome() projects into an updated copy.

Decision table:
  deletion intent, unbound              → done (nothing to delete)
  deletion intent, object exists        → delete
  deletion intent, object absent        → done, binding cleared
  object absent                         → create
  object exists, up to date             → done (Ready, Synced)
  object exists, stale                  → update

Deletion intent always wins over parameter drift.
"""

import logging
from typing import Optional

from edgeplane.adapters.base import InvocationContext, RemoteResourceAdapter
from edgeplane.errors import (
    KindUnsupportedError,
    NotFoundError,
    PermanentError,
    TransientError,
    classify_exception,
)
from edgeplane.identity.binding import IdentityBinding, default_binding
from edgeplane.models.outcome import (
    Observation,
    ObservedState,
    OutcomeKind,
    ReconcileAction,
    ReconcileOutcome,
    ReconcileStage,
)
from edgeplane.models.resource import DeclaredResource

logger = logging.getLogger(__name__)


class ConvergenceEngine:
    """Runs the observe → decide → act cycle for one declared resource."""

    def __init__(
        self,
        adapter: RemoteResourceAdapter,
        binding: Optional[IdentityBinding] = None,
    ):
        self.adapter = adapter
        self.binding = binding or default_binding

    def reconcile(
        self,
        resource: DeclaredResource,
        ctx: Optional[InvocationContext] = None,
    ) -> ReconcileOutcome:
        """Run one invocation and describe what happened."""
        ctx = ctx or InvocationContext()
        key = resource.key
        params = resource.parameters

        # 1. Resolve identity
        identifier = self.binding.get(resource)
        if resource.deletion_requested and not identifier:
            logger.info("%s: deletion requested and never created, nothing to delete", key)
            return ReconcileOutcome(
                resource_key=key,
                kind=OutcomeKind.DELETED,
                stage=ReconcileStage.RESOLVE,
                observed_state=ObservedState.NOT_EXISTING,
                message="remote object was never created",
            )

        # 2. Observe
        observation: Optional[Observation] = None
        if identifier:
            try:
                ctx.check()
                observation = self.adapter.fetch(identifier, params, ctx)
            except NotFoundError:
                logger.info("%s: remote object %s not found, treating as absent", key, identifier)
            except Exception as e:
                return self._failed(key, ReconcileStage.OBSERVE, ReconcileAction.NONE, e)

        # 3. Decide
        if observation is None:
            if resource.deletion_requested:
                logger.info("%s: remote object already gone, clearing binding", key)
                return ReconcileOutcome(
                    resource_key=key,
                    kind=OutcomeKind.DELETED,
                    stage=ReconcileStage.OBSERVE,
                    observed_state=ObservedState.NOT_EXISTING,
                    binding_cleared=True,
                    message="remote object already absent",
                )
            return self._create(key, params, ctx)

        if resource.deletion_requested:
            return self._delete(key, identifier, params, observation, ctx)

        try:
            late_params = self._late_initialize(key, params, observation)
            if late_params is not None:
                params = late_params
            up_to_date = self.adapter.is_up_to_date(params, observation)
        except Exception as e:
            return self._failed(
                key, ReconcileStage.OBSERVE, ReconcileAction.NONE, e,
                observed_state=ObservedState.EXISTING_STALE,
                observation=observation,
            )

        if up_to_date:
            logger.debug("%s: remote object %s is up to date", key, identifier)
            return ReconcileOutcome(
                resource_key=key,
                kind=OutcomeKind.SYNCED,
                stage=ReconcileStage.OBSERVE,
                observed_state=ObservedState.EXISTING_CURRENT,
                observation=observation,
                late_initialized_parameters=late_params,
            )

        return self._update(key, identifier, params, late_params, ctx)

    # 4. Act

    def _create(
        self, key: str, params: dict, ctx: InvocationContext
    ) -> ReconcileOutcome:
        try:
            ctx.check()
            observation = self.adapter.create(params, ctx)
        except Exception as e:
            return self._failed(
                key, ReconcileStage.CREATE, ReconcileAction.CREATE, e,
                observed_state=ObservedState.NOT_EXISTING,
            )

        if not observation.identifier:
            # Without an identifier the object can never be bound or found again
            return self._failed(
                key, ReconcileStage.CREATE, ReconcileAction.CREATE,
                PermanentError("adapter returned no identifier for the created object"),
                observed_state=ObservedState.NOT_EXISTING,
            )

        logger.info("%s: created remote object %s", key, observation.identifier)
        return ReconcileOutcome(
            resource_key=key,
            kind=OutcomeKind.SYNCED,
            action=ReconcileAction.CREATE,
            stage=ReconcileStage.CREATE,
            observed_state=ObservedState.NOT_EXISTING,
            identifier=observation.identifier,
            observation=observation,
        )

    def _update(
        self,
        key: str,
        identifier: str,
        params: dict,
        late_params: Optional[dict],
        ctx: InvocationContext,
    ) -> ReconcileOutcome:
        try:
            ctx.check()
            observation = self.adapter.update(identifier, params, ctx)
        except NotFoundError as e:
            # Vanished between fetch and update; the next fetch self-heals
            return self._failed(
                key, ReconcileStage.UPDATE, ReconcileAction.UPDATE,
                TransientError(str(e) or "remote object disappeared during update"),
                observed_state=ObservedState.EXISTING_STALE,
                late_params=late_params,
            )
        except Exception as e:
            return self._failed(
                key, ReconcileStage.UPDATE, ReconcileAction.UPDATE, e,
                observed_state=ObservedState.EXISTING_STALE,
                late_params=late_params,
            )

        logger.info("%s: updated remote object %s", key, identifier)
        rebind = observation.identifier if observation.identifier != identifier else None
        if rebind:
            logger.info("%s: identity moved from %s to %s", key, identifier, rebind)
        return ReconcileOutcome(
            resource_key=key,
            kind=OutcomeKind.SYNCED,
            action=ReconcileAction.UPDATE,
            stage=ReconcileStage.UPDATE,
            observed_state=ObservedState.EXISTING_STALE,
            identifier=rebind or None,
            observation=observation,
            late_initialized_parameters=late_params,
        )

    def _delete(
        self,
        key: str,
        identifier: str,
        params: dict,
        observation: Observation,
        ctx: InvocationContext,
    ) -> ReconcileOutcome:
        try:
            ctx.check()
            self.adapter.delete(identifier, params, ctx)
        except NotFoundError:
            logger.info("%s: remote object %s already deleted", key, identifier)
        except Exception as e:
            return self._failed(
                key, ReconcileStage.DELETE, ReconcileAction.DELETE, e,
                observed_state=ObservedState.EXISTING_CURRENT,
                observation=observation,
            )
        else:
            logger.info("%s: deleted remote object %s", key, identifier)

        return ReconcileOutcome(
            resource_key=key,
            kind=OutcomeKind.DELETED,
            action=ReconcileAction.DELETE,
            stage=ReconcileStage.DELETE,
            observed_state=ObservedState.EXISTING_CURRENT,
            binding_cleared=True,
        )

    def _late_initialize(
        self, key: str, params: dict, observation: Observation
    ) -> Optional[dict]:
        hook = getattr(self.adapter, "late_initialize", None)
        if hook is None:
            return None
        updated = hook(dict(params), observation)
        if updated is not None and updated != params:
            logger.info("%s: late-initialized parameters from remote object", key)
            return updated
        return None

    def _failed(
        self,
        key: str,
        stage: ReconcileStage,
        action: ReconcileAction,
        error: BaseException,
        observed_state: Optional[ObservedState] = None,
        observation: Optional[Observation] = None,
        late_params: Optional[dict] = None,
    ) -> ReconcileOutcome:
        """Turn an adapter failure into an outcome. Never raises."""
        classified = classify_exception(error)
        if isinstance(classified, KindUnsupportedError):
            kind = OutcomeKind.KIND_UNSUPPORTED
            logger.warning("%s: %s", key, classified)
        elif isinstance(classified, TransientError):
            kind = OutcomeKind.TRANSIENT_ERROR
            logger.warning("%s: transient failure during %s: %s", key, stage.value, classified)
        else:
            kind = OutcomeKind.PERMANENT_ERROR
            logger.error("%s: permanent failure during %s: %s", key, stage.value, classified)

        return ReconcileOutcome(
            resource_key=key,
            kind=kind,
            action=action,
            stage=stage,
            observed_state=observed_state,
            observation=observation,
            late_initialized_parameters=late_params,
            message=f"cannot {stage.value} remote object: {classified}",
        )
