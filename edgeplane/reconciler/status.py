"""
Status projection — turns a ReconcileOutcome into an updated DeclaredResource.

apply_outcome() is pure: it deep-copies the resource, writes the binding,
observed fields and Ready/Synced conditions onto the copy and returns it.
The resource store persists the result.
"""

from datetime import datetime
from typing import Optional, Tuple

from edgeplane.identity.binding import IdentityBinding, default_binding
from edgeplane.models.outcome import OutcomeKind, ReconcileOutcome, ReconcileStage
from edgeplane.models.resource import (
    Condition,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    DeclaredResource,
)


def _condition(
    condition_type: ConditionType,
    ok: bool,
    reason: ConditionReason,
    message: str,
    now: datetime,
) -> Condition:
    return Condition(
        type=condition_type,
        status=ConditionStatus.TRUE if ok else ConditionStatus.FALSE,
        reason=reason,
        message=message,
        last_transition_time=now,
    )


def error_reason(outcome: ReconcileOutcome) -> ConditionReason:
    if outcome.kind == OutcomeKind.KIND_UNSUPPORTED:
        return ConditionReason.KIND_UNSUPPORTED
    if outcome.kind == OutcomeKind.TRANSIENT_ERROR:
        return ConditionReason.RECONCILE_TRANSIENT_ERROR
    return ConditionReason.RECONCILE_ERROR


def _conditions_for(
    outcome: ReconcileOutcome,
) -> Tuple[Optional[Tuple[bool, ConditionReason]], Tuple[bool, ConditionReason]]:
    """(Ready, Synced) settings for an outcome; Ready is None when left untouched."""
    if outcome.kind == OutcomeKind.SYNCED:
        return (True, ConditionReason.AVAILABLE), (True, ConditionReason.RECONCILE_SUCCESS)

    if outcome.kind == OutcomeKind.DELETED:
        return (False, ConditionReason.DELETING), (True, ConditionReason.RECONCILE_SUCCESS)

    reason = error_reason(outcome)
    if outcome.stage == ReconcileStage.UPDATE:
        # The object still exists; only the sync failed
        return None, (False, reason)
    if outcome.stage == ReconcileStage.DELETE:
        return (False, ConditionReason.DELETING), (False, reason)
    return (False, reason), (False, reason)


def apply_outcome(
    resource: DeclaredResource,
    outcome: ReconcileOutcome,
    binding: Optional[IdentityBinding] = None,
    now: Optional[datetime] = None,
) -> DeclaredResource:
    """Project an outcome onto a copy of the resource. The input is never modified."""
    binding = binding or default_binding
    now = now or outcome.completed_at
    updated = resource.model_copy(deep=True)

    # Binding
    if outcome.binding_cleared:
        binding.clear(updated)
    elif outcome.identifier:
        binding.set(updated, outcome.identifier)

    # Late-initialized parameters
    if outcome.late_initialized_parameters is not None:
        updated.parameters = dict(outcome.late_initialized_parameters)

    # Observed fields
    if outcome.observation is not None:
        updated.status.at_provider = dict(outcome.observation.fields)
    elif outcome.kind == OutcomeKind.DELETED:
        updated.status.at_provider = {}

    ready, synced = _conditions_for(outcome)
    message = outcome.message
    if ready is not None:
        updated.status.set_condition(
            _condition(ConditionType.READY, ready[0], ready[1], message, now)
        )
    updated.status.set_condition(
        _condition(ConditionType.SYNCED, synced[0], synced[1], message, now)
    )

    if outcome.kind == OutcomeKind.SYNCED:
        updated.status.observed_generation = updated.metadata.generation
    updated.status.last_reconciled_at = now
    return updated


def mark_creating(resource: DeclaredResource, now: Optional[datetime] = None) -> DeclaredResource:
    """Copy of a newly declared, still unbound resource with Ready=False/Creating."""
    updated = resource.model_copy(deep=True)
    updated.status.set_condition(
        _condition(
            ConditionType.READY, False, ConditionReason.CREATING,
            "waiting for first reconciliation", now or datetime.utcnow(),
        )
    )
    return updated


def is_ready(resource: DeclaredResource) -> bool:
    condition = resource.status.get_condition(ConditionType.READY)
    return condition is not None and condition.status == ConditionStatus.TRUE


def is_synced(resource: DeclaredResource) -> bool:
    condition = resource.status.get_condition(ConditionType.SYNCED)
    return condition is not None and condition.status == ConditionStatus.TRUE
