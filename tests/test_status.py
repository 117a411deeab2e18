"""Tests for status projection."""

from datetime import datetime, timedelta

from edgeplane.identity.binding import EXTERNAL_NAME_ANNOTATION
from edgeplane.models.outcome import (
    Observation,
    OutcomeKind,
    ReconcileAction,
    ReconcileOutcome,
    ReconcileStage,
)
from edgeplane.models.resource import (
    ConditionReason,
    ConditionStatus,
    ConditionType,
    DeclaredResource,
    ResourceMetadata,
)
from edgeplane.reconciler.status import apply_outcome, is_ready, is_synced, mark_creating


def _make_resource() -> DeclaredResource:
    return DeclaredResource(
        kind="workers.Route",
        metadata=ResourceMetadata(name="api", generation=3),
        parameters={"zone": "z1", "pattern": "example.com/api/*"},
    )


def _outcome(kind: OutcomeKind, **kwargs) -> ReconcileOutcome:
    return ReconcileOutcome(resource_key="workers.Route/api", kind=kind, **kwargs)


class TestApplyOutcome:
    def test_input_is_not_modified(self):
        resource = _make_resource()
        updated = apply_outcome(resource, _outcome(OutcomeKind.SYNCED, identifier="example.com/api/*"))
        assert resource.metadata.annotations == {}
        assert resource.status.conditions == []
        assert updated is not resource

    def test_synced_outcome(self):
        observation = Observation(identifier="example.com/api/*", fields={"id": "r1"})
        updated = apply_outcome(
            _make_resource(),
            _outcome(
                OutcomeKind.SYNCED,
                action=ReconcileAction.CREATE,
                stage=ReconcileStage.CREATE,
                identifier="example.com/api/*",
                observation=observation,
            ),
        )
        assert updated.metadata.annotations[EXTERNAL_NAME_ANNOTATION] == "example.com/api/*"
        assert updated.status.at_provider == {"id": "r1"}
        assert updated.status.observed_generation == 3
        assert is_ready(updated)
        assert is_synced(updated)
        assert updated.status.get_condition(ConditionType.READY).reason == ConditionReason.AVAILABLE
        assert updated.status.last_reconciled_at is not None

    def test_deleted_outcome_clears_binding(self):
        resource = _make_resource()
        resource.metadata.annotations[EXTERNAL_NAME_ANNOTATION] = "example.com/api/*"
        resource.status.at_provider = {"id": "r1"}
        updated = apply_outcome(resource, _outcome(OutcomeKind.DELETED, binding_cleared=True))
        assert EXTERNAL_NAME_ANNOTATION not in updated.metadata.annotations
        assert updated.status.at_provider == {}
        assert updated.status.get_condition(ConditionType.READY).reason == ConditionReason.DELETING

    def test_update_error_leaves_ready_untouched(self):
        resource = apply_outcome(_make_resource(), _outcome(OutcomeKind.SYNCED))
        updated = apply_outcome(
            resource,
            _outcome(
                OutcomeKind.PERMANENT_ERROR,
                stage=ReconcileStage.UPDATE,
                action=ReconcileAction.UPDATE,
                message="cannot update remote object: invalid",
            ),
        )
        assert is_ready(updated)
        synced = updated.status.get_condition(ConditionType.SYNCED)
        assert synced.status == ConditionStatus.FALSE
        assert synced.reason == ConditionReason.RECONCILE_ERROR
        assert synced.message == "cannot update remote object: invalid"

    def test_kind_unsupported(self):
        updated = apply_outcome(
            _make_resource(),
            _outcome(OutcomeKind.KIND_UNSUPPORTED, stage=ReconcileStage.RESOLVE),
        )
        for condition_type in (ConditionType.READY, ConditionType.SYNCED):
            condition = updated.status.get_condition(condition_type)
            assert condition.status == ConditionStatus.FALSE
            assert condition.reason == ConditionReason.KIND_UNSUPPORTED

    def test_error_does_not_advance_observed_generation(self):
        updated = apply_outcome(_make_resource(), _outcome(OutcomeKind.TRANSIENT_ERROR))
        assert updated.status.observed_generation == 0


class TestTransitionTime:
    def test_kept_while_status_unchanged(self):
        t0 = datetime(2026, 1, 1, 12, 0, 0)
        t1 = t0 + timedelta(minutes=10)
        resource = apply_outcome(_make_resource(), _outcome(OutcomeKind.SYNCED), now=t0)
        resource = apply_outcome(resource, _outcome(OutcomeKind.SYNCED), now=t1)
        ready = resource.status.get_condition(ConditionType.READY)
        assert ready.last_transition_time == t0
        assert resource.status.last_reconciled_at == t1

    def test_updated_when_status_flips(self):
        t0 = datetime(2026, 1, 1, 12, 0, 0)
        t1 = t0 + timedelta(minutes=10)
        resource = apply_outcome(_make_resource(), _outcome(OutcomeKind.SYNCED), now=t0)
        resource = apply_outcome(resource, _outcome(OutcomeKind.TRANSIENT_ERROR), now=t1)
        assert resource.status.get_condition(ConditionType.READY).last_transition_time == t1


class TestMarkCreating:
    def test_new_resource_is_not_ready(self):
        resource = mark_creating(_make_resource())
        ready = resource.status.get_condition(ConditionType.READY)
        assert ready.status == ConditionStatus.FALSE
        assert ready.reason == ConditionReason.CREATING
