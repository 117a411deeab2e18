"""edgeplane data models."""

from edgeplane.models.event import ReconcileEvent
from edgeplane.models.outcome import (
    Observation,
    ObservedState,
    OutcomeKind,
    ReconcileAction,
    ReconcileOutcome,
    ReconcileStage,
)
from edgeplane.models.reconciler import KindConfig, ReconcilerConfig, RequeueState
from edgeplane.models.resource import (
    Condition,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    DeclaredResource,
    ResourceMetadata,
    ResourceStatus,
    resource_key,
)

__all__ = [
    "Condition",
    "ConditionReason",
    "ConditionStatus",
    "ConditionType",
    "DeclaredResource",
    "KindConfig",
    "Observation",
    "ObservedState",
    "OutcomeKind",
    "ReconcileAction",
    "ReconcileEvent",
    "ReconcileOutcome",
    "ReconcileStage",
    "ReconcilerConfig",
    "RequeueState",
    "ResourceMetadata",
    "ResourceStatus",
    "resource_key",
]
