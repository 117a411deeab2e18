"""Declared Resource — a stored specification of desired state for one remote object."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ConditionType(str, Enum):
    READY = "Ready"     # Remote object exists and is usable
    SYNCED = "Synced"   # Remote object matches the declared parameters


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionReason(str, Enum):
    AVAILABLE = "Available"
    CREATING = "Creating"
    DELETING = "Deleting"
    RECONCILE_SUCCESS = "ReconcileSuccess"
    RECONCILE_ERROR = "ReconcileError"
    RECONCILE_TRANSIENT_ERROR = "ReconcileTransientError"
    KIND_UNSUPPORTED = "KindUnsupported"


class Condition(BaseModel):
    """A timestamped status entry communicating reconciliation outcome."""

    type: ConditionType
    status: ConditionStatus
    reason: ConditionReason
    message: str = ""
    last_transition_time: datetime

    def equivalent(self, other: "Condition") -> bool:
        """Same observable state, ignoring the timestamp."""
        return (
            self.type == other.type
            and self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
        )


class ResourceMetadata(BaseModel):
    """Identity and bookkeeping of a declared resource."""

    name: str
    annotations: Dict[str, str] = {}        # Identity binding lives here
    generation: int = 1                     # Bumped on every parameter or deletion change
    deletion_requested: bool = False        # Deletion intent
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ResourceStatus(BaseModel):
    """What the convergence engine last observed and concluded."""

    at_provider: dict = {}                  # Observed kind-specific fields
    conditions: List[Condition] = []
    observed_generation: int = 0
    last_reconciled_at: Optional[datetime] = None

    def get_condition(self, condition_type: ConditionType) -> Optional[Condition]:
        return next((c for c in self.conditions if c.type == condition_type), None)

    def set_condition(self, condition: Condition) -> None:
        """
        Add or overwrite the condition of the same type.

        The previous transition time is kept when the status did not flip,
        so last_transition_time records when the status last changed.
        """
        existing = self.get_condition(condition.type)
        if existing is None:
            self.conditions.append(condition)
            return
        if existing.equivalent(condition):
            return
        if existing.status == condition.status:
            condition = condition.model_copy(
                update={"last_transition_time": existing.last_transition_time}
            )
        self.conditions = [
            condition if c.type == condition.type else c for c in self.conditions
        ]


class DeclaredResource(BaseModel):
    """A user-authored specification of desired state for one remote object."""

    kind: str                               # e.g., "dns.Record", "workers.Route"
    metadata: ResourceMetadata
    parameters: dict = {}                   # Kind-specific desired fields
    status: ResourceStatus = Field(default_factory=ResourceStatus)

    @property
    def key(self) -> str:
        return resource_key(self.kind, self.metadata.name)

    @property
    def deletion_requested(self) -> bool:
        return self.metadata.deletion_requested


def resource_key(kind: str, name: str) -> str:
    """Store key of a declared resource."""
    return f"{kind}/{name}"
