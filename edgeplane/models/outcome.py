"""Observation and Reconcile Outcome — what one engine invocation saw and did."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Observation(BaseModel):
    """A decoded remote object, as returned by an adapter."""

    identifier: str                         # Value to bind on the declared resource
    fields: dict = {}                       # Kind-specific observed fields


class ObservedState(str, Enum):
    NOT_EXISTING = "not_existing"
    EXISTING_STALE = "existing_stale"
    EXISTING_CURRENT = "existing_current"


class ReconcileAction(str, Enum):
    NONE = "none"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ReconcileStage(str, Enum):
    """Where in the invocation the outcome was decided."""
    RESOLVE = "resolve"
    OBSERVE = "observe"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OutcomeKind(str, Enum):
    SYNCED = "synced"                       # Exists and matches the declared parameters
    DELETED = "deleted"                     # Remote deletion confirmed (or never existed)
    TRANSIENT_ERROR = "transient_error"     # Retry on the next scheduled pass
    PERMANENT_ERROR = "permanent_error"     # Needs operator intervention
    KIND_UNSUPPORTED = "kind_unsupported"   # No implemented adapter for the kind


class ReconcileOutcome(BaseModel):
    """Result of a single observe-decide-act invocation."""

    resource_key: str
    kind: OutcomeKind
    action: ReconcileAction = ReconcileAction.NONE
    stage: ReconcileStage = ReconcileStage.OBSERVE
    observed_state: Optional[ObservedState] = None
    identifier: Optional[str] = None        # New binding, when it changed
    binding_cleared: bool = False
    observation: Optional[Observation] = None
    late_initialized_parameters: Optional[dict] = None
    message: str = ""
    completed_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def succeeded(self) -> bool:
        return self.kind in (OutcomeKind.SYNCED, OutcomeKind.DELETED)

    @property
    def is_error(self) -> bool:
        return self.kind in (OutcomeKind.TRANSIENT_ERROR, OutcomeKind.PERMANENT_ERROR)
