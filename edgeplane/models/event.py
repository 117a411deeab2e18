"""Reconcile Event — one audit entry per engine invocation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from edgeplane.models.outcome import OutcomeKind, ReconcileAction, ReconcileStage
from edgeplane.models.resource import ConditionReason


class ReconcileEvent(BaseModel):
    """An append-only record of what an invocation did to one resource."""

    id: str
    resource_key: str
    kind: str                               # Resource kind, e.g. "dns.Record"
    outcome: OutcomeKind
    action: ReconcileAction
    stage: ReconcileStage
    identifier: Optional[str] = None
    reason: Optional[ConditionReason] = None  # Reason written to the Synced condition
    message: str = ""
    recorded_at: datetime

    @property
    def is_failure(self) -> bool:
        return self.outcome in (
            OutcomeKind.TRANSIENT_ERROR,
            OutcomeKind.PERMANENT_ERROR,
            OutcomeKind.KIND_UNSUPPORTED,
        )
