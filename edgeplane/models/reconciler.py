"""Reconciler configuration and requeue state."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from edgeplane.models.outcome import OutcomeKind


class KindConfig(BaseModel):
    """Scheduling knobs for one resource kind."""

    poll_interval_seconds: int = Field(gt=0, default=600)
    max_concurrent_reconciles: int = Field(ge=1, default=5)
    invocation_timeout_seconds: float = Field(gt=0, default=60.0)


class ReconcilerConfig(BaseModel):
    """Configuration for the Scheduler."""

    heartbeat_interval_seconds: float = 5.0
    error_backoff_base_seconds: float = 1.0
    error_backoff_max_seconds: float = 300.0
    default_kind: KindConfig = KindConfig()
    kinds: Dict[str, KindConfig] = {}

    def for_kind(self, kind: str) -> KindConfig:
        return self.kinds.get(kind, self.default_kind)


class RequeueState(BaseModel):
    """When a declared resource is next due, and how often it has failed in a row."""

    resource_key: str
    next_attempt_at: datetime
    consecutive_failures: int = 0
    last_outcome: Optional[OutcomeKind] = None
    last_reconciled_at: Optional[datetime] = None
