"""
Remote Resource Adapter contract.

One adapter per resource kind translates declared parameters into remote API
calls and remote responses back into an Observation. The convergence engine
is written once against this protocol and never against a concrete kind.

Behavioral Contract:
- create() is only called when no identity binding exists
- fetch() raises NotFoundError when the remote object is absent
- update() is a full replace of mutable fields, never a partial patch
- delete() succeeds when the object is already gone
- is_up_to_date() is pure and returns False for any field it cannot compare
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional, Protocol

from edgeplane.errors import TransientError, classify_exception
from edgeplane.models.outcome import Observation


class InvocationContext:
    """
    Deadline and cancellation signal carried by one engine invocation.

    Adapters call check() before each network call; an expired deadline or a
    cancellation surfaces as TransientError so the next pass retries.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.deadline = deadline            # time.monotonic() value
        self._cancel_event = cancel_event or threading.Event()

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "InvocationContext":
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, for transport timeouts."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        if self.cancelled:
            raise TransientError("invocation cancelled")
        if self.expired:
            raise TransientError("invocation deadline exceeded")


class RemoteResourceAdapter(Protocol):
    """What every per-kind adapter implements."""

    def create(self, params: dict, ctx: InvocationContext) -> Observation: ...

    def fetch(
        self, identifier: str, params: dict, ctx: InvocationContext
    ) -> Observation: ...

    def update(
        self, identifier: str, params: dict, ctx: InvocationContext
    ) -> Observation: ...

    def delete(self, identifier: str, params: dict, ctx: InvocationContext) -> None: ...

    def is_up_to_date(self, params: dict, observation: Observation) -> bool: ...


def call_remote(ctx: InvocationContext, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Run one transport call on behalf of an adapter.

    Honors the invocation's cancellation signal and converts whatever the
    transport raises into the reconciliation error taxonomy.
    """
    ctx.check()
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        classified = classify_exception(e)
        if classified is e:
            raise
        raise classified from e
