"""
Resource Store — holds declared resources keyed by "kind/name".

Updated by: API declarations + Scheduler status writes
Queried by: Scheduler + API
"""

import copy
import logging
import threading
from typing import Callable, Dict, List, Optional

from edgeplane.identity.binding import EXTERNAL_NAME_ANNOTATION
from edgeplane.models.resource import DeclaredResource

logger = logging.getLogger(__name__)

SAVED = "saved"
REMOVED = "removed"

# callback(key, change, resource); resource is None on removal
ChangeCallback = Callable[[str, str, Optional[DeclaredResource]], None]


class DeletionPendingError(Exception):
    """A declaration arrived for a resource whose deletion is in progress."""
    pass


class BindingConflictError(Exception):
    """A declaration tried to rebind a resource that is already bound."""
    pass


class ResourceStore:
    """
    In-memory, thread-safe resource store.
    Production would sit in front of the cluster API or a database.

    Reads and writes exchange copies, so callers never share mutable state
    with the store or with each other.
    """

    def __init__(self):
        self._resources: Dict[str, DeclaredResource] = {}
        self._subscribers: List[ChangeCallback] = []
        self._lock = threading.RLock()

    def subscribe(self, callback: ChangeCallback) -> None:
        """Register a change-notification callback."""
        with self._lock:
            self._subscribers.append(callback)

    def list(self) -> List[DeclaredResource]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._resources.values()]

    def list_by_kind(self, kind: str) -> List[DeclaredResource]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._resources.values()
                if r.kind == kind
            ]

    def get(self, key: str) -> Optional[DeclaredResource]:
        with self._lock:
            resource = self._resources.get(key)
            return resource.model_copy(deep=True) if resource else None

    def save(self, resource: DeclaredResource) -> DeclaredResource:
        """
        Insert or replace a whole resource.

        Replacing is last-writer-wins, so writers that may race the
        scheduler (API edits, status write-back) go through update() or
        the narrower helpers below instead.
        """
        with self._lock:
            result = self._commit(resource.model_copy(deep=True))
            subscribers = list(self._subscribers)

        self._notify(subscribers, result.key, SAVED, result)
        return result

    def update(
        self,
        key: str,
        mutate: Callable[[DeclaredResource], Optional[DeclaredResource]],
    ) -> Optional[DeclaredResource]:
        """
        Read-modify-write one resource under the store lock.

        `mutate` gets a copy of the stored resource and either changes it in
        place or returns a replacement. Exceptions it raises abort the write.
        Returns None when the key is not stored.
        """
        with self._lock:
            existing = self._resources.get(key)
            if existing is None:
                return None
            current = existing.model_copy(deep=True)
            replaced = mutate(current)
            result = self._commit(replaced if replaced is not None else current)
            subscribers = list(self._subscribers)

        self._notify(subscribers, key, SAVED, result)
        return result

    def declare(
        self,
        resource: DeclaredResource,
        external_name: Optional[str] = None,
    ) -> DeclaredResource:
        """
        Insert a new resource, or replace only the parameters of a stored one.

        The stored annotations, status and deletion intent are kept, so a
        declaration can never drop an identity binding written by the
        scheduler. `external_name` binds an unbound resource to an existing
        remote object; rebinding a bound resource raises BindingConflictError.
        """
        with self._lock:
            existing = self._resources.get(resource.key)
            if existing is None:
                stored = resource.model_copy(deep=True)
            else:
                if existing.metadata.deletion_requested:
                    raise DeletionPendingError(f"{resource.key} is being deleted")
                stored = existing.model_copy(deep=True)
                stored.parameters = copy.deepcopy(resource.parameters)

            if external_name:
                bound = stored.metadata.annotations.get(EXTERNAL_NAME_ANNOTATION)
                if bound and bound != external_name:
                    raise BindingConflictError(
                        f"{resource.key} is already bound to {bound!r}"
                    )
                stored.metadata.annotations[EXTERNAL_NAME_ANNOTATION] = external_name

            result = self._commit(stored)
            subscribers = list(self._subscribers)

        self._notify(subscribers, result.key, SAVED, result)
        return result

    def request_deletion(self, key: str) -> Optional[DeclaredResource]:
        """
        Set the deletion intent on a stored resource.

        Only the flag is written; a binding the scheduler stored in the
        meantime is kept.
        """

        def _mark(resource: DeclaredResource) -> None:
            resource.metadata.deletion_requested = True

        return self.update(key, _mark)

    def _commit(self, stored: DeclaredResource) -> DeclaredResource:
        """
        Store `stored` as the new state of its key. Caller holds the lock.

        A change to the parameters or to the deletion intent bumps the
        generation; status and annotation writes do not.
        """
        existing = self._resources.get(stored.key)
        if existing is not None:
            intent_changed = (
                existing.parameters != stored.parameters
                or existing.metadata.deletion_requested
                != stored.metadata.deletion_requested
            )
            generation = existing.metadata.generation
            stored.metadata.generation = generation + 1 if intent_changed else generation
            stored.metadata.created_at = existing.metadata.created_at
        self._resources[stored.key] = stored
        return stored.model_copy(deep=True)

    def remove(self, key: str) -> bool:
        """Drop a resource. Only called once its remote object is gone."""
        with self._lock:
            if key not in self._resources:
                return False
            del self._resources[key]
            subscribers = list(self._subscribers)

        self._notify(subscribers, key, REMOVED, None)
        return True

    def count(self) -> int:
        with self._lock:
            return len(self._resources)

    def _notify(
        self,
        subscribers: List[ChangeCallback],
        key: str,
        change: str,
        resource: Optional[DeclaredResource],
    ) -> None:
        for callback in subscribers:
            try:
                callback(key, change, resource)
            except Exception:
                logger.exception("change subscriber failed for %s", key)
