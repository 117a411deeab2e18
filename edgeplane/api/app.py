"""
edgeplane API — FastAPI endpoints.

Exposes the control plane via a REST API for:
- Declaring, inspecting and deleting resources
- On-demand reconciliation
- Scheduler control and configuration
- Reconcile event queries
"""

from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from edgeplane.adapters.fake import InMemoryEdgeService
from edgeplane.adapters.registry import AdapterRegistry, default_registry
from edgeplane.events.store import EventStore
from edgeplane.models.reconciler import ReconcilerConfig
from edgeplane.models.resource import DeclaredResource, ResourceMetadata, resource_key
from edgeplane.reconciler.scheduler import Scheduler
from edgeplane.reconciler.status import mark_creating
from edgeplane.store.resources import (
    BindingConflictError,
    DeletionPendingError,
    ResourceStore,
)


# --- Request/Response Models ---

class ResourceDeclareRequest(BaseModel):
    kind: str
    name: str
    parameters: dict = {}
    external_name: Optional[str] = None     # Adopt an existing remote object


class ReconcilerTriggerResponse(BaseModel):
    results: list
    cycle_count: int


# --- Application Factory ---

def create_app(
    store: Optional[ResourceStore] = None,
    registry: Optional[AdapterRegistry] = None,
    event_store: Optional[EventStore] = None,
    config: Optional[ReconcilerConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="edgeplane API",
        description="Declarative control plane for edge-network resources",
        version="0.1.0",
    )

    # Initialize components
    rs = store or ResourceStore()
    reg = registry or default_registry(InMemoryEdgeService())
    es = event_store or EventStore()
    scheduler = Scheduler(
        store=rs,
        registry=reg,
        event_store=es,
        config=config or ReconcilerConfig(),
    )

    # Store components on app state for access in endpoints
    app.state.resource_store = rs
    app.state.registry = reg
    app.state.event_store = es
    app.state.scheduler = scheduler

    def _get_or_404(kind: str, name: str) -> DeclaredResource:
        resource = rs.get(resource_key(kind, name))
        if resource is None:
            raise HTTPException(404, "Resource not found")
        return resource

    # === RESOURCES ===

    @app.post("/resources")
    def declare_resource(req: ResourceDeclareRequest):
        """Declare a resource, or replace the parameters of an existing one."""
        resource = mark_creating(DeclaredResource(
            kind=req.kind,
            metadata=ResourceMetadata(name=req.name),
            parameters=req.parameters,
        ))
        try:
            saved = rs.declare(resource, external_name=req.external_name)
        except DeletionPendingError:
            raise HTTPException(409, "Resource is being deleted")
        except BindingConflictError as e:
            raise HTTPException(409, str(e))
        return {"key": saved.key, "resource": saved.model_dump(mode="json")}

    @app.get("/resources")
    def list_resources(kind: Optional[str] = None):
        """List declared resources, optionally of one kind."""
        resources = rs.list_by_kind(kind) if kind else rs.list()
        return [r.model_dump(mode="json") for r in resources]

    @app.get("/resources/{kind}/{name}")
    def get_resource(kind: str, name: str):
        """Get a declared resource with its status."""
        return _get_or_404(kind, name).model_dump(mode="json")

    @app.delete("/resources/{kind}/{name}")
    def delete_resource(kind: str, name: str):
        """Request deletion; the resource is removed once its remote object is gone."""
        _get_or_404(kind, name)
        resource = rs.request_deletion(resource_key(kind, name))
        return {
            "status": "deletion_requested",
            "key": resource_key(kind, name),
            "resource": resource.model_dump(mode="json") if resource else None,
        }

    @app.post("/resources/{kind}/{name}/reconcile")
    def reconcile_resource(kind: str, name: str):
        """Run one reconciliation pass for a resource now."""
        _get_or_404(kind, name)
        outcome = scheduler.reconcile(resource_key(kind, name))
        if outcome is None:
            raise HTTPException(409, "Resource is already being reconciled")
        current = rs.get(resource_key(kind, name))
        return {
            "outcome": outcome.model_dump(mode="json"),
            "resource": current.model_dump(mode="json") if current else None,
        }

    # === KINDS ===

    @app.get("/kinds")
    def list_kinds():
        """Kinds with a working adapter and kinds that are only placeholders."""
        return {
            "supported": reg.supported_kinds(),
            "unsupported": reg.unsupported_kinds(),
        }

    # === RECONCILER ===

    @app.get("/reconciler/status")
    def reconciler_status():
        """Current scheduler status."""
        stats = scheduler.stats()
        stats["config"] = scheduler.config.model_dump()
        stats["declared_resources"] = rs.count()
        return stats

    @app.post("/reconciler/trigger")
    def trigger_reconciliation():
        """Run every due resource now."""
        outcomes = scheduler.reconcile_due()
        return ReconcilerTriggerResponse(
            results=[o.model_dump(mode="json") for o in outcomes],
            cycle_count=len(outcomes),
        )

    @app.get("/reconciler/config")
    def get_reconciler_config():
        """Current scheduler configuration."""
        return scheduler.config.model_dump()

    @app.put("/reconciler/config")
    def update_reconciler_config(new_config: ReconcilerConfig):
        """Replace the scheduler configuration."""
        scheduler.update_config(new_config)
        return new_config.model_dump()

    # === EVENTS ===

    @app.get("/events")
    def get_events(limit: int = 50):
        """Recent reconcile events."""
        return [e.model_dump(mode="json") for e in es.query_recent(limit=limit)]

    @app.get("/events/failures")
    def get_failures():
        """All failed reconcile invocations."""
        return [e.model_dump(mode="json") for e in es.query_failures()]

    @app.get("/events/{kind}/{name}")
    def get_resource_events(kind: str, name: str):
        """All reconcile events for one resource."""
        events = es.query_by_resource(resource_key(kind, name))
        return [e.model_dump(mode="json") for e in events]

    return app


# Default application instance
app = create_app()
