"""
Identity Binding — correlates a declared resource with its remote object.

The remote identifier is kept as an annotation on the declared resource so it
stays human-inspectable and independent of the resource's own store key.
What the identifier means is up to the adapter: a service-assigned ID, or a
natural key such as a hostname or a URL pattern.

No uniqueness is enforced here; two declared resources bound to the same
remote object is a caller error.
"""

from edgeplane.models.resource import DeclaredResource

EXTERNAL_NAME_ANNOTATION = "edgeplane.io/external-name"


class IdentityBinding:
    """Reads and writes the external-name annotation."""

    def __init__(self, annotation: str = EXTERNAL_NAME_ANNOTATION):
        self.annotation = annotation

    def get(self, resource: DeclaredResource) -> str:
        """The bound identifier, or an empty string when unbound."""
        return resource.metadata.annotations.get(self.annotation, "")

    def set(self, resource: DeclaredResource, identifier: str) -> None:
        """Bind. Idempotent; overwrites any prior value."""
        resource.metadata.annotations[self.annotation] = identifier

    def clear(self, resource: DeclaredResource) -> None:
        resource.metadata.annotations.pop(self.annotation, None)

    def is_bound(self, resource: DeclaredResource) -> bool:
        return self.get(resource) != ""


default_binding = IdentityBinding()
