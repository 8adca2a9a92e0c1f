"""
Resource store interface.

The store is the only synchronization point between concurrent request
handlers and the external address controller. Implementations must give:

    - create: fails with AlreadyExistsError on a duplicate (kind, namespace, name)
    - patch: last-write-wins, or ConflictError when a resource_version guard
      no longer matches
    - list: label-equality filtering, optionally across all namespaces
    - delete: unconditional, or ConflictError when a uid guard no longer
      matches the stored record
"""

from abc import ABC, abstractmethod

from fedhcp.models.enums import ResourceKind
from fedhcp.models.resources import Resource

# Error reasons carried in HTTP error details
REASON_NOT_FOUND = "NotFound"
REASON_ALREADY_EXISTS = "AlreadyExists"
REASON_CONFLICT = "Conflict"


# =============================================================================
# Exceptions
# =============================================================================


class StoreError(Exception):
    """Base exception for resource store operations."""

    pass


class NotFoundError(StoreError):
    """The addressed record does not exist."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class AlreadyExistsError(StoreError):
    """A record with the same kind, namespace and name exists."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} already exists")


class ConflictError(StoreError):
    """The record changed since the caller read it."""

    def __init__(
        self,
        kind: str,
        namespace: str,
        name: str,
        expected: int | str | None = None,
        actual: int | str | None = None,
    ):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.expected = expected
        self.actual = actual
        message = f"{kind} {namespace}/{name} changed since it was read"
        if expected is not None:
            message += f": expected {expected}, found {actual}"
        super().__init__(message)


# =============================================================================
# Interface
# =============================================================================


class ResourceStore(ABC):
    """Abstract CRUD access to Subnet, AddressReservation and Endpoint records."""

    @abstractmethod
    def get(self, kind: ResourceKind, namespace: str, name: str) -> Resource:
        """
        Fetch one record.

        Raises:
            NotFoundError: If the record does not exist.
        """

    @abstractmethod
    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        """
        List records of a kind.

        Args:
            kind: Record kind.
            namespace: Restrict to one namespace; None lists all namespaces.
            labels: Only records carrying every given label value.
        """

    @abstractmethod
    def create(self, resource: Resource) -> Resource:
        """
        Store a new record and return it with uid and version populated.

        When ``metadata.name`` is empty, ``metadata.generate_name`` is used as
        a prefix for a unique generated name.

        Raises:
            AlreadyExistsError: If the name is taken.
        """

    @abstractmethod
    def patch(
        self,
        kind: ResourceKind,
        namespace: str,
        name: str,
        fields: dict | None = None,
        labels: dict[str, str] | None = None,
        resource_version: int | None = None,
    ) -> Resource:
        """
        Update a record in place.

        Args:
            fields: Body fields to overwrite.
            labels: Labels to merge into the existing set.
            resource_version: If given, the patch only applies when the
                stored version still matches.

        Raises:
            NotFoundError: If the record does not exist.
            ConflictError: If the version guard fails.
        """

    @abstractmethod
    def delete(
        self, kind: ResourceKind, namespace: str, name: str, uid: str | None = None
    ) -> None:
        """
        Remove a record.

        Args:
            uid: Only delete the record if it still carries this uid.

        Raises:
            NotFoundError: If the record does not exist.
            ConflictError: If ``uid`` is given and the record was replaced.
        """

    # =========================================================================
    # Helpers
    # =========================================================================

    def get_or_none(self, kind: ResourceKind, namespace: str, name: str) -> Resource | None:
        try:
            return self.get(kind, namespace, name)
        except NotFoundError:
            return None

    def close(self) -> None:
        """Release any held connections."""


def resource_body(resource: Resource) -> dict:
    """Kind-specific fields of a record, JSON-compatible."""
    return resource.model_dump(mode="json", exclude={"kind", "metadata"})
