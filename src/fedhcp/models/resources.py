"""
Pydantic models for resource store records.

These are the three record kinds the reconciliation core reads and writes:

    - Subnet: a namespaced address range used for candidate selection
    - AddressReservation: intent and result of allocating one address
    - Endpoint: published binding of a name to a MAC and an address

Every record carries an :class:`ObjectMeta` block. The store fills in
``uid`` and ``resource_version`` on create and bumps the version on every
patch; ``generate_name`` asks the store to pick a unique name.
"""

import datetime
import ipaddress

from pydantic import BaseModel, Field

from fedhcp.models.enums import AddressFamily, ReservationState, ResourceKind

# Label keys written by the responder
LABEL_MAC = "mac"
LABEL_ORIGIN = "origin"
ORIGIN = "fedhcp"


# =============================================================================
# Metadata
# =============================================================================


class ObjectMeta(BaseModel):
    """Identity and bookkeeping fields shared by all records."""

    name: str = Field(default="", description="Record name, unique per kind+namespace")
    generate_name: str | None = Field(
        default=None,
        description="Name prefix; the store appends a random suffix when name is empty",
    )
    namespace: str = Field(default="", description="Namespace ('' for cluster scope)")
    labels: dict[str, str] = Field(default_factory=dict)
    uid: str | None = Field(default=None, description="Store-assigned identity")
    resource_version: int = Field(default=0, description="Bumped on every write")
    created_at: datetime.datetime | None = None


class Resource(BaseModel):
    """Base class for store records."""

    kind: ResourceKind
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def key(self) -> str:
        return f"{self.metadata.namespace}/{self.metadata.name}"


# =============================================================================
# Subnet
# =============================================================================


class Subnet(Resource):
    """A named address range. Read-only from the responder's point of view."""

    kind: ResourceKind = ResourceKind.SUBNET
    family: AddressFamily = AddressFamily.IPV6
    reserved: str | None = Field(
        default=None,
        description="CIDR block reserved for this subnet, used for containment checks",
    )

    def network(self) -> ipaddress.IPv4Network | ipaddress.IPv6Network | None:
        """Parse the reserved CIDR, or None if unset or malformed."""
        if not self.reserved:
            return None
        try:
            return ipaddress.ip_network(self.reserved, strict=False)
        except ValueError:
            return None


# =============================================================================
# Address Reservation
# =============================================================================


class AddressReservation(Resource):
    """Tracks the allocation of one address to one MAC within one subnet."""

    kind: ResourceKind = ResourceKind.ADDRESS_RESERVATION
    subnet: str = Field(..., description="Name of the owning subnet")
    address: str | None = Field(
        default=None,
        description="Explicitly requested address (None = controller picks)",
    )
    reserved: str | None = Field(
        default=None,
        description="Address assigned by the controller",
    )
    state: ReservationState = ReservationState.PROCESSING
    message: str | None = None

    def reserved_address(self) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
        if not self.reserved:
            return None
        return ipaddress.ip_address(self.reserved)

    def is_live(self) -> bool:
        return self.state != ReservationState.FAILED


# =============================================================================
# Endpoint
# =============================================================================


class Endpoint(Resource):
    """Published name -> MAC -> IP binding."""

    kind: ResourceKind = ResourceKind.ENDPOINT
    mac_address: str
    ip: str


RESOURCE_TYPES: dict[ResourceKind, type[Resource]] = {
    ResourceKind.SUBNET: Subnet,
    ResourceKind.ADDRESS_RESERVATION: AddressReservation,
    ResourceKind.ENDPOINT: Endpoint,
}


def resource_from_dict(data: dict) -> Resource:
    """Build the right record class from a serialized dict."""
    kind = ResourceKind(data["kind"])
    return RESOURCE_TYPES[kind].model_validate(data)
