"""
Enumeration types for FeDHCP.

This module defines the enumeration types shared by the resource store,
the reconciliation core and the DHCP plugins.
"""

from enum import Enum


# =============================================================================
# Resource Enums
# =============================================================================


class ResourceKind(str, Enum):
    """Record kinds held by the resource store."""

    SUBNET = "Subnet"
    ADDRESS_RESERVATION = "AddressReservation"
    ENDPOINT = "Endpoint"


class AddressFamily(str, Enum):
    """Address family of a subnet or a requested lease."""

    IPV4 = "IPv4"
    IPV6 = "IPv6"

    @classmethod
    def of(cls, address) -> "AddressFamily":
        """Return the family of an ``ipaddress`` address object."""
        return cls.IPV4 if address.version == 4 else cls.IPV6


class ReservationState(str, Enum):
    """
    Address reservation lifecycle state.

    State transitions (driven by the external address controller):
        PROCESSING -> FINISHED (address assigned)
        PROCESSING -> FAILED (allocation impossible)

    FINISHED and FAILED are terminal.
    """

    PROCESSING = "Processing"
    FINISHED = "Finished"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReservationState.FINISHED, ReservationState.FAILED)


# =============================================================================
# Onboarding Enums
# =============================================================================


class OnboardingMode(str, Enum):
    """
    How Endpoint names are determined.

    - STATIC: names come from a configured MAC -> name inventory
    - DYNAMIC: names are generated from a prefix for MACs matching a filter
    """

    STATIC = "static"
    DYNAMIC = "dynamic"


class PublishOutcome(str, Enum):
    """Result of reconciling one Endpoint record."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    ALREADY_EXISTS = "already_exists"
    SKIPPED = "skipped"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Trace output with diagnostic tracebacks
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
