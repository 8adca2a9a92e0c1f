"""Reconciliation core exception classes."""


class FeDHCPError(Exception):
    """Base exception for reconciliation failures."""

    pass


# =============================================================================
# Setup
# =============================================================================


class ConfigurationError(FeDHCPError):
    """Plugin or server configuration is malformed. Fatal at setup."""

    pass


# =============================================================================
# Protocol
# =============================================================================


class ProtocolError(FeDHCPError):
    """The incoming message cannot be used to derive an identity."""

    pass


class NotRelayedError(ProtocolError):
    """A DHCPv6 message that must be relayed arrived directly."""

    def __init__(self, msg_type: str = "unknown"):
        self.msg_type = msg_type
        super().__init__(f"Message is not relayed: {msg_type}")


class AddressDerivationError(ProtocolError):
    """No hardware address can be recovered from the message."""

    def __init__(self, message: str, address: str | None = None):
        self.address = address
        if address:
            message = f"{message} ({address})"
        super().__init__(message)


class DecapsulationError(ProtocolError):
    """The relayed inner message is missing or undecodable."""

    pass


# =============================================================================
# Reservation
# =============================================================================


class NoMatchingSubnetError(FeDHCPError):
    """None of the candidate subnets contains the address."""

    def __init__(self, address: str, candidates: list[str]):
        self.address = address
        self.candidates = list(candidates)
        super().__init__(
            f"No subnet among {self.candidates} contains address {address}"
        )


class WaitTimeoutError(FeDHCPError):
    """A record did not reach a terminal state within the ceiling."""

    def __init__(self, description: str, timeout: float):
        self.description = description
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for {description}")


class ReservationFailedError(FeDHCPError):
    """The address controller marked the reservation Failed."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        detail = f": {message}" if message else ""
        super().__init__(f"Reservation {name} failed{detail}")


# =============================================================================
# Endpoint
# =============================================================================


class EndpointConflictError(FeDHCPError):
    """A concurrent writer changed the endpoint between read and patch."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Endpoint {name} was modified concurrently")
