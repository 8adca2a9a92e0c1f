"""FeDHCP: address reservation and endpoint publishing for a modular DHCP responder."""

__version__ = "0.1.0"
