"""
Address derivation.

Pure functions turning an inbound message into a hardware identity and a
candidate address, plus the two deterministic address synthesis schemes
and the prefix delegation bounds. No store access happens here.
"""

import ipaddress
from dataclasses import dataclass

from scapy.packet import Packet

from fedhcp.core.exceptions import AddressDerivationError, ConfigurationError
from fedhcp.models.identity import HardwareAddress
from fedhcp.protocol import dhcp4, dhcp6

# Placeholder meaning "no candidate address known yet"
UNKNOWN_IP = ipaddress.IPv4Address("0.0.0.0")

MIN_PREFIX_LENGTH = 1
MAX_PREFIX_LENGTH = 127


def is_unknown(address) -> bool:
    return ipaddress.ip_address(address) == UNKNOWN_IP


@dataclass(frozen=True)
class Candidate:
    """
    A candidate address for subnet selection.

    ``exact`` is True only when the client itself supplied the address, in
    which case the reservation asks the controller for exactly this address.
    """

    address: ipaddress.IPv4Address | ipaddress.IPv6Address
    exact: bool = False

    @property
    def is_unknown(self) -> bool:
        return self.address == UNKNOWN_IP


# =============================================================================
# Hardware Identity
# =============================================================================


def mac_from_eui64(address) -> HardwareAddress:
    """
    Recover the MAC embedded in a modified EUI-64 interface identifier.

    The U/L bit of the first identifier byte is flipped back and the
    ``ff:fe`` filler in bytes 11-12 is removed.

    Raises:
        AddressDerivationError: If the address is not IPv6 or carries no
            EUI-48 derived identifier.
    """
    try:
        ip = ipaddress.IPv6Address(str(address))
    except ValueError:
        raise AddressDerivationError("Not an IPv6 address", str(address))

    b = ip.packed
    if b[11] != 0xFF or b[12] != 0xFE:
        raise AddressDerivationError("Address has no EUI-48 derived identifier", str(ip))

    return HardwareAddress(bytes([b[8] ^ 0x02, b[9], b[10], b[13], b[14], b[15]]))


def derive_relay_mac(request: Packet) -> HardwareAddress:
    """
    Hardware address of the client behind a DHCPv6 relay.

    An Ethernet client link-layer address option added by the relay is
    authoritative; otherwise the MAC is recovered from the peer address.

    Raises:
        NotRelayedError: If the request was not relayed.
        AddressDerivationError: If neither source yields a MAC.
    """
    _, peer = dhcp6.relay_addresses(request)

    lladdr = dhcp6.client_link_layer_address(request)
    if lladdr:
        try:
            return HardwareAddress.parse(lladdr)
        except ValueError:
            raise AddressDerivationError("Malformed client link-layer address option")

    return mac_from_eui64(peer)


def derive_v4_candidate(request: Packet, reply: Packet) -> Candidate:
    """
    Pick the DHCPv4 candidate address.

    Order: client address, requested address option, server address of the
    reply, unknown sentinel. Only the first two are exact.
    """
    client_ip = dhcp4.client_address(request)
    if client_ip is not None:
        return Candidate(client_ip, exact=True)

    requested_ip = dhcp4.requested_address(request)
    if requested_ip is not None:
        return Candidate(requested_ip, exact=True)

    server_ip = dhcp4.server_address(reply) if reply is not None else None
    if server_ip is not None:
        return Candidate(server_ip, exact=False)

    return Candidate(UNKNOWN_IP, exact=False)


# =============================================================================
# Address Synthesis
# =============================================================================


def fe_eui64(prefix, mac: HardwareAddress) -> ipaddress.IPv6Address:
    """
    Build an address from a /64 (or shorter) prefix and a MAC.

    Bytes 8-10 take the first three MAC octets, bytes 11-12 are ``0xfe`` and
    bytes 13-15 take the last three MAC octets. The U/L bit is left as is.

    >>> str(fe_eui64("2001:db8::/64", HardwareAddress.parse("aa:bb:cc:dd:ee:ff")))
    '2001:db8::aabb:ccfe:fedd:eeff'
    """
    text = str(prefix)
    if "/" not in text:
        text = f"{text}/64"
    network = ipaddress.IPv6Network(text, strict=False)
    if network.prefixlen > 64:
        raise ValueError(f"Prefix {network} is longer than /64")

    mac = HardwareAddress.parse(mac)
    head = network.network_address.packed[:8]
    return ipaddress.IPv6Address(head + mac.octets[:3] + b"\xfe\xfe" + mac.octets[3:])


def increment_link_address(link) -> ipaddress.IPv6Address:
    """Relay link address with its last byte incremented (wraps, no carry)."""
    b = bytearray(ipaddress.IPv6Address(str(link)).packed)
    b[-1] = (b[-1] + 1) & 0xFF
    return ipaddress.IPv6Address(bytes(b))


# =============================================================================
# Prefix Delegation
# =============================================================================


def validate_prefix_length(length) -> int:
    """
    Check a delegated prefix length.

    Raises:
        ConfigurationError: If the length is not an integer in [1, 127].
    """
    if isinstance(length, bool) or not isinstance(length, int):
        raise ConfigurationError(f"Prefix delegation length must be an integer, got {length!r}")
    if not MIN_PREFIX_LENGTH <= length <= MAX_PREFIX_LENGTH:
        raise ConfigurationError(
            f"Prefix delegation length {length} outside "
            f"[{MIN_PREFIX_LENGTH}, {MAX_PREFIX_LENGTH}]"
        )
    return length


def delegated_prefix(address, length: int) -> ipaddress.IPv6Network:
    """Mask an address to ``length`` bits."""
    validate_prefix_length(length)
    return ipaddress.IPv6Network(f"{ipaddress.IPv6Address(str(address))}/{length}", strict=False)
