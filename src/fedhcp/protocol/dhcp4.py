"""DHCPv4 message helpers built on scapy."""

import ipaddress

from scapy.layers.dhcp import BOOTP, DHCP, DHCPTypes
from scapy.packet import Packet

from fedhcp.core.exceptions import DecapsulationError

UNSPECIFIED = "0.0.0.0"

BOOTREQUEST = 1
BOOTREPLY = 2

# Request type -> reply type
_REPLY_TYPES = {
    "discover": "offer",
    "request": "ack",
    "inform": "ack",
}


def decode(data: bytes) -> Packet:
    """
    Decode a raw BOOTP/DHCP datagram.

    Raises:
        DecapsulationError: If the datagram is not a DHCP request.
    """
    pkt = BOOTP(data)
    if pkt.op != BOOTREQUEST or not pkt.haslayer(DHCP):
        raise DecapsulationError("Not a DHCPv4 request")
    return pkt


def get_option(pkt: Packet, name: str):
    """Value of a named DHCP option, or None."""
    if not pkt.haslayer(DHCP):
        return None
    for option in pkt[DHCP].options:
        if isinstance(option, tuple) and option[0] == name:
            return option[1]
    return None


def message_type(pkt: Packet) -> str | None:
    value = get_option(pkt, "message-type")
    if isinstance(value, int):
        return DHCPTypes.get(value)
    return value


def _address(value) -> ipaddress.IPv4Address | None:
    if value is None or value == UNSPECIFIED:
        return None
    return ipaddress.IPv4Address(value)


def client_address(pkt: Packet) -> ipaddress.IPv4Address | None:
    """``ciaddr``, or None when unset."""
    return _address(pkt[BOOTP].ciaddr)


def requested_address(pkt: Packet) -> ipaddress.IPv4Address | None:
    """Requested IP address option (50), or None."""
    return _address(get_option(pkt, "requested_addr"))


def server_address(pkt: Packet) -> ipaddress.IPv4Address | None:
    """``siaddr``, or None when unset."""
    return _address(pkt[BOOTP].siaddr)


def client_hardware_address(pkt: Packet) -> bytes:
    return bytes(pkt[BOOTP].chaddr)[:6]


def new_reply(pkt: Packet, server_ip: str | None) -> Packet | None:
    """
    Start a reply (OFFER/ACK) for a request. Returns None for message types
    that get no reply (release, decline).
    """
    reply_type = _REPLY_TYPES.get(message_type(pkt))
    if reply_type is None:
        return None

    request = pkt[BOOTP]
    options = [("message-type", reply_type)]
    if server_ip:
        options.append(("server_id", server_ip))
    options.append("end")

    return BOOTP(
        op=BOOTREPLY,
        htype=request.htype,
        hlen=request.hlen,
        xid=request.xid,
        flags=request.flags,
        ciaddr=request.ciaddr,
        giaddr=request.giaddr,
        siaddr=server_ip or UNSPECIFIED,
        chaddr=request.chaddr,
    ) / DHCP(options=options)


def add_option(pkt: Packet, name: str, value) -> None:
    """Set an option, replacing any existing value, before the ``end`` marker."""
    options = [
        o for o in pkt[DHCP].options if not (isinstance(o, tuple) and o[0] == name)
    ]
    if "end" in options:
        options.insert(options.index("end"), (name, value))
    else:
        options.append((name, value))
    pkt[DHCP].options = options
