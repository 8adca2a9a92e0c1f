"""
DHCPv6 message helpers built on scapy.

Plugins receive the request exactly as decoded (a Relay-Forward for relayed
traffic) and the inner reply message being assembled. These helpers give
them relay unwrapping, option lookup and the option builders they append
to the reply.
"""

import ipaddress

from scapy.layers.dhcp6 import (
    DHCP6,
    DHCP6_Advertise,
    DHCP6_Confirm,
    DHCP6_Decline,
    DHCP6_InfoRequest,
    DHCP6_Rebind,
    DHCP6_RelayForward,
    DHCP6_RelayReply,
    DHCP6_Release,
    DHCP6_Renew,
    DHCP6_Reply,
    DHCP6_Request,
    DHCP6_Solicit,
    DHCP6OptClientId,
    DHCP6OptClientLinkLayerAddr,
    DHCP6OptIA_NA,
    DHCP6OptIA_PD,
    DHCP6OptIAAddress,
    DHCP6OptIAPrefix,
    DHCP6OptIfaceId,
    DHCP6OptRapidCommit,
    DHCP6OptRelayMsg,
    DHCP6OptServerId,
    DUID_LL,
    DUID_LLT,
)
from scapy.packet import NoPayload, Packet

from fedhcp.core.exceptions import DecapsulationError, NotRelayedError

# RFC 6939 link-layer type for Ethernet
LINK_LAYER_TYPE_ETHERNET = 1

# msg-type -> message class, for decoding raw datagrams
MESSAGE_TYPES: dict[int, type[Packet]] = {
    1: DHCP6_Solicit,
    2: DHCP6_Advertise,
    3: DHCP6_Request,
    4: DHCP6_Confirm,
    5: DHCP6_Renew,
    6: DHCP6_Rebind,
    7: DHCP6_Reply,
    8: DHCP6_Release,
    9: DHCP6_Decline,
    11: DHCP6_InfoRequest,
    12: DHCP6_RelayForward,
    13: DHCP6_RelayReply,
}


# =============================================================================
# Decoding
# =============================================================================


def decode(data: bytes) -> Packet:
    """
    Decode a raw DHCPv6 datagram.

    Raises:
        DecapsulationError: If the message type is unknown or the data is empty.
    """
    if not data:
        raise DecapsulationError("Empty DHCPv6 datagram")
    cls = MESSAGE_TYPES.get(data[0])
    if cls is None:
        raise DecapsulationError(f"Unsupported DHCPv6 message type {data[0]}")
    return cls(data)


def message_name(msg: Packet) -> str:
    return type(msg).__name__


def is_relay(msg: Packet) -> bool:
    return isinstance(msg, DHCP6_RelayForward)


def iter_options(msg: Packet):
    """Yield the top-level options of a message, in wire order."""
    opt = msg.payload
    while opt is not None and not isinstance(opt, NoPayload):
        yield opt
        opt = opt.payload


def get_option(msg: Packet, cls: type[Packet]) -> Packet | None:
    """First top-level option of the given class, without descending into relay payloads."""
    for opt in iter_options(msg):
        if isinstance(opt, cls):
            return opt
    return None


# =============================================================================
# Relay Handling
# =============================================================================


def relay_addresses(msg: Packet) -> tuple[ipaddress.IPv6Address, ipaddress.IPv6Address]:
    """
    Link and peer address of the outermost relay header.

    Raises:
        NotRelayedError: If the message was not relayed.
    """
    if not is_relay(msg):
        raise NotRelayedError(message_name(msg))
    return ipaddress.IPv6Address(msg.linkaddr), ipaddress.IPv6Address(msg.peeraddr)


def inner_message(msg: Packet) -> Packet:
    """
    Unwrap all relay layers and return the client's message.

    Raises:
        NotRelayedError: If the message was not relayed.
        DecapsulationError: If a relay layer carries no decodable message.
    """
    if not is_relay(msg):
        raise NotRelayedError(message_name(msg))

    current = msg
    while is_relay(current):
        relay_opt = get_option(current, DHCP6OptRelayMsg)
        if relay_opt is None or relay_opt.message is None:
            raise DecapsulationError("Relay message option missing")
        inner = relay_opt.message
        if isinstance(inner, (bytes, bytearray)):
            inner = decode(bytes(inner))
        if not isinstance(inner, DHCP6) and not is_relay(inner):
            raise DecapsulationError(
                f"Relay carries undecodable message: {type(inner).__name__}"
            )
        current = inner
    return current


def client_link_layer_address(msg: Packet) -> bytes | str | None:
    """
    RFC 6939 client link-layer address from the outermost relay, if it is Ethernet.
    """
    opt = get_option(msg, DHCP6OptClientLinkLayerAddr)
    if opt is None or opt.lltype != LINK_LAYER_TYPE_ETHERNET:
        return None
    return opt.clladdr


def duid_link_layer_address(msg: Packet) -> str | None:
    """Link-layer address embedded in a DUID-LL or DUID-LLT client identifier."""
    opt = get_option(msg, DHCP6OptClientId)
    if opt is None:
        return None
    duid = opt.duid
    if isinstance(duid, (DUID_LL, DUID_LLT)):
        return duid.lladdr
    return None


def wrap_reply(request: Packet, reply: Packet) -> Packet:
    """
    Wrap a reply in Relay-Reply headers mirroring each relay layer of the request.
    """
    layers = []
    current = request
    while is_relay(current):
        layers.append(current)
        current = get_option(current, DHCP6OptRelayMsg).message

    wrapped = reply
    for relay in reversed(layers):
        outer = DHCP6_RelayReply(
            hopcount=relay.hopcount, linkaddr=relay.linkaddr, peeraddr=relay.peeraddr
        )
        iface_id = get_option(relay, DHCP6OptIfaceId)
        if iface_id is not None:
            outer.add_payload(DHCP6OptIfaceId(ifaceid=iface_id.ifaceid))
        outer.add_payload(DHCP6OptRelayMsg(message=wrapped))
        wrapped = outer
    return wrapped


# =============================================================================
# Reply Construction
# =============================================================================


def new_reply(msg: Packet, server_mac: str) -> Packet:
    """
    Start a reply for a client message: Advertise for Solicit (Reply with
    rapid commit), Reply otherwise. Client and server identifiers are set.
    """
    if isinstance(msg, DHCP6_Solicit) and get_option(msg, DHCP6OptRapidCommit) is None:
        reply = DHCP6_Advertise(trid=msg.trid)
    else:
        reply = DHCP6_Reply(trid=msg.trid)

    client_id = get_option(msg, DHCP6OptClientId)
    if client_id is not None:
        reply.add_payload(DHCP6OptClientId(duid=client_id.duid))
    reply.add_payload(DHCP6OptServerId(duid=DUID_LL(lladdr=server_mac)))
    if isinstance(reply, DHCP6_Reply) and isinstance(msg, DHCP6_Solicit):
        reply.add_payload(DHCP6OptRapidCommit())
    return reply


def ia_na(
    iaid: int, address, preferred: int, valid: int, t1: int = 0, t2: int = 0
) -> Packet:
    """IA_NA carrying one address."""
    return DHCP6OptIA_NA(
        iaid=iaid,
        T1=t1,
        T2=t2,
        ianaopts=[
            DHCP6OptIAAddress(addr=str(address), preflft=preferred, validlft=valid)
        ],
    )


def ia_pd(iaid: int, prefix: ipaddress.IPv6Network, preferred: int, valid: int) -> Packet:
    """IA_PD carrying one delegated prefix. T1/T2 follow the preferred/valid lifetimes."""
    return DHCP6OptIA_PD(
        iaid=iaid,
        T1=preferred,
        T2=valid,
        iapdopt=[
            DHCP6OptIAPrefix(
                preflft=preferred,
                validlft=valid,
                plen=prefix.prefixlen,
                prefix=str(prefix.network_address),
            )
        ],
    )


def requested_prefix_length(opt: Packet) -> int | None:
    """Prefix-length hint from the first IA_Prefix of a client's IA_PD, if any."""
    for prefix in opt.iapdopt or []:
        if isinstance(prefix, DHCP6OptIAPrefix) and prefix.plen:
            return prefix.plen
    return None
