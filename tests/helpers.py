"""Message builders and config writers shared by the tests."""

import yaml
from scapy.layers.dhcp import BOOTP, DHCP
from scapy.layers.dhcp6 import (
    DHCP6_RelayForward,
    DHCP6_Solicit,
    DHCP6OptClientId,
    DHCP6OptClientLinkLayerAddr,
    DHCP6OptIA_NA,
    DHCP6OptIA_PD,
    DHCP6OptIAPrefix,
    DHCP6OptRelayMsg,
    DUID_LL,
)

from fedhcp.models.identity import HardwareAddress
from fedhcp.protocol import dhcp4, dhcp6

MAC = "aa:bb:cc:dd:ee:ff"
LINK = "2001:db8:0:1::1"
# fe80::/64 EUI-64 address of MAC
PEER = "fe80::a8bb:ccff:fedd:eeff"
SERVER_MAC = "00:de:ad:be:ef:00"
POLL = 0.01


def write_yaml(path, data) -> str:
    path.write_text(yaml.safe_dump(data))
    return str(path)


# =============================================================================
# DHCPv6
# =============================================================================


def solicit(mac: str | None = MAC, iana: bool = True, iapd: bool = False, hint: int = 0):
    msg = DHCP6_Solicit(trid=0x1234)
    if mac:
        msg /= DHCP6OptClientId(duid=DUID_LL(lladdr=mac))
    if iana:
        msg /= DHCP6OptIA_NA(iaid=7)
    if iapd:
        prefixes = [DHCP6OptIAPrefix(plen=hint, prefix="::")] if hint else []
        msg /= DHCP6OptIA_PD(iaid=9, iapdopt=prefixes)
    return msg


def relayed(inner, link: str = LINK, peer: str = PEER, lladdr: str | None = None):
    """Relay-Forward around ``inner``, decoded back from its wire form."""
    relay = DHCP6_RelayForward(hopcount=0, linkaddr=link, peeraddr=peer)
    if lladdr:
        relay /= DHCP6OptClientLinkLayerAddr(lltype=1, clladdr=lladdr)
    relay /= DHCP6OptRelayMsg(message=inner)
    return dhcp6.decode(bytes(relay))


def direct(inner):
    return dhcp6.decode(bytes(inner))


def reply6(request):
    inner = dhcp6.inner_message(request) if dhcp6.is_relay(request) else request
    return dhcp6.new_reply(inner, SERVER_MAC)


# =============================================================================
# DHCPv4
# =============================================================================


def request4(
    mac: str = MAC,
    msg_type: str = "request",
    ciaddr: str = "0.0.0.0",
    requested: str | None = None,
    giaddr: str = "0.0.0.0",
):
    options = [("message-type", msg_type)]
    if requested:
        options.append(("requested_addr", requested))
    options.append("end")

    chaddr = HardwareAddress.parse(mac).octets + b"\x00" * 10
    pkt = BOOTP(op=1, xid=0x42, chaddr=chaddr, ciaddr=ciaddr, giaddr=giaddr) / DHCP(
        options=options
    )
    return dhcp4.decode(bytes(pkt))
