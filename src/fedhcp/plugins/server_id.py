"""
server_id plugin: set the server identifier of every reply.

DHCPv6 takes a DUID-LL (``server_id: LL 00:de:ad:be:ef:00``), DHCPv4 the
server's own address (``server_id: 10.0.0.254``), which is also used as
``siaddr``.
"""

import ipaddress

from scapy.layers.dhcp import BOOTP
from scapy.layers.dhcp6 import DHCP6OptServerId, DUID_LL
from scapy.packet import Packet

from fedhcp.core.exceptions import ConfigurationError
from fedhcp.models.identity import HardwareAddress
from fedhcp.plugins.base import Continue, HandlerResult, Plugin, PluginContext, single_arg
from fedhcp.protocol import dhcp4, dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

DUID_TYPE_LL = "LL"


def setup6(ctx: PluginContext, *args: str):
    if len(args) == 2 and args[0].upper() == DUID_TYPE_LL:
        args = args[1:]
    elif len(args) == 2:
        raise ConfigurationError(f"Unsupported DUID type '{args[0]}', only LL is supported")
    try:
        mac = HardwareAddress.parse(single_arg("server_id", args))
    except ValueError as e:
        raise ConfigurationError(f"Invalid server_id: {e}")

    def handle6(req: Packet, resp: Packet) -> HandlerResult:
        opt = dhcp6.get_option(resp, DHCP6OptServerId)
        if opt is None:
            resp.add_payload(DHCP6OptServerId(duid=DUID_LL(lladdr=str(mac))))
        else:
            opt.duid = DUID_LL(lladdr=str(mac))
        return Continue(resp)

    logger.info(f"Loaded server_id plugin for DHCPv6 (DUID-LL {mac})")
    return handle6


def setup4(ctx: PluginContext, *args: str):
    try:
        server_ip = ipaddress.IPv4Address(single_arg("server_id", args))
    except ValueError as e:
        raise ConfigurationError(f"Invalid server_id: {e}")

    def handle4(req: Packet, resp: Packet) -> HandlerResult:
        resp[BOOTP].siaddr = str(server_ip)
        dhcp4.add_option(resp, "server_id", str(server_ip))
        return Continue(resp)

    logger.info(f"Loaded server_id plugin for DHCPv4 ({server_ip})")
    return handle4


plugin = Plugin(name="server_id", setup4=setup4, setup6=setup6)
