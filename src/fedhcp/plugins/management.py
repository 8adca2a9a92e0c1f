"""
management plugin: hand out a MAC-derived address on the relay's /64.

The address keeps the first 64 bits of the relay link address; the host
part is built from the client MAC with :func:`fe_eui64`. The MAC is taken
from the relay's client link-layer address option, falling back to the
EUI-64 peer address. No store is involved and no arguments are taken.
"""

from scapy.layers.dhcp6 import DHCP6OptIA_NA
from scapy.packet import Packet

from fedhcp.core.address import derive_relay_mac, fe_eui64
from fedhcp.core.exceptions import ConfigurationError
from fedhcp.plugins.base import Continue, Drop, HandlerResult, Plugin, PluginContext
from fedhcp.protocol import dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)


class ManagementHandler:
    def __init__(self, ctx: PluginContext):
        self.preferred = ctx.preferred_lifetime
        self.valid = ctx.valid_lifetime

    def handle6(self, req: Packet, resp: Packet) -> HandlerResult:
        if not dhcp6.is_relay(req):
            logger.info("Received non-relay DHCPv6 request, dropping.")
            return Drop("not relayed")

        mac = derive_relay_mac(req)
        link, _ = dhcp6.relay_addresses(req)
        address = fe_eui64(link, mac)

        iana = dhcp6.get_option(dhcp6.inner_message(req), DHCP6OptIA_NA)
        if iana is None:
            logger.debug("No address requested")
            return Continue(resp)

        resp.add_payload(dhcp6.ia_na(iana.iaid, address, self.preferred, self.valid))
        logger.info(f"Client {mac}, added IA address {address}")
        return Continue(resp)


def setup6(ctx: PluginContext, *args: str):
    if args:
        raise ConfigurationError(
            f"The management plugin takes no arguments, got {len(args)}"
        )
    logger.info("Loaded management plugin for DHCPv6")
    return ManagementHandler(ctx).handle6


plugin = Plugin(name="management", setup6=setup6)
