"""
macfilter plugin: break the chain for MACs outside the allow list or on the deny list.

Relayed requests are identified by the relay's view of the client MAC;
direct requests by the link-layer address in a DUID-LL/DUID-LLT client ID.

Config (macfilter_config.yaml):

    whiteList:
      - "aa:bb"
    blackList:
      - "aa:bb:cc:dd"
"""

from scapy.packet import Packet

from fedhcp.core.address import derive_relay_mac
from fedhcp.models.config import MACFilterConfig, load_plugin_config
from fedhcp.models.identity import HardwareAddress
from fedhcp.plugins.base import Continue, Drop, HandlerResult, Plugin, PluginContext, single_arg
from fedhcp.protocol import dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)


def has_mac_prefix(prefixes, mac: HardwareAddress) -> bool:
    return any(mac.has_prefix(p) for p in prefixes)


class MACFilterHandler:
    def __init__(self, config: MACFilterConfig):
        self.config = config

    def allowed(self, mac: HardwareAddress) -> bool:
        if self.config.white_list and not has_mac_prefix(self.config.white_list, mac):
            return False
        return not has_mac_prefix(self.config.black_list, mac)

    def handle6(self, req: Packet, resp: Packet) -> HandlerResult:
        if dhcp6.is_relay(req):
            mac = derive_relay_mac(req)
        else:
            lladdr = dhcp6.duid_link_layer_address(req)
            if not lladdr:
                logger.info("Client did not send a MAC address in its client ID")
                return Drop("no client MAC")
            mac = HardwareAddress.parse(lladdr)

        if not self.allowed(mac):
            logger.info(f"MAC {mac} filtered")
            return Drop(f"MAC {mac} filtered")
        return Continue(resp)


def setup6(ctx: PluginContext, *args: str):
    config = load_plugin_config(MACFilterConfig, single_arg("macfilter", args))
    logger.info(
        f"Loaded macfilter plugin ({len(config.white_list)} allowed, "
        f"{len(config.black_list)} denied prefixes)"
    )
    return MACFilterHandler(config).handle6


plugin = Plugin(name="macfilter", setup6=setup6)
