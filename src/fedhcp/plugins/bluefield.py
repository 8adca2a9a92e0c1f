"""
bluefield plugin: always lease the same address, no matter who's asking.

Solicit and Request are answered with a fresh Advertise/Reply carrying the
configured address; the Reply to a Request is sent immediately without
running the rest of the chain. Every other message type is dropped.

Config (bluefield_config.yaml):

    bluefieldIP: 2001:db8::1
"""

from scapy.layers.dhcp6 import DHCP6_Request, DHCP6_Solicit, DHCP6OptIA_NA
from scapy.packet import Packet

from fedhcp.models.config import BluefieldConfig, load_plugin_config
from fedhcp.plugins.base import (
    Continue,
    Drop,
    HandlerResult,
    Plugin,
    PluginContext,
    Respond,
    single_arg,
)
from fedhcp.protocol import dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

SERVER_MAC = "00:11:22:33:44:55"

T1 = 1 * 60 * 60
T2 = 2 * 60 * 60
PREFERRED_LIFETIME = 24 * 60 * 60
VALID_LIFETIME = 48 * 60 * 60


class BluefieldHandler:
    def __init__(self, config: BluefieldConfig):
        self.address = config.bluefield_ip

    def _reply(self, msg: Packet) -> Packet:
        reply = dhcp6.new_reply(msg, SERVER_MAC)
        iana = dhcp6.get_option(msg, DHCP6OptIA_NA)
        iaid = iana.iaid if iana is not None else 0
        reply.add_payload(
            dhcp6.ia_na(iaid, self.address, PREFERRED_LIFETIME, VALID_LIFETIME, t1=T1, t2=T2)
        )
        return reply

    def handle6(self, req: Packet, resp: Packet) -> HandlerResult:
        msg = dhcp6.inner_message(req) if dhcp6.is_relay(req) else req

        if isinstance(msg, DHCP6_Solicit):
            logger.info(f"IP: {self.address}")
            return Continue(self._reply(msg))
        if isinstance(msg, DHCP6_Request):
            return Respond(self._reply(msg))

        logger.debug(f"Ignoring {dhcp6.message_name(msg)}")
        return Drop(f"{dhcp6.message_name(msg)} not handled")


def setup6(ctx: PluginContext, *args: str):
    config = load_plugin_config(BluefieldConfig, single_arg("bluefield", args))
    logger.info(f"Parsed IP {config.bluefield_ip}")
    return BluefieldHandler(config).handle6


plugin = Plugin(name="bluefield", setup6=setup6)
