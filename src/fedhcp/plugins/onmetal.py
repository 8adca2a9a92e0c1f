"""
onmetal plugin: lease the address next to the relay's link address.

Relays on the switches own a /127 per port, so the client gets the relay
link address with its last byte incremented. A requested IA_PD is answered
with a prefix of the configured length (or the client's hint) masked from
that address. Addresses are leased for 30 seconds, delegated prefixes for
the responder-wide lifetimes.

Config (onmetal_config.yaml, optional):

    prefixDelegation:
      length: 80
"""

from scapy.layers.dhcp6 import DHCP6OptIA_NA, DHCP6OptIA_PD
from scapy.packet import Packet

from fedhcp.core.address import (
    MAX_PREFIX_LENGTH,
    MIN_PREFIX_LENGTH,
    delegated_prefix,
    increment_link_address,
    validate_prefix_length,
)
from fedhcp.core.exceptions import ConfigurationError
from fedhcp.models.config import OnMetalConfig, load_plugin_config
from fedhcp.plugins.base import Continue, Drop, HandlerResult, Plugin, PluginContext
from fedhcp.protocol import dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

# Link addresses are leased short-term
ADDRESS_LIFETIME = 30


class OnMetalHandler:
    def __init__(self, ctx: PluginContext, config: OnMetalConfig):
        self.ctx = ctx
        self.prefix_length = validate_prefix_length(config.prefix_delegation.length)

    def handle6(self, req: Packet, resp: Packet) -> HandlerResult:
        if not dhcp6.is_relay(req):
            logger.info("Received non-relay DHCPv6 request. Dropping.")
            return Drop("not relayed")

        link, _ = dhcp6.relay_addresses(req)
        address = increment_link_address(link)
        logger.info(f"Generated IP address {address}")

        inner = dhcp6.inner_message(req)
        iana = dhcp6.get_option(inner, DHCP6OptIA_NA)
        iapd = dhcp6.get_option(inner, DHCP6OptIA_PD)

        if iana is None and iapd is None:
            logger.debug("No address or prefix requested")
            return Continue(resp)

        preferred = self.ctx.preferred_lifetime
        valid = self.ctx.valid_lifetime

        if iana is not None:
            resp.add_payload(
                dhcp6.ia_na(iana.iaid, address, ADDRESS_LIFETIME, ADDRESS_LIFETIME)
            )

        if iapd is not None:
            length = self.prefix_length
            hint = dhcp6.requested_prefix_length(iapd)
            if hint is not None and MIN_PREFIX_LENGTH <= hint <= MAX_PREFIX_LENGTH:
                length = hint
            prefix = delegated_prefix(address, length)
            resp.add_payload(dhcp6.ia_pd(iapd.iaid, prefix, preferred, valid))
            logger.info(f"Delegated prefix {prefix}")

        return Continue(resp)


def setup6(ctx: PluginContext, *args: str):
    if len(args) > 1:
        raise ConfigurationError(
            f"At most one argument may be passed to the onmetal plugin, got {len(args)}"
        )
    config = load_plugin_config(OnMetalConfig, args[0]) if args else OnMetalConfig()
    handler = OnMetalHandler(ctx, config)
    logger.info(
        f"Loaded onmetal plugin for DHCPv6 (prefix delegation length {handler.prefix_length})"
    )
    return handler.handle6


plugin = Plugin(name="onmetal", setup6=setup6)
