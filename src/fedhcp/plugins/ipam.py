"""
ipam plugin: record relayed DHCPv6 clients as address reservations.

The client is given the relay link address with its last byte incremented,
reserved in the first configured subnet containing it.
The reply is passed through untouched.

Config (ipam_config.yaml):

    namespace: ipam-ns
    subnets:
      - ipam-subnet1
      - ipam-subnet2
"""

from scapy.packet import Packet

from fedhcp.core.address import derive_relay_mac, increment_link_address
from fedhcp.core.exceptions import NoMatchingSubnetError
from fedhcp.core.reservation import ReservationManager
from fedhcp.core.subnets import SubnetSelector
from fedhcp.models.config import IPAMConfig, load_plugin_config
from fedhcp.models.enums import AddressFamily
from fedhcp.plugins.base import Continue, Drop, HandlerResult, Plugin, PluginContext, single_arg
from fedhcp.protocol import dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)


class IPAMHandler:
    def __init__(self, ctx: PluginContext, config: IPAMConfig):
        store = ctx.require_store()
        self.config = config
        self.selector = SubnetSelector(store, config.namespace)
        self.reservations = ReservationManager(
            store,
            config.namespace,
            create_timeout=ctx.create_timeout,
            delete_timeout=ctx.delete_timeout,
            poll_interval=ctx.poll_interval,
        )

    def handle6(self, req: Packet, resp: Packet) -> HandlerResult:
        if not dhcp6.is_relay(req):
            logger.info("Received non-relay DHCPv6 request. Dropping.")
            return Drop("not relayed")

        mac = derive_relay_mac(req)
        link, _ = dhcp6.relay_addresses(req)
        address = increment_link_address(link)
        logger.info(f"Generated IP address {address} for mac {mac}")

        if not self.config.subnets:
            logger.debug("No subnets configured, nothing to reserve")
            return Continue(resp)

        try:
            subnet = self.selector.select(
                list(self.config.subnets), address, AddressFamily.IPV6
            )
        except NoMatchingSubnetError:
            logger.warning(f"No matching subnet found for IP {self.config.namespace}/{address}")
            return Continue(resp)

        reserved = self.reservations.reserve(mac, subnet, address, exact=True)
        logger.info(f"Address {reserved} reserved for {mac} in subnet {subnet.metadata.name}")
        return Continue(resp)


def setup6(ctx: PluginContext, *args: str):
    config = load_plugin_config(IPAMConfig, single_arg("ipam", args))
    handler = IPAMHandler(ctx, config)
    logger.info(
        f"Loaded ipam plugin for DHCPv6 (namespace={config.namespace}, "
        f"subnets={list(config.subnets)})"
    )
    return handler.handle6


plugin = Plugin(name="ipam", setup6=setup6)
