"""
oob plugin: lease addresses on out-of-band management networks.

Subnets are discovered by label. The first discovered subnet of the
request's family containing the candidate address gets a reservation for
the client MAC, and the assigned address is put in the reply (IA_NA for
DHCPv6, ``yiaddr`` for DHCPv4).

Config (oob_config.yaml):

    namespace: oob-ns
    subnetLabel: subnet=dhcp
"""

from scapy.layers.dhcp import BOOTP
from scapy.layers.dhcp6 import DHCP6OptIA_NA
from scapy.packet import Packet

from fedhcp.core.address import derive_relay_mac, derive_v4_candidate
from fedhcp.core.exceptions import NoMatchingSubnetError
from fedhcp.core.reservation import ReservationManager
from fedhcp.core.subnets import SubnetSelector
from fedhcp.models.config import OOBConfig, load_plugin_config
from fedhcp.models.enums import AddressFamily
from fedhcp.models.identity import HardwareAddress
from fedhcp.plugins.base import Continue, Drop, HandlerResult, Plugin, PluginContext, single_arg
from fedhcp.protocol import dhcp4, dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)


class OOBHandler:
    def __init__(self, ctx: PluginContext, config: OOBConfig):
        store = ctx.require_store()
        key, value = config.label
        self.ctx = ctx
        self.config = config
        self.subnet_labels = {key: value}
        self.selector = SubnetSelector(store, config.namespace)
        self.reservations = ReservationManager(
            store,
            config.namespace,
            extra_labels=self.subnet_labels,
            create_timeout=ctx.create_timeout,
            delete_timeout=ctx.delete_timeout,
            poll_interval=ctx.poll_interval,
        )

    def _lease(self, mac: HardwareAddress, address, exact: bool, family: AddressFamily):
        names = self.selector.discover(self.subnet_labels, family)
        if not names:
            raise NoMatchingSubnetError(str(address), names)
        subnet = self.selector.select(names, address, family)
        return self.reservations.reserve(mac, subnet, address, exact=exact)

    # =========================================================================
    # DHCPv6
    # =========================================================================

    def handle6(self, req: Packet, resp: Packet) -> HandlerResult:
        if not dhcp6.is_relay(req):
            logger.info("Received non-relay DHCPv6 request. Dropping.")
            return Drop("not relayed")

        mac = derive_relay_mac(req)
        link, _ = dhcp6.relay_addresses(req)
        inner = dhcp6.inner_message(req)

        iana = dhcp6.get_option(inner, DHCP6OptIA_NA)
        if iana is None:
            logger.debug(f"No address requested by {mac}")
            return Continue(resp)

        logger.info(f"Requested IP address from relay {link} for mac {mac}")
        lease_ip = self._lease(mac, link, False, AddressFamily.IPV6)

        resp.add_payload(
            dhcp6.ia_na(
                iana.iaid, lease_ip, self.ctx.preferred_lifetime, self.ctx.valid_lifetime
            )
        )
        logger.info(f"Client {mac.sanitized}: added option IA address {lease_ip}")
        return Continue(resp)

    # =========================================================================
    # DHCPv4
    # =========================================================================

    def handle4(self, req: Packet, resp: Packet) -> HandlerResult:
        mac = HardwareAddress.parse(dhcp4.client_hardware_address(req))
        candidate = derive_v4_candidate(req, resp)
        logger.debug(
            f"Candidate {candidate.address} (exact={candidate.exact}) for mac {mac}"
        )

        lease_ip = self._lease(mac, candidate.address, candidate.exact, AddressFamily.IPV4)
        resp[BOOTP].yiaddr = str(lease_ip)
        logger.info(f"Client {mac.sanitized}: leased {lease_ip}")
        return Continue(resp)


def _setup(ctx: PluginContext, args: tuple[str, ...]) -> OOBHandler:
    config = load_plugin_config(OOBConfig, single_arg("oob", args))
    return OOBHandler(ctx, config)


def setup6(ctx: PluginContext, *args: str):
    handler = _setup(ctx, args)
    logger.info("Loaded oob plugin for DHCPv6.")
    return handler.handle6


def setup4(ctx: PluginContext, *args: str):
    handler = _setup(ctx, args)
    logger.info("Loaded oob plugin for DHCPv4.")
    return handler.handle4


plugin = Plugin(name="oob", setup4=setup4, setup6=setup6)
