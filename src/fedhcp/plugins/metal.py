"""
metal plugin: publish Endpoint records for managed machines.

For a managed MAC, the address already reserved for it (by ipam or oob
earlier in the chain, or by the controller) is published as an Endpoint.
The reply is passed through untouched.

Config (metal_config.yaml), static inventory:

    hosts:
      - name: compute-01
        macAddress: aa:bb:cc:dd:ee:ff

or dynamic onboarding by MAC prefix:

    namePrefix: server-
    filter:
      macPrefix:
        - "aa:bb:cc"
"""

from scapy.packet import Packet

from fedhcp.core.address import derive_relay_mac
from fedhcp.core.endpoint import EndpointPublisher, Onboarding
from fedhcp.core.reservation import ReservationManager
from fedhcp.models.config import MetalConfig, load_plugin_config
from fedhcp.models.enums import AddressFamily
from fedhcp.models.identity import HardwareAddress
from fedhcp.plugins.base import Continue, Drop, HandlerResult, Plugin, PluginContext, single_arg
from fedhcp.protocol import dhcp4, dhcp6
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)


class MetalHandler:
    def __init__(self, ctx: PluginContext, onboarding: Onboarding):
        store = ctx.require_store()
        self.onboarding = onboarding
        # Reservations may live in any namespace
        self.reservations = ReservationManager(store, None)
        self.publisher = EndpointPublisher(store, onboarding)

    def _apply(self, mac: HardwareAddress, family: AddressFamily, resp: Packet) -> HandlerResult:
        if not self.onboarding.manages(mac):
            logger.info(f"Unknown inventory MAC address: {mac}")
            return Continue(resp)

        address = self.reservations.find_reserved_address(mac, family)
        if address is None:
            logger.info(f"Could not find IP for MAC address {mac}")
            return Continue(resp)

        outcome = self.publisher.apply(mac, address)
        logger.debug(f"Endpoint for {mac} -> {address}: {outcome.value}")
        return Continue(resp)

    def handle6(self, req: Packet, resp: Packet) -> HandlerResult:
        if not dhcp6.is_relay(req):
            logger.info("Received non-relay DHCPv6 request. Dropping.")
            return Drop("not relayed")
        return self._apply(derive_relay_mac(req), AddressFamily.IPV6, resp)

    def handle4(self, req: Packet, resp: Packet) -> HandlerResult:
        mac = HardwareAddress.parse(dhcp4.client_hardware_address(req))
        return self._apply(mac, AddressFamily.IPV4, resp)


def _setup(ctx: PluginContext, args: tuple[str, ...]) -> MetalHandler:
    logger.info("Loading metal config")
    config = load_plugin_config(MetalConfig, single_arg("metal", args))
    onboarding = Onboarding.from_config(config)
    return MetalHandler(ctx, onboarding)


def setup6(ctx: PluginContext, *args: str):
    return _setup(ctx, args).handle6


def setup4(ctx: PluginContext, *args: str):
    return _setup(ctx, args).handle4


plugin = Plugin(name="metal", setup4=setup4, setup6=setup6)
