"""
DHCP responder.

Listens for DHCPv4 and DHCPv6 datagrams, runs each request through the
configured plugin chain and sends the resulting reply. Plugins block on the
resource store, so every request is processed in a worker thread while the
event loop keeps receiving.
"""

import asyncio
import ipaddress
import socket
from pathlib import Path

from scapy.layers.dhcp import BOOTP
from scapy.packet import Packet

from fedhcp.core.exceptions import ConfigurationError, FeDHCPError
from fedhcp.models.enums import AddressFamily
from fedhcp.models.identity import HardwareAddress
from fedhcp.plugins.base import Continue, PluginContext, Respond
from fedhcp.protocol import dhcp4, dhcp6
from fedhcp.server.chain import HandlerChain, build_chain
from fedhcp.server.config import (
    DHCPV4_SERVER_PORT,
    DHCPV6_SERVER_PORT,
    PluginEntry,
    ServerFile,
    config,
    load_server_file,
    parse_listen,
    resolve_args,
)
from fedhcp.store.base import ResourceStore
from fedhcp.store.http import HttpResourceStore
from fedhcp.store.sqlite import SQLiteResourceStore
from fedhcp.utils.logger import configure_logging, format_traceback, get_logger

logger = get_logger(__name__)

DHCPV4_CLIENT_PORT = 68
BROADCAST = "255.255.255.255"

# Background tasks tracking
background_tasks: set[asyncio.Task] = set()


# =============================================================================
# Request Processing
# =============================================================================


def process6(chain: HandlerChain, data: bytes, server_mac: str) -> bytes | None:
    """
    Run one DHCPv6 datagram through the chain.

    Returns:
        The encoded reply (relay-wrapped when the request was relayed), or
        None when nothing should be sent.
    """
    try:
        request = dhcp6.decode(data)
        inner = dhcp6.inner_message(request) if dhcp6.is_relay(request) else request
    except FeDHCPError as e:
        logger.info(f"Ignoring undecodable DHCPv6 datagram: {e}")
        return None

    reply = dhcp6.new_reply(inner, server_mac)
    result = chain.run(request, reply)
    if not isinstance(result, (Continue, Respond)):
        logger.debug(f"No reply for {dhcp6.message_name(inner)}: {result}")
        return None

    if dhcp6.is_relay(request):
        return bytes(dhcp6.wrap_reply(request, result.reply))
    return bytes(result.reply)


def process4(chain: HandlerChain, data: bytes, server_ip: str | None) -> Packet | None:
    """Run one DHCPv4 datagram through the chain, returning the reply packet."""
    try:
        request = dhcp4.decode(data)
    except FeDHCPError as e:
        logger.info(f"Ignoring undecodable DHCPv4 datagram: {e}")
        return None

    reply = dhcp4.new_reply(request, server_ip)
    if reply is None:
        logger.debug(f"No reply for DHCPv4 {dhcp4.message_type(request)}")
        return None

    result = chain.run(request, reply)
    if not isinstance(result, (Continue, Respond)):
        logger.debug(f"No reply for DHCPv4 {dhcp4.message_type(request)}: {result}")
        return None
    return result.reply


def reply4_destination(reply: Packet) -> tuple[str, int]:
    """Relay agent if any, then the client's configured address, else broadcast."""
    bootp = reply[BOOTP]
    if bootp.giaddr and bootp.giaddr != dhcp4.UNSPECIFIED:
        return bootp.giaddr, DHCPV4_SERVER_PORT
    if bootp.ciaddr and bootp.ciaddr != dhcp4.UNSPECIFIED:
        return bootp.ciaddr, DHCPV4_CLIENT_PORT
    return BROADCAST, DHCPV4_CLIENT_PORT


# =============================================================================
# Datagram Protocols
# =============================================================================


class _ResponderProtocol(asyncio.DatagramProtocol):
    family: AddressFamily

    def __init__(self, chain: HandlerChain):
        self.chain = chain
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        self.transport = transport
        logger.info(f"{self.family.value} responder listening on {transport.get_extra_info('sockname')}")

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        task = asyncio.create_task(self._handle(data, addr))
        background_tasks.add(task)
        task.add_done_callback(background_tasks.discard)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"{self.family.value} socket error: {exc}")

    async def _handle(self, data: bytes, addr: tuple) -> None:
        try:
            await self.handle(data, addr)
        except Exception as e:
            logger.error(f"Failed to process datagram from {addr[0]}: {e}")
            logger.debug(format_traceback(e))

    async def handle(self, data: bytes, addr: tuple) -> None:
        raise NotImplementedError


class DHCPv6Protocol(_ResponderProtocol):
    family = AddressFamily.IPV6

    def __init__(self, chain: HandlerChain, server_mac: str):
        super().__init__(chain)
        self.server_mac = server_mac

    async def handle(self, data: bytes, addr: tuple) -> None:
        payload = await asyncio.to_thread(process6, self.chain, data, self.server_mac)
        if payload is not None and self.transport is not None:
            self.transport.sendto(payload, addr)


class DHCPv4Protocol(_ResponderProtocol):
    family = AddressFamily.IPV4

    def __init__(self, chain: HandlerChain, server_ip: str | None):
        super().__init__(chain)
        self.server_ip = server_ip

    async def handle(self, data: bytes, addr: tuple) -> None:
        reply = await asyncio.to_thread(process4, self.chain, data, self.server_ip)
        if reply is None or self.transport is None:
            return
        destination = reply4_destination(reply)
        mac = HardwareAddress.parse(dhcp4.client_hardware_address(reply))
        logger.debug(f"Sending DHCPv4 reply for {mac} to {destination[0]}:{destination[1]}")
        self.transport.sendto(bytes(reply), destination)


# =============================================================================
# Setup Helpers
# =============================================================================


def create_store() -> ResourceStore:
    """Remote store service when STORE_URL is set, local SQLite file otherwise."""
    if config.STORE_URL:
        logger.info(f"Using resource store service at {config.STORE_URL}")
        return HttpResourceStore(config.STORE_URL, timeout=config.STORE_TIMEOUT_SECONDS)
    logger.info(f"Using local resource store {config.DB_FILE}")
    Path(config.DB_FILE).parent.mkdir(parents=True, exist_ok=True)
    return SQLiteResourceStore(config.DB_FILE)


def create_context(store: ResourceStore | None) -> PluginContext:
    return PluginContext(
        store=store,
        poll_interval=config.POLL_INTERVAL_SECONDS,
        create_timeout=config.CREATE_TIMEOUT_SECONDS,
        delete_timeout=config.DELETE_TIMEOUT_SECONDS,
        preferred_lifetime=config.PREFERRED_LIFETIME_SECONDS,
        valid_lifetime=config.VALID_LIFETIME_SECONDS,
    )


def build_chains(server_file: ServerFile, ctx: PluginContext, base_dir: Path) -> dict:
    """Set up the plugin chain of every configured family."""
    chains = {}
    sections = (
        (AddressFamily.IPV6, server_file.server6),
        (AddressFamily.IPV4, server_file.server4),
    )
    for family, section in sections:
        if section is None:
            continue
        entries = [
            PluginEntry(entry.name, resolve_args(entry.args, base_dir))
            for entry in section.plugins
        ]
        chains[family] = build_chain(entries, family, ctx)
    return chains


def _v6_socket(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET6, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
    sock.bind((host, port))
    sock.setblocking(False)
    return sock


async def _start_listeners(server_file: ServerFile, chains: dict) -> list:
    loop = asyncio.get_running_loop()
    transports = []

    if AddressFamily.IPV6 in chains:
        chain = chains[AddressFamily.IPV6]
        for value in server_file.server6.listen or ("[::]",):
            listen = parse_listen(value, DHCPV6_SERVER_PORT)
            transport, _ = await loop.create_datagram_endpoint(
                lambda: DHCPv6Protocol(chain, config.SERVER_MAC),
                sock=_v6_socket(listen.host, listen.port),
            )
            transports.append(transport)

    if AddressFamily.IPV4 in chains:
        chain = chains[AddressFamily.IPV4]
        server_ip = config.SERVER4_ADDRESS or None
        for value in server_file.server4.listen or ("0.0.0.0",):
            listen = parse_listen(value, DHCPV4_SERVER_PORT)
            transport, _ = await loop.create_datagram_endpoint(
                lambda: DHCPv4Protocol(chain, server_ip),
                local_addr=(listen.host, listen.port),
                allow_broadcast=True,
            )
            transports.append(transport)

    return transports


# =============================================================================
# Server Entry Points
# =============================================================================


async def serve(server_file: ServerFile, chains: dict) -> None:
    """Run the responder until cancelled."""
    transports = await _start_listeners(server_file, chains)
    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Responder shutting down")
        for transport in transports:
            transport.close()
        for task in background_tasks:
            task.cancel()
        if background_tasks:
            await asyncio.gather(*background_tasks, return_exceptions=True)


def run():
    """Load the configuration, set up all plugins and serve."""
    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    config_path = Path(config.CONFIG_FILE)
    server_file = load_server_file(config_path)

    if config.SERVER4_ADDRESS:
        try:
            ipaddress.IPv4Address(config.SERVER4_ADDRESS)
        except ValueError:
            raise ConfigurationError(f"Invalid server address '{config.SERVER4_ADDRESS}'")

    store = create_store()
    try:
        chains = build_chains(server_file, create_context(store), config_path.parent)
        asyncio.run(serve(server_file, chains))
    except KeyboardInterrupt:
        logger.info("Responder stopped")
    finally:
        store.close()
