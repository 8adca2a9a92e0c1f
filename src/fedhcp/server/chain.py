"""
Plugin chain.

Handlers run in configuration order. Each gets the request as received and
the reply built so far; the first Drop or Error ends the chain. Exceptions
escaping a handler are turned into results here, so plugins raise instead
of translating every failure themselves.
"""

from dataclasses import dataclass

from scapy.packet import Packet

from fedhcp.core.exceptions import ConfigurationError, FeDHCPError, ProtocolError
from fedhcp.models.enums import AddressFamily
from fedhcp.plugins import get_plugin
from fedhcp.plugins.base import Continue, Drop, Error, Handler, HandlerResult, PluginContext
from fedhcp.server.config import PluginEntry
from fedhcp.store.base import StoreError
from fedhcp.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChainLink:
    name: str
    handler: Handler


class HandlerChain:
    """Ordered handlers for one address family."""

    def __init__(self, family: AddressFamily, links: list[ChainLink]):
        self.family = family
        self.links = tuple(links)

    @property
    def names(self) -> list[str]:
        return [link.name for link in self.links]

    def run(self, request: Packet, reply: Packet) -> HandlerResult:
        """Run all handlers; returns the final Continue or the first Respond/Drop/Error."""
        result: HandlerResult = Continue(reply)
        for link in self.links:
            result = self._call(link, request, result.reply)
            if not isinstance(result, Continue):
                break
        return result

    def _call(self, link: ChainLink, request: Packet, reply: Packet) -> HandlerResult:
        try:
            return link.handler(request, reply)
        except ProtocolError as e:
            logger.info(f"[{link.name}] Dropping request: {e}")
            return Drop(str(e))
        except (FeDHCPError, StoreError) as e:
            logger.error(f"[{link.name}] {type(e).__name__}: {e}")
            return Error(e)
        except Exception as e:
            logger.error(f"[{link.name}] Unexpected error: {e}")
            logger.debug(format_traceback(e))
            return Error(e)


def build_chain(
    entries: tuple[PluginEntry, ...] | list[PluginEntry],
    family: AddressFamily,
    ctx: PluginContext,
) -> HandlerChain:
    """
    Set up every configured plugin for one address family.

    Raises:
        ConfigurationError: On an unknown plugin, a plugin without support
            for ``family``, or a failing plugin setup.
    """
    links = []
    for entry in entries:
        plugin = get_plugin(entry.name)
        setup = plugin.setup6 if family == AddressFamily.IPV6 else plugin.setup4
        if setup is None:
            raise ConfigurationError(f"Plugin '{entry.name}' does not support {family.value}")

        logger.debug(f"Setting up plugin '{entry.name}' for {family.value} with args {entry.args}")
        links.append(ChainLink(entry.name, setup(ctx, *entry.args)))

    chain = HandlerChain(family, links)
    logger.info(f"{family.value} plugin chain: {' -> '.join(chain.names) or '(empty)'}")
    return chain
