"""
Plugin building blocks.

A plugin is a name plus optional DHCPv4/DHCPv6 setup functions. Setup runs
once, parses the plugin's arguments and returns a handler; handlers run per
request and return a :data:`HandlerResult`:

    - Continue(reply): pass the (possibly augmented) reply to the next handler
    - Respond(reply): stop the chain and send this reply as is
    - Drop(reason): stop the chain, send nothing
    - Error(cause): stop the chain after a hard failure, send nothing
"""

from dataclasses import dataclass
from typing import Callable, Union

from scapy.packet import Packet

from fedhcp.core.exceptions import ConfigurationError
from fedhcp.core.reservation import CREATE_TIMEOUT, DELETE_TIMEOUT
from fedhcp.core.waiter import DEFAULT_POLL_INTERVAL
from fedhcp.store.base import ResourceStore

DEFAULT_LIFETIME = 24 * 60 * 60


# =============================================================================
# Handler Results
# =============================================================================


@dataclass(frozen=True)
class Continue:
    reply: Packet


@dataclass(frozen=True)
class Respond:
    reply: Packet


@dataclass(frozen=True)
class Drop:
    reason: str = ""


@dataclass(frozen=True)
class Error:
    cause: BaseException


HandlerResult = Union[Continue, Respond, Drop, Error]

Handler = Callable[[Packet, Packet], HandlerResult]


# =============================================================================
# Plugin Definition
# =============================================================================


@dataclass(frozen=True)
class PluginContext:
    """Shared, immutable resources handed to every plugin at setup."""

    store: ResourceStore | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    create_timeout: float = CREATE_TIMEOUT
    delete_timeout: float = DELETE_TIMEOUT
    preferred_lifetime: int = DEFAULT_LIFETIME
    valid_lifetime: int = DEFAULT_LIFETIME

    def require_store(self) -> ResourceStore:
        if self.store is None:
            raise ConfigurationError("This plugin needs a resource store")
        return self.store


SetupFunc = Callable[..., Handler]


@dataclass(frozen=True)
class Plugin:
    """
    A named plugin.

    Attributes:
        name: Name used in the server configuration.
        setup4: ``setup4(ctx, *args) -> handler`` or None if DHCPv4 is unsupported.
        setup6: ``setup6(ctx, *args) -> handler`` or None if DHCPv6 is unsupported.
    """

    name: str
    setup4: SetupFunc | None = None
    setup6: SetupFunc | None = None


def single_arg(plugin: str, args: tuple[str, ...]) -> str:
    """
    Return the one argument a plugin expects (its config file path).

    Raises:
        ConfigurationError: On any other argument count.
    """
    if len(args) != 1:
        raise ConfigurationError(
            f"Exactly one argument must be passed to the {plugin} plugin, got {len(args)}"
        )
    return args[0]
