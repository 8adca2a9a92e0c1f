"""
Responder configuration.

Two layers:

    - ResponderConfig: process settings (store location, waits, lifetimes,
      logging), modified through the global ``config`` before starting
    - ServerFile: the plugin chain file (config.yaml), one ordered plugin
      list per address family

Example config.yaml:

    server6:
      listen:
        - "[::]:547"
      plugins:
        - macfilter: macfilter_config.yaml
        - ipam: ipam_config.yaml
        - onmetal: onmetal_config.yaml
        - metal: metal_config.yaml
    server4:
      listen:
        - "0.0.0.0:67"
      plugins:
        - oob: oob_config.yaml
"""

import shlex
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from fedhcp.core.exceptions import ConfigurationError
from fedhcp.models.config import load_yaml
from fedhcp.models.enums import LogLevel

DHCPV4_SERVER_PORT = 67
DHCPV6_SERVER_PORT = 547


# =============================================================================
# Process Configuration
# =============================================================================


@dataclass
class ResponderConfig:
    """
    Responder process configuration.

    Attributes:
        CONFIG_FILE: Path to the plugin chain file.
        STORE_URL: Resource store service URL; empty uses DB_FILE directly.
        DB_FILE: SQLite file used when STORE_URL is empty.
        SERVER_MAC: MAC used for the DHCPv6 server DUID (DUID-LL).
        SERVER4_ADDRESS: Own IPv4 address, sent as siaddr and server identifier.
        LOG_LEVEL: Logging verbosity level.
    """

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    CONFIG_FILE: str = "config.yaml"
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Resource Store
    # -------------------------------------------------------------------------

    STORE_URL: str = ""
    DB_FILE: str = "/var/lib/fedhcp/store.db"
    STORE_TIMEOUT_SECONDS: float = 5.0

    # -------------------------------------------------------------------------
    # Server Identity
    # -------------------------------------------------------------------------

    SERVER_MAC: str = "00:de:ad:be:ef:00"
    SERVER4_ADDRESS: str = ""

    # -------------------------------------------------------------------------
    # Bounded Waits
    # -------------------------------------------------------------------------

    POLL_INTERVAL_SECONDS: float = 0.5
    CREATE_TIMEOUT_SECONDS: float = 10.0
    DELETE_TIMEOUT_SECONDS: float = 5.0

    # -------------------------------------------------------------------------
    # Lease Lifetimes
    # -------------------------------------------------------------------------

    PREFERRED_LIFETIME_SECONDS: int = 24 * 60 * 60
    VALID_LIFETIME_SECONDS: int = 24 * 60 * 60

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO


config = ResponderConfig()


# =============================================================================
# Plugin Chain File
# =============================================================================


@dataclass(frozen=True)
class PluginEntry:
    name: str
    args: tuple[str, ...]


@dataclass(frozen=True)
class ListenAddress:
    host: str
    port: int


def parse_listen(value: str, default_port: int) -> ListenAddress:
    """
    Parse ``host``, ``host:port``, ``[v6]`` or ``[v6]:port``.

    Raises:
        ConfigurationError: On a malformed port.
    """
    value = value.strip()
    port = default_port
    if value.startswith("["):
        host, _, rest = value[1:].partition("]")
        if rest.startswith(":"):
            port = rest[1:]
    elif value.count(":") == 1:
        host, port = value.split(":")
    else:
        host = value

    try:
        port = int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid listen port in '{value}'")
    return ListenAddress(host or ("::" if ":" in value else "0.0.0.0"), port)


class ServerSection(BaseModel):
    """One address family's listeners and plugin chain."""

    model_config = ConfigDict(frozen=True)

    listen: tuple[str, ...] = ()
    plugins: tuple[PluginEntry, ...] = ()

    @field_validator("plugins", mode="before")
    @classmethod
    def _parse_plugins(cls, value):
        entries = []
        for item in value or []:
            if isinstance(item, PluginEntry):
                entries.append(item)
                continue
            if isinstance(item, str):
                item = {item: None}
            if not isinstance(item, dict) or len(item) != 1:
                raise ValueError(f"Plugin entry must be a single 'name: args' mapping: {item!r}")
            name, args = next(iter(item.items()))
            entries.append(PluginEntry(str(name), tuple(shlex.split(str(args))) if args else ()))
        return entries


class ServerFile(BaseModel):
    """Top level of config.yaml."""

    model_config = ConfigDict(frozen=True)

    server4: ServerSection | None = None
    server6: ServerSection | None = None


def load_server_file(path: str | Path) -> ServerFile:
    """
    Load the plugin chain file.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    data = load_yaml(path)
    try:
        server_file = ServerFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid server configuration in {path}: {e}")

    if server_file.server4 is None and server_file.server6 is None:
        raise ConfigurationError(f"{path} configures neither server4 nor server6")
    return server_file


def resolve_args(args: tuple[str, ...], base_dir: Path) -> tuple[str, ...]:
    """Resolve arguments naming existing files relative to ``base_dir``."""
    resolved = []
    for arg in args:
        candidate = base_dir / arg
        resolved.append(str(candidate) if not Path(arg).is_absolute() and candidate.exists() else arg)
    return tuple(resolved)
