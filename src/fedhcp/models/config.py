"""
Plugin configuration models.

Each plugin reads one YAML file at setup. The file is validated into a
frozen pydantic model that is shared by reference with every request
handler for the process lifetime. Anything malformed raises
:class:`ConfigurationError` so the plugin refuses to install its handler.

Example metal_config.yaml:

    namePrefix: server-
    hosts:
      - name: compute-01
        macAddress: aa:bb:cc:dd:ee:ff
    filter:
      macPrefix:
        - "aa:bb:cc"
"""

import ipaddress
from pathlib import Path

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from fedhcp.core.exceptions import ConfigurationError
from fedhcp.models.identity import HardwareAddress
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PREFIX_DELEGATION_LENGTH = 80
DEFAULT_NAME_PREFIX = "compute-"


class FrozenConfig(BaseModel):
    """Base for immutable configuration models."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


# =============================================================================
# Label Selector
# =============================================================================


def parse_label_selector(selector: str) -> tuple[str, str]:
    """
    Split a ``key=value`` label selector.

    Raises:
        ConfigurationError: If the selector is not of the form key=value.
    """
    if not selector or "=" not in selector:
        raise ConfigurationError(
            f"Invalid subnet label: '{selector}', should be 'key=value'"
        )
    key, _, value = selector.partition("=")
    key = key.strip()
    value = value.strip()
    if not key or not value or "=" in value:
        raise ConfigurationError(
            f"Invalid subnet label: '{selector}', should be 'key=value'"
        )
    return key, value


# =============================================================================
# Plugin Configurations
# =============================================================================


class IPAMConfig(FrozenConfig):
    """Reserve addresses in an explicit, ordered list of subnets."""

    namespace: str = ""
    subnets: tuple[str, ...] = ()


class OOBConfig(FrozenConfig):
    """Reserve addresses in subnets discovered by label (out-of-band networks)."""

    namespace: str = Field(..., min_length=1)
    subnet_label: str = Field(..., alias="subnetLabel")

    @field_validator("subnet_label")
    @classmethod
    def _check_label(cls, v: str) -> str:
        parse_label_selector(v)
        return v

    @property
    def label(self) -> tuple[str, str]:
        return parse_label_selector(self.subnet_label)


class InventoryEntry(FrozenConfig):
    """Static MAC -> name mapping."""

    name: str
    mac_address: str = Field(..., alias="macAddress")

    @field_validator("mac_address")
    @classmethod
    def _normalize_mac(cls, v: str) -> str:
        return str(HardwareAddress.parse(v))


class MACPrefixFilter(FrozenConfig):
    mac_prefix: tuple[str, ...] = Field(default=(), alias="macPrefix")


class MetalConfig(FrozenConfig):
    """Endpoint onboarding: a static inventory or a dynamic MAC-prefix filter."""

    name_prefix: str = Field(default=DEFAULT_NAME_PREFIX, alias="namePrefix", min_length=1)
    hosts: tuple[InventoryEntry, ...] = ()
    filter: MACPrefixFilter = Field(default_factory=MACPrefixFilter)


class PrefixDelegation(FrozenConfig):
    length: int = DEFAULT_PREFIX_DELEGATION_LENGTH


class OnMetalConfig(FrozenConfig):
    """Link-address addressing with optional prefix delegation."""

    prefix_delegation: PrefixDelegation = Field(
        default_factory=PrefixDelegation, alias="prefixDelegation"
    )


class BluefieldConfig(FrozenConfig):
    """The one address handed to every client."""

    # Older files spell the key "bulefieldIP"
    bluefield_ip: str = Field(
        ..., validation_alias=AliasChoices("bluefieldIP", "bulefieldIP", "bluefield_ip")
    )

    @field_validator("bluefield_ip")
    @classmethod
    def _check_ip(cls, v: str) -> str:
        return str(ipaddress.IPv6Address(v.strip()))


class MACFilterConfig(FrozenConfig):
    """Allow/deny lists of MAC prefixes."""

    white_list: tuple[str, ...] = Field(default=(), alias="whiteList")
    black_list: tuple[str, ...] = Field(default=(), alias="blackList")


# =============================================================================
# Loading
# =============================================================================


def load_yaml(path: str | Path) -> dict:
    """
    Read a YAML mapping from disk.

    An empty file yields an empty mapping.

    Raises:
        ConfigurationError: If the file is unreadable or not a mapping.
    """
    logger.debug(f"Reading config file {path}")
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config file {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def load_plugin_config(model: type[FrozenConfig], path: str | Path):
    """
    Load and validate one plugin configuration file.

    Args:
        model: The configuration model class.
        path: Path to the YAML file.

    Returns:
        A frozen instance of ``model``.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    data = load_yaml(path)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}")
