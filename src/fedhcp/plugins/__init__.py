"""Plugin registry."""

from fedhcp.core.exceptions import ConfigurationError
from fedhcp.plugins import (
    bluefield,
    ipam,
    macfilter,
    management,
    metal,
    onmetal,
    oob,
    server_id,
)
from fedhcp.plugins.base import Plugin

PLUGINS: dict[str, Plugin] = {
    p.name: p
    for p in (
        server_id.plugin,
        bluefield.plugin,
        macfilter.plugin,
        management.plugin,
        ipam.plugin,
        onmetal.plugin,
        oob.plugin,
        metal.plugin,
    )
}


def get_plugin(name: str) -> Plugin:
    """
    Look up a registered plugin.

    Raises:
        ConfigurationError: If no plugin has this name.
    """
    try:
        return PLUGINS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown plugin '{name}', available: {', '.join(sorted(PLUGINS))}"
        )
