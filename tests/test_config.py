import pytest
from pydantic import ValidationError

from fedhcp.core.exceptions import ConfigurationError
from fedhcp.models.config import (
    MACFilterConfig,
    MetalConfig,
    OnMetalConfig,
    load_plugin_config,
    parse_label_selector,
)
from fedhcp.server.config import load_server_file, parse_listen, resolve_args

from helpers import write_yaml


def test_parse_label_selector():
    assert parse_label_selector("subnet=dhcp") == ("subnet", "dhcp")
    assert parse_label_selector(" subnet = dhcp ") == ("subnet", "dhcp")
    for bad in ("", "subnet", "subnet=", "=dhcp", "a=b=c"):
        with pytest.raises(ConfigurationError):
            parse_label_selector(bad)


def test_metal_config_aliases(tmp_path):
    path = write_yaml(
        tmp_path / "metal.yaml",
        {
            "namePrefix": "server-",
            "hosts": [{"name": "compute-01", "macAddress": "AA-BB-CC-DD-EE-FF"}],
        },
    )

    config = load_plugin_config(MetalConfig, path)

    assert config.name_prefix == "server-"
    assert config.hosts[0].mac_address == "aa:bb:cc:dd:ee:ff"
    assert config.filter.mac_prefix == ()


def test_config_is_frozen(tmp_path):
    config = load_plugin_config(
        MACFilterConfig, write_yaml(tmp_path / "f.yaml", {"whiteList": ["aa"]})
    )

    with pytest.raises(ValidationError):
        config.white_list = ("bb",)


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "onmetal.yaml"
    path.write_text("")

    assert load_plugin_config(OnMetalConfig, path).prefix_delegation.length == 80


@pytest.mark.parametrize(
    "content",
    [
        "hosts: [",
        "- just\n- a list\n",
        "unknownKey: 1\n",
        "hosts:\n  - name: x\n    macAddress: not-a-mac\n",
    ],
)
def test_invalid_plugin_config(tmp_path, content):
    path = tmp_path / "metal.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_plugin_config(MetalConfig, path)


def test_missing_plugin_config(tmp_path):
    with pytest.raises(ConfigurationError):
        load_plugin_config(MetalConfig, tmp_path / "missing.yaml")


# =============================================================================
# Server file
# =============================================================================


def test_load_server_file(tmp_path):
    path = write_yaml(
        tmp_path / "config.yaml",
        {
            "server6": {
                "listen": ["[::]"],
                "plugins": [
                    {"server_id": "LL 00:de:ad:be:ef:00"},
                    {"macfilter": "macfilter_config.yaml"},
                    {"onmetal": None},
                ],
            }
        },
    )

    server_file = load_server_file(path)

    assert server_file.server4 is None
    names = [(p.name, p.args) for p in server_file.server6.plugins]
    assert names == [
        ("server_id", ("LL", "00:de:ad:be:ef:00")),
        ("macfilter", ("macfilter_config.yaml",)),
        ("onmetal", ()),
    ]


def test_server_file_needs_a_server(tmp_path):
    with pytest.raises(ConfigurationError):
        load_server_file(write_yaml(tmp_path / "config.yaml", {}))
    with pytest.raises(ConfigurationError):
        load_server_file(
            write_yaml(tmp_path / "bad.yaml", {"server6": {"plugins": [{"a": 1, "b": 2}]}})
        )


def test_parse_listen():
    listen = parse_listen("[::]", 547)
    assert (listen.host, listen.port) == ("::", 547)
    assert parse_listen("[2001:db8::1]:5547", 547).port == 5547
    assert parse_listen("0.0.0.0", 67).port == 67
    listen = parse_listen("192.0.2.1:6767", 67)
    assert (listen.host, listen.port) == ("192.0.2.1", 6767)
    assert parse_listen("::1", 547).host == "::1"
    with pytest.raises(ConfigurationError):
        parse_listen("0.0.0.0:http", 67)


def test_resolve_args(tmp_path):
    (tmp_path / "ipam.yaml").write_text("namespace: x\n")

    assert resolve_args(("ipam.yaml", "LL"), tmp_path) == (str(tmp_path / "ipam.yaml"), "LL")
