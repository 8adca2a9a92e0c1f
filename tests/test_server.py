from pathlib import Path

import pytest
from scapy.layers.dhcp import BOOTP
from scapy.layers.dhcp6 import (
    DHCP6_Advertise,
    DHCP6_RelayReply,
    DHCP6_Reply,
    DHCP6_Request,
    DHCP6OptIA_NA,
    DHCP6OptRelayMsg,
    DHCP6OptServerId,
)

from fedhcp.core.exceptions import AddressDerivationError, ConfigurationError, WaitTimeoutError
from fedhcp.models.enums import AddressFamily
from fedhcp.plugins.base import Continue, Drop, Error, Respond
from fedhcp.protocol import dhcp4, dhcp6
from fedhcp.server.app import build_chains, process4, process6, reply4_destination
from fedhcp.server.chain import ChainLink, HandlerChain, build_chain
from fedhcp.server.config import PluginEntry, load_server_file
from fedhcp.store.base import StoreError

from helpers import SERVER_MAC, relayed, reply6, request4, solicit, write_yaml


def _chain(*handlers, family=AddressFamily.IPV6):
    return HandlerChain(family, [ChainLink(f"h{i}", h) for i, h in enumerate(handlers)])


# =============================================================================
# Chain
# =============================================================================


def test_chain_runs_in_order_and_stops_on_drop():
    calls = []

    def first(req, resp):
        calls.append("first")
        return Continue(resp)

    def dropper(req, resp):
        calls.append("dropper")
        return Drop("filtered")

    def never(req, resp):
        calls.append("never")
        return Continue(resp)

    result = _chain(first, dropper, never).run(None, "reply")

    assert result == Drop("filtered")
    assert calls == ["first", "dropper"]


def test_chain_passes_reply_along():
    result = _chain(
        lambda req, resp: Continue(resp + ["a"]),
        lambda req, resp: Continue(resp + ["b"]),
    ).run(None, [])

    assert result == Continue(["a", "b"])


def test_respond_short_circuits():
    calls = []

    def responder(req, resp):
        calls.append("responder")
        return Respond(["final"])

    def never(req, resp):
        calls.append("never")
        return Continue(resp)

    assert _chain(responder, never).run(None, []) == Respond(["final"])
    assert calls == ["responder"]


def test_protocol_errors_drop():
    def handler(req, resp):
        raise AddressDerivationError("no mac")

    assert isinstance(_chain(handler).run(None, "reply"), Drop)


@pytest.mark.parametrize(
    "error",
    [WaitTimeoutError("reservation x", 10.0), StoreError("down"), RuntimeError("bug")],
)
def test_hard_errors_become_error(error):
    def handler(req, resp):
        raise error

    result = _chain(handler).run(None, "reply")

    assert isinstance(result, Error)
    assert result.cause is error


def test_build_chain(ctx, tmp_path):
    path = write_yaml(tmp_path / "macfilter.yaml", {"blackList": ["00:11"]})

    chain = build_chain(
        [PluginEntry("macfilter", (path,)), PluginEntry("onmetal", ())],
        AddressFamily.IPV6,
        ctx,
    )

    assert chain.names == ["macfilter", "onmetal"]


def test_build_chain_rejects_unsupported_family(ctx, tmp_path):
    path = write_yaml(tmp_path / "ipam.yaml", {"namespace": "ns"})

    with pytest.raises(ConfigurationError):
        build_chain([PluginEntry("ipam", (path,))], AddressFamily.IPV4, ctx)
    with pytest.raises(ConfigurationError):
        build_chain([PluginEntry("nope", ())], AddressFamily.IPV6, ctx)


# =============================================================================
# Request processing
# =============================================================================


def test_process6_relayed_onmetal(ctx):
    chain = build_chain([PluginEntry("onmetal", ())], AddressFamily.IPV6, ctx)
    request = relayed(solicit(), link="2001:db8::10")

    payload = process6(chain, bytes(request), SERVER_MAC)

    outer = dhcp6.decode(payload)
    assert isinstance(outer, DHCP6_RelayReply)
    assert outer.linkaddr == "2001:db8::10"
    inner = dhcp6.get_option(outer, DHCP6OptRelayMsg).message
    assert isinstance(inner, DHCP6_Advertise)
    assert inner.trid == 0x1234
    assert dhcp6.get_option(inner, DHCP6OptServerId).duid.lladdr == SERVER_MAC
    assert dhcp6.get_option(inner, DHCP6OptIA_NA).ianaopts[0].addr == "2001:db8::11"


def test_process6_drop_sends_nothing(ctx):
    chain = build_chain([PluginEntry("onmetal", ())], AddressFamily.IPV6, ctx)

    assert process6(chain, bytes(solicit()), SERVER_MAC) is None
    assert process6(chain, b"\xff\x00", SERVER_MAC) is None
    assert process6(chain, b"", SERVER_MAC) is None


def test_process4_offer(tmp_path, ctx):
    path = write_yaml(tmp_path / "metal.yaml", {"filter": {"macPrefix": ["00:11"]}})
    chain = build_chain([PluginEntry("metal", (path,))], AddressFamily.IPV4, ctx)
    request = request4(msg_type="discover")

    reply = process4(chain, bytes(request), "10.0.0.254")

    assert dhcp4.message_type(reply) == "offer"
    assert reply[BOOTP].xid == 0x42
    assert reply[BOOTP].siaddr == "10.0.0.254"
    assert dhcp4.get_option(reply, "server_id") == "10.0.0.254"


def test_process4_release_gets_no_reply(ctx):
    chain = HandlerChain(AddressFamily.IPV4, [])

    assert process4(chain, bytes(request4(msg_type="release")), None) is None


def test_reply4_destination():
    def reply_for(**kwargs):
        return dhcp4.new_reply(request4(**kwargs), None)

    assert reply4_destination(reply_for(giaddr="10.0.0.1")) == ("10.0.0.1", 67)
    assert reply4_destination(reply_for(ciaddr="10.0.0.5")) == ("10.0.0.5", 68)
    assert reply4_destination(reply_for()) == ("255.255.255.255", 68)


def test_reply6_keeps_client_id():
    request = relayed(solicit())
    reply = reply6(request)

    assert isinstance(reply, DHCP6_Advertise)
    assert dhcp6.get_option(reply, DHCP6OptServerId) is not None


def test_example_configuration_builds(ctx):
    example = Path(__file__).parent.parent / "example"

    chains = build_chains(load_server_file(example / "config.yaml"), ctx, example)

    assert chains[AddressFamily.IPV6].names == ["server_id", "macfilter", "ipam", "onmetal", "metal"]
    assert chains[AddressFamily.IPV4].names == ["server_id", "oob", "metal"]


def test_process6_sends_immediate_reply(ctx, tmp_path):
    path = write_yaml(tmp_path / "bluefield.yaml", {"bluefieldIP": "2001:db8::1"})
    chain = build_chain(
        [PluginEntry("bluefield", (path,)), PluginEntry("onmetal", ())], AddressFamily.IPV6, ctx
    )
    msg = DHCP6_Request(trid=0x77) / DHCP6OptIA_NA(iaid=3)

    payload = process6(chain, bytes(relayed(msg, link="2001:db8::10")), SERVER_MAC)

    inner = dhcp6.get_option(dhcp6.decode(payload), DHCP6OptRelayMsg).message
    assert isinstance(inner, DHCP6_Reply)
    (address,) = dhcp6.get_option(inner, DHCP6OptIA_NA).ianaopts
    assert address.addr == "2001:db8::1"
