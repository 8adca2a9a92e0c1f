import ipaddress

import pytest
from scapy.layers.dhcp import BOOTP
from scapy.layers.dhcp6 import (
    DUID_LL,
    DHCP6_Advertise,
    DHCP6_Renew,
    DHCP6_Reply,
    DHCP6_Request,
    DHCP6OptClientId,
    DHCP6OptIA_NA,
    DHCP6OptIA_PD,
    DHCP6OptServerId,
)

from fedhcp.core.exceptions import (
    AddressDerivationError,
    ConfigurationError,
    NoMatchingSubnetError,
)
from fedhcp.models.enums import ReservationState, ResourceKind
from fedhcp.models.resources import AddressReservation, ObjectMeta
from fedhcp.plugins import (
    PLUGINS,
    bluefield,
    get_plugin,
    ipam,
    macfilter,
    management,
    metal,
    onmetal,
    oob,
    server_id,
)
from fedhcp.plugins.base import Continue, Drop, PluginContext, Respond
from fedhcp.protocol import dhcp4, dhcp6

from helpers import MAC, direct, relayed, reply6, request4, solicit, write_yaml


def _reservations(store, namespace=None):
    return store.list(ResourceKind.ADDRESS_RESERVATION, namespace)


def _finished(store, address, namespace="default", mac="aabbccddeeff"):
    store.create(
        AddressReservation(
            metadata=ObjectMeta(
                name=f"{mac}-fedhcp-s", namespace=namespace, labels={"mac": mac}
            ),
            subnet="s",
            reserved=address,
            state=ReservationState.FINISHED,
        )
    )


def test_registry():
    assert sorted(PLUGINS) == [
        "bluefield",
        "ipam",
        "macfilter",
        "management",
        "metal",
        "onmetal",
        "oob",
        "server_id",
    ]
    assert get_plugin("oob").setup4 is not None
    assert get_plugin("ipam").setup4 is None
    with pytest.raises(ConfigurationError):
        get_plugin("file")


def test_store_required(tmp_path):
    path = write_yaml(tmp_path / "ipam.yaml", {"namespace": "ipam-ns", "subnets": ["a"]})

    with pytest.raises(ConfigurationError):
        ipam.setup6(PluginContext(), path)


# =============================================================================
# ipam
# =============================================================================


@pytest.fixture
def ipam_handler(tmp_path, ctx):
    path = write_yaml(
        tmp_path / "ipam.yaml",
        {"namespace": "ipam-ns", "subnets": ["ipam-other", "ipam-subnet"]},
    )
    return ipam.setup6(ctx, path)


def test_ipam_reserves_incremented_link_address(store, add_subnet, controller, ipam_handler):
    add_subnet("ipam-other", "2001:db8:0:2::/64", namespace="ipam-ns")
    add_subnet("ipam-subnet", "2001:db8:0:1::/64", namespace="ipam-ns")
    request = relayed(solicit())
    reply = reply6(request)

    result = ipam_handler(request, reply)

    assert result == Continue(reply)
    assert dhcp6.get_option(reply, DHCP6OptIA_NA) is None
    (reservation,) = _reservations(store, "ipam-ns")
    assert reservation.subnet == "ipam-subnet"
    assert reservation.address == "2001:db8:0:1::2"
    assert reservation.reserved == "2001:db8:0:1::2"


def test_ipam_no_matching_subnet_continues(store, add_subnet, ipam_handler):
    add_subnet("ipam-other", "2001:db8:0:2::/64", namespace="ipam-ns")
    request = relayed(solicit())

    result = ipam_handler(request, reply6(request))

    assert isinstance(result, Continue)
    assert _reservations(store) == []


def test_ipam_drops_direct_requests(ipam_handler):
    request = direct(solicit())

    assert isinstance(ipam_handler(request, reply6(request)), Drop)


def test_ipam_requires_single_argument(ctx):
    with pytest.raises(ConfigurationError):
        ipam.setup6(ctx)


# =============================================================================
# oob
# =============================================================================


@pytest.fixture
def oob_config(tmp_path):
    return write_yaml(tmp_path / "oob.yaml", {"namespace": "oob-ns", "subnetLabel": "subnet=dhcp"})


def test_oob_v6_leases_address(store, add_subnet, controller, ctx, oob_config):
    add_subnet("oob-v6", "2001:db8:0:1::/64", namespace="oob-ns", labels={"subnet": "dhcp"})
    handler = oob.setup6(ctx, oob_config)
    request = relayed(solicit())
    reply = reply6(request)

    result = handler(request, reply)

    assert isinstance(result, Continue)
    iana = dhcp6.get_option(result.reply, DHCP6OptIA_NA)
    assert iana.iaid == 7
    (address,) = iana.ianaopts
    assert address.addr == "2001:db8:0:1::1"
    assert address.preflft == address.validlft == 86400

    (reservation,) = _reservations(store, "oob-ns")
    assert reservation.metadata.labels == {
        "mac": "aabbccddeeff",
        "origin": "fedhcp",
        "subnet": "dhcp",
    }


def test_oob_v6_without_iana(store, add_subnet, ctx, oob_config):
    add_subnet("oob-v6", "2001:db8:0:1::/64", namespace="oob-ns", labels={"subnet": "dhcp"})
    handler = oob.setup6(ctx, oob_config)
    request = relayed(solicit(iana=False))
    reply = reply6(request)

    result = handler(request, reply)

    assert isinstance(result, Continue)
    assert dhcp6.get_option(result.reply, DHCP6OptIA_NA) is None
    assert _reservations(store) == []


def test_oob_v6_without_subnets_fails(ctx, oob_config):
    handler = oob.setup6(ctx, oob_config)
    request = relayed(solicit())

    with pytest.raises(NoMatchingSubnetError):
        handler(request, reply6(request))


def test_oob_v4_requested_address(store, add_subnet, controller, ctx, oob_config):
    add_subnet("oob-v4", "10.0.0.0/24", namespace="oob-ns", labels={"subnet": "dhcp"})
    handler = oob.setup4(ctx, oob_config)
    request = request4(requested="10.0.0.7")

    result = handler(request, dhcp4.new_reply(request, None))

    assert result.reply[BOOTP].yiaddr == "10.0.0.7"
    assert _reservations(store, "oob-ns")[0].address == "10.0.0.7"


def test_oob_v4_discover_without_hint(store, add_subnet, controller, ctx, oob_config):
    add_subnet("oob-v6", "2001:db8::/64", namespace="oob-ns", labels={"subnet": "dhcp"})
    add_subnet("oob-v4", "10.0.0.0/24", namespace="oob-ns", labels={"subnet": "dhcp"})
    handler = oob.setup4(ctx, oob_config)
    request = request4(msg_type="discover")

    result = handler(request, dhcp4.new_reply(request, None))

    assert result.reply[BOOTP].yiaddr == "10.0.0.1"
    (reservation,) = _reservations(store, "oob-ns")
    assert reservation.subnet == "oob-v4"
    assert reservation.address is None


@pytest.mark.parametrize(
    "data",
    [
        {"subnetLabel": "subnet=dhcp"},
        {"namespace": "oob-ns", "subnetLabel": "subnet"},
        {"namespace": "oob-ns", "subnetLabel": "=dhcp"},
        {"namespace": "oob-ns", "subnetLabel": "a=b=c"},
    ],
)
def test_oob_invalid_config(tmp_path, ctx, data):
    path = write_yaml(tmp_path / "oob.yaml", data)

    with pytest.raises(ConfigurationError):
        oob.setup6(ctx, path)


# =============================================================================
# metal
# =============================================================================


@pytest.fixture
def metal_static(tmp_path):
    return write_yaml(
        tmp_path / "metal.yaml",
        {"hosts": [{"name": "compute-01", "macAddress": MAC}]},
    )


def test_metal_publishes_reserved_v6_address(store, ctx, metal_static):
    _finished(store, "2001:db8::5", namespace="ipam-ns")
    handler = metal.setup6(ctx, metal_static)
    request = relayed(solicit())
    reply = reply6(request)

    assert handler(request, reply) == Continue(reply)

    endpoint = store.get(ResourceKind.ENDPOINT, "", "compute-01")
    assert endpoint.ip == "2001:db8::5"
    assert endpoint.mac_address == MAC


def test_metal_v4_uses_v4_reservation(store, ctx, metal_static):
    _finished(store, "2001:db8::5", namespace="a")
    store.create(
        AddressReservation(
            metadata=ObjectMeta(name="v4", namespace="b", labels={"mac": "aabbccddeeff"}),
            subnet="s",
            reserved="10.0.0.5",
            state=ReservationState.FINISHED,
        )
    )
    handler = metal.setup4(ctx, metal_static)
    request = request4()

    assert isinstance(handler(request, dhcp4.new_reply(request, None)), Continue)
    assert store.get(ResourceKind.ENDPOINT, "", "compute-01").ip == "10.0.0.5"


def test_metal_unknown_mac_continues(store, ctx, metal_static):
    _finished(store, "2001:db8::5", mac="001122334455")
    handler = metal.setup6(ctx, metal_static)
    request = relayed(solicit(), lladdr="00:11:22:33:44:55")

    assert isinstance(handler(request, reply6(request)), Continue)
    assert store.list(ResourceKind.ENDPOINT) == []


def test_metal_without_reservation_continues(store, ctx, metal_static):
    handler = metal.setup6(ctx, metal_static)
    request = relayed(solicit())

    assert isinstance(handler(request, reply6(request)), Continue)
    assert store.list(ResourceKind.ENDPOINT) == []


def test_metal_drops_direct_requests(ctx, metal_static):
    handler = metal.setup6(ctx, metal_static)
    request = direct(solicit())

    assert isinstance(handler(request, reply6(request)), Drop)


def test_metal_requires_onboarding(tmp_path, ctx):
    path = write_yaml(tmp_path / "metal.yaml", {"namePrefix": "server-"})

    with pytest.raises(ConfigurationError):
        metal.setup6(ctx, path)


# =============================================================================
# onmetal
# =============================================================================


def test_onmetal_address_and_prefix(ctx):
    handler = onmetal.setup6(ctx)
    request = relayed(
        solicit(iapd=True), link="2001:db8:1111:2222:3333:4444:5555:6666"
    )

    result = handler(request, reply6(request))

    iana = dhcp6.get_option(result.reply, DHCP6OptIA_NA)
    assert iana.ianaopts[0].addr == "2001:db8:1111:2222:3333:4444:5555:6667"
    assert iana.ianaopts[0].preflft == iana.ianaopts[0].validlft == 30
    iapd = dhcp6.get_option(result.reply, DHCP6OptIA_PD)
    assert iapd.iaid == 9
    assert iapd.T1 == iapd.T2 == 86400
    (prefix,) = iapd.iapdopt
    assert prefix.prefix == "2001:db8:1111:2222:3333::"
    assert prefix.plen == 80


def test_onmetal_prefix_hint(ctx):
    handler = onmetal.setup6(ctx)
    request = relayed(solicit(iana=False, iapd=True, hint=64), link="2001:db8:1:2::10")

    result = handler(request, reply6(request))

    assert dhcp6.get_option(result.reply, DHCP6OptIA_NA) is None
    (prefix,) = dhcp6.get_option(result.reply, DHCP6OptIA_PD).iapdopt
    assert prefix.prefix == "2001:db8:1:2::"
    assert prefix.plen == 64


def test_onmetal_nothing_requested(ctx):
    handler = onmetal.setup6(ctx)
    request = relayed(solicit(iana=False))
    reply = reply6(request)

    assert handler(request, reply) == Continue(reply)
    assert dhcp6.get_option(reply, DHCP6OptIA_NA) is None


def test_onmetal_configured_length(tmp_path, ctx):
    path = write_yaml(tmp_path / "onmetal.yaml", {"prefixDelegation": {"length": 96}})
    handler = onmetal.setup6(ctx, path)
    request = relayed(solicit(iana=False, iapd=True), link="2001:db8::1:2:3")

    (prefix,) = dhcp6.get_option(handler(request, reply6(request)).reply, DHCP6OptIA_PD).iapdopt

    assert prefix.plen == 96
    assert ipaddress.IPv6Address(prefix.prefix) == ipaddress.IPv6Address("2001:db8::1:0:0")


@pytest.mark.parametrize("length", [0, 128])
def test_onmetal_rejects_prefix_length(tmp_path, ctx, length):
    path = write_yaml(tmp_path / "onmetal.yaml", {"prefixDelegation": {"length": length}})

    with pytest.raises(ConfigurationError):
        onmetal.setup6(ctx, path)


def test_onmetal_too_many_arguments(tmp_path, ctx):
    path = write_yaml(tmp_path / "onmetal.yaml", {})

    with pytest.raises(ConfigurationError):
        onmetal.setup6(ctx, path, path)


# =============================================================================
# macfilter
# =============================================================================


def _macfilter(tmp_path, ctx, **lists):
    return macfilter.setup6(ctx, write_yaml(tmp_path / "macfilter.yaml", lists))


def test_macfilter_whitelist(tmp_path, ctx):
    handler = _macfilter(tmp_path, ctx, whiteList=["aa:bb"])
    allowed = relayed(solicit())
    denied = relayed(solicit(), lladdr="00:11:22:33:44:55")

    assert isinstance(handler(allowed, reply6(allowed)), Continue)
    assert isinstance(handler(denied, reply6(denied)), Drop)


def test_macfilter_blacklist(tmp_path, ctx):
    handler = _macfilter(tmp_path, ctx, whiteList=["aa:bb"], blackList=["aa:bb:cc:dd"])
    request = relayed(solicit())

    assert isinstance(handler(request, reply6(request)), Drop)


def test_macfilter_direct_request_uses_client_duid(tmp_path, ctx):
    handler = _macfilter(tmp_path, ctx, blackList=["00:11"])
    allowed = direct(solicit())
    denied = direct(solicit(mac="00:11:22:33:44:55"))
    anonymous = direct(solicit(mac=None))

    assert isinstance(handler(allowed, reply6(allowed)), Continue)
    assert isinstance(handler(denied, reply6(denied)), Drop)
    assert isinstance(handler(anonymous, reply6(anonymous)), Drop)


# =============================================================================
# server_id
# =============================================================================


def test_server_id_v6_replaces_duid(ctx):
    handler = server_id.setup6(ctx, "LL", "02:00:00:00:00:01")
    request = relayed(solicit())

    reply = handler(request, reply6(request)).reply

    assert dhcp6.get_option(reply, DHCP6OptServerId).duid.lladdr == "02:00:00:00:00:01"


def test_server_id_v4_sets_address(ctx):
    handler = server_id.setup4(ctx, "10.0.0.254")
    request = request4(msg_type="discover")

    reply = handler(request, dhcp4.new_reply(request, None)).reply

    assert reply[BOOTP].siaddr == "10.0.0.254"
    assert dhcp4.get_option(reply, "server_id") == "10.0.0.254"


@pytest.mark.parametrize("args", [(), ("EN", "00:de:ad:be:ef:00"), ("LL", "nope")])
def test_server_id_invalid_v6(ctx, args):
    with pytest.raises(ConfigurationError):
        server_id.setup6(ctx, *args)


# =============================================================================
# management
# =============================================================================


def test_management_address_from_peer(ctx):
    handler = management.setup6(ctx)
    request = relayed(solicit(), link="2001:db8::10")

    result = handler(request, reply6(request))

    assert isinstance(result, Continue)
    iana = dhcp6.get_option(result.reply, DHCP6OptIA_NA)
    assert iana.iaid == 7
    (address,) = iana.ianaopts
    assert address.addr == "2001:db8::aabb:ccfe:fedd:eeff"
    assert address.preflft == address.validlft == 86400


def test_management_prefers_link_layer_option(ctx):
    handler = management.setup6(ctx)
    request = relayed(solicit(), link="2001:db8::10", lladdr="01:23:45:67:89:ab")

    result = handler(request, reply6(request))

    iana = dhcp6.get_option(result.reply, DHCP6OptIA_NA)
    assert ipaddress.IPv6Address(iana.ianaopts[0].addr) == ipaddress.IPv6Address(
        "2001:db8::0123:45fe:fe67:89ab"
    )


def test_management_without_iana(ctx):
    handler = management.setup6(ctx)
    request = relayed(solicit(iana=False))
    reply = reply6(request)

    assert handler(request, reply) == Continue(reply)
    assert dhcp6.get_option(reply, DHCP6OptIA_NA) is None


def test_management_drops_unusable_requests(ctx):
    handler = management.setup6(ctx)
    request = direct(solicit())
    assert isinstance(handler(request, reply6(request)), Drop)

    request = relayed(solicit(), peer="fe80::1")
    with pytest.raises(AddressDerivationError):
        handler(request, reply6(request))


def test_management_takes_no_arguments(ctx):
    with pytest.raises(ConfigurationError):
        management.setup6(ctx, "management.yaml")


# =============================================================================
# bluefield
# =============================================================================


@pytest.fixture
def bluefield_handler(tmp_path, ctx):
    path = write_yaml(tmp_path / "bluefield.yaml", {"bulefieldIP": "2001:db8::1"})
    return bluefield.setup6(ctx, path)


def _bluefield_lease(reply):
    iana = dhcp6.get_option(reply, DHCP6OptIA_NA)
    assert (iana.iaid, iana.T1, iana.T2) == (7, 3600, 7200)
    (address,) = iana.ianaopts
    assert (address.preflft, address.validlft) == (86400, 172800)
    assert dhcp6.get_option(reply, DHCP6OptServerId).duid.lladdr == "00:11:22:33:44:55"
    return address.addr


def test_bluefield_advertises_static_address(bluefield_handler):
    request = relayed(solicit())

    result = bluefield_handler(request, reply6(request))

    assert isinstance(result, Continue)
    assert isinstance(result.reply, DHCP6_Advertise)
    assert _bluefield_lease(result.reply) == "2001:db8::1"


def test_bluefield_replies_to_request(bluefield_handler):
    msg = DHCP6_Request(trid=0x99) / DHCP6OptClientId(duid=DUID_LL(lladdr=MAC)) / DHCP6OptIA_NA(iaid=7)
    request = relayed(msg)

    result = bluefield_handler(request, reply6(request))

    assert isinstance(result, Respond)
    assert isinstance(result.reply, DHCP6_Reply)
    assert result.reply.trid == 0x99
    assert _bluefield_lease(result.reply) == "2001:db8::1"


def test_bluefield_drops_other_messages(bluefield_handler):
    request = relayed(DHCP6_Renew(trid=1) / DHCP6OptIA_NA(iaid=7))

    assert isinstance(bluefield_handler(request, reply6(request)), Drop)


@pytest.mark.parametrize("data", [{}, {"bluefieldIP": "10.0.0.1"}, {"bluefieldIP": "nope"}])
def test_bluefield_invalid_config(tmp_path, ctx, data):
    path = write_yaml(tmp_path / "bluefield.yaml", data)

    with pytest.raises(ConfigurationError):
        bluefield.setup6(ctx, path)
