import pytest
from fastapi.testclient import TestClient

from fedhcp.models.enums import ReservationState, ResourceKind
from fedhcp.models.resources import AddressReservation, Endpoint, ObjectMeta
from fedhcp.store.app import create_app
from fedhcp.store.base import AlreadyExistsError, ConflictError, NotFoundError
from fedhcp.store.http import HttpResourceStore


def _reservation(name="r1", namespace="ns", labels=None, **fields):
    return AddressReservation(
        metadata=ObjectMeta(name=name, namespace=namespace, labels=labels or {}),
        subnet=fields.pop("subnet", "s1"),
        **fields,
    )


@pytest.fixture(params=["sqlite", "http"])
def any_store(request, store):
    """The same contract through the SQLite store and through the HTTP API."""
    if request.param == "sqlite":
        yield store
        return
    http_store = HttpResourceStore(client=TestClient(create_app(store)))
    yield http_store
    http_store.close()


# =============================================================================
# Contract
# =============================================================================


def test_create_assigns_identity(any_store):
    created = any_store.create(_reservation())

    assert created.metadata.uid
    assert created.metadata.resource_version == 1
    assert created.state == ReservationState.PROCESSING
    assert any_store.get(ResourceKind.ADDRESS_RESERVATION, "ns", "r1") == created


def test_create_duplicate_name(any_store):
    any_store.create(_reservation())

    with pytest.raises(AlreadyExistsError):
        any_store.create(_reservation())


def test_same_name_in_other_namespace(any_store):
    any_store.create(_reservation())
    other = any_store.create(_reservation(namespace="other"))

    assert other.metadata.namespace == "other"


def test_generate_name(any_store):
    endpoint = Endpoint(
        metadata=ObjectMeta(generate_name="compute-"),
        mac_address="aa:bb:cc:dd:ee:ff",
        ip="10.0.0.1",
    )
    first = any_store.create(endpoint)
    second = any_store.create(endpoint)

    assert first.metadata.name.startswith("compute-")
    assert len(first.metadata.name) == len("compute-") + 5
    assert first.metadata.name != second.metadata.name


def test_get_missing(any_store):
    with pytest.raises(NotFoundError):
        any_store.get(ResourceKind.SUBNET, "ns", "missing")
    assert any_store.get_or_none(ResourceKind.SUBNET, "ns", "missing") is None


def test_list_filters(any_store):
    any_store.create(_reservation("a", labels={"mac": "aabbccddeeff"}))
    any_store.create(_reservation("b", labels={"mac": "001122334455"}))
    any_store.create(_reservation("c", namespace="other", labels={"mac": "aabbccddeeff"}))

    everywhere = any_store.list(ResourceKind.ADDRESS_RESERVATION, None, {"mac": "aabbccddeeff"})
    in_ns = any_store.list(ResourceKind.ADDRESS_RESERVATION, "ns")

    assert sorted(r.metadata.name for r in everywhere) == ["a", "c"]
    assert [r.metadata.name for r in in_ns] == ["a", "b"]
    assert any_store.list(ResourceKind.SUBNET) == []


def test_patch_fields_and_labels(any_store):
    any_store.create(_reservation(labels={"mac": "aabbccddeeff"}))

    patched = any_store.patch(
        ResourceKind.ADDRESS_RESERVATION,
        "ns",
        "r1",
        fields={"state": "Finished", "reserved": "10.0.0.1"},
        labels={"subnet": "dhcp"},
    )

    assert patched.state == ReservationState.FINISHED
    assert patched.reserved == "10.0.0.1"
    assert patched.metadata.labels == {"mac": "aabbccddeeff", "subnet": "dhcp"}
    assert patched.metadata.resource_version == 2


def test_patch_version_guard(any_store):
    created = any_store.create(_reservation())
    any_store.patch(ResourceKind.ADDRESS_RESERVATION, "ns", "r1", labels={"x": "1"})

    with pytest.raises(ConflictError):
        any_store.patch(
            ResourceKind.ADDRESS_RESERVATION,
            "ns",
            "r1",
            fields={"state": "Failed"},
            resource_version=created.metadata.resource_version,
        )
    assert any_store.get(ResourceKind.ADDRESS_RESERVATION, "ns", "r1").state == (
        ReservationState.PROCESSING
    )


def test_patch_missing(any_store):
    with pytest.raises(NotFoundError):
        any_store.patch(ResourceKind.ENDPOINT, "", "missing", fields={"ip": "10.0.0.1"})


def test_delete_and_recreate_changes_uid(any_store):
    first = any_store.create(_reservation())
    any_store.delete(ResourceKind.ADDRESS_RESERVATION, "ns", "r1")

    assert any_store.get_or_none(ResourceKind.ADDRESS_RESERVATION, "ns", "r1") is None
    with pytest.raises(NotFoundError):
        any_store.delete(ResourceKind.ADDRESS_RESERVATION, "ns", "r1")

    second = any_store.create(_reservation())
    assert second.metadata.uid != first.metadata.uid


def test_delete_uid_guard(any_store):
    old = any_store.create(_reservation())
    any_store.delete(ResourceKind.ADDRESS_RESERVATION, "ns", "r1")
    replacement = any_store.create(_reservation())

    with pytest.raises(ConflictError):
        any_store.delete(ResourceKind.ADDRESS_RESERVATION, "ns", "r1", uid=old.metadata.uid)
    assert any_store.get(ResourceKind.ADDRESS_RESERVATION, "ns", "r1").metadata.uid == (
        replacement.metadata.uid
    )

    any_store.delete(ResourceKind.ADDRESS_RESERVATION, "ns", "r1", uid=replacement.metadata.uid)
    assert any_store.get_or_none(ResourceKind.ADDRESS_RESERVATION, "ns", "r1") is None


# =============================================================================
# HTTP API
# =============================================================================


def test_api_error_detail(store):
    client = TestClient(create_app(store))
    store.create(_reservation())

    response = client.get("/api/AddressReservation/missing", params={"namespace": "ns"})
    assert response.status_code == 404
    assert response.json()["detail"]["reason"] == "NotFound"

    response = client.post("/api/AddressReservation", json=_reservation().model_dump(mode="json"))
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "AlreadyExists"


def test_api_label_query(store):
    client = TestClient(create_app(store))
    store.create(_reservation("a", labels={"mac": "aabbccddeeff", "origin": "fedhcp"}))
    store.create(_reservation("b", labels={"mac": "aabbccddeeff"}))

    response = client.get(
        "/api/AddressReservation",
        params=[("label", "mac=aabbccddeeff"), ("label", "origin=fedhcp")],
    )

    assert response.status_code == 200
    assert [item["metadata"]["name"] for item in response.json()] == ["a"]


def test_api_unknown_kind(store):
    client = TestClient(create_app(store))

    assert client.get("/api/Pod").status_code == 422
