import threading

import pytest

from fedhcp.models.enums import AddressFamily
from fedhcp.models.resources import ObjectMeta, Subnet
from fedhcp.plugins.base import PluginContext
from fedhcp.store.allocator import AddressAllocator
from fedhcp.store.sqlite import SQLiteResourceStore

from helpers import POLL


@pytest.fixture
def store(tmp_path):
    store = SQLiteResourceStore(str(tmp_path / "store.db"))
    yield store
    store.close()


@pytest.fixture
def controller(store):
    """Address allocator resolving reservations in a background thread."""
    allocator = AddressAllocator(store)
    stop = threading.Event()

    def loop():
        while not stop.is_set():
            allocator.reconcile_once()
            stop.wait(POLL)

    thread = threading.Thread(target=loop, daemon=True)
    thread.start()
    yield allocator
    stop.set()
    thread.join(timeout=5)


@pytest.fixture
def ctx(store):
    return PluginContext(
        store=store,
        poll_interval=POLL,
        create_timeout=3.0,
        delete_timeout=3.0,
    )


@pytest.fixture
def add_subnet(store):
    def _add(name, reserved, namespace="default", labels=None, family=None):
        if family is None:
            family = AddressFamily.IPV6 if ":" in reserved else AddressFamily.IPV4
        return store.create(
            Subnet(
                metadata=ObjectMeta(name=name, namespace=namespace, labels=labels or {}),
                family=family,
                reserved=reserved,
            )
        )

    return _add
