"""
Reference address allocator.

Stands in for the external address controller: every Processing
reservation is resolved against its subnet's reserved CIDR and moved to
Finished with an assigned address, or to Failed when that is impossible.
"""

import asyncio
import ipaddress

from fedhcp.models.enums import ReservationState, ResourceKind
from fedhcp.models.resources import AddressReservation
from fedhcp.store.base import ConflictError, NotFoundError, ResourceStore
from fedhcp.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL = 0.5


class AddressAllocator:
    """Resolves Processing reservations, one pass at a time."""

    def __init__(self, store: ResourceStore):
        self.store = store

    def reconcile_once(self) -> int:
        """
        Resolve all Processing reservations.

        Returns:
            Number of reservations moved to a terminal state.
        """
        resolved = 0
        for reservation in self.store.list(ResourceKind.ADDRESS_RESERVATION):
            if reservation.state != ReservationState.PROCESSING:
                continue
            if self._resolve(reservation):
                resolved += 1
        return resolved

    def _resolve(self, reservation: AddressReservation) -> bool:
        namespace = reservation.metadata.namespace
        subnet = self.store.get_or_none(ResourceKind.SUBNET, namespace, reservation.subnet)
        if subnet is None:
            return self._finish(reservation, None, f"subnet {reservation.subnet} not found")

        network = subnet.network()
        if network is None:
            return self._finish(reservation, None, f"subnet {subnet.key} has no reserved CIDR")

        used = self._used_addresses(namespace, reservation.subnet)

        if reservation.address:
            address = ipaddress.ip_address(reservation.address)
            if address not in network:
                return self._finish(reservation, None, f"{address} not in {network}")
            if address in used:
                return self._finish(reservation, None, f"{address} already reserved")
            return self._finish(reservation, address)

        for address in network.hosts():
            if address not in used:
                return self._finish(reservation, address)
        return self._finish(reservation, None, f"subnet {subnet.key} exhausted")

    def _used_addresses(self, namespace: str, subnet_name: str) -> set:
        return {
            r.reserved_address()
            for r in self.store.list(ResourceKind.ADDRESS_RESERVATION, namespace)
            if r.subnet == subnet_name and r.reserved and r.is_live()
        }

    def _finish(self, reservation: AddressReservation, address, message: str | None = None) -> bool:
        if address is not None:
            fields = {"state": ReservationState.FINISHED.value, "reserved": str(address)}
        else:
            fields = {"state": ReservationState.FAILED.value, "message": message}

        try:
            self.store.patch(
                ResourceKind.ADDRESS_RESERVATION,
                reservation.metadata.namespace,
                reservation.metadata.name,
                fields=fields,
                resource_version=reservation.metadata.resource_version,
            )
        except (ConflictError, NotFoundError):
            # Changed or removed since listing; picked up again next pass
            return False

        if address is not None:
            logger.info(f"Reservation {reservation.key} assigned {address}")
        else:
            logger.warning(f"Reservation {reservation.key} failed: {message}")
        return True


async def allocator_loop(store: ResourceStore, interval: float = DEFAULT_INTERVAL):
    """Background task resolving reservations every ``interval`` seconds."""
    allocator = AddressAllocator(store)
    logger.info(f"Address allocator started (interval {interval}s)")

    while True:
        try:
            await asyncio.to_thread(allocator.reconcile_once)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Allocator pass failed: {e}")
            logger.debug(format_traceback(e))
        await asyncio.sleep(interval)
