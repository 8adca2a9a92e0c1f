"""
Address reservation lifecycle.

The reservation manager owns AddressReservation records created on behalf
of DHCP clients. An external controller moves each record from Processing
to Finished (address assigned) or Failed; this module only creates, cleans
up and waits.

Per (MAC, subnet) pair there is at most one live (non-Failed) record:

    - a live record is reused as-is (and patched if labels are missing)
    - a Failed record is deleted, and its removal awaited, before creating;
      the delete is guarded by uid so a concurrent replacement survives
    - records are named deterministically, so concurrent creators collide
      on "already exists" and converge on the winner's record
"""

import ipaddress

from fedhcp.core.address import is_unknown
from fedhcp.core.exceptions import ReservationFailedError
from fedhcp.core.waiter import DEFAULT_POLL_INTERVAL, await_terminal_state
from fedhcp.models.enums import AddressFamily, ReservationState, ResourceKind
from fedhcp.models.identity import HardwareAddress
from fedhcp.models.resources import (
    LABEL_MAC,
    LABEL_ORIGIN,
    ORIGIN,
    AddressReservation,
    ObjectMeta,
    Subnet,
)
from fedhcp.store.base import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceStore,
    StoreError,
)
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

CREATE_TIMEOUT = 10.0
DELETE_TIMEOUT = 5.0


def reservation_name(mac: HardwareAddress, subnet_name: str) -> str:
    """Deterministic record name for a (MAC, subnet) pair."""
    return f"{mac.sanitized}-{ORIGIN}-{subnet_name}"


class ReservationManager:
    """
    Creates and observes AddressReservation records in one namespace.

    Args:
        store: Resource store.
        namespace: Namespace for reservations. ``None`` is only valid for
            the read-only lookups and spans all namespaces.
        extra_labels: Labels added to every reservation (e.g. the oob
            subnet label) and patched onto existing ones that lack them.
        create_timeout: Ceiling for a new reservation to reach a terminal state.
        delete_timeout: Ceiling for a deleted reservation to disappear.
        poll_interval: Delay between store polls while waiting.
    """

    def __init__(
        self,
        store: ResourceStore,
        namespace: str | None,
        extra_labels: dict[str, str] | None = None,
        create_timeout: float = CREATE_TIMEOUT,
        delete_timeout: float = DELETE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.store = store
        self.namespace = namespace
        self.extra_labels = dict(extra_labels or {})
        self.create_timeout = create_timeout
        self.delete_timeout = delete_timeout
        self.poll_interval = poll_interval

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup_by_mac(self, mac: HardwareAddress) -> list[AddressReservation]:
        """All reservations labelled with this MAC."""
        mac = HardwareAddress.parse(mac)
        return self.store.list(
            ResourceKind.ADDRESS_RESERVATION, self.namespace, {LABEL_MAC: mac.sanitized}
        )

    def find_reserved_address(
        self, mac: HardwareAddress, family: AddressFamily
    ) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
        """First assigned address of the given family for this MAC, or None."""
        for reservation in self.lookup_by_mac(mac):
            address = reservation.reserved_address()
            if address is not None and AddressFamily.of(address) == family:
                return address
        return None

    # =========================================================================
    # Reserve
    # =========================================================================

    def reserve(
        self,
        mac: HardwareAddress,
        subnet: Subnet | str,
        address=None,
        exact: bool = False,
    ) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        """
        Ensure a live reservation for (mac, subnet) and return its address.

        Args:
            mac: Client hardware address.
            subnet: Subnet record or name.
            address: Candidate address.
            exact: Ask the controller for exactly ``address``. Ignored for
                the unknown sentinel.

        Returns:
            The address assigned by the controller.

        Raises:
            ReservationFailedError: If the reservation ends up Failed.
            WaitTimeoutError: If a bounded wait is exceeded.
            StoreError: If the store rejects an operation.
        """
        if self.namespace is None:
            raise ValueError("reserve() requires a namespace")

        mac = HardwareAddress.parse(mac)
        subnet_name = subnet.metadata.name if isinstance(subnet, Subnet) else subnet

        existing = self._find_live(mac, subnet_name)
        if existing is not None:
            logger.info(
                f"Reservation {existing.key} for {mac} already exists in subnet "
                f"{subnet_name} ({existing.state.value})"
            )
            existing = self._apply_extra_labels(existing)
            if existing.state == ReservationState.FINISHED:
                reservation = existing
            else:
                reservation = self._await_finished(existing.metadata.name)
        else:
            reservation = self._create(mac, subnet_name, address, exact)

        if reservation.reserved_address() is None:
            raise ReservationFailedError(reservation.metadata.name, "no reserved address")
        return reservation.reserved_address()

    def _find_live(self, mac: HardwareAddress, subnet_name: str) -> AddressReservation | None:
        for reservation in self.lookup_by_mac(mac):
            if reservation.subnet != subnet_name:
                logger.debug(
                    f"Reservation {reservation.key} for {mac} belongs to subnet "
                    f"{reservation.subnet}, ignoring"
                )
                continue
            if reservation.state == ReservationState.FAILED:
                logger.info(
                    f"Failed reservation {reservation.key} in subnet {subnet_name} found, deleting"
                )
                self._delete_and_wait(reservation)
                continue
            return reservation
        return None

    def _create(
        self, mac: HardwareAddress, subnet_name: str, address, exact: bool
    ) -> AddressReservation:
        name = reservation_name(mac, subnet_name)
        labels = dict(self.extra_labels)
        labels.update({LABEL_MAC: mac.sanitized, LABEL_ORIGIN: ORIGIN})

        requested = None
        if exact and address is not None and not is_unknown(address):
            requested = str(address)

        reservation = AddressReservation(
            metadata=ObjectMeta(name=name, namespace=self.namespace, labels=labels),
            subnet=subnet_name,
            address=requested,
        )
        try:
            created = self.store.create(reservation)
            logger.info(
                f"Created reservation {created.key} in subnet {subnet_name}"
                + (f" for address {requested}" if requested else "")
            )
        except AlreadyExistsError:
            logger.info(
                f"Reservation {self.namespace}/{name} is being created concurrently, "
                f"waiting for it"
            )

        reservation = self._await_finished(name)
        logger.info(
            f"Reservation {reservation.key} assigned {reservation.reserved} "
            f"in subnet {subnet_name}"
        )
        return reservation

    # =========================================================================
    # Waiting
    # =========================================================================

    def _await_finished(self, name: str) -> AddressReservation:
        def fetch():
            return self.store.get_or_none(
                ResourceKind.ADDRESS_RESERVATION, self.namespace, name
            )

        reservation = await_terminal_state(
            fetch,
            lambda r: r is None or r.state.is_terminal,
            timeout=self.create_timeout,
            interval=self.poll_interval,
            description=f"reservation {self.namespace}/{name}",
        )
        if reservation is None:
            raise ReservationFailedError(name, "reservation disappeared while waiting")
        if reservation.state == ReservationState.FAILED:
            raise ReservationFailedError(name, reservation.message)
        return reservation

    def _delete_and_wait(self, reservation: AddressReservation) -> None:
        name = reservation.metadata.name
        uid = reservation.metadata.uid
        try:
            self.store.delete(ResourceKind.ADDRESS_RESERVATION, self.namespace, name, uid=uid)
        except NotFoundError:
            logger.debug(f"Reservation {reservation.key} already gone")
            return
        except ConflictError:
            logger.info(
                f"Failed reservation {reservation.key} was already replaced, keeping the new one"
            )
            return

        def fetch():
            return self.store.get_or_none(
                ResourceKind.ADDRESS_RESERVATION, self.namespace, name
            )

        # A record under the same name with a new uid is a replacement, not the old one
        await_terminal_state(
            fetch,
            lambda r: r is None or r.metadata.uid != uid,
            timeout=self.delete_timeout,
            interval=self.poll_interval,
            description=f"deletion of reservation {reservation.key}",
        )
        logger.debug(f"Old reservation {reservation.key} deleted from subnet {reservation.subnet}")

    # =========================================================================
    # Labels
    # =========================================================================

    def _apply_extra_labels(self, reservation: AddressReservation) -> AddressReservation:
        missing = {
            k: v
            for k, v in self.extra_labels.items()
            if reservation.metadata.labels.get(k) != v
        }
        if not missing:
            logger.debug(f"Labels of reservation {reservation.key} up-to-date")
            return reservation

        try:
            patched = self.store.patch(
                ResourceKind.ADDRESS_RESERVATION,
                reservation.metadata.namespace,
                reservation.metadata.name,
                labels=missing,
            )
        except StoreError as e:
            logger.error(f"Error applying labels {missing} to reservation {reservation.key}: {e}")
            return reservation

        logger.debug(f"Labels {missing} applied to reservation {reservation.key}")
        return patched
