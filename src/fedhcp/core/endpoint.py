"""
Endpoint publishing.

An Endpoint binds a logical name to a MAC and an assigned address. How the
name is found depends on the onboarding mode chosen once at setup:

    - STATIC: the name comes from a configured MAC -> name inventory and
      the record is created or patched under that name
    - DYNAMIC: the name is unknown; the record is looked up by MAC label
      and created with a generated name from a prefix when missing

MACs outside the inventory or prefix filter are skipped without error.
"""

import ipaddress
from dataclasses import dataclass, field

from fedhcp.core.exceptions import ConfigurationError, EndpointConflictError
from fedhcp.models.config import MetalConfig
from fedhcp.models.enums import OnboardingMode, PublishOutcome, ResourceKind
from fedhcp.models.identity import HardwareAddress
from fedhcp.models.resources import LABEL_MAC, LABEL_ORIGIN, ORIGIN, Endpoint, ObjectMeta
from fedhcp.store.base import AlreadyExistsError, ConflictError, ResourceStore
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

# Endpoints are cluster-scoped
ENDPOINT_NAMESPACE = ""


# =============================================================================
# Onboarding
# =============================================================================


@dataclass(frozen=True)
class Onboarding:
    """
    Immutable onboarding settings.

    Attributes:
        mode: STATIC or DYNAMIC.
        inventory: (canonical MAC, name) pairs, STATIC only.
        mac_prefixes: Managed MAC prefixes, DYNAMIC only.
        name_prefix: Generated-name prefix, DYNAMIC only.
    """

    mode: OnboardingMode
    inventory: tuple[tuple[str, str], ...] = ()
    mac_prefixes: tuple[str, ...] = ()
    name_prefix: str = ""
    _names: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_names", dict(self.inventory))

    @classmethod
    def from_config(cls, config: MetalConfig) -> "Onboarding":
        """
        Choose the onboarding mode from the configuration shape.

        A non-empty static inventory wins; otherwise a non-empty MAC prefix
        filter selects dynamic onboarding.

        Raises:
            ConfigurationError: If neither is configured.
        """
        if config.hosts:
            inventory = tuple((entry.mac_address, entry.name) for entry in config.hosts)
            logger.info(f"Static onboarding with {len(inventory)} inventory entries")
            return cls(mode=OnboardingMode.STATIC, inventory=inventory)

        if config.filter.mac_prefix:
            if not config.name_prefix.strip():
                raise ConfigurationError("Dynamic onboarding needs a non-empty 'namePrefix'")
            prefixes = tuple(p.strip().lower() for p in config.filter.mac_prefix)
            logger.info(
                f"Dynamic onboarding for MAC prefixes {list(prefixes)} "
                f"with name prefix '{config.name_prefix}'"
            )
            return cls(
                mode=OnboardingMode.DYNAMIC,
                mac_prefixes=prefixes,
                name_prefix=config.name_prefix,
            )

        raise ConfigurationError("Metal config needs either 'hosts' or 'filter.macPrefix'")

    def name_for(self, mac: HardwareAddress) -> str | None:
        return self._names.get(str(mac))

    def manages(self, mac: HardwareAddress) -> bool:
        if self.mode == OnboardingMode.STATIC:
            return str(mac) in self._names
        return any(mac.has_prefix(p) for p in self.mac_prefixes)


# =============================================================================
# Publisher
# =============================================================================


class EndpointPublisher:
    """Reconciles Endpoint records for one onboarding configuration."""

    def __init__(self, store: ResourceStore, onboarding: Onboarding):
        self.store = store
        self.onboarding = onboarding

    def apply(self, mac: HardwareAddress, address) -> PublishOutcome:
        """
        Publish ``mac`` -> ``address``.

        Returns:
            What happened to the record.

        Raises:
            EndpointConflictError: If a dynamic patch lost a version race.
            StoreError: If the store rejects an operation.
        """
        mac = HardwareAddress.parse(mac)
        ip = ipaddress.ip_address(str(address))

        if not self.onboarding.manages(mac):
            logger.info(f"MAC {mac} is not managed, skipping endpoint")
            return PublishOutcome.SKIPPED

        if self.onboarding.mode == OnboardingMode.STATIC:
            return self._apply_static(mac, ip)
        return self._apply_dynamic(mac, ip)

    @staticmethod
    def _labels(mac: HardwareAddress) -> dict[str, str]:
        return {LABEL_MAC: mac.sanitized, LABEL_ORIGIN: ORIGIN}

    # -------------------------------------------------------------------------
    # Static
    # -------------------------------------------------------------------------

    def _apply_static(self, mac: HardwareAddress, ip) -> PublishOutcome:
        name = self.onboarding.name_for(mac)
        existing = self.store.get_or_none(ResourceKind.ENDPOINT, ENDPOINT_NAMESPACE, name)

        if existing is None:
            endpoint = Endpoint(
                metadata=ObjectMeta(name=name, namespace=ENDPOINT_NAMESPACE, labels=self._labels(mac)),
                mac_address=str(mac),
                ip=str(ip),
            )
            try:
                self.store.create(endpoint)
                logger.info(f"Created endpoint {name} ({mac} -> {ip})")
                return PublishOutcome.CREATED
            except AlreadyExistsError:
                existing = self.store.get(ResourceKind.ENDPOINT, ENDPOINT_NAMESPACE, name)

        if existing.mac_address == str(mac) and ipaddress.ip_address(existing.ip) == ip:
            logger.debug(f"Endpoint {name} up-to-date")
            return PublishOutcome.UNCHANGED

        self.store.patch(
            ResourceKind.ENDPOINT,
            ENDPOINT_NAMESPACE,
            name,
            fields={"mac_address": str(mac), "ip": str(ip)},
            labels=self._labels(mac),
        )
        logger.info(f"Updated endpoint {name} ({mac} -> {ip})")
        return PublishOutcome.UPDATED

    # -------------------------------------------------------------------------
    # Dynamic
    # -------------------------------------------------------------------------

    def _apply_dynamic(self, mac: HardwareAddress, ip) -> PublishOutcome:
        found = self.store.list(
            ResourceKind.ENDPOINT, ENDPOINT_NAMESPACE, {LABEL_MAC: mac.sanitized}
        )

        if not found:
            endpoint = Endpoint(
                metadata=ObjectMeta(
                    generate_name=self.onboarding.name_prefix,
                    namespace=ENDPOINT_NAMESPACE,
                    labels=self._labels(mac),
                ),
                mac_address=str(mac),
                ip=str(ip),
            )
            created = self.store.create(endpoint)
            logger.info(f"Created endpoint {created.metadata.name} ({mac} -> {ip})")
            return PublishOutcome.CREATED

        existing = found[0]
        if len(found) > 1:
            logger.warning(
                f"{len(found)} endpoints carry MAC {mac}, reconciling {existing.metadata.name}"
            )

        if ipaddress.ip_address(existing.ip) == ip:
            logger.debug(f"Endpoint {existing.metadata.name} for {mac} already exists")
            return PublishOutcome.ALREADY_EXISTS

        try:
            self.store.patch(
                ResourceKind.ENDPOINT,
                ENDPOINT_NAMESPACE,
                existing.metadata.name,
                fields={"ip": str(ip)},
                resource_version=existing.metadata.resource_version,
            )
        except ConflictError:
            raise EndpointConflictError(existing.metadata.name)

        logger.info(
            f"Updated endpoint {existing.metadata.name} address {existing.ip} -> {ip}"
        )
        return PublishOutcome.UPDATED
