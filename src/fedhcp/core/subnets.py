"""
Subnet selection.

Candidate subnets are tried in the order given; the first one whose
reserved CIDR contains the candidate address wins. The unknown sentinel
matches any existing subnet.
"""

import ipaddress

from fedhcp.core.address import UNKNOWN_IP
from fedhcp.core.exceptions import NoMatchingSubnetError
from fedhcp.models.enums import AddressFamily, ResourceKind
from fedhcp.models.resources import Subnet
from fedhcp.store.base import ResourceStore
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)


class SubnetSelector:
    """Resolves candidate subnet names within one namespace."""

    def __init__(self, store: ResourceStore, namespace: str):
        self.store = store
        self.namespace = namespace

    def discover(self, labels: dict[str, str], family: AddressFamily) -> list[str]:
        """Names of subnets carrying all ``labels`` and of the given family."""
        subnets = self.store.list(ResourceKind.SUBNET, self.namespace, labels)
        names = [s.metadata.name for s in subnets if s.family == family]
        logger.debug(
            f"{len(names)} {family.value} subnet(s) found in {self.namespace} "
            f"for {labels}: {' '.join(names)}"
        )
        return names

    def select(
        self,
        candidates: list[str],
        address,
        family: AddressFamily | None = None,
    ) -> Subnet:
        """
        Return the first candidate subnet containing ``address``.

        Args:
            candidates: Subnet names, in priority order.
            address: Candidate address; the unknown sentinel matches any subnet.
            family: Optional family filter applied to fetched subnets.

        Raises:
            NoMatchingSubnetError: If no candidate matches.
            StoreError: If fetching a subnet fails for a reason other than absence.
        """
        ip = ipaddress.ip_address(str(address))
        unknown = ip == UNKNOWN_IP

        for name in candidates:
            subnet = self.store.get_or_none(ResourceKind.SUBNET, self.namespace, name)
            if subnet is None:
                logger.debug(f"Cannot select subnet {self.namespace}/{name}, does not exist")
                continue
            if family is not None and subnet.family != family:
                logger.debug(f"Cannot select subnet {self.namespace}/{name}, family mismatch")
                continue
            if unknown or self._contains(subnet, ip):
                logger.debug(f"Selecting subnet {self.namespace}/{name}")
                return subnet
            logger.debug(f"Cannot select subnet {self.namespace}/{name}, CIDR mismatch")

        raise NoMatchingSubnetError(str(ip), candidates)

    @staticmethod
    def _contains(subnet: Subnet, ip) -> bool:
        network = subnet.network()
        if network is None:
            logger.error(f"Subnet {subnet.key} has no valid reserved CIDR: {subnet.reserved!r}")
            return False
        return network.version == ip.version and ip in network
