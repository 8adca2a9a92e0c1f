"""Hardware (link-layer) address handling."""

from __future__ import annotations

import re
from dataclasses import dataclass

_SEPARATORS = re.compile(r"[:\-.]")


@dataclass(frozen=True)
class HardwareAddress:
    """
    A 6-byte Ethernet address.

    Equality is on the raw bytes, so parsing is case-insensitive. ``str()``
    yields the canonical lower-case colon form; :attr:`sanitized` drops the
    colons for use as a label value.
    """

    octets: bytes

    def __post_init__(self):
        if len(self.octets) != 6:
            raise ValueError(
                f"Hardware address must be 6 bytes, got {len(self.octets)}"
            )

    @classmethod
    def parse(cls, value: HardwareAddress | str | bytes) -> HardwareAddress:
        """
        Parse a MAC address.

        Accepts ``aa:bb:cc:dd:ee:ff``, ``AA-BB-CC-DD-EE-FF``, ``aabb.ccdd.eeff``,
        a bare 12-digit hex string, or 6 raw bytes (longer byte strings, such
        as a 16-byte BOOTP ``chaddr``, are truncated to the first 6 bytes).

        Raises:
            ValueError: If the value is not a valid 6-byte address.
        """
        if isinstance(value, HardwareAddress):
            return value
        if isinstance(value, (bytes, bytearray)):
            if len(value) < 6:
                raise ValueError(f"Hardware address too short: {bytes(value)!r}")
            return cls(bytes(value[:6]))

        digits = _SEPARATORS.sub("", value.strip())
        if len(digits) != 12:
            raise ValueError(f"Invalid hardware address: '{value}'")
        try:
            return cls(bytes.fromhex(digits))
        except ValueError:
            raise ValueError(f"Invalid hardware address: '{value}'")

    @property
    def sanitized(self) -> str:
        """Lower-case hex without separators, e.g. ``aabbccddeeff``."""
        return self.octets.hex()

    def has_prefix(self, prefix: str) -> bool:
        """Case-insensitive textual prefix match against the canonical form."""
        return str(self).startswith(prefix.strip().lower())

    def __str__(self) -> str:
        return ":".join(f"{b:02x}" for b in self.octets)
