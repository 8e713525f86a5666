"""IPv4 address range arithmetic.

All arithmetic is done on unsigned 32-bit integers. Python integers never
sign-extend, but shifted masks grow past 32 bits, so every mask and address
is explicitly clamped with ``ADDRESS_MASK``.
"""

import ipaddress
import re

from ..exceptions import InvalidDescriptor, InvalidRange
from ..models.network import AddressRange, UsableRange

ADDRESS_MASK = 0xFFFFFFFF

# Ranges with more usable hosts than this report boundaries and count only
MAX_ENUMERATED_HOSTS = 1022

# CIDR prefixes accepted for sweeping
SWEEP_MIN_PREFIX = 24
SWEEP_MAX_PREFIX = 30

# Highest last octet accepted by the range form (a.b.c.start-end)
MAX_RANGE_OCTET = 254

_DOTTED_QUAD = re.compile(r"[0-9]{1,3}(\.[0-9]{1,3}){3}")
_NUMBER = re.compile(r"[0-9]{1,3}")


def is_valid_ipv4(value: str) -> bool:
    """Check that value is a dotted quad with every octet in 0-255."""
    if not isinstance(value, str) or not _DOTTED_QUAD.fullmatch(value):
        return False
    return all(int(part) <= 255 for part in value.split("."))


def ip_to_int(address: str) -> int:
    """Convert a dotted-quad address to an unsigned 32-bit integer."""
    if not is_valid_ipv4(address):
        raise InvalidRange(f"Invalid IPv4 address '{address}'")
    a, b, c, d = (int(part) for part in address.split("."))
    return ((a << 24) | (b << 16) | (c << 8) | d) & ADDRESS_MASK


def int_to_ip(value: int) -> str:
    """Convert an unsigned 32-bit integer to a dotted-quad address."""
    return str(ipaddress.IPv4Address(value & ADDRESS_MASK))


def _check_prefix(prefix_length: int) -> int:
    if isinstance(prefix_length, bool) or not isinstance(prefix_length, int):
        raise InvalidRange(f"Prefix length must be an integer, got {prefix_length!r}")
    if not 0 <= prefix_length <= 32:
        raise InvalidRange(f"Prefix length must be between 0 and 32, got {prefix_length}")
    return prefix_length


def prefix_mask(prefix_length: int) -> int:
    """Return the network mask for a prefix length."""
    _check_prefix(prefix_length)
    return (ADDRESS_MASK << (32 - prefix_length)) & ADDRESS_MASK


def usable_host_count(prefix_length: int) -> int:
    """Number of usable hosts, excluding network and broadcast addresses."""
    _check_prefix(prefix_length)
    return max(0, 2 ** (32 - prefix_length) - 2)


def usable_addresses(network_address: str, prefix_length: int) -> UsableRange:
    """Return the usable host addresses of a network.

    Raises:
        InvalidRange: If the address is malformed or the prefix is out of range.
    """
    count = usable_host_count(prefix_length)
    base = ip_to_int(network_address) & prefix_mask(prefix_length)
    if count == 0:
        return UsableRange()

    first = base + 1
    last = base + count
    addresses: list[str] = []
    if count <= MAX_ENUMERATED_HOSTS:
        addresses = [int_to_ip(value) for value in range(first, last + 1)]

    return UsableRange(
        first=int_to_ip(first),
        last=int_to_ip(last),
        count=count,
        addresses=addresses,
    )


def expand(address_range: AddressRange) -> UsableRange:
    """Return the usable addresses of a range, honouring last-octet bounds."""
    if not address_range.is_octet_range:
        return usable_addresses(address_range.network_address, address_range.prefix_length)

    base = ip_to_int(address_range.network_address) & prefix_mask(24)
    addresses = [
        int_to_ip(base + octet)
        for octet in range(address_range.first_host, address_range.last_host + 1)
    ]
    if not addresses:
        return UsableRange()
    return UsableRange(
        first=addresses[0],
        last=addresses[-1],
        count=len(addresses),
        addresses=addresses,
    )


def contains(address: str, network_address: str, prefix_length: int) -> bool:
    """Check whether address lies inside network_address/prefix_length.

    Malformed addresses are never inside any network.
    """
    mask = prefix_mask(prefix_length)
    if not is_valid_ipv4(address) or not is_valid_ipv4(network_address):
        return False
    return (ip_to_int(address) & mask) == (ip_to_int(network_address) & mask)


def parse_descriptor(
    text: str,
    min_prefix: int = SWEEP_MIN_PREFIX,
    max_prefix: int = SWEEP_MAX_PREFIX,
) -> AddressRange:
    """Parse a CIDR (``a.b.c.d/n``) or last-octet range (``a.b.c.start-end``) descriptor.

    Raises:
        InvalidDescriptor: If the text matches neither form or is out of bounds.
    """
    text = (text or "").strip()

    if "/" in text:
        address, _, prefix_text = text.partition("/")
        address = address.strip()
        prefix_text = prefix_text.strip()
        if not is_valid_ipv4(address) or not _NUMBER.fullmatch(prefix_text):
            raise InvalidDescriptor(f"Invalid CIDR descriptor '{text}'")
        prefix = int(prefix_text)
        if not min_prefix <= prefix <= max_prefix:
            raise InvalidDescriptor(
                f"CIDR range must be between /{min_prefix} and /{max_prefix}, got /{prefix}"
            )
        base = ip_to_int(address) & prefix_mask(prefix)
        return AddressRange(network_address=int_to_ip(base), prefix_length=prefix)

    if "-" in text:
        start_text, _, end_text = text.partition("-")
        start_text = start_text.strip()
        end_text = end_text.strip()
        if not is_valid_ipv4(start_text) or not _NUMBER.fullmatch(end_text):
            raise InvalidDescriptor(f"Invalid range descriptor '{text}', use a.b.c.start-end")
        octets = [int(part) for part in start_text.split(".")]
        start, end = octets[3], int(end_text)
        if start >= end or end > MAX_RANGE_OCTET:
            raise InvalidDescriptor(
                f"Invalid range '{text}': start must be below end and end at most {MAX_RANGE_OCTET}"
            )
        network = ".".join(str(octet) for octet in octets[:3]) + ".0"
        return AddressRange(
            network_address=network, prefix_length=24, first_host=start, last_host=end
        )

    raise InvalidDescriptor(f"Unrecognised range descriptor '{text}'")
