"""Parse /proc/net/tcp and /proc/net/tcp6."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv4Address, IPv6Address
from typing import Iterable

TCP_ESTABLISHED = 0x1
TCP_LISTEN = 0xA

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


class Kind(str, Enum):
    """The kind of a /proc/net table."""

    TCP = "tcp"
    TCP6 = "tcp6"


@dataclass(frozen=True)
class Entry:
    kind: Kind
    ip: IPv4Address | IPv6Address
    port: int
    state: int


_PROC_FILES: dict[str, Kind] = {
    "/proc/net/tcp": Kind.TCP,
    "/proc/net/tcp6": Kind.TCP6,
}


def _parse_hex(s: str, bits: int) -> int:
    if not _HEX_RE.match(s):
        raise ValueError(f'invalid hex number "{s}"')
    value = int(s, 16)
    if value >= 1 << bits:
        raise ValueError(f'hex number "{s}" out of range')
    return value


def parse(stream: Iterable[str], kind: Kind | str) -> list[Entry]:
    """Parse the lines of a /proc/net/{tcp,tcp6} table."""
    try:
        kind = Kind(kind)
    except ValueError:
        raise ValueError(f'unexpected kind "{kind}"') from None

    entries: list[Entry] = []
    field_names: dict[str, int] = {}
    for i, raw in enumerate(stream):
        line = raw.strip()
        if not line:
            continue
        fields = line.split()
        if i == 0:
            field_names = {name: j for j, name in enumerate(fields)}
            if "local_address" not in field_names:
                raise ValueError('field "local_address" not found')
            if "st" not in field_names:
                raise ValueError('field "st" not found')
            continue
        addr_idx = field_names.get("local_address", 0)
        st_idx = field_names.get("st", 0)
        if max(addr_idx, st_idx) >= len(fields):
            raise ValueError(f'too few fields in line "{line}"')
        ip, port = parse_address(fields[addr_idx])
        state = _parse_hex(fields[st_idx], 8)
        entries.append(Entry(kind=kind, ip=ip, port=port, state=state))
    return entries


def parse_address(s: str) -> tuple[IPv4Address | IPv6Address, int]:
    """Parse an address such as ``0100007F:0050`` (127.0.0.1:80).

    The address part is little endian per 4 bytes, as on little endian hosts.
    """
    parts = s.split(":", 1)
    if len(parts) != 2:
        raise ValueError(f'unparsable address "{s}"')
    addr, port_str = parts
    if len(addr) not in (8, 32):
        raise ValueError(
            f'unparsable address "{s}", expected length of "{addr}" to be 8 or 32, got {len(addr)}'
        )
    ip_bytes = bytearray()
    for start in range(0, len(addr), 8):
        quartet = addr[start : start + 8]
        if not _HEX_RE.match(quartet):
            raise ValueError(f'unparsable address "{s}": unparsable quartet "{quartet}"')
        ip_bytes += bytes.fromhex(quartet)[::-1]
    ip: IPv4Address | IPv6Address
    ip = IPv4Address(bytes(ip_bytes)) if len(ip_bytes) == 4 else IPv6Address(bytes(ip_bytes))
    try:
        port = _parse_hex(port_str, 16)
    except ValueError:
        raise ValueError(f'unparsable address "{s}": unparsable port "{port_str}"') from None
    return ip, port


def parse_files() -> list[Entry]:
    """Parse /proc/net/tcp and /proc/net/tcp6, skipping those that do not exist."""
    result: list[Entry] = []
    for path, kind in _PROC_FILES.items():
        try:
            with open(path, encoding="ascii") as f:
                result.extend(parse(f, kind))
        except FileNotFoundError:
            continue
    return result