"""Data types exchanged with the guest agent."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Any

IPV4_LOOPBACK1 = IPv4Address("127.0.0.1")

_TIME_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def _format_time(dt: datetime) -> str:
    text = dt.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parse_time(text: str) -> datetime:
    m = _TIME_RE.match(text)
    if m is None:
        raise ValueError(f'invalid time "{text}"')
    iso = m["base"]
    if m["frac"]:
        iso += "." + m["frac"][:6].ljust(6, "0")
    iso += "+00:00" if m["tz"] == "Z" else m["tz"]
    return datetime.fromisoformat(iso)


@dataclass(frozen=True)
class IPPort:
    """An IP address together with a port."""

    ip: IPv4Address | IPv6Address
    port: int

    def __str__(self) -> str:
        ip = self.ip
        mapped = getattr(ip, "ipv4_mapped", None)
        if mapped is not None:
            ip = mapped
        if ip.version == 6:
            return f"[{ip}]:{self.port}"
        return f"{ip}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        return {"ip": str(self.ip), "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IPPort:
        return cls(ip=ip_address(data["ip"]), port=int(data["port"]))


@dataclass
class Info:
    """Information reported by the guest agent.

    ``local_ports`` holds listening ports on 127.0.0.1 and 0.0.0.0.
    """

    local_ports: list[IPPort] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"localPorts": [p.to_dict() for p in self.local_ports]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Info:
        return cls(local_ports=[IPPort.from_dict(p) for p in data.get("localPorts") or []])


@dataclass
class Event:
    """A change in the guest's state. The first event lists all ports as added."""

    time: datetime | None = None
    local_ports_added: list[IPPort] = field(default_factory=list)
    local_ports_removed: list[IPPort] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        """Return whether the event carries nothing apart from its time."""
        return not (self.local_ports_added or self.local_ports_removed or self.errors)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.time is not None:
            out["time"] = _format_time(self.time)
        if self.local_ports_added:
            out["localPortsAdded"] = [p.to_dict() for p in self.local_ports_added]
        if self.local_ports_removed:
            out["localPortsRemoved"] = [p.to_dict() for p in self.local_ports_removed]
        if self.errors:
            out["errors"] = list(self.errors)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        raw_time = data.get("time")
        return cls(
            time=_parse_time(raw_time) if raw_time else None,
            local_ports_added=[IPPort.from_dict(p) for p in data.get("localPortsAdded") or []],
            local_ports_removed=[IPPort.from_dict(p) for p in data.get("localPortsRemoved") or []],
            errors=list(data.get("errors") or []),
        )