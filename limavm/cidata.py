"""Build the arguments for the cloud-init data of an instance."""

from __future__ import annotations

import logging
import os
import posixpath
import socket
from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Callable, Iterable, Mapping
from urllib.parse import SplitResult, urlsplit, urlunsplit

from limavm.guessarg import validate_identifier

log = logging.getLogger(__name__)

SLIRP_GATEWAY = "192.168.5.2"

PROVISION_MODE_SYSTEM = "system"
PROVISION_MODE_USER = "user"
PROVISION_MODE_BOOT = "boot"

_LOWER_PROXY_VARS = ("ftp_proxy", "http_proxy", "https_proxy", "no_proxy")
_UPPER_PROXY_VARS = tuple(name.upper() for name in _LOWER_PROXY_VARS)

LookupIP = Callable[[str], Iterable["IPv4Address | IPv6Address"]]


@dataclass
class Cert:
    """A certificate, one stripped line per item."""

    lines: list[str] = field(default_factory=list)


@dataclass
class BootCmds:
    """The lines of a boot-time provisioning script."""

    lines: list[str] = field(default_factory=list)


@dataclass
class Mount:
    tag: str = ""
    mount_point: str = ""  # absolute path, accessible by the user
    type: str = ""
    options: str = ""


@dataclass
class Disk:
    name: str
    device: str


@dataclass
class Network:
    mac_address: str
    interface: str


@dataclass
class Provision:
    """A provisioning script and the mode it runs in."""

    mode: str
    script: str


@dataclass
class TemplateArgs:
    """The values substituted into the cloud-init templates."""

    name: str = ""  # instance name
    iid: str = ""  # instance id
    user: str = ""  # user name
    uid: int = 0
    ssh_pub_keys: list[str] = field(default_factory=list)
    mounts: list[Mount] = field(default_factory=list)
    mount_type: str = ""
    disks: list[Disk] = field(default_factory=list)
    containerd_system: bool = False
    containerd_user: bool = False
    networks: list[Network] = field(default_factory=list)
    slirp_nic_name: str = ""
    slirp_gateway: str = ""
    slirp_dns: str = ""
    slirp_ip_address: str = ""
    udp_dns_local_port: int = 0
    tcp_dns_local_port: int = 0
    env: dict[str, str] = field(default_factory=dict)
    dns_addresses: list[str] = field(default_factory=list)
    ca_certs_remove_defaults: bool | None = None
    ca_certs_trusted: list[Cert] = field(default_factory=list)
    host_home_mount_point: str = ""
    boot_cmds: list[BootCmds] = field(default_factory=list)
    rosetta_enabled: bool = False
    rosetta_bin_fmt: bool = False


def validate_template_args(args: TemplateArgs) -> None:
    """Raise ValueError if *args* cannot be used to generate cloud-init data."""
    validate_identifier(args.name)
    validate_identifier(args.user)
    if args.user == "root":
        raise ValueError('field User must not be "root"')
    if args.uid == 0:
        raise ValueError("field UID must not be 0")
    if not args.ssh_pub_keys:
        raise ValueError("field SSHPubKeys must be set")
    for i, m in enumerate(args.mounts):
        if not posixpath.isabs(m.mount_point):
            raise ValueError(f'field mounts[{i}] must be absolute, got "{m.mount_point}"')


def _default_lookup_ip(host: str) -> list[IPv4Address | IPv6Address]:
    if not host:
        return []
    try:
        infos = socket.getaddrinfo(host, None)
    except OSError as e:
        log.debug("lookup %s: %s", host, e)
        return []
    result: list[IPv4Address | IPv6Address] = []
    for info in infos:
        try:
            addr = ip_address(info[4][0].split("%", 1)[0])
        except ValueError:
            continue
        if addr not in result:
            result.append(addr)
    return result


def _parse_proxy_url(value: str) -> SplitResult:
    if value.startswith(":"):
        raise ValueError(f'parse "{value}": missing protocol scheme')
    u = urlsplit(value)
    _ = u.port  # raises ValueError on an invalid port
    return u


def _split_host_port(hostport: str) -> tuple[str, str]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end != -1:
            rest = hostport[end + 1 :]
            return hostport[1:end], rest[1:] if rest.startswith(":") else ""
    if ":" in hostport:
        host, _, port = hostport.rpartition(":")
        return host, port
    return hostport, ""


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _replace_loopback(value: str, lookup_ip: LookupIP, gateway: str) -> str:
    u = _parse_proxy_url(value)
    userinfo, at, hostport = u.netloc.rpartition("@")
    hostname, port = _split_host_port(hostport)
    for ip in lookup_ip(hostname):
        if ip.is_loopback:
            new_host = _join_host_port(gateway, port) if port else gateway
            u = u._replace(netloc=f"{userinfo}{at}{new_host}")
            value = urlunsplit(u)
    return value


def setup_env(
    env: Mapping[str, str] | None,
    propagate_proxy_env: bool,
    proxy_settings: Mapping[str, str] | None = None,
    lookup_ip: LookupIP | None = None,
    gateway: str = SLIRP_GATEWAY,
) -> dict[str, str]:
    """Compute the guest environment.

    System proxy settings are overridden by *env*, which in turn is overridden
    by the proxy variables of this process when *propagate_proxy_env* is set.
    Proxies on loopback addresses are redirected to *gateway*, and upper and
    lower case proxy variables are made to agree, lower case winning.
    """
    lookup = lookup_ip or _default_lookup_ip
    result: dict[str, str] = dict(proxy_settings or {})
    result.update(env or {})

    all_vars = _LOWER_PROXY_VARS + _UPPER_PROXY_VARS
    if propagate_proxy_env:
        for name in all_vars:
            value = os.environ.get(name)
            if value is None:
                continue
            if name in result and result[name] != value:
                log.info(
                    'Overriding "%s" value "%s" with "%s" from limactl process environment',
                    name,
                    result[name],
                    value,
                )
            result[name] = value

    for name in all_vars:
        if name not in result or name.lower() == "no_proxy":
            continue
        old = result[name]
        try:
            new = _replace_loopback(old, lookup, gateway)
        except ValueError as e:
            log.warning('Ignoring invalid proxy "%s"=%s: %s', name, old, e)
            continue
        if new != old:
            log.info('Replacing "%s" value "%s" with "%s"', name, old, new)
            result[name] = new

    for lower in _LOWER_PROXY_VARS:
        upper = lower.upper()
        if lower in result:
            if upper in result and result[upper] != result[lower]:
                log.warning(
                    'Changing "%s" value from "%s" to "%s" to match "%s"',
                    upper,
                    result[upper],
                    result[lower],
                    lower,
                )
            result[upper] = result[lower]
        elif upper in result:
            result[lower] = result[upper]
    return result


def _script_lines(content: str) -> list[str]:
    return [line.strip() for line in content.split("\n") if line != ""]


def get_cert(content: str) -> Cert:
    """Split a PEM certificate into its stripped, non-empty lines."""
    return Cert(lines=_script_lines(content))


def get_boot_cmds(provisions: Iterable[Provision]) -> list[BootCmds]:
    """Return the boot-mode provisioning scripts, split into lines."""
    return [
        BootCmds(lines=_script_lines(p.script))
        for p in provisions
        if p.mode == PROVISION_MODE_BOOT
    ]


def disk_device_name_from_order(order: int) -> str:
    """Return the guest device name of the additional disk at *order*: vdb, vdc, ..."""
    return f"vd{chr(ord('b') + order)}"