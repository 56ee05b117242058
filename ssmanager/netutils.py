"""Address resolution, address comparison and socket option helpers."""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Iterable, Optional, Union

log = logging.getLogger(__name__)

MAX_HOSTNAME_LEN = 256  # FQDN <= 255 characters
MAX_PORT_STR_LEN = 6  # port < 65536
SOCKET_BUF_SIZE = 16 * 1024 - 1  # equals the maximum chunk size
INET_SIZE = 4
INET6_SIZE = 16
# Multipath TCP socket option values, newest kernel first.
MPTCP_ENABLED_VALUES = (42, 26)
UPDATE_INTERVAL = 5

_SO_REUSEPORT = getattr(socket, "SO_REUSEPORT", 15)
_SO_BINDTODEVICE = getattr(socket, "SO_BINDTODEVICE", 25)
_IFNAMSIZ = 16
_IFREQ_SIZE = 40

_VALID_LABEL_CHARS = frozenset(
    "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"
)
_ATOI = re.compile(r"\s*([+-]?\d+)")

_IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class HostPort:
    """A host name or address with an optional port, both as given by the user."""

    host: str
    port: Optional[str] = None


@dataclass(frozen=True)
class SockAddr:
    """A resolved socket address."""

    family: int
    address: str
    port: int = 0

    @property
    def packed(self) -> bytes:
        """The address in network byte order."""
        if self.family in (socket.AF_INET, socket.AF_INET6):
            return ipaddress.ip_address(self.address.split("%", 1)[0]).packed
        return self.address.encode()


def _atoi(text: Optional[str]) -> int:
    match = _ATOI.match(text or "")
    return int(match.group(1)) if match else 0


def _parse_ip(host: Optional[str]) -> Optional[_IPAddress]:
    if host is None:
        return None
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def _family_of(ip: _IPAddress) -> int:
    return socket.AF_INET if ip.version == 4 else socket.AF_INET6


def get_sockaddr(host: str, port: Optional[str] = None, ipv6first: bool = False) -> SockAddr:
    """Resolve *host* and *port* into a SockAddr.

    Address literals are used as they are; names are looked up, preferring
    IPv6 results when *ipv6first* is set and IPv4 results otherwise.
    """
    ip = _parse_ip(host)
    if ip is not None:
        number = _atoi(port) & 0xFFFF if port is not None else 0
        return SockAddr(_family_of(ip), str(ip), number)

    try:
        infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as exc:
        log.error("getaddrinfo: %s", exc)
        raise

    prefer = socket.AF_INET6 if ipv6first else socket.AF_INET
    chosen = next((info for info in infos if info[0] == prefer), None)
    if chosen is None and infos:
        chosen = infos[0]
    if chosen is None or chosen[0] not in (socket.AF_INET, socket.AF_INET6):
        log.error("failed to resolve remote addr")
        raise OSError(f"failed to resolve {host!r}")
    family, _, _, _, sockaddr = chosen
    return SockAddr(family, sockaddr[0], sockaddr[1])


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def sockaddr_cmp(addr1: SockAddr, addr2: SockAddr) -> int:
    """Order two addresses by family, port and address; return -1, 0 or 1."""
    result = _sign(int(addr1.family), int(addr2.family))
    if result:
        return result
    if addr1.family in (socket.AF_INET, socket.AF_INET6):
        result = _sign(addr1.port, addr2.port)
        if result:
            return result
        return _sign(addr1.packed, addr2.packed)
    return _sign((addr1.packed, addr1.port), (addr2.packed, addr2.port))


def sockaddr_cmp_addr(addr1: SockAddr, addr2: SockAddr) -> int:
    """Order two addresses by family and address, ignoring the port."""
    result = _sign(int(addr1.family), int(addr2.family))
    if result:
        return result
    log.debug("sockaddr_cmp_addr: families equal")
    if addr1.family in (socket.AF_INET, socket.AF_INET6):
        return _sign(addr1.packed, addr2.packed)
    return _sign((addr1.packed, addr1.port), (addr2.packed, addr2.port))


def validate_hostname(hostname: Optional[str]) -> bool:
    """Tell whether *hostname* is a syntactically valid DNS name."""
    if not hostname or len(hostname) > 255:
        return False
    if hostname.startswith("."):
        return False
    labels = hostname.split(".")
    if hostname.endswith("."):
        labels.pop()
    for label in labels:
        if not 1 <= len(label) <= 63:
            return False
        if label.startswith("-") or label.endswith("-"):
            return False
        if not set(label) <= _VALID_LABEL_CHARS:
            return False
    return True


def is_ipv6only(servers: Iterable[HostPort], ipv6first: bool = False) -> bool:
    """Tell whether every server resolves to an IPv6 address."""
    return all(
        get_sockaddr(server.host, server.port, ipv6first).family == socket.AF_INET6
        for server in servers
    )


def parse_local_addr(host: Optional[str]) -> SockAddr:
    """Turn an outbound bind address literal into a SockAddr with port 0."""
    ip = _parse_ip(host)
    if ip is None:
        raise ValueError(f"not an IP address: {host!r}")
    log.info("binding to outbound IPv%d addr: %s", ip.version, host)
    return SockAddr(_family_of(ip), str(ip), 0)


def bind_to_addr(addr: SockAddr, sock: socket.socket) -> None:
    """Bind *sock* to *addr*."""
    if addr.family not in (socket.AF_INET, socket.AF_INET6):
        raise ValueError(f"unsupported address family: {addr.family}")
    sock.bind((addr.address, addr.port))


def set_reuseport(sock: socket.socket) -> None:
    """Enable SO_REUSEPORT on *sock*."""
    sock.setsockopt(socket.SOL_SOCKET, _SO_REUSEPORT, 1)


def setinterface(sock: socket.socket, interface_name: str) -> None:
    """Bind *sock* to the network interface *interface_name*."""
    name = interface_name.encode()[: _IFNAMSIZ - 1]
    sock.setsockopt(socket.SOL_SOCKET, _SO_BINDTODEVICE, name.ljust(_IFREQ_SIZE, b"\0"))