"""Requests of the manager protocol and the replies and files built for them."""

from __future__ import annotations

import enum
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

log = logging.getLogger(__name__)

BUF_SIZE = 65535

_PORT_LEN = 7
_PASSWORD_LEN = 127
_UINT64 = 1 << 64
_WHITESPACE = " \t\n\v\f\r"
_ATOI = re.compile(r"\s*([+-]?\d+)")

_Data = Union[str, bytes, bytearray]


class Mode(enum.IntEnum):
    """Which transports a server relays."""

    TCP_ONLY = 0
    TCP_AND_UDP = 1
    UDP_ONLY = 3

    @classmethod
    def from_name(cls, name: str) -> "Mode":
        """Look a mode up by its configuration name, such as ``tcp_and_udp``."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown mode: {name!r}") from None


class CommandError(ValueError):
    """Raised when a manager request cannot be understood."""


@dataclass
class ServerEntry:
    """One server the manager runs, as given by an ``add`` request."""

    port: str = ""
    password: str = ""
    fast_open: Optional[bool] = None
    no_delay: Optional[bool] = None
    mode: Optional[str] = None
    method: Optional[str] = None
    plugin: Optional[str] = None
    plugin_opts: Optional[str] = None
    traffic: int = 0


@dataclass
class ManagerSettings:
    """Settings the manager passes on to every server it starts."""

    manager_address: str = "127.0.0.1:8839"
    executable: str = "ss-server"
    hosts: list[str] = field(default_factory=list)
    mode: Mode = Mode.TCP_ONLY
    fast_open: bool = False
    no_delay: bool = False
    reuse_port: bool = False
    verbose: bool = False
    ipv6first: bool = False
    password: Optional[str] = None
    key: Optional[str] = None
    timeout: Optional[str] = None
    method: Optional[str] = None
    iface: Optional[str] = None
    acl: Optional[str] = None
    user: Optional[str] = None
    plugin: Optional[str] = None
    plugin_opts: Optional[str] = None
    nameservers: Optional[str] = None
    workdir: Optional[str] = None
    mtu: int = 0
    nofile: int = 0


class _Pairs(list):
    """A JSON object kept as its ordered list of name/value pairs."""


def _text(data: _Data) -> str:
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8", "replace")
    return data.split("\0", 1)[0]


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _atoi(text: Optional[str]) -> int:
    match = _ATOI.match(text or "")
    return int(match.group(1)) if match else 0


def get_action(data: _Data) -> Optional[str]:
    """Return the leading word of a request, ending at whitespace or ':'."""
    text = _text(data).lstrip(_WHITESPACE)
    if not text:
        return None
    end = len(text)
    for index, char in enumerate(text):
        if char in _WHITESPACE or char == ":":
            end = index
            break
    return text[:end]


def get_data(data: _Data) -> Optional[str]:
    """Return the JSON part of a request, from its first '{', or None."""
    text = _text(data)
    start = text.find("{")
    return None if start < 0 else text[start:]


def _load(data: _Data):
    text = get_data(data)
    if text is None:
        log.error("No data found")
        raise CommandError("no data found")
    try:
        return json.loads(text, object_pairs_hook=_Pairs)
    except (json.JSONDecodeError, RecursionError) as exc:
        log.error("%s", exc)
        raise CommandError(str(exc)) from exc


def parse_server(data: _Data) -> ServerEntry:
    """Read the server described by an ``add`` or ``remove`` request.

    Reading stops at the first name that is not understood; values of the
    wrong type are ignored.
    """
    obj = _load(data)
    server = ServerEntry()
    if not isinstance(obj, _Pairs):
        return server
    for name, value in obj:
        if name == "server_port":
            if isinstance(value, str):
                server.port = value[:_PORT_LEN]
            elif _is_int(value):
                server.port = str(value % _UINT64)[:_PORT_LEN]
        elif name == "password":
            if isinstance(value, str):
                server.password = value[:_PASSWORD_LEN]
        elif name == "method":
            if isinstance(value, str):
                server.method = value
        elif name == "fast_open":
            if isinstance(value, bool):
                server.fast_open = value
        elif name == "no_delay":
            if isinstance(value, bool):
                server.no_delay = value
        elif name == "plugin":
            if isinstance(value, str):
                server.plugin = value
        elif name == "plugin_opts":
            if isinstance(value, str):
                server.plugin_opts = value
        elif name == "mode":
            if isinstance(value, str):
                server.mode = value
        else:
            log.error("invalid data: %s", get_data(data))
            break
    return server


def parse_traffic(data: _Data) -> Optional[tuple[str, int]]:
    """Read the port and traffic counter of a ``stat`` request.

    The last name with an integer value wins; None means there was none.
    """
    obj = _load(data)
    result = None
    if isinstance(obj, _Pairs):
        for name, value in obj:
            if _is_int(value):
                result = (name[:_PORT_LEN], value % _UINT64)
    return result


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_config(settings: ManagerSettings, server: ServerEntry) -> str:
    """The configuration file text for *server*."""
    lines = [
        f'"server_port":{_atoi(server.port)}',
        f'"password":"{server.password}"',
    ]
    if server.method is not None:
        lines.append(f'"method":"{server.method}"')
    elif settings.method is not None:
        lines.append(f'"method":"{settings.method}"')
    if server.fast_open is not None:
        lines.append(f'"fast_open": {_flag(server.fast_open)}')
    elif settings.fast_open:
        lines.append('"fast_open": true')
    if server.no_delay is not None:
        lines.append(f'"no_delay": {_flag(server.no_delay)}')
    elif settings.no_delay:
        lines.append('"no_delay": true')
    if server.mode is not None:
        lines.append(f'"mode":"{server.mode}"')
    if server.plugin is not None:
        lines.append(f'"plugin":"{server.plugin}"')
    if server.plugin_opts is not None:
        lines.append(f'"plugin_opts":"{server.plugin_opts}"')
    return "{\n" + ",\n".join(lines) + "\n}\n"


def write_config(
    directory: Union[str, os.PathLike], settings: ManagerSettings, server: ServerEntry
) -> Path:
    """Write the configuration file for *server* into *directory* and return its path."""
    path = Path(directory) / f".shadowsocks_{server.port}.conf"
    path.write_text(build_config(settings, server))
    return path


def construct_command_line(
    settings: ManagerSettings, server: ServerEntry, working_dir: Union[str, os.PathLike]
) -> list[str]:
    """The argument vector that starts the server process for *server*."""
    port = _atoi(server.port)
    directory = os.fspath(working_dir)
    args = [
        settings.executable,
        "--manager-address",
        settings.manager_address,
        "-f",
        f"{directory}/.shadowsocks_{port}.pid",
        "-c",
        f"{directory}/.shadowsocks_{port}.conf",
    ]
    if settings.acl is not None:
        args += ["--acl", settings.acl]
    if settings.timeout is not None:
        args += ["-t", settings.timeout]
    if settings.nofile:
        args += ["-n", str(settings.nofile)]
    if settings.user is not None:
        args += ["-a", settings.user]
    if settings.verbose:
        args.append("-v")
    if server.mode is None and settings.mode == Mode.UDP_ONLY:
        args.append("-U")
    if server.mode is None and settings.mode == Mode.TCP_AND_UDP:
        args.append("-u")
    if server.fast_open is None and settings.fast_open:
        args.append("--fast-open")
    if server.no_delay is None and settings.no_delay:
        args.append("--no-delay")
    if settings.ipv6first:
        args.append("-6")
    if settings.mtu:
        args += ["--mtu", str(settings.mtu)]
    if server.plugin is None and settings.plugin:
        args += ["--plugin", settings.plugin]
    if server.plugin_opts is None and settings.plugin_opts:
        args += ["--plugin-opts", settings.plugin_opts]
    if settings.nameservers:
        args += ["-d", settings.nameservers]
    if settings.workdir:
        args += ["-D", settings.workdir]
    for host in settings.hosts:
        args += ["-s", host]
    log.debug("cmd: %s", " ".join(args))
    return args


def format_list(servers: Iterable[ServerEntry], default_method: Optional[str]) -> list[str]:
    """The datagrams answering a ``list`` request, split to fit the buffer size."""
    messages = []
    buf = "["
    for server in servers:
        method = server.method if server.method is not None else (default_method or "")
        entry_len = len(server.port) + len(server.password) + len(method)
        if len(buf) > BUF_SIZE - entry_len - 50:
            messages.append(buf)
            buf = ""
        buf += (
            f'\n\t{{"server_port":"{server.port}",'
            f'"password":"{server.password}","method":"{method}"}},'
        )
    cut = max(len(buf) - 1, 1)
    messages.append(buf[:cut] + "\n]")
    return messages


def format_stat(servers: Iterable[ServerEntry]) -> list[str]:
    """The datagrams answering a ``ping`` request with each server's traffic."""
    messages = []
    buf = "stat: {"
    for server in servers:
        if len(buf) > BUF_SIZE // 2:
            messages.append(buf[:-1] + "}")
            buf = ""
        buf += f'"{server.port}":{server.traffic},'
    if len(buf) > len("stat: {"):
        buf = buf[:-1] + "}"
    else:
        buf += "}"
    messages.append(buf)
    return messages