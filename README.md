# ssmanager

`ssmanager` is a library of building blocks for managing shadowsocks server
processes: parsing the requests of the manager's datagram control protocol,
formatting its replies, writing a per-port JSON config file, building the
argument vector that starts a server, resolving and ordering socket addresses,
and filtering replayed nonces with a pair of Bloom filters.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `ssmanager.commands`

The control protocol. Each request is one datagram: an action, optionally
followed by `:` and a JSON object.

| Request | Meaning |
| --- | --- |
| `add: {"server_port": 8381, "password": "password"}` | start a server on a port |
| `remove: {"server_port": 8381}` | stop the server on a port |
| `list` | list the servers |
| `ping` | report traffic per port |
| `stat: {"8381": 1024}` | a server reporting its traffic |

* `get_action(data)` returns the leading word of a request (ending at
  whitespace or `:`), or `None` for an empty one.
* `get_data(data)` returns the request from its first `{`, or `None`.
* `parse_server(data)` reads an `add`/`remove` object into a `ServerEntry`.
  It understands `server_port`, `password`, `method`, `mode`, `fast_open`,
  `no_delay`, `plugin` and `plugin_opts`; values of the wrong type are
  ignored and reading stops at the first unknown name. A request with no JSON,
  or with malformed JSON, raises `CommandError`.
* `parse_traffic(data)` returns `(port, traffic)` from a `stat` request — the
  last name with an integer value — or `None`.
* `build_config(settings, server)` returns the config file text for a server,
  falling back on the `ManagerSettings` for `method`, `fast_open` and
  `no_delay`; `write_config(directory, settings, server)` writes it as
  `.shadowsocks_<port>.conf` and returns the path.
* `construct_command_line(settings, server, working_dir)` returns the argument
  list that starts `settings.executable` (default `ss-server`) with the pid and
  config files in `working_dir` and the manager-wide options.
* `format_list(servers, default_method)` and `format_stat(servers)` return the
  reply datagrams for `list` and `ping`, split to fit the 65535-byte buffer.
* `Mode` is `TCP_ONLY`, `TCP_AND_UDP` or `UDP_ONLY`; `Mode.from_name` looks
  one up by its config name.

```python
from ssmanager.commands import ManagerSettings, construct_command_line, parse_server

server = parse_server(b'add: {"server_port": 8381, "password": "password"}')
argv = construct_command_line(ManagerSettings(hosts=["0.0.0.0"]), server, "/tmp/.shadowsocks")
```

### `ssmanager.netutils`

* `get_sockaddr(host, port, ipv6first)` returns a `SockAddr`; address
  literals are used as given, names are looked up preferring IPv4 (or IPv6
  with `ipv6first`).
* `sockaddr_cmp` orders two `SockAddr`s by family, port and address;
  `sockaddr_cmp_addr` ignores the port. Both return -1, 0 or 1.
* `validate_hostname(hostname)` checks DNS name syntax.
* `is_ipv6only(servers, ipv6first)` tells whether every `HostPort` resolves to
  IPv6.
* `parse_local_addr`, `bind_to_addr`, `set_reuseport` and `setinterface` help
  set up outbound sockets.

### `ssmanager.ppbloom`

`BloomFilter(entries, error)` is a fixed-size Bloom filter. `PingPongBloom`
keeps two of them, each sized for half the entries, and clears the older one
when the active one fills, so recent items are remembered while old ones age
out.

```python
from ssmanager.ppbloom import PingPongBloom

seen = PingPongBloom(1_000_000, 0.00001)
seen.add(b"nonce")
assert b"nonce" in seen
```

## What the package does not do

There is no command to run and no long-running manager: the package does not
open a control socket, answer requests, keep a table of running servers,
start or stop server processes, or launch plugins. It supplies the parsing,
formatting, file and argument-building pieces such a manager would use.