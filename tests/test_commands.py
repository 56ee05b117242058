import pytest

from ssmanager.commands import (
    BUF_SIZE,
    CommandError,
    ManagerSettings,
    Mode,
    ServerEntry,
    build_config,
    construct_command_line,
    format_list,
    format_stat,
    get_action,
    get_data,
    parse_server,
    parse_traffic,
    write_config,
)

password = "password"


@pytest.mark.parametrize(
    "request_text, action",
    [
        ('add: {"server_port": 8388}', "add"),
        ("   ping", "ping"),
        ("list", "list"),
        ("remove\t{}", "remove"),
        (b'stat: {"8388": 1}', "stat"),
    ],
)
def test_get_action(request_text, action):
    assert get_action(request_text) == action


def test_get_action_blank_is_none():
    assert get_action(" \t\n") is None
    assert get_action("") is None


def test_get_data_starts_at_brace():
    assert get_data('add: {"server_port": 1}') == '{"server_port": 1}'


def test_get_data_without_brace_is_none():
    assert get_data("ping") is None


def test_get_data_stops_at_nul():
    assert get_data(b'stat: {"1": 2}\0garbage') == '{"1": 2}'


def test_parse_server_reads_all_fields():
    server = parse_server(
        'add: {"server_port": "8388", "password": "password", "method": "aes-256-gcm",'
        ' "fast_open": true, "no_delay": false, "mode": "tcp_and_udp",'
        ' "plugin": "obfs-server", "plugin_opts": "obfs=http"}'
    )
    assert server.port == "8388"
    assert server.password == password
    assert server.method == "aes-256-gcm"
    assert server.fast_open is True
    assert server.no_delay is False
    assert server.mode == "tcp_and_udp"
    assert server.plugin == "obfs-server"
    assert server.plugin_opts == "obfs=http"


def test_parse_server_integer_port():
    assert parse_server('add: {"server_port": 8388}').port == "8388"


def test_parse_server_truncates_port_and_password():
    long_secret = "secret" * 40
    server = parse_server(f'add: {{"server_port": "123456789", "password": "{long_secret}"}}')
    assert server.port == "123456789"[:7]
    assert len(server.password) == 127
    assert long_secret.startswith(server.password)


def test_parse_server_ignores_wrong_types():
    server = parse_server('add: {"server_port": "1", "fast_open": "yes", "method": 5}')
    assert server.fast_open is None
    assert server.method is None


def test_parse_server_stops_at_unknown_name():
    server = parse_server('add: {"server_port": "1", "bogus": 2, "password": "password"}')
    assert server.port == "1"
    assert server.password == ""


def test_parse_server_invalid_json():
    with pytest.raises(CommandError):
        parse_server("add: {not json")


def test_parse_server_without_data():
    with pytest.raises(CommandError):
        parse_server("add")


def test_parse_traffic():
    assert parse_traffic('stat: {"8388": 1024}') == ("8388", 1024)


def test_parse_traffic_last_integer_wins_and_others_ignored():
    assert parse_traffic('stat: {"1": 5, "2": "x", "3": true, "4": 9}') == ("4", 9)
    assert parse_traffic('stat: {"1": "x"}') is None


def test_parse_traffic_invalid():
    with pytest.raises(CommandError):
        parse_traffic("stat: {")


def test_build_config_uses_manager_defaults():
    settings = ManagerSettings(method="aes-256-gcm", fast_open=True)
    server = ServerEntry(port="8388", password=password)
    assert build_config(settings, server) == (
        '{\n"server_port":8388,\n"password":"password",\n'
        '"method":"aes-256-gcm",\n"fast_open": true\n}\n'
    )


def test_build_config_server_values_override():
    settings = ManagerSettings(method="aes-256-gcm", fast_open=True, no_delay=True)
    server = ServerEntry(
        port="8388", password=password, method="chacha20-ietf-poly1305",
        fast_open=False, plugin="obfs-server",
    )
    text = build_config(settings, server)
    assert '"method":"chacha20-ietf-poly1305"' in text
    assert '"fast_open": false' in text
    assert '"no_delay": true' in text
    assert '"plugin":"obfs-server"' in text
    assert "aes-256-gcm" not in text


def test_write_config(tmp_path):
    settings = ManagerSettings(method="aes-256-gcm")
    server = ServerEntry(port="8388", password=password)
    path = write_config(tmp_path, settings, server)
    assert path == tmp_path / ".shadowsocks_8388.conf"
    assert path.read_text() == build_config(settings, server)


def test_construct_command_line():
    settings = ManagerSettings(
        manager_address="127.0.0.1:8839", hosts=["0.0.0.0"], mode=Mode.TCP_AND_UDP,
        fast_open=True, timeout="60", plugin="obfs-server",
    )
    server = ServerEntry(port="8388", password=password)
    assert construct_command_line(settings, server, "/work") == [
        "ss-server", "--manager-address", "127.0.0.1:8839",
        "-f", "/work/.shadowsocks_8388.pid", "-c", "/work/.shadowsocks_8388.conf",
        "-t", "60", "-u", "--fast-open", "--plugin", "obfs-server", "-s", "0.0.0.0",
    ]


def test_construct_command_line_server_settings_suppress_flags():
    settings = ManagerSettings(mode=Mode.UDP_ONLY, fast_open=True, no_delay=True, plugin="p")
    server = ServerEntry(port="1", password=password, mode="tcp_only",
                         fast_open=False, no_delay=True, plugin="q")
    args = construct_command_line(settings, server, "/w")
    for flag in ("-U", "-u", "--fast-open", "--no-delay", "--plugin"):
        assert flag not in args


def test_mode_from_name():
    assert Mode.from_name("tcp_and_udp") is Mode.TCP_AND_UDP
    assert Mode.from_name("UDP_ONLY") is Mode.UDP_ONLY
    with pytest.raises(ValueError):
        Mode.from_name("sctp")


def test_format_list_empty():
    assert format_list([], "aes-256-gcm") == ["[\n]"]


def test_format_list_one_server():
    servers = [ServerEntry(port="8388", password=password)]
    assert format_list(servers, "aes-256-gcm") == [
        '[\n\t{"server_port":"8388","password":"password","method":"aes-256-gcm"}\n]'
    ]


def test_format_list_splits_large_replies():
    servers = [ServerEntry(port=str(i), password=password, method="m" * 1000) for i in range(200)]
    messages = format_list(servers, None)
    assert len(messages) > 1
    assert all(len(message) <= BUF_SIZE for message in messages)
    assert sum(message.count('"server_port"') for message in messages) == len(servers)
    assert messages[0].startswith("[")
    assert messages[-1].endswith("\n]")


def test_format_stat_empty():
    assert format_stat([]) == ["stat: {}"]


def test_format_stat_keeps_order():
    servers = [ServerEntry(port="1", traffic=5), ServerEntry(port="2", traffic=7)]
    assert format_stat(servers) == ['stat: {"1":5,"2":7}']


def test_format_stat_splits_large_replies():
    servers = [ServerEntry(port=str(10000 + i), traffic=10**9) for i in range(5000)]
    messages = format_stat(servers)
    assert len(messages) > 1
    assert all(message.endswith("}") for message in messages)
    assert all(len(message) <= BUF_SIZE for message in messages)
    assert sum(message.count('":') for message in messages) == len(servers)