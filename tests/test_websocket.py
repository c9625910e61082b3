import json

import pytest

from middlekit.websocket import (
    CLOSE_ABNORMAL_CLOSURE,
    CLOSE_NO_STATUS_RECEIVED,
    CLOSE_NORMAL_CLOSURE,
    TEXT_MESSAGE,
    CloseError,
    Config,
    Conn,
    UpgradeRequiredError,
    accept_key,
    check_origin,
    format_close_message,
    handshake_headers,
    is_close_error,
    is_unexpected_close_error,
    is_websocket_upgrade,
)

KEY = "dGhlIHNhbXBsZSBub25jZQ=="


class FakeTransport:
    def __init__(self):
        self.sent = []

    def write_message(self, mtype, data):
        self.sent.append((mtype, data))


def upgrade_environ(**extra):
    environ = {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": "/ws/message",
        "HTTP_CONNECTION": "Upgrade",
        "HTTP_UPGRADE": "websocket",
        "HTTP_SEC_WEBSOCKET_VERSION": "13",
        "HTTP_SEC_WEBSOCKET_KEY": KEY,
        "REMOTE_ADDR": "127.0.0.1",
    }
    environ.update(extra)
    return environ


def test_is_close_error():
    assert is_close_error(CloseError(CLOSE_NORMAL_CLOSURE), CLOSE_NORMAL_CLOSURE) is True
    assert is_close_error(CloseError(CLOSE_NORMAL_CLOSURE), CLOSE_ABNORMAL_CLOSURE) is False
    assert is_close_error(ValueError("x"), CLOSE_NORMAL_CLOSURE) is False


def test_is_unexpected_close_error():
    assert is_unexpected_close_error(CloseError(CLOSE_NORMAL_CLOSURE), CLOSE_ABNORMAL_CLOSURE) is True
    assert is_unexpected_close_error(CloseError(CLOSE_NORMAL_CLOSURE), CLOSE_NORMAL_CLOSURE) is False


def test_format_close_message():
    assert format_close_message(CLOSE_NORMAL_CLOSURE, "test") == bytes([0x3, 0xE8, 0x74, 0x65, 0x73, 0x74])


def test_format_close_message_no_status_is_empty():
    assert format_close_message(CLOSE_NO_STATUS_RECEIVED, "ignored") == b""


def test_close_error_message():
    assert str(CloseError(CLOSE_NORMAL_CLOSURE, "bye")) == "websocket: close 1000 (normal): bye"


def test_conn_params():
    environ = upgrade_environ(**{"wsgiorg.routing_args": ((), {"param1": "value1", "param2": "value2"})})
    conn = Conn.from_environ(environ)
    assert conn.params("param1") == "value1"
    assert conn.params("param2") == "value2"
    assert conn.params("paramDefault", "default") == "default"
    assert conn.params("missing") == ""


def test_conn_query():
    conn = Conn.from_environ(upgrade_environ(QUERY_STRING="query1=value1&query2=value2"))
    assert conn.query("query1") == "value1"
    assert conn.query("query2") == "value2"
    assert conn.query("queryDefault", "default") == "default"


def test_conn_headers():
    conn = Conn.from_environ(upgrade_environ(HTTP_HEADER1="value1", HTTP_HEADER2="value2"))
    assert conn.headers("Header1") == "value1"
    assert conn.headers("Header2") == "value2"
    assert conn.headers("HeaderDefault", "valueDefault") == "valueDefault"


def test_conn_cookies():
    conn = Conn.from_environ(upgrade_environ(HTTP_COOKIE="Cookie1=value1; Cookie2=value2"))
    assert conn.cookies("Cookie1") == "value1"
    assert conn.cookies("Cookie2") == "value2"
    assert conn.headers("CookieDefault", "valueDefault") == "valueDefault"


def test_conn_locals():
    conn = Conn.from_environ(upgrade_environ(), {"local1": "value1", "local2": "value2"})
    assert conn.locals("local1") == "value1"
    assert conn.locals("local2") == "value2"
    assert conn.locals("local3", 42) == 42
    assert conn.locals("local3") == 42


def test_conn_ip():
    assert Conn.from_environ(upgrade_environ()).ip == "127.0.0.1"


def test_is_websocket_upgrade():
    assert is_websocket_upgrade(upgrade_environ()) is True
    assert is_websocket_upgrade(upgrade_environ(HTTP_CONNECTION="keep-alive, Upgrade")) is True
    assert is_websocket_upgrade({"HTTP_CONNECTION": "keep-alive"}) is False


@pytest.mark.parametrize(
    "origins,origin,expected",
    [
        (["*"], "http://localhost:3000", True),
        (["http://localhost:3000"], "http://localhost:3000", True),
        (["http://localhost:3000"], "http://localhost:5000", False),
        ([], "http://localhost:5000", True),
    ],
)
def test_check_origin(origins, origin, expected):
    assert check_origin(origins, origin) is expected


def test_accept_key_rfc_example():
    assert accept_key(KEY) == "s3pPLMBiTxaQ9kYGzzhZRbKxOo="


def test_config_defaults():
    cfg = Config()
    assert cfg.origins == ["*"]
    assert cfg.read_buffer_size == 1024
    assert cfg.write_buffer_size == 1024
    assert Config(write_buffer_size=10).write_buffer_size == 10


def test_handshake_default_config():
    headers = dict(handshake_headers(upgrade_environ()))
    assert headers["Upgrade"] == "websocket"
    assert headers["Sec-WebSocket-Accept"] == "s3pPLMBiTxaQ9kYGzzhZRbKxOo="


def test_handshake_allowed_origin():
    cfg = Config(origins=["http://localhost:3000"])
    headers = dict(handshake_headers(upgrade_environ(HTTP_ORIGIN="http://localhost:3000"), cfg))
    assert headers["Upgrade"] == "websocket"


def test_handshake_disallowed_origin():
    cfg = Config(origins=["http://localhost:3000"])
    with pytest.raises(UpgradeRequiredError):
        handshake_headers(upgrade_environ(HTTP_ORIGIN="http://localhost:5000"), cfg)


def test_handshake_requires_upgrade_headers():
    with pytest.raises(UpgradeRequiredError):
        handshake_headers({"REQUEST_METHOD": "GET"})


def test_handshake_selects_subprotocol():
    cfg = Config(subprotocols=["chat", "json"])
    headers = dict(handshake_headers(upgrade_environ(HTTP_SEC_WEBSOCKET_PROTOCOL="json, chat"), cfg))
    assert headers["Sec-WebSocket-Protocol"] == "chat"


def test_default_recover_writes_error(capsys):
    transport = FakeTransport()
    conn = Conn(transport=transport)
    Config().recover_handler(conn, RuntimeError("test panic"))
    mtype, data = transport.sent[0]
    assert mtype == TEXT_MESSAGE
    assert json.loads(data) == {"error": "test panic"}
    assert "test panic" in capsys.readouterr().err


def test_custom_recover_handler():
    transport = FakeTransport()
    conn = Conn(transport=transport)
    cfg = Config(recover_handler=lambda c, err: c.write_json({"customError": "error occurred"}))
    cfg.recover_handler(conn, RuntimeError("test panic"))
    assert json.loads(transport.sent[0][1]) == {"customError": "error occurred"}