from datetime import timedelta

import nacl.signing

from middlekit import paseto_tokens as pt
from middlekit.paseto_config import Config
from middlekit.paseto_middleware import PasetoMiddleware

SYMMETRIC_KEY = bytes(range(32))
USER = "user"


def _app(environ, start_response):
    start_response("200 OK", [])
    return [str(environ.get(pt.DEFAULT_CONTEXT_KEY)).encode()]


def _call(mw, environ):
    seen = {}

    def start_response(status, headers):
        seen["status"] = status

    body = b"".join(mw(environ, start_response))
    return seen["status"], body


def test_missing_token():
    mw = PasetoMiddleware(_app, Config(symmetric_key=SYMMETRIC_KEY))
    status, body = _call(mw, {})
    assert status.startswith("400")
    assert body == b"missing PASETO token"


def test_valid_local_token():
    mw = PasetoMiddleware(_app, Config(symmetric_key=SYMMETRIC_KEY))
    issued = pt.create_token(SYMMETRIC_KEY, USER, timedelta(minutes=1), pt.TokenPurpose.LOCAL)
    status, body = _call(mw, {"HTTP_AUTHORIZATION": issued})
    assert status == "200 OK"
    assert body == b"user"


def test_expired_token():
    mw = PasetoMiddleware(_app, Config(symmetric_key=SYMMETRIC_KEY))
    issued = pt.create_token(SYMMETRIC_KEY, USER, timedelta(minutes=-1), pt.TokenPurpose.LOCAL)
    status, body = _call(mw, {"HTTP_AUTHORIZATION": issued})
    assert status.startswith("401")
    assert body == b"token has expired"


def test_prefix_required():
    mw = PasetoMiddleware(_app, Config(symmetric_key=SYMMETRIC_KEY, token_prefix="Bearer"))
    issued = pt.create_token(SYMMETRIC_KEY, USER, timedelta(minutes=1), pt.TokenPurpose.LOCAL)
    status, body = _call(mw, {"HTTP_AUTHORIZATION": issued})
    assert body == b"missing prefix for PASETO token"
    status, body = _call(mw, {"HTTP_AUTHORIZATION": "Bearer " + issued})
    assert status == "200 OK"
    assert body == b"user"


def test_public_token_and_query_lookup():
    sk = nacl.signing.SigningKey.generate()
    private_key = bytes(sk) + bytes(sk.verify_key)
    public_key = bytes(sk.verify_key)
    mw = PasetoMiddleware(
        _app, Config(private_key=private_key, public_key=public_key, token_lookup=("query", "tok"))
    )
    issued = pt.create_token(private_key, USER, timedelta(minutes=1), pt.TokenPurpose.PUBLIC)
    status, body = _call(mw, {"QUERY_STRING": "tok=" + issued})
    assert status == "200 OK"
    assert body == b"user"


def test_tampered_token_rejected():
    mw = PasetoMiddleware(_app, Config(symmetric_key=SYMMETRIC_KEY))
    issued = pt.create_token(bytes(32), USER, timedelta(minutes=1), pt.TokenPurpose.LOCAL)
    status, _ = _call(mw, {"HTTP_AUTHORIZATION": issued})
    assert status.startswith("400")


def test_next_skips():
    mw = PasetoMiddleware(_app, Config(symmetric_key=SYMMETRIC_KEY, next=lambda env: True))
    status, body = _call(mw, {})
    assert status == "200 OK"
    assert body == b"None"