from datetime import timedelta

import pytest

from middlekit import paseto_config as pc
from middlekit import paseto_tokens as pt

SYMMETRIC_KEY = bytes(range(32))


def test_config_no_symmetric_key():
    with pytest.raises(ValueError):
        pc.config_default()


def test_config_invalid_symmetric_key():
    with pytest.raises(ValueError):
        pc.config_default(pc.Config(symmetric_key=SYMMETRIC_KEY + SYMMETRIC_KEY))


def test_config_symmetric_with_public_key():
    with pytest.raises(ValueError):
        pc.config_default(pc.Config(symmetric_key=SYMMETRIC_KEY, public_key=bytes(32)))


def test_config_default():
    cfg = pc.config_default(pc.Config(symmetric_key=SYMMETRIC_KEY))
    assert cfg.token_lookup[0] == pt.LOOKUP_HEADER
    assert cfg.token_lookup[1] == "Authorization"
    assert cfg.context_key == pt.DEFAULT_CONTEXT_KEY
    assert cfg.validate is pc.default_validate


def test_config_custom_lookup():
    cfg = pc.config_default(pc.Config(symmetric_key=SYMMETRIC_KEY, token_lookup=("", "Custom-Header")))
    assert cfg.token_lookup == (pt.LOOKUP_HEADER, "Custom-Header")
    cfg = pc.config_default(pc.Config(symmetric_key=SYMMETRIC_KEY, token_lookup=(pt.LOOKUP_PARAM, "")))
    assert cfg.token_lookup == (pt.LOOKUP_PARAM, "Authorization")


def test_default_validate_ok_and_expired():
    good = pt.new_payload("user", timedelta(minutes=1)).to_json()
    assert pc.default_validate(good) == "user"
    old = pt.new_payload("user", timedelta(minutes=-1)).to_json()
    with pytest.raises(pt.ExpiredTokenError):
        pc.default_validate(old)
    with pytest.raises(pt.DataUnmarshalError):
        pc.default_validate(b"{bad")


def test_default_validate_wrong_subject():
    payload = pt.new_payload("user", timedelta(minutes=1))
    payload.subject = "other"
    with pytest.raises(pt.PasetoError):
        pc.default_validate(payload.to_json())


def test_default_error_handler_status():
    seen = []
    body = pc.default_error_handler({}, lambda s, h: seen.append(s), pt.ExpiredTokenError())
    assert seen == ["401 Unauthorized"]
    assert body == [b"token has expired"]
    pc.default_error_handler({}, lambda s, h: seen.append(s), pt.MissingTokenError())
    assert seen[-1] == "400 Bad Request"