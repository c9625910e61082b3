"""PASETO v2 tokens: payloads, local encryption, public signatures and lookup."""

from __future__ import annotations

import base64
import enum
import json
import struct
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie
from typing import Any, Callable, Optional, Union
from urllib.parse import parse_qs

import nacl.bindings
import nacl.encoding
import nacl.exceptions
import nacl.hash
import nacl.signing
import nacl.utils

LOOKUP_HEADER = "header"
LOOKUP_COOKIE = "cookie"
LOOKUP_QUERY = "query"
LOOKUP_PARAM = "param"

DEFAULT_CONTEXT_KEY = "auth-token"

TOKEN_AUDIENCE = "gofiber.gophers"
TOKEN_SUBJECT = "user-token"
TOKEN_FIELD = "data"

KEY_SIZE = 32
_NONCE_SIZE = 24
_SIGNATURE_SIZE = 64
_LOCAL_HEADER = b"v2.local."
_PUBLIC_HEADER = b"v2.public."


class TokenPurpose(enum.IntEnum):
    """Whether a token is encrypted (local) or signed (public)."""

    LOCAL = 0
    PUBLIC = 1


class PasetoError(ValueError):
    """A token could not be created, read or validated."""


class ExpiredTokenError(PasetoError):
    def __init__(self, message: str = "token has expired") -> None:
        super().__init__(message)


class MissingTokenError(PasetoError):
    def __init__(self, message: str = "missing PASETO token") -> None:
        super().__init__(message)


class IncorrectTokenPrefixError(PasetoError):
    def __init__(self, message: str = "missing prefix for PASETO token") -> None:
        super().__init__(message)


class DataUnmarshalError(PasetoError):
    def __init__(self, message: str = "can't unmarshal token data to Payload type") -> None:
        super().__init__(message)


_TIME_FIELDS = {"exp": "expiration", "iat": "issued_at", "nbf": "not_before"}
_TEXT_FIELDS = {"aud": "audience", "iss": "issuer", "jti": "jti", "sub": "subject"}


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise DataUnmarshalError()
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise DataUnmarshalError() from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class JSONToken:
    """Registered claims plus free-form string claims."""

    audience: str = ""
    issuer: str = ""
    jti: str = ""
    subject: str = ""
    expiration: Optional[datetime] = None
    issued_at: Optional[datetime] = None
    not_before: Optional[datetime] = None
    claims: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> bytes:
        """Serialise the token; empty claims are left out."""
        out: dict[str, Any] = dict(self.claims)
        for key, attr in _TEXT_FIELDS.items():
            value = getattr(self, attr)
            if value:
                out[key] = value
        for key, attr in _TIME_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = _format_time(value)
        return json.dumps(out, separators=(",", ":")).encode()

    @classmethod
    def from_json(cls, data: Union[bytes, str]) -> "JSONToken":
        """Parse a serialised token, raising DataUnmarshalError if malformed."""
        try:
            raw = json.loads(data)
        except (ValueError, TypeError) as exc:
            raise DataUnmarshalError() from exc
        if not isinstance(raw, dict):
            raise DataUnmarshalError()
        token = cls()
        for key, value in raw.items():
            if key in _TEXT_FIELDS:
                if not isinstance(value, str):
                    raise DataUnmarshalError()
                setattr(token, _TEXT_FIELDS[key], value)
            elif key in _TIME_FIELDS:
                setattr(token, _TIME_FIELDS[key], _parse_time(value))
            else:
                token.claims[key] = value
        return token


def new_payload(user_token: str, duration: timedelta) -> JSONToken:
    """Build a payload carrying ``user_token`` that expires after ``duration``."""
    now = datetime.now(timezone.utc)
    return JSONToken(
        audience=TOKEN_AUDIENCE,
        jti=str(uuid.uuid4()),
        subject=TOKEN_SUBJECT,
        issued_at=now,
        expiration=now + duration,
        not_before=now,
        claims={TOKEN_FIELD: user_token},
    )


def _pae(*pieces: bytes) -> bytes:
    out = struct.pack("<Q", len(pieces))
    for piece in pieces:
        out += struct.pack("<Q", len(piece)) + piece
    return out


def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    try:
        return base64.urlsafe_b64decode(data + b"=" * (-len(data) % 4))
    except ValueError as exc:
        raise PasetoError("invalid token body") from exc


def _to_bytes(value: Union[JSONToken, bytes, str, None]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, JSONToken):
        return value.to_json()
    if isinstance(value, str):
        return value.encode()
    return bytes(value)


def _split(token: Union[str, bytes], header: bytes) -> tuple[bytes, bytes]:
    raw = token.encode() if isinstance(token, str) else bytes(token)
    if not raw.startswith(header):
        raise PasetoError("incorrect token header")
    parts = raw[len(header):].split(b".")
    if len(parts) > 2:
        raise PasetoError("incorrect token format")
    body = _b64decode(parts[0])
    footer = _b64decode(parts[1]) if len(parts) == 2 else b""
    return body, footer


def _join(header: bytes, body: bytes, footer: bytes) -> str:
    token = header + _b64encode(body)
    if footer:
        token += b"." + _b64encode(footer)
    return token.decode()


def encrypt(key: bytes, payload: Union[JSONToken, bytes, str], footer: Union[bytes, str, None] = None) -> str:
    """Encrypt ``payload`` into a v2.local token."""
    if len(key) != KEY_SIZE:
        raise PasetoError(f"symmetric key must be {KEY_SIZE} bytes")
    message = _to_bytes(payload)
    foot = _to_bytes(footer)
    nonce = nacl.hash.blake2b(
        message,
        digest_size=_NONCE_SIZE,
        key=nacl.utils.random(_NONCE_SIZE),
        encoder=nacl.encoding.RawEncoder,
    )
    aad = _pae(_LOCAL_HEADER, nonce, foot)
    cipher = nacl.bindings.crypto_aead_xchacha20poly1305_ietf_encrypt(message, aad, nonce, bytes(key))
    return _join(_LOCAL_HEADER, nonce + cipher, foot)


def decrypt(token: Union[str, bytes], key: bytes) -> bytes:
    """Decrypt a v2.local token and return its payload bytes."""
    if len(key) != KEY_SIZE:
        raise PasetoError(f"symmetric key must be {KEY_SIZE} bytes")
    body, footer = _split(token, _LOCAL_HEADER)
    if len(body) < _NONCE_SIZE:
        raise PasetoError("incorrect token format")
    nonce, cipher = body[:_NONCE_SIZE], body[_NONCE_SIZE:]
    aad = _pae(_LOCAL_HEADER, nonce, footer)
    try:
        return nacl.bindings.crypto_aead_xchacha20poly1305_ietf_decrypt(cipher, aad, nonce, bytes(key))
    except nacl.exceptions.CryptoError as exc:
        raise PasetoError("invalid token authentication") from exc


def _signing_key(private_key: bytes) -> nacl.signing.SigningKey:
    if len(private_key) not in (32, 64):
        raise PasetoError("private key must be 32 or 64 bytes")
    return nacl.signing.SigningKey(bytes(private_key[:32]))


def sign(private_key: bytes, payload: Union[JSONToken, bytes, str], footer: Union[bytes, str, None] = None) -> str:
    """Sign ``payload`` into a v2.public token with an Ed25519 private key."""
    message = _to_bytes(payload)
    foot = _to_bytes(footer)
    signature = _signing_key(private_key).sign(_pae(_PUBLIC_HEADER, message, foot)).signature
    return _join(_PUBLIC_HEADER, message + signature, foot)


def verify(token: Union[str, bytes], public_key: bytes) -> bytes:
    """Check a v2.public token's signature and return its payload bytes."""
    body, footer = _split(token, _PUBLIC_HEADER)
    if len(body) < _SIGNATURE_SIZE:
        raise PasetoError("incorrect token format")
    message, signature = body[:-_SIGNATURE_SIZE], body[-_SIGNATURE_SIZE:]
    try:
        nacl.signing.VerifyKey(bytes(public_key)).verify(_pae(_PUBLIC_HEADER, message, footer), signature)
    except (nacl.exceptions.BadSignatureError, nacl.exceptions.ValueError, ValueError, TypeError) as exc:
        raise PasetoError("invalid token signature") from exc
    return message


def create_token(key: bytes, data_info: str, duration: timedelta, purpose: TokenPurpose = TokenPurpose.LOCAL) -> str:
    """Create a token carrying ``data_info``, encrypted or signed per ``purpose``."""
    payload = new_payload(data_info, duration)
    if purpose == TokenPurpose.PUBLIC:
        return sign(key, payload)
    return encrypt(key, payload)


def _header_name(key: str) -> str:
    name = key.upper().replace("-", "_")
    if name in ("CONTENT_TYPE", "CONTENT_LENGTH"):
        return name
    return "HTTP_" + name


def _from_header(environ: dict, key: str) -> str:
    return environ.get(_header_name(key), "")


def _from_query(environ: dict, key: str) -> str:
    values = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True).get(key)
    return values[0] if values else ""


def _from_param(environ: dict, key: str) -> str:
    routing = environ.get("wsgiorg.routing_args")
    if not routing:
        return ""
    _, kwargs = routing
    return str(kwargs.get(key, ""))


def _from_cookie(environ: dict, key: str) -> str:
    cookie = SimpleCookie()
    try:
        cookie.load(environ.get("HTTP_COOKIE", ""))
    except Exception:
        return ""
    morsel = cookie.get(key)
    return morsel.value if morsel is not None else ""


_EXTRACTORS: dict[str, Callable[[dict, str], str]] = {
    LOOKUP_HEADER: _from_header,
    LOOKUP_QUERY: _from_query,
    LOOKUP_PARAM: _from_param,
    LOOKUP_COOKIE: _from_cookie,
}


def get_extractor(lookup_origin: str) -> Callable[[dict, str], str]:
    """Return a function reading a token from a WSGI environ; headers by default."""
    return _EXTRACTORS.get(lookup_origin, _from_header)