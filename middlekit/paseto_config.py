"""Configuration for the PASETO middleware."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from middlekit.paseto_tokens import (
    DEFAULT_CONTEXT_KEY,
    KEY_SIZE,
    LOOKUP_HEADER,
    TOKEN_AUDIENCE,
    TOKEN_FIELD,
    TOKEN_SUBJECT,
    DataUnmarshalError,
    ExpiredTokenError,
    JSONToken,
    PasetoError,
)

AUTHORIZATION = "Authorization"


def _call_next(environ: dict, start_response: Callable, app: Callable) -> Iterable[bytes]:
    return app(environ, start_response)


@dataclass
class Config:
    """Middleware settings; unset fields take their defaults."""

    next: Optional[Callable[[dict], bool]] = None
    success_handler: Optional[Callable[[dict, Callable, Callable], Iterable[bytes]]] = None
    error_handler: Optional[Callable[[dict, Callable, Exception], Iterable[bytes]]] = None
    validate: Optional[Callable[[bytes], Any]] = None
    symmetric_key: Optional[bytes] = None
    private_key: Optional[bytes] = None
    public_key: Optional[bytes] = None
    context_key: str = ""
    token_lookup: tuple[str, str] = ("", "")
    token_prefix: str = ""


CONFIG_DEFAULT = Config(context_key=DEFAULT_CONTEXT_KEY, token_lookup=(LOOKUP_HEADER, AUTHORIZATION))


def default_error_handler(environ: dict, start_response: Callable, error: Exception) -> Iterable[bytes]:
    """Answer 401 for unreadable or expired payloads, 400 otherwise."""
    if isinstance(error, (DataUnmarshalError, ExpiredTokenError)):
        status = "401 Unauthorized"
    else:
        status = "400 Bad Request"
    body = str(error).encode()
    start_response(status, [("Content-Type", "text/plain; charset=utf-8"), ("Content-Length", str(len(body)))])
    return [body]


def default_validate(data: bytes) -> Any:
    """Validate a payload made by create_token and return its data claim."""
    payload = JSONToken.from_json(data)
    now = datetime.now(timezone.utc)
    if payload.expiration is None or now > payload.expiration:
        raise ExpiredTokenError()
    if payload.issued_at is not None and now < payload.issued_at:
        raise PasetoError("token was issued in the future")
    if payload.not_before is not None and now < payload.not_before:
        raise PasetoError("token cannot be used yet")
    if payload.subject != TOKEN_SUBJECT:
        raise PasetoError("subject mismatch")
    if payload.audience != TOKEN_AUDIENCE:
        raise PasetoError("token was not issued for the audience")
    return payload.claims.get(TOKEN_FIELD)


def config_default(config: Optional[Config] = None) -> Config:
    """Return a copy of ``config`` with defaults filled in; raise ValueError on bad keys."""
    cfg = replace(config if config is not None else CONFIG_DEFAULT)
    if cfg.next is None:
        cfg.next = CONFIG_DEFAULT.next
    if cfg.success_handler is None:
        cfg.success_handler = _call_next
    if cfg.error_handler is None:
        cfg.error_handler = default_error_handler
    if cfg.validate is None:
        cfg.validate = default_validate
    if not cfg.context_key:
        cfg.context_key = CONFIG_DEFAULT.context_key
    origin, name = (tuple(cfg.token_lookup) + ("", ""))[:2]
    cfg.token_lookup = (origin or CONFIG_DEFAULT.token_lookup[0], name or CONFIG_DEFAULT.token_lookup[1])

    if cfg.symmetric_key is not None:
        if len(cfg.symmetric_key) != KEY_SIZE:
            raise ValueError(f"PASETO middleware requires a symmetric key with size {KEY_SIZE}")
        if cfg.public_key is not None or cfg.private_key is not None:
            raise ValueError("PASETO middleware: can't use PublicKey or PrivateKey with SymmetricKey")
    elif cfg.public_key is None or cfg.private_key is None:
        raise ValueError("PASETO middleware: need both PublicKey and PrivateKey")
    return cfg