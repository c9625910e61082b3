"""WSGI middleware that admits requests carrying a valid PASETO token."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from middlekit.paseto_config import Config, config_default
from middlekit.paseto_tokens import (
    IncorrectTokenPrefixError,
    MissingTokenError,
    PasetoError,
    decrypt,
    get_extractor,
    verify,
)


class PasetoMiddleware:
    """Reads, checks and stores the request's token under the context key."""

    def __init__(self, app: Callable, config: Optional[Config] = None) -> None:
        self.app = app
        self.config = config_default(config)
        self._extract = get_extractor(self.config.token_lookup[0])

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        cfg = self.config
        presented = self._extract(environ, cfg.token_lookup[1])
        if cfg.next is not None and cfg.next(environ):
            return self.app(environ, start_response)
        if not presented:
            return cfg.error_handler(environ, start_response, MissingTokenError())

        if cfg.token_prefix:
            if not presented.startswith(cfg.token_prefix):
                return cfg.error_handler(environ, start_response, IncorrectTokenPrefixError())
            separator = " "
            presented = presented.removeprefix(cfg.token_prefix + separator)

        try:
            if cfg.symmetric_key is not None:
                data = decrypt(presented, cfg.symmetric_key)
            else:
                data = verify(presented, cfg.public_key)
        except PasetoError as exc:
            return cfg.error_handler(environ, start_response, exc)

        try:
            payload = cfg.validate(data)
        except Exception as exc:
            return cfg.error_handler(environ, start_response, exc)
        environ[cfg.context_key] = payload
        return cfg.success_handler(environ, start_response, self.app)