"""Development/production mode detection."""

from __future__ import annotations

import enum
import re
import socket
from typing import Any, Iterable, Mapping

from werkzeug.http import parse_cookie

COOKIE_SECRET = "faultline-debug"
LOCAL_ADDRESSES = ("127.0.0.1", "::1")


class Mode(enum.Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @property
    def is_production(self) -> bool:
        return self is Mode.PRODUCTION

    @classmethod
    def from_flag(cls, production: bool) -> Mode:
        return cls.PRODUCTION if production else cls.DEVELOPMENT


def parse_whitelist(whitelist: str | Iterable[str] | None) -> list[str]:
    if whitelist is None:
        return []
    if isinstance(whitelist, str):
        return [item for item in re.split(r"[,\s]+", whitelist) if item]
    return [str(item) for item in whitelist]


def detect_debug_mode(
    whitelist: str | Iterable[str] | None = None,
    environ: Mapping[str, Any] | None = None,
    hostname: str | None = None,
) -> bool:
    """Return True when the caller is a developer per the whitelist.

    ``environ`` is a WSGI environ; without ``REMOTE_ADDR`` the local host name
    is compared instead.
    """

    environ = environ or {}
    addr = environ.get("REMOTE_ADDR") or hostname or socket.gethostname()
    secret = None
    cookie_header = environ.get("HTTP_COOKIE")
    if cookie_header:
        value = parse_cookie(cookie_header).get(COOKIE_SECRET)
        if isinstance(value, str):
            secret = value
    allowed = parse_whitelist(whitelist)
    if "HTTP_X_FORWARDED_FOR" not in environ and "HTTP_FORWARDED" not in environ:
        allowed.extend(LOCAL_ADDRESSES)
    return addr in allowed or f"{secret or ''}@{addr}" in allowed


def resolve(
    explicit: bool | str | Iterable[str] | None = None,
    whitelist: str | Iterable[str] | None = None,
    environ: Mapping[str, Any] | None = None,
    hostname: str | None = None,
) -> Mode:
    """Resolve the operating mode.

    A boolean ``explicit`` forces the mode (True is production). A string or
    list is treated as the whitelist itself; ``None`` autodetects.
    """

    if isinstance(explicit, bool):
        return Mode.from_flag(explicit)
    if explicit is not None:
        whitelist = explicit
    return Mode.from_flag(not detect_debug_mode(whitelist, environ=environ, hostname=hostname))
