"""
Return-to cookie bookkeeping.

Remembers where a user was headed before being sent to log in, so the
login route (or the catch-all) can bounce them back afterwards.
"""

import logging
from typing import Mapping, Optional
from urllib.parse import quote

from aiohttp import web

from .utils import decode_uri_component, parse_cookie_header

logger = logging.getLogger("auth_proxy.return_to")

RETURN_TO_COOKIE = "return_to"
REDIRECT_QUERY_PARAM = "redirect"

# encodeURIComponent minus the parentheses, which cookie values cannot carry unquoted
_COOKIE_SAFE = "-_.!~*'"


class ReturnToCookie:
    """Sets, reads and clears the return-to marker cookie"""

    name = RETURN_TO_COOKIE

    @classmethod
    def set(cls, response: web.StreamResponse, path: str, secure: bool) -> None:
        """Store ``path`` as a site-wide session cookie"""
        response.set_cookie(
            cls.name,
            quote(path, safe=_COOKIE_SAFE),
            path="/",
            httponly=True,
            samesite="Lax",
            secure=secure or None,
        )

    @classmethod
    def clear(cls, response: web.StreamResponse, secure: bool) -> None:
        """Expire the cookie immediately"""
        response.set_cookie(
            cls.name,
            "",
            path="/",
            httponly=True,
            samesite="Lax",
            secure=secure or None,
            max_age=0,
        )

    @classmethod
    def read(cls, cookie_header: Optional[str]) -> Optional[str]:
        """Raw (still encoded) cookie value, or None"""
        return parse_cookie_header(cookie_header).get(cls.name) or None

    @classmethod
    def resolve(cls, cookie_header: Optional[str], query: Mapping[str, str]) -> Optional[str]:
        """Decoded return-to target from the cookie, falling back to ``?redirect=``"""
        encoded = cls.read(cookie_header) or query.get(REDIRECT_QUERY_PARAM) or ""
        if not encoded:
            return None
        return decode_uri_component(encoded)
