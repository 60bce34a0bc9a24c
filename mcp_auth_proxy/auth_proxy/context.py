"""
Per-request context shared by the approval flow, the gateway and adapters.

Cookies are parsed once per request by ``context_middleware``; adapters
queue their own cookies here and ``apply_pending_cookies`` writes them onto
whatever response goes out, streamed proxy responses included.
"""

import logging
from http.cookies import SimpleCookie
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from aiohttp import hdrs, web

from .return_to import ReturnToCookie
from .utils import parse_cookie_header

logger = logging.getLogger("auth_proxy.context")

REQUEST_CONTEXT_KEY = "auth_proxy_context"


@dataclass
class PendingCookie:
    name: str
    value: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RequestContext:
    """What the auth proxy knows about the inbound request"""
    request: web.Request
    cookies: Dict[str, str]
    return_to: Optional[str] = None
    pending_cookies: List[PendingCookie] = field(default_factory=list)
    # Adapter-private per-request memo (e.g. a session refreshed during get_user)
    adapter_state: Dict[str, Any] = field(default_factory=dict)

    @property
    def secure(self) -> bool:
        return self.request.secure

    @property
    def path_qs(self) -> str:
        """Path and query string exactly as received"""
        return self.request.raw_path

    @classmethod
    def from_request(cls, request: web.Request) -> "RequestContext":
        cookie_header = request.headers.get(hdrs.COOKIE)
        return cls(
            request=request,
            cookies=parse_cookie_header(cookie_header),
            return_to=ReturnToCookie.resolve(cookie_header, request.query),
        )

    def set_cookie(self, name: str, value: str, **options: Any) -> None:
        """Queue a cookie for the response this request ends up with"""
        self.pending_cookies.append(PendingCookie(name, value, options))


def format_set_cookie(cookie: PendingCookie) -> str:
    """Render a Set-Cookie value; options use set_cookie keyword names (max_age, ...)"""
    jar = SimpleCookie()
    jar[cookie.name] = cookie.value
    morsel = jar[cookie.name]
    for key, value in cookie.options.items():
        if value is not None:
            morsel[key.replace("_", "-")] = value
    return morsel.OutputString()


def get_request_context(request: web.Request) -> RequestContext:
    ctx = request.get(REQUEST_CONTEXT_KEY)
    if ctx is None:
        ctx = RequestContext.from_request(request)
        request[REQUEST_CONTEXT_KEY] = ctx
    return ctx


@web.middleware
async def context_middleware(request: web.Request, handler):
    """Build the request context before any handler runs"""
    request[REQUEST_CONTEXT_KEY] = RequestContext.from_request(request)
    return await handler(request)


async def apply_pending_cookies(request: web.Request, response: web.StreamResponse) -> None:
    """
    ``on_response_prepare`` hook writing adapter-issued cookies.

    aiohttp has already turned ``response.cookies`` into headers by the time
    this signal fires, so each cookie is added as a raw Set-Cookie header.
    """
    ctx = request.get(REQUEST_CONTEXT_KEY)
    if ctx is None:
        return
    for cookie in ctx.pending_cookies:
        response.headers.add(hdrs.SET_COOKIE, format_set_cookie(cookie))
