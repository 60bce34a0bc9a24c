"""
Reverse proxy forwarder.

Replays an inbound request against the upstream origin and relays the
upstream response back without touching its body.
"""

import asyncio
import logging
from typing import Optional

from aiohttp import ClientError, ClientSession, hdrs, web
from multidict import CIMultiDict
from yarl import URL

logger = logging.getLogger("auth_proxy.forwarder")

# Framing headers aiohttp sets itself when writing the relayed response
HOP_BY_HOP_RESPONSE_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-connection",
    "transfer-encoding",
    "upgrade",
}

# The body is buffered and re-framed, so the inbound framing header does not carry over
EXCLUDED_REQUEST_HEADERS = {"host", "transfer-encoding"}

BODYLESS_METHODS = {"GET", "HEAD"}

CHUNK_SIZE = 64 * 1024


def build_target_url(target_base_url: str, path_qs: str) -> URL:
    """Upstream origin joined with the inbound path and query (never the inbound host)"""
    origin = URL(target_base_url).origin()
    return URL(str(origin) + path_qs, encoded=True)


def build_forward_headers(request: web.Request) -> CIMultiDict:
    """Every inbound header except Host (and the request framing header)"""
    headers = CIMultiDict()
    for key, value in request.headers.items():
        if key.lower() not in EXCLUDED_REQUEST_HEADERS:
            headers.add(key, value)
    return headers


class ReverseProxyForwarder:
    """Forwards requests to a fixed upstream"""

    def __init__(self, target_base_url: str):
        self.target_base_url = target_base_url

    async def forward(self, request: web.Request, label: str = "proxy") -> web.StreamResponse:
        return await forward(request, self.target_base_url, label=label)


async def forward(request: web.Request, target_base_url: str, label: str = "proxy") -> web.StreamResponse:
    """
    Forward ``request`` to ``target_base_url`` and stream the answer back.

    Network failures before the upstream answered become a generic 500;
    nothing about the failure reaches the client.
    """
    target_url = build_target_url(target_base_url, request.raw_path)
    headers = build_forward_headers(request)

    body: Optional[bytes] = None
    if request.method not in BODYLESS_METHODS:
        body = await request.read()
    else:
        # Nothing is sent upstream, so no length either
        headers.popall(hdrs.CONTENT_LENGTH, None)

    logger.debug(f"{label}: forwarding {request.method} {request.raw_path} -> {target_url}")

    response: Optional[web.StreamResponse] = None
    try:
        # auto_decompress off: the body goes back exactly as the upstream encoded it
        async with ClientSession(auto_decompress=False) as session:
            async with session.request(
                request.method,
                target_url,
                headers=headers,
                data=body,
                allow_redirects=False,
                skip_auto_headers=("Accept", "Accept-Encoding", "User-Agent", "Content-Type"),
            ) as upstream:
                response = web.StreamResponse(status=upstream.status, reason=upstream.reason)
                for key, value in upstream.headers.items():
                    if key.lower() not in HOP_BY_HOP_RESPONSE_HEADERS:
                        response.headers.add(key, value)

                await response.prepare(request)
                async for chunk in upstream.content.iter_chunked(CHUNK_SIZE):
                    await response.write(chunk)
                await response.write_eof()
                return response

    except (ClientError, asyncio.TimeoutError, OSError) as e:
        if response is not None and response.prepared:
            # Status line already sent; all we can do is cut the body short
            logger.error(f"{label}: upstream stream to {target_url} failed mid-response: {e}")
            return response
        logger.error(f"{label}: request to {target_url} failed: {e}")
        return web.Response(text="Internal Server Error", status=500)
