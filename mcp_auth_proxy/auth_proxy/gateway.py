"""
Catch-all gateway for the auth proxy

Everything that is not part of the approval flow either bounces an
authenticated user back to their return-to target or is forwarded upstream.
"""

import logging
from aiohttp import web

from mcp_auth_proxy.auth.adapter import AuthAdapter
from .context import get_request_context
from .forwarder import ReverseProxyForwarder
from .return_to import ReturnToCookie
from .utils import audit_log

logger = logging.getLogger("auth_proxy.gateway")

WELL_KNOWN_PREFIX = "/.well-known"


class GatewayHandler:
    """Catch-all route: return-to redirect or transparent reverse proxy"""

    def __init__(self, auth_adapter: AuthAdapter, forwarder: ReverseProxyForwarder):
        self.auth_adapter = auth_adapter
        self.forwarder = forwarder

    async def handle(self, request: web.Request) -> web.StreamResponse:
        # Metadata discovery never reaches the upstream
        if request.path.startswith(WELL_KNOWN_PREFIX):
            return web.Response(status=404, reason="Not Found", content_type="text/plain")

        ctx = get_request_context(request)

        # A failing check must never block the proxy; the request is forwarded instead
        try:
            if ctx.return_to:
                user = await self.auth_adapter.get_user(ctx)
                if user is not None:
                    logger.info(f"catch-all: authenticated with return_to, redirecting to {ctx.return_to}")
                    audit_log("return_to_redirect", user_id=user.id, details={"return_to": ctx.return_to})
                    response = web.Response(status=302, headers={"Location": ctx.return_to})
                    ReturnToCookie.clear(response, secure=ctx.secure)
                    return response
        except Exception as e:
            logger.error(f"catch-all: redirect check failed: {e}")

        return await self.forwarder.forward(request, label="catch-all")
