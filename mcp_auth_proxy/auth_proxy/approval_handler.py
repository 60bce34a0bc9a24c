"""
Authorization approval flow for the auth proxy

Handles /authorize, /approve and /auth/login: decides between sending the
user to log in, showing the approval screen and completing the
authorization with the OAuth provider.
"""

import logging
from aiohttp import web

from mcp_auth_proxy.auth.adapter import AuthAdapter
from mcp_auth_proxy.auth.provider import CompleteAuthorizationOptions, OAuthProviderHelpers
from .context import get_request_context
from .forwarder import ReverseProxyForwarder
from .models import OAUTH_PROVIDER_KEY, ApproveForm, FlowState
from .return_to import ReturnToCookie
from .ui_handlers import UIHandlers
from .utils import audit_log, encode_uri_component

logger = logging.getLogger("auth_proxy.flow")

LOGIN_PATH = "/auth/login"
DEFAULT_RETURN_TO = "/authorize"


def redirect_response(location: str) -> web.Response:
    return web.Response(status=302, headers={"Location": location})


class ApprovalHandler:
    """Drives a pending OAuth authorization from login through approval"""

    def __init__(
        self,
        auth_adapter: AuthAdapter,
        ui_handlers: UIHandlers,
        forwarder: ReverseProxyForwarder,
    ):
        self.auth_adapter = auth_adapter
        self.ui = ui_handlers
        self.forwarder = forwarder

    @staticmethod
    def oauth_provider(request: web.Request) -> OAuthProviderHelpers:
        return request.app[OAUTH_PROVIDER_KEY]

    async def authorize(self, request: web.Request) -> web.StreamResponse:
        """Show the approval screen, or send an anonymous user to log in first"""
        ctx = get_request_context(request)
        user = await self.auth_adapter.get_user(ctx)

        try:
            auth_request = await self.oauth_provider(request).parse_auth_request(request)
        except Exception as e:
            logger.error(f"/authorize: could not parse authorization request: {e}")
            return web.Response(text="Invalid authorization request.", status=400)

        authorize_url = ctx.path_qs

        if user is None:
            logger.info(f"/authorize: unauthenticated, setting return_to and redirecting (secure={ctx.secure})")
            audit_log("authorize", details={
                "state": FlowState.UNAUTHENTICATED.value,
                "return_to": authorize_url,
                "client_id": auth_request.client_id,
            })
            response = redirect_response(f"{LOGIN_PATH}?redirect={encode_uri_component(authorize_url)}")
            ReturnToCookie.set(response, authorize_url, secure=ctx.secure)
            return response

        audit_log("authorize", user_id=user.id, details={
            "state": FlowState.AUTHENTICATED_PENDING_APPROVAL.value,
            "client_id": auth_request.client_id,
        })
        return self.ui.page(self.ui.authorize_screen(auth_request, authorize_url))

    async def approve(self, request: web.Request) -> web.StreamResponse:
        """Process the approve/reject decision posted by the approval screen"""
        ctx = get_request_context(request)
        user = await self.auth_adapter.get_user(ctx)

        form = ApproveForm.parse(await request.post())
        if form.auth_request is None:
            logger.warning("/approve: missing or malformed oauthReqInfo")
            return web.Response(text="INVALID LOGIN", status=401, content_type="text/html")

        auth_request = form.auth_request

        if user is None:
            audit_log("approve", details={
                "state": FlowState.REJECTED.value,
                "reason": "unauthenticated",
                "client_id": auth_request.client_id,
            })
            return self.ui.page(self.ui.rejected_content(LOGIN_PATH))

        if form.action == "reject":
            audit_log("approve", user_id=user.id, details={
                "state": FlowState.REJECTED.value,
                "reason": "user_rejected",
                "client_id": auth_request.client_id,
            })
            return self.ui.page(self.ui.rejected_page(form.authorize_url))

        session = await self.auth_adapter.get_session(ctx)
        if session is None:
            audit_log("approve", user_id=user.id, details={
                "state": FlowState.REJECTED.value,
                "reason": "no_session",
                "client_id": auth_request.client_id,
            })
            return self.ui.page(self.ui.rejected_content(LOGIN_PATH))

        props = await self.auth_adapter.get_authorization_props(ctx, user, session)

        try:
            result = await self.oauth_provider(request).complete_authorization(
                CompleteAuthorizationOptions(
                    request=auth_request,
                    user_id=user.id,
                    metadata={"label": user.email or "User"},
                    scope=auth_request.scope,
                    props=props,
                )
            )
        except Exception as e:
            logger.error(
                f"/approve: complete_authorization failed: {e} "
                f"(client_id={auth_request.client_id}, user_id={user.id})",
                exc_info=True,
            )
            return web.Response(text="Authorization failed: invalid request.", status=400)

        audit_log("approve", user_id=user.id, details={
            "state": FlowState.APPROVED.value,
            "client_id": auth_request.client_id,
            "scope": auth_request.scope,
        })
        return self.ui.page(self.ui.approved_content(result.redirect_to))

    async def login(self, request: web.Request) -> web.StreamResponse:
        """Proxy the upstream login page, or bounce an authenticated user back"""
        ctx = get_request_context(request)
        user = await self.auth_adapter.get_user(ctx)

        if user is None:
            logger.info(f"/auth/login: unauthenticated, proxying login ({ctx.path_qs})")
            audit_log("login", details={"state": FlowState.LOGIN_PROXY.value, "path": request.path})
            return await self.forwarder.forward(request, label="/auth/login")

        return_to = ctx.return_to or DEFAULT_RETURN_TO
        logger.info(f"/auth/login: authenticated, redirecting back to {return_to}")
        audit_log("login", user_id=user.id, details={"return_to": return_to})

        response = redirect_response(return_to)
        ReturnToCookie.clear(response, secure=ctx.secure)
        return response
