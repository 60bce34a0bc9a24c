"""
Header-based authentication adapter.

Trusts identity headers set by an upstream gateway. Only suitable for
trusted networks and local testing.
"""

import logging
from typing import Any, Dict, Optional

from mcp_auth_proxy.auth.adapter import (
    REFRESH_TOKEN_GRANT,
    AuthAdapter,
    AuthSession,
    AuthUser,
    TokenExchangeArgs,
    TokenExchangeResult,
    base_authorization_props,
    refreshed_props,
)
from mcp_auth_proxy.auth_proxy.context import RequestContext

logger = logging.getLogger("auth_proxy.adapters.header")

USER_ID_HEADER = "X-User-Id"
USER_EMAIL_HEADER = "X-User-Email"
ACCESS_TOKEN_HEADER = "X-Access-Token"
REFRESH_TOKEN_HEADER = "X-Refresh-Token"


class HeaderAuthAdapter(AuthAdapter):
    """Reads the user and tokens straight from request headers"""

    def __init__(
        self,
        provider_base_url: str = "https://api.example.com",
        client_id: str = "your-client-id",
        refreshed_access_token: str = "NEW_ACCESS_TOKEN",
    ):
        self.provider_base_url = provider_base_url
        self.client_id = client_id
        self.refreshed_access_token = refreshed_access_token

    async def get_user(self, ctx: RequestContext) -> Optional[AuthUser]:
        user_id = ctx.request.headers.get(USER_ID_HEADER)
        if not user_id:
            return None
        return AuthUser(id=user_id, email=ctx.request.headers.get(USER_EMAIL_HEADER))

    async def get_session(self, ctx: RequestContext) -> Optional[AuthSession]:
        access_token = ctx.request.headers.get(ACCESS_TOKEN_HEADER)
        if not access_token:
            return None
        return AuthSession(
            access_token=access_token,
            refresh_token=ctx.request.headers.get(REFRESH_TOKEN_HEADER, ""),
        )

    async def get_authorization_props(
        self, ctx: RequestContext, user: AuthUser, session: AuthSession
    ) -> Dict[str, Any]:
        props = base_authorization_props(user, session)
        props.update({
            "provider_base_url": self.provider_base_url,
            "client_id": self.client_id,
        })
        return props

    async def token_exchange_callback(self, args: TokenExchangeArgs) -> Optional[TokenExchangeResult]:
        if args.grant_type != REFRESH_TOKEN_GRANT:
            return None

        refresh_token = (args.props or {}).get("refresh_token")
        if not refresh_token:
            return None

        # No real backend to call: hand out the placeholder token and keep the refresh token
        logger.debug(f"Issuing placeholder access token for user {args.props.get('user_id')}")
        return refreshed_props(args.props, self.refreshed_access_token, refresh_token)
