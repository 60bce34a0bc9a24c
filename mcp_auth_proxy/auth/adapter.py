"""
Authentication adapter contract for the auth proxy.

An adapter hides everything identity-provider specific (cookies, SDK calls,
trusted headers) behind four operations the approval flow relies on.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from mcp_auth_proxy.auth_proxy.context import RequestContext

logger = logging.getLogger(__name__)

REFRESH_TOKEN_GRANT = "refresh_token"


@dataclass
class AuthUser:
    """Human principal recognized by an adapter"""
    id: str
    email: Optional[str] = None


@dataclass
class AuthSession:
    """Live credential bundle for the current user.

    ``extra`` carries adapter-specific values (provider base URL, API key, ...)
    that have to survive the trip into token props and back on refresh.
    """
    access_token: str
    refresh_token: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.extra.get(key, default)


@dataclass
class TokenExchangeArgs:
    """Arguments the OAuth provider passes on a token exchange event"""
    grant_type: str
    props: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TokenExchangeResult:
    """Adapter answer to a token exchange.

    ``new_props`` replaces the props persisted with the grant,
    ``access_token_props`` scopes what the next access token carries.
    """
    access_token_props: Optional[Dict[str, Any]] = None
    new_props: Optional[Dict[str, Any]] = None
    access_token_ttl: Optional[int] = None


def base_authorization_props(user: AuthUser, session: AuthSession) -> Dict[str, Any]:
    """
    Props every adapter must hand to the provider.

    Keys are snake_case; MCP handlers that expect the camelCase names read
    them as ``user_id`` (userId), ``user_email`` (userEmail),
    ``access_token`` (accessToken) and ``refresh_token`` (refreshToken).
    """
    return {
        "user_email": user.email or "",
        "user_id": user.id,
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
    }


def refreshed_props(props: Dict[str, Any], access_token: str, refresh_token: str) -> TokenExchangeResult:
    """Build the exchange result for a successful refresh without touching ``props``"""
    return TokenExchangeResult(
        access_token_props={**props, "access_token": access_token},
        new_props={**props, "access_token": access_token, "refresh_token": refresh_token},
    )


class AuthAdapter(ABC):
    """Identity backend behind the approval flow.

    ``get_user`` returns None for "not authenticated"; anything it raises is
    fatal to the request. ``get_session`` may return None even for a known
    user, which the flow treats as "send back to login".
    ``token_exchange_callback`` must never raise for backend failures: it
    returns None, meaning no refresh was performed.
    """

    @abstractmethod
    async def get_user(self, ctx: "RequestContext") -> Optional[AuthUser]:
        ...

    @abstractmethod
    async def get_session(self, ctx: "RequestContext") -> Optional[AuthSession]:
        ...

    @abstractmethod
    async def get_authorization_props(
        self, ctx: "RequestContext", user: AuthUser, session: AuthSession
    ) -> Dict[str, Any]:
        ...

    async def token_exchange_callback(self, args: TokenExchangeArgs) -> Optional[TokenExchangeResult]:
        """Default: keep whatever the provider would do on its own"""
        return None
