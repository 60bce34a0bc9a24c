"""Interface to the external OAuth provider engine.

The provider owns authorization requests, grants and tokens. The auth proxy
only parses a pending request, carries it through the approval form and
asks the provider to complete it.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiohttp import web

from .adapter import TokenExchangeArgs, TokenExchangeResult

logger = logging.getLogger(__name__)


@dataclass
class AuthRequest:
    """A pending OAuth authorization transaction as issued by the provider"""
    response_type: str
    client_id: str
    redirect_uri: str
    scope: List[str] = field(default_factory=list)
    state: str = ""
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthRequest":
        if not isinstance(data, dict):
            raise ValueError("Authorization request must be a JSON object")

        for name in ("response_type", "client_id", "redirect_uri"):
            if not isinstance(data.get(name), str):
                raise ValueError(f"Authorization request field '{name}' missing or not a string")

        scope = data.get("scope", [])
        if not isinstance(scope, list) or not all(isinstance(s, str) for s in scope):
            raise ValueError("Authorization request field 'scope' must be a list of strings")

        state = data.get("state", "")
        if not isinstance(state, str):
            raise ValueError("Authorization request field 'state' must be a string")

        return cls(
            response_type=data["response_type"],
            client_id=data["client_id"],
            redirect_uri=data["redirect_uri"],
            scope=list(scope),
            state=state,
            code_challenge=data.get("code_challenge"),
            code_challenge_method=data.get("code_challenge_method"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "AuthRequest":
        """Deserialize the hidden form value; raises ValueError on anything malformed"""
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid authorization request JSON: {e}") from e
        return cls.from_dict(data)


@dataclass
class CompleteAuthorizationOptions:
    """What the approval flow hands to the provider once the user approved"""
    request: AuthRequest
    user_id: str
    metadata: Dict[str, Any]
    scope: List[str]
    props: Dict[str, Any]


@dataclass
class CompleteAuthorizationResult:
    redirect_to: str


class OAuthProviderHelpers(ABC):
    """Helpers the provider engine exposes to the default handler"""

    @abstractmethod
    async def parse_auth_request(self, request: web.Request) -> AuthRequest:
        """Parse the authorization request; may raise on malformed input"""

    @abstractmethod
    async def complete_authorization(
        self, options: CompleteAuthorizationOptions
    ) -> CompleteAuthorizationResult:
        """Issue the grant and return where to send the user agent; may raise"""


TokenExchangeCallback = Callable[[TokenExchangeArgs], Awaitable[Optional[TokenExchangeResult]]]
DefaultHandlerFactory = Callable[[OAuthProviderHelpers], web.Application]


@dataclass
class ProviderOptions:
    """Everything an OAuth provider factory needs to build the root application"""
    api_route: str
    api_handler: Any
    default_handler_factory: DefaultHandlerFactory
    authorize_endpoint: str = "/authorize"
    token_endpoint: str = "/token"
    client_registration_endpoint: str = "/register"
    token_exchange_callback: Optional[TokenExchangeCallback] = None


ProviderFactory = Callable[[ProviderOptions], web.Application]
