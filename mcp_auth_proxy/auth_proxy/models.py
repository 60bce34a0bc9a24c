"""
Data models and configuration for the auth proxy
"""

import os
import logging
from enum import Enum
from typing import Any, Mapping, Optional
from dataclasses import dataclass

from aiohttp import web

from mcp_auth_proxy.auth.provider import AuthRequest, OAuthProviderHelpers

logger = logging.getLogger("auth_proxy.config")

# Provider helpers the default-handler app was built for
OAUTH_PROVIDER_KEY = web.AppKey("oauth_provider", OAuthProviderHelpers)


class FlowState(str, Enum):
    """Where a request ends up in the approval flow"""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED_PENDING_APPROVAL = "authenticated_pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    LOGIN_PROXY = "login_proxy"


@dataclass
class AppConfig:
    """Branding and upstream configuration; every field is required"""
    logo_url: str
    company_name: str
    proxy_target_url: str

    @classmethod
    def from_environment(cls) -> 'AppConfig':
        """Create app config from environment variables"""
        env_names = {
            "logo_url": "LOGO_URL",
            "company_name": "COMPANY_NAME",
            "proxy_target_url": "PROXY_TARGET_URL",
        }
        values = {field_name: os.getenv(env_name, "") for field_name, env_name in env_names.items()}

        missing_fields = [env_names[name] for name, value in values.items() if not value]
        if missing_fields:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing_fields)}"
            )

        config = cls(**values)
        logger.info(f"App configuration loaded, proxying to {config.proxy_target_url}")
        return config


class ProxyConfig:
    """Configuration for running the auth proxy server"""

    def __init__(self):
        self.host = os.getenv('AUTH_PROXY_HOST', 'localhost')
        self.port = int(os.getenv('AUTH_PROXY_PORT', '8787'))
        self.log_level = os.getenv('LOG_LEVEL', 'INFO')
        self.adapter = os.getenv('AUTH_ADAPTER', 'header')
        self.provider_factory = os.getenv('OAUTH_PROVIDER_FACTORY', '')
        self.api_route = os.getenv('MCP_API_ROUTE', '/mcp')


@dataclass
class ApproveForm:
    """Fields posted by the approval screen"""
    action: Optional[str]
    auth_request: Optional[AuthRequest]
    authorize_url: Optional[str]
    email: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def parse(cls, body: Mapping[str, Any]) -> 'ApproveForm':
        """Never raises; an unusable ``oauthReqInfo`` leaves ``auth_request`` as None"""
        auth_request = None
        raw = body.get("oauthReqInfo")
        if isinstance(raw, str):
            try:
                auth_request = AuthRequest.from_json(raw)
            except ValueError as e:
                logger.warning(f"Discarding malformed oauthReqInfo: {e}")

        def text(name: str) -> Optional[str]:
            value = body.get(name)
            return value if isinstance(value, str) else None

        return cls(
            action=text("action"),
            auth_request=auth_request,
            authorize_url=text("authorizeUrl"),
            email=text("email"),
            password=text("password"),
        )
