"""
Shared fixtures: an in-memory adapter, a scripted OAuth provider and an
upstream server the proxy forwards to.
"""

from typing import Any, Dict, Optional

import pytest
from aiohttp import DummyCookieJar, web

from mcp_auth_proxy.auth.adapter import AuthAdapter, AuthSession, AuthUser, base_authorization_props
from mcp_auth_proxy.auth.provider import (
    AuthRequest,
    CompleteAuthorizationResult,
    OAuthProviderHelpers,
)
from mcp_auth_proxy.auth_proxy.models import AppConfig
from mcp_auth_proxy.auth_proxy.server import create_auth_proxy

PROVIDER_REDIRECT = "https://client.example.com/callback?code=abc123&state=xyz"


class StaticAuthAdapter(AuthAdapter):
    """Adapter whose user and session are set by the test"""

    def __init__(self, user: Optional[AuthUser] = None, session: Optional[AuthSession] = None):
        self.user = user
        self.session = session
        self.get_user_calls = 0

    async def get_user(self, ctx):
        self.get_user_calls += 1
        return self.user

    async def get_session(self, ctx):
        return self.session

    async def get_authorization_props(self, ctx, user, session) -> Dict[str, Any]:
        return base_authorization_props(user, session)


class QueryOAuthProvider(OAuthProviderHelpers):
    """Provider helpers that read the authorization request from the query string"""

    def __init__(self, redirect_to: str = PROVIDER_REDIRECT):
        self.redirect_to = redirect_to
        self.error: Optional[Exception] = None
        self.completed = []

    async def parse_auth_request(self, request: web.Request) -> AuthRequest:
        query = request.query
        if "client_id" not in query:
            raise ValueError("client_id is required")
        return AuthRequest(
            response_type=query.get("response_type", "code"),
            client_id=query["client_id"],
            redirect_uri=query.get("redirect_uri", "https://client.example.com/callback"),
            scope=query.get("scope", "").split(),
            state=query.get("state", ""),
        )

    async def complete_authorization(self, options):
        self.completed.append(options)
        if self.error is not None:
            raise self.error
        return CompleteAuthorizationResult(redirect_to=self.redirect_to)


@pytest.fixture
def auth_request() -> AuthRequest:
    return AuthRequest(
        response_type="code",
        client_id="client-1",
        redirect_uri="https://client.example.com/callback",
        scope=["read", "write"],
        state="xyz",
    )


@pytest.fixture
def user() -> AuthUser:
    return AuthUser(id="user-42", email="ada@example.com")


@pytest.fixture
def session() -> AuthSession:
    return AuthSession(access_token="access-1", refresh_token="refresh-1")


@pytest.fixture
def adapter() -> StaticAuthAdapter:
    return StaticAuthAdapter()


@pytest.fixture
def provider() -> QueryOAuthProvider:
    return QueryOAuthProvider()


@pytest.fixture
async def upstream(aiohttp_server):
    """Upstream server that records every request and echoes it back"""
    seen = []

    async def echo(request: web.Request) -> web.Response:
        body = await request.read()
        seen.append({
            "method": request.method,
            "path_qs": request.raw_path,
            "headers": dict(request.headers),
            "body": body,
        })
        return web.json_response(
            {"method": request.method, "path_qs": request.raw_path, "body": body.decode("utf-8", "replace")},
            headers={"X-Upstream": "yes"},
        )

    async def moved(request: web.Request) -> web.Response:
        return web.Response(status=301, reason="Moved Permanently", headers={"Location": "/elsewhere"})

    async def gzipped(request: web.Request) -> web.Response:
        return web.Response(body=b"\x1f\x8b-not-really-gzip", headers={"Content-Encoding": "gzip"})

    app = web.Application()
    app.router.add_route("*", "/moved", moved)
    app.router.add_route("*", "/gzipped", gzipped)
    app.router.add_route("*", "/{tail:.*}", echo)

    server = await aiohttp_server(app)
    server.seen = seen
    return server


@pytest.fixture
def app_config(upstream) -> AppConfig:
    return AppConfig(
        logo_url="https://cdn.example.com/logo.png",
        company_name="Acme <Corp>",
        proxy_target_url=str(upstream.make_url("/")),
    )


@pytest.fixture
async def client(aiohttp_client, adapter, provider, app_config):
    app = create_auth_proxy(adapter, app_config, provider)
    return await aiohttp_client(app, cookie_jar=DummyCookieJar())
