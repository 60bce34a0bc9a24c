"""
Tests for the catch-all gateway route.
"""

from unittest.mock import AsyncMock

from aiohttp import DummyCookieJar

from mcp_auth_proxy.auth.adapter import AuthUser
from mcp_auth_proxy.auth_proxy.server import create_auth_proxy

from conftest import StaticAuthAdapter


class CookieIssuingAdapter(StaticAuthAdapter):
    """Refreshes a session cookie whenever it looks the user up"""

    async def get_user(self, ctx):
        ctx.set_cookie("sb-test-auth-token", "refreshed", path="/", httponly=True)
        return await super().get_user(ctx)


class TestWellKnown:
    """/.well-known/* is never proxied"""

    async def test_well_known_is_404(self, client, adapter, upstream):
        resp = await client.get("/.well-known/oauth-authorization-server")

        assert resp.status == 404
        assert resp.content_type == "text/plain"
        assert upstream.seen == []
        assert adapter.get_user_calls == 0

    async def test_well_known_is_404_even_when_authenticated(self, client, adapter, user):
        adapter.user = user

        resp = await client.get(
            "/.well-known/oauth-protected-resource",
            headers={"Cookie": "return_to=%2Fauthorize"},
            allow_redirects=False,
        )

        assert resp.status == 404


class TestReturnToRedirect:
    """Authenticated requests carrying a return-to target bounce back"""

    async def test_authenticated_with_cookie_redirects(self, client, adapter, user, upstream):
        adapter.user = user

        resp = await client.get(
            "/dashboard",
            headers={"Cookie": "theme=dark; return_to=%2Fauthorize%3Fclient_id%3Dclient-1"},
            allow_redirects=False,
        )

        assert resp.status == 302
        assert resp.headers["Location"] == "/authorize?client_id=client-1"
        assert resp.cookies["return_to"].get("max-age") == "0"
        assert upstream.seen == []

    async def test_authenticated_with_redirect_param_redirects(self, client, adapter, user):
        adapter.user = user

        resp = await client.get("/callback?redirect=%2Fauthorize", allow_redirects=False)

        assert resp.status == 302
        assert resp.headers["Location"] == "/authorize"

    async def test_unauthenticated_with_cookie_is_proxied(self, client, adapter, upstream):
        resp = await client.get("/dashboard", headers={"Cookie": "return_to=%2Fauthorize"})

        assert resp.status == 200
        assert (await resp.json())["path_qs"] == "/dashboard"
        assert adapter.get_user_calls == 1

    async def test_no_return_to_skips_the_user_lookup(self, client, adapter, user, upstream):
        adapter.user = user

        resp = await client.get("/assets/app.js?v=3")

        assert resp.status == 200
        assert (await resp.json())["path_qs"] == "/assets/app.js?v=3"
        assert adapter.get_user_calls == 0

    async def test_failing_lookup_falls_through_to_proxy(self, client, adapter, upstream):
        adapter.get_user = AsyncMock(side_effect=RuntimeError("session store down"))

        resp = await client.get("/dashboard", headers={"Cookie": "return_to=%2Fauthorize"})

        assert resp.status == 200
        assert resp.headers["X-Upstream"] == "yes"
        adapter.get_user.assert_awaited_once()


class TestAdapterCookies:
    """Cookies queued by the adapter reach streamed proxy responses"""

    async def test_adapter_cookie_on_proxied_response(self, aiohttp_client, provider, app_config, upstream):
        adapter = CookieIssuingAdapter()
        client = await aiohttp_client(create_auth_proxy(adapter, app_config, provider), cookie_jar=DummyCookieJar())

        resp = await client.get("/page", headers={"Cookie": "return_to=%2Fauthorize"})

        assert resp.status == 200
        assert resp.cookies["sb-test-auth-token"].value == "refreshed"
        assert resp.cookies["sb-test-auth-token"].get("httponly") is True
        assert resp.cookies["sb-test-auth-token"].get("path") == "/"

    async def test_adapter_cookie_on_redirect(self, aiohttp_client, provider, app_config):
        adapter = CookieIssuingAdapter(user=AuthUser(id="user-1"))
        client = await aiohttp_client(create_auth_proxy(adapter, app_config, provider), cookie_jar=DummyCookieJar())

        resp = await client.get("/auth/login", allow_redirects=False)

        assert resp.status == 302
        assert resp.cookies["sb-test-auth-token"].value == "refreshed"
        assert resp.cookies["return_to"].get("max-age") == "0"
