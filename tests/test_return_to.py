"""
Tests for cookie parsing and the return-to cookie.
"""

from aiohttp import web
from multidict import MultiDict

from mcp_auth_proxy.auth_proxy.context import PendingCookie, format_set_cookie
from mcp_auth_proxy.auth_proxy.return_to import ReturnToCookie
from mcp_auth_proxy.auth_proxy.utils import (
    decode_uri_component,
    encode_uri_component,
    parse_cookie_header,
)


class TestUriComponent:

    def test_encodes_like_encode_uri_component(self):
        assert encode_uri_component("/authorize?a=1&b=x y") == "%2Fauthorize%3Fa%3D1%26b%3Dx%20y"
        assert encode_uri_component("-_.!~*'()") == "-_.!~*'()"
        assert encode_uri_component("é") == "%C3%A9"

    def test_decode_leaves_plus_alone(self):
        assert decode_uri_component("a+b%20c") == "a+b c"


class TestParseCookieHeader:

    def test_basic_pairs(self):
        assert parse_cookie_header("a=1; b=2") == {"a": "1", "b": "2"}

    def test_first_occurrence_wins(self):
        assert parse_cookie_header("return_to=%2Ffirst; return_to=%2Fsecond")["return_to"] == "%2Ffirst"

    def test_value_keeps_equals_signs(self):
        assert parse_cookie_header("token=abc==; x=y")["token"] == "abc=="

    def test_malformed_pairs_are_dropped(self):
        assert parse_cookie_header(";;garbage; =nameless;  ok = 1 ") == {"ok": "1"}

    def test_missing_header(self):
        assert parse_cookie_header(None) == {}
        assert parse_cookie_header("") == {}


class TestReturnToCookie:

    def test_set_cookie_attributes(self):
        response = web.Response()
        ReturnToCookie.set(response, "/authorize?client_id=c&state=s", secure=False)

        cookie = response.cookies["return_to"]
        assert cookie.value == "%2Fauthorize%3Fclient_id%3Dc%26state%3Ds"
        assert cookie.get("path") == "/"
        assert cookie.get("httponly") is True
        assert cookie.get("samesite") == "Lax"
        assert not cookie.get("secure")
        assert not cookie.get("max-age")

    def test_set_secure_on_https(self):
        response = web.Response()
        ReturnToCookie.set(response, "/authorize", secure=True)

        assert response.cookies["return_to"].get("secure") is True

    def test_parentheses_are_encoded(self):
        response = web.Response()
        ReturnToCookie.set(response, "/a(b)", secure=False)

        assert response.cookies["return_to"].value == "%2Fa%28b%29"

    def test_clear_expires_immediately(self):
        response = web.Response()
        ReturnToCookie.clear(response, secure=True)

        cookie = response.cookies["return_to"]
        assert cookie.value == ""
        assert cookie.get("max-age") == "0"
        assert cookie.get("path") == "/"
        assert cookie.get("secure") is True

    def test_read(self):
        assert ReturnToCookie.read("a=1; return_to=%2Fauthorize") == "%2Fauthorize"
        assert ReturnToCookie.read("a=1") is None
        assert ReturnToCookie.read("return_to=") is None
        assert ReturnToCookie.read(None) is None

    def test_resolve_prefers_cookie(self):
        query = MultiDict({"redirect": "/from-param"})

        assert ReturnToCookie.resolve("theme=dark; return_to=%2Ffrom-cookie", query) == "/from-cookie"

    def test_resolve_falls_back_to_redirect_param(self):
        assert ReturnToCookie.resolve(None, MultiDict({"redirect": "/authorize?x=1"})) == "/authorize?x=1"

    def test_resolve_nothing(self):
        assert ReturnToCookie.resolve(None, MultiDict()) is None
        assert ReturnToCookie.resolve("return_to=", MultiDict()) is None


class TestSetCookieHeader:
    """Adapter cookies rendered as raw Set-Cookie values"""

    def test_attributes(self):
        header = format_set_cookie(PendingCookie(
            "sb-test-auth-token", "base64-abc",
            {"path": "/", "httponly": True, "secure": True, "samesite": "Lax"},
        ))

        assert header.startswith("sb-test-auth-token=base64-abc")
        assert "Path=/" in header
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=Lax" in header

    def test_max_age_keyword(self):
        header = format_set_cookie(PendingCookie("sb-test-auth-token.1", "", {"path": "/", "max_age": 0}))

        assert "Max-Age=0" in header

    def test_unset_options_are_left_out(self):
        header = format_set_cookie(PendingCookie("a", "b", {"domain": None, "secure": False}))

        assert header == "a=b"
