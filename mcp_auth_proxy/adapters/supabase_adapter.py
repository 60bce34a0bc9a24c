"""
Supabase authentication adapter.

Reads the session cookie written by Supabase's SSR helpers
(``sb-<project-ref>-auth-token``, possibly chunked and base64-encoded),
validates it against the Supabase Auth REST API and refreshes it when it
has expired.
"""

import os
import json
import time
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

import httpx
import jwt

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

logger = logging.getLogger("auth_proxy.adapters.supabase")

BASE64_PREFIX = "base64-"
MAX_CHUNK_SIZE = 3180
EXPIRY_MARGIN_SECONDS = 10
_SESSION_STATE_KEY = "supabase_session"


@dataclass
class SupabaseAdapterConfig:
    """Configuration required to instantiate SupabaseAuthAdapter"""
    supabase_url: str
    supabase_anon_key: str

    @classmethod
    def from_environment(cls) -> 'SupabaseAdapterConfig':
        supabase_url = os.getenv("SUPABASE_URL", "")
        supabase_anon_key = os.getenv("SUPABASE_ANON_KEY", "")

        missing_fields = []
        if not supabase_url:
            missing_fields.append("SUPABASE_URL")
        if not supabase_anon_key:
            missing_fields.append("SUPABASE_ANON_KEY")
        if missing_fields:
            raise ValueError(f"Missing required environment variables: {', '.join(missing_fields)}")

        return cls(supabase_url=supabase_url.rstrip("/"), supabase_anon_key=supabase_anon_key)


class SupabaseAuthAdapter(AuthAdapter):
    """Authenticates users with a Supabase project"""

    def __init__(
        self,
        config: SupabaseAdapterConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.supabase_url = config.supabase_url.rstrip("/")
        self.supabase_anon_key = config.supabase_anon_key
        self.transport = transport
        self.timeout = timeout

        project_ref = (urlparse(self.supabase_url).hostname or "").split(".")[0]
        self.storage_key = f"sb-{project_ref}-auth-token"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    def _api_headers(self, bearer: str) -> Dict[str, str]:
        return {
            "apikey": self.supabase_anon_key,
            "Authorization": f"Bearer {bearer}",
        }

    # Cookie storage

    def _read_stored_session(self, ctx: RequestContext) -> Optional[Dict[str, Any]]:
        raw = ctx.cookies.get(self.storage_key)
        if raw is None:
            chunks = []
            while f"{self.storage_key}.{len(chunks)}" in ctx.cookies:
                chunks.append(ctx.cookies[f"{self.storage_key}.{len(chunks)}"])
            raw = "".join(chunks) if chunks else None
        if not raw:
            return None

        try:
            value = unquote(raw)
            if value.startswith(BASE64_PREFIX):
                payload = value[len(BASE64_PREFIX):]
                value = base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)).decode("utf-8")
            data = json.loads(value)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable Supabase session cookie: {e}")
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        return data

    def _persist_session(self, ctx: RequestContext, session: Dict[str, Any]) -> None:
        """Queue the refreshed session cookie(s) on the outgoing response"""
        encoded = BASE64_PREFIX + base64.urlsafe_b64encode(
            json.dumps(session, separators=(",", ":")).encode("utf-8")
        ).decode("ascii").rstrip("=")
        options = {"path": "/", "httponly": True, "secure": True, "samesite": "Lax"}

        if len(encoded) <= MAX_CHUNK_SIZE:
            ctx.set_cookie(self.storage_key, encoded, **options)
            chunk_count = 0
        else:
            chunks = [encoded[i:i + MAX_CHUNK_SIZE] for i in range(0, len(encoded), MAX_CHUNK_SIZE)]
            for index, chunk in enumerate(chunks):
                ctx.set_cookie(f"{self.storage_key}.{index}", chunk, **options)
            chunk_count = len(chunks)
            if self.storage_key in ctx.cookies:
                ctx.set_cookie(self.storage_key, "", max_age=0, **options)

        # Drop leftover chunks from a previous, longer session
        index = chunk_count
        while f"{self.storage_key}.{index}" in ctx.cookies:
            ctx.set_cookie(f"{self.storage_key}.{index}", "", max_age=0, **options)
            index += 1

    # Supabase Auth API

    def _is_expired(self, session: Dict[str, Any]) -> bool:
        expires_at = session.get("expires_at")
        if expires_at is None:
            try:
                # Claims only; Supabase checks the signature when the token is used
                claims = jwt.decode(session["access_token"], options={"verify_signature": False})
                expires_at = claims.get("exp")
            except jwt.InvalidTokenError:
                return False
        if expires_at is None:
            return False
        try:
            expires_at = float(expires_at)
        except (TypeError, ValueError):
            # Unreadable expiry: refresh rather than trust the token
            logger.warning(f"Supabase session has unreadable expires_at {expires_at!r}")
            return True
        return time.time() + EXPIRY_MARGIN_SECONDS >= expires_at

    async def _refresh(self, refresh_token: str) -> Optional[Dict[str, Any]]:
        """Exchange a refresh token for a new session; None on any failure"""
        url = f"{self.supabase_url}/auth/v1/token"
        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    params={"grant_type": "refresh_token"},
                    headers=self._api_headers(self.supabase_anon_key),
                    json={"refresh_token": refresh_token},
                )
            if response.status_code != 200:
                logger.warning(f"Supabase token refresh rejected: HTTP {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Supabase token refresh failed: {e}")
            return None

        return data if isinstance(data, dict) else None

    async def _fetch_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.supabase_url}/auth/v1/user",
                    headers=self._api_headers(access_token),
                )
            if response.status_code != 200:
                logger.debug(f"Supabase rejected access token: HTTP {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Supabase user lookup failed: {e}")
            return None

        return data if isinstance(data, dict) and data.get("id") else None

    async def _current_session(self, ctx: RequestContext) -> Optional[Dict[str, Any]]:
        """Stored session for this request, refreshed once if it has expired"""
        if _SESSION_STATE_KEY in ctx.adapter_state:
            return ctx.adapter_state[_SESSION_STATE_KEY]

        session = self._read_stored_session(ctx)
        if session is not None and self._is_expired(session):
            refresh_token = session.get("refresh_token")
            refreshed = await self._refresh(refresh_token) if refresh_token else None
            if refreshed and refreshed.get("access_token"):
                self._persist_session(ctx, refreshed)
                session = refreshed
            else:
                session = None

        ctx.adapter_state[_SESSION_STATE_KEY] = session
        return session

    # AuthAdapter

    async def get_user(self, ctx: RequestContext) -> Optional[AuthUser]:
        session = await self._current_session(ctx)
        if session is None:
            return None

        user = await self._fetch_user(session["access_token"])
        if user is None:
            return None

        return AuthUser(id=user["id"], email=user.get("email"))

    async def get_session(self, ctx: RequestContext) -> Optional[AuthSession]:
        session = await self._current_session(ctx)
        if session is None:
            return None

        return AuthSession(
            access_token=session["access_token"],
            refresh_token=session.get("refresh_token") or "",
            extra={
                "supabase_base_url": self.supabase_url,
                "supabase_anon_key": self.supabase_anon_key,
            },
        )

    async def get_authorization_props(
        self, ctx: RequestContext, user: AuthUser, session: AuthSession
    ) -> Dict[str, Any]:
        props = base_authorization_props(user, session)
        props.update({
            "supabase_base_url": session.get("supabase_base_url") or self.supabase_url,
            "supabase_anon_key": session.get("supabase_anon_key") or self.supabase_anon_key,
        })
        return props

    async def token_exchange_callback(self, args: TokenExchangeArgs) -> Optional[TokenExchangeResult]:
        """Refresh the Supabase session bound to a grant"""
        if args.grant_type != REFRESH_TOKEN_GRANT:
            return None

        props = args.props or {}
        refresh_token = props.get("refresh_token")
        base_url = props.get("supabase_base_url") or self.supabase_url
        anon_key = props.get("supabase_anon_key") or self.supabase_anon_key
        if not refresh_token or not base_url or not anon_key:
            return None

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{base_url.rstrip('/')}/auth/v1/token",
                    params={"grant_type": "refresh_token"},
                    headers={
                        "apikey": anon_key,
                        "Authorization": f"Bearer {anon_key}",
                    },
                    json={"refresh_token": refresh_token},
                )
            if response.status_code != 200:
                logger.warning(f"Supabase refresh for user {props.get('user_id')} rejected: HTTP {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Supabase refresh for user {props.get('user_id')} failed: {e}")
            return None

        if not isinstance(data, dict):
            return None

        return refreshed_props(
            props,
            data.get("access_token") or props.get("access_token"),
            data.get("refresh_token") or refresh_token,
        )
