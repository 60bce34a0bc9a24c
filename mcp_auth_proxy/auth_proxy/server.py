#!/usr/bin/env python3
"""
MCP Auth Proxy Server

Wires the approval flow, the gateway and an authentication adapter into an
aiohttp application, and hands that application to an OAuth provider as
its default handler.
"""

import os
import sys
import asyncio
import logging
import argparse
import importlib
from typing import Any

from aiohttp import web
from dotenv import load_dotenv

from mcp_auth_proxy.auth.adapter import AuthAdapter
from mcp_auth_proxy.auth.provider import OAuthProviderHelpers, ProviderFactory, ProviderOptions
from mcp_auth_proxy.utils.logging import configure_logging
from .approval_handler import ApprovalHandler
from .context import apply_pending_cookies, context_middleware
from .forwarder import ReverseProxyForwarder
from .gateway import GatewayHandler
from .models import OAUTH_PROVIDER_KEY, AppConfig, ProxyConfig
from .ui_handlers import UIHandlers
from .utils import audit_log

logger = logging.getLogger("auth_proxy")

ADAPTER_CHOICES = ("header", "supabase")


@web.middleware
async def audit_middleware(request: web.Request, handler):
    """Audit every request and turn unexpected failures into a generic 500"""
    audit_log("http_request", details={
        "method": request.method,
        "path": request.path,
        "remote": request.remote,
        "user_agent": request.headers.get("User-Agent", "")
    })

    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
        audit_log("request_error", details={"error": type(e).__name__, "path": request.path})
        return web.Response(text="Internal Server Error", status=500)


def create_auth_proxy(
    auth_adapter: AuthAdapter,
    config: AppConfig,
    oauth_provider: OAuthProviderHelpers,
) -> web.Application:
    """Build the default-handler application for an OAuth provider"""
    forwarder = ReverseProxyForwarder(config.proxy_target_url)
    approval = ApprovalHandler(auth_adapter, UIHandlers(config), forwarder)
    gateway = GatewayHandler(auth_adapter, forwarder)

    app = web.Application(middlewares=[audit_middleware, context_middleware])
    app[OAUTH_PROVIDER_KEY] = oauth_provider
    app.on_response_prepare.append(apply_pending_cookies)

    app.router.add_get("/authorize", approval.authorize)
    app.router.add_post("/approve", approval.approve)
    app.router.add_route("*", "/auth/login", approval.login)
    app.router.add_route("*", "/{tail:.*}", gateway.handle)

    return app


def create_oauth_provider_with_mcp(
    provider_factory: ProviderFactory,
    auth_adapter: AuthAdapter,
    app_config: AppConfig,
    api_handler: Any = None,
    api_route: str = "/mcp",
) -> web.Application:
    """Build the OAuth provider once, with the auth proxy as its default handler"""
    options = ProviderOptions(
        api_route=api_route,
        api_handler=api_handler,
        default_handler_factory=lambda helpers: create_auth_proxy(auth_adapter, app_config, helpers),
        authorize_endpoint="/authorize",
        token_endpoint="/token",
        client_registration_endpoint="/register",
        token_exchange_callback=auth_adapter.token_exchange_callback,
    )
    logger.info(f"Creating OAuth provider with API route {api_route}")
    return provider_factory(options)


def load_object(import_string: str) -> Any:
    """Import ``package.module:attribute``"""
    module_name, sep, attribute = import_string.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Expected 'module:attribute', got '{import_string}'")

    module = importlib.import_module(module_name)
    target = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ValueError(f"'{module_name}' has no attribute '{attribute}'") from None
    return target


def build_adapter(name: str) -> AuthAdapter:
    """Instantiate one of the shipped adapters from environment settings"""
    if name == "header":
        from mcp_auth_proxy.adapters.header_adapter import HeaderAuthAdapter
        return HeaderAuthAdapter(
            provider_base_url=os.getenv("HEADER_AUTH_PROVIDER_BASE_URL", "https://api.example.com"),
            client_id=os.getenv("HEADER_AUTH_CLIENT_ID", "your-client-id"),
        )
    if name == "supabase":
        from mcp_auth_proxy.adapters.supabase_adapter import SupabaseAuthAdapter, SupabaseAdapterConfig
        return SupabaseAuthAdapter(SupabaseAdapterConfig.from_environment())
    raise ValueError(f"Unknown auth adapter '{name}' (expected one of: {', '.join(ADAPTER_CHOICES)})")


async def run(app: web.Application, host: str, port: int) -> web.AppRunner:
    """Start serving ``app``; the caller owns the returned runner"""
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info("MCP auth proxy started successfully!")
    logger.info("Available endpoints:")
    logger.info(f"  - GET  http://{host}:{port}/authorize  - Approval screen")
    logger.info(f"  - POST http://{host}:{port}/approve    - Approve or reject")
    logger.info(f"  - *    http://{host}:{port}/auth/login - Upstream login")
    logger.info(f"  - *    http://{host}:{port}/*          - Reverse proxy")
    return runner


async def main() -> int:
    """Main entry point for the MCP auth proxy server"""
    load_dotenv()
    proxy_config = ProxyConfig()

    parser = argparse.ArgumentParser(
        description="OAuth approval front end and reverse proxy for MCP servers"
    )
    parser.add_argument("--host", default=proxy_config.host,
                        help=f"Host to bind the server to (default: {proxy_config.host})")
    parser.add_argument("--port", type=int, default=proxy_config.port,
                        help=f"Port to bind the server to (default: {proxy_config.port})")
    parser.add_argument("--adapter", choices=ADAPTER_CHOICES, default=proxy_config.adapter,
                        help=f"Authentication adapter (default: {proxy_config.adapter})")
    parser.add_argument("--provider", default=proxy_config.provider_factory,
                        help="OAuth provider factory as module:attribute")
    parser.add_argument("--api-handler", default=os.getenv("MCP_API_HANDLER", ""),
                        help="Handler mounted at the API route, as module:attribute")
    parser.add_argument("--api-route", default=proxy_config.api_route,
                        help=f"API route served by the provider (default: {proxy_config.api_route})")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        default=proxy_config.log_level.upper(),
                        help="Logging level (default: INFO)")

    args = parser.parse_args()
    configure_logging(args.log_level)

    try:
        if not args.provider:
            raise ValueError("No OAuth provider factory given (set OAUTH_PROVIDER_FACTORY or --provider)")

        app_config = AppConfig.from_environment()
        auth_adapter = build_adapter(args.adapter)
        provider_factory = load_object(args.provider)
        api_handler = load_object(args.api_handler) if args.api_handler else None

        app = create_oauth_provider_with_mcp(
            provider_factory,
            auth_adapter,
            app_config,
            api_handler=api_handler,
            api_route=args.api_route,
        )

        logger.info(f"Adapter: {args.adapter}, provider: {args.provider}")
        logger.info(f"Listening on: {args.host}:{args.port}")
        runner = await run(app, args.host, args.port)

    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        return 1

    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received shutdown signal, stopping server...")
    finally:
        await runner.cleanup()
        logger.info("Server stopped.")
    return 0


def cli():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli()
