"""
UI templates for the auth proxy

Approval, approved and rejected screens, kept apart from the flow logic.
"""

import json
import logging
from html import escape
from typing import Optional

from aiohttp import web

from mcp_auth_proxy.auth.provider import AuthRequest
from .models import AppConfig

logger = logging.getLogger("auth_proxy.ui")

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'X-XSS-Protection': '1; mode=block',
    'Referrer-Policy': 'strict-origin-when-cross-origin'
}

REDIRECT_DELAY_MS = 2000


def html_response(html: str, status: int = 200) -> web.Response:
    """HTML response carrying the security headers"""
    response = web.Response(text=html, status=status, content_type="text/html")
    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value
    return response


def _js_string(value: str) -> str:
    """JSON-encode for a <script> block without letting it close the tag"""
    return json.dumps(value).replace("<", "\\u003c").replace(">", "\\u003e")


class UIHandlers:
    """Renders every screen of the approval flow"""

    def __init__(self, config: AppConfig):
        self.config = config

    def layout(self, content: str) -> str:
        company = escape(self.config.company_name)
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{company} - MCP Authorization</title>
    <style>
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{
            font-family: 'Inter', -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #f9fafb;
            color: #1f2937;
            min-height: 100vh;
            display: flex;
            flex-direction: column;
        }}
        main {{ flex: 1; display: flex; align-items: center; justify-content: center; padding: 40px 16px; }}
        footer {{ text-align: center; color: #6b7280; font-size: 12px; padding: 24px 0; }}
        .card {{ background: white; border: 1px solid #f3f4f6; border-radius: 12px; padding: 32px; max-width: 448px; width: 100%; }}
        .brand {{ text-align: center; margin-bottom: 24px; }}
        .brand img {{ height: 48px; width: 48px; border-radius: 6px; margin-bottom: 12px; }}
        .brand div {{ font-size: 24px; font-weight: 700; color: #111827; }}
        h1 {{ font-size: 20px; font-weight: 600; margin-bottom: 16px; color: #111827; }}
        ul {{ list-style: none; margin-bottom: 24px; }}
        li {{ padding: 8px 0; color: #4b5563; }}
        .btn {{ display: block; width: 100%; padding: 12px 16px; border-radius: 6px; font-size: 15px; font-weight: 500; cursor: pointer; text-align: center; text-decoration: none; margin-top: 12px; }}
        .btn-primary {{ background: #000; color: white; border: none; }}
        .btn-secondary {{ background: white; color: #374151; border: 1px solid #d1d5db; }}
        .status {{ display: inline-flex; height: 40px; width: 40px; align-items: center; justify-content: center; border-radius: 50%; margin-bottom: 16px; }}
        .status-success {{ background: #dcfce7; color: #166534; }}
        .status-error {{ background: #fee2e2; color: #991b1b; }}
        .center {{ text-align: center; }}
        p {{ color: #4b5563; margin-bottom: 24px; }}
    </style>
</head>
<body>
    <main>{content}</main>
    <footer><p>Powered by {company}.</p></footer>
</body>
</html>
"""

    def authorize_screen(self, auth_request: AuthRequest, authorize_url: str) -> str:
        """Approval form for an authenticated user"""
        company = escape(self.config.company_name)
        return f"""
<div class="card">
    <div class="brand">
        <img src="{escape(self.config.logo_url)}" alt="{company}">
        <div>{company}</div>
    </div>
    <h1>Authorization Request</h1>
    <p>{escape(auth_request.client_id)} would like permission to:</p>
    <ul>
        <li>Verify your identity</li>
        <li>Know which resources you can access</li>
        <li>Act on your behalf</li>
    </ul>
    <form action="/approve" method="POST">
        <input type="hidden" name="oauthReqInfo" value="{escape(auth_request.to_json())}">
        <input type="hidden" name="authorizeUrl" value="{escape(authorize_url)}">
        <button type="submit" name="action" value="approve" class="btn btn-primary">Approve</button>
        <button type="submit" name="action" value="reject" class="btn btn-secondary">Reject</button>
    </form>
</div>
"""

    def _status_content(self, message: str, success: bool, redirect_url: str) -> str:
        status_class = "status-success" if success else "status-error"
        symbol = "&#10003;" if success else "&#10007;"
        return f"""
<div class="card center">
    <span class="status {status_class}">{symbol}</span>
    <h1>{escape(message)}</h1>
    <p>You will be redirected back to the application shortly.</p>
    <a href="{escape(redirect_url)}" class="btn btn-primary">Continue</a>
    <script>
        setTimeout(function () {{
            window.location.href = {_js_string(redirect_url)};
        }}, {REDIRECT_DELAY_MS});
    </script>
</div>
"""

    def approved_content(self, redirect_url: str) -> str:
        return self._status_content("Authorization approved!", True, redirect_url)

    def rejected_content(self, redirect_url: str) -> str:
        return self._status_content("Authorization rejected.", False, redirect_url)

    def rejected_page(self, authorize_url: Optional[str]) -> str:
        """Dead end after an explicit reject; only a link back to the authorize URL"""
        target = authorize_url or "/authorize"
        return f"""
<div class="card center">
    <span class="status status-error">&#10007;</span>
    <h1>Authorization required</h1>
    <p>If you don't accept permissions, you won't be able to use {escape(self.config.company_name)}.</p>
    <a href="{escape(target)}" class="btn btn-primary">Go back to authorize</a>
</div>
"""

    def page(self, content: str, status: int = 200) -> web.Response:
        return html_response(self.layout(content), status=status)
