"""
Utility functions for the auth proxy
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

# Characters encodeURIComponent leaves alone besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    """Percent-encode a value the way browsers encode a URI component"""
    return quote(value, safe=_URI_COMPONENT_SAFE)


def decode_uri_component(value: str) -> str:
    """Inverse of encode_uri_component; '+' is left as is"""
    return unquote(value)


def parse_cookie_header(cookie_header: Optional[str]) -> Dict[str, str]:
    """
    Parse a raw Cookie header into a name -> value map.

    Pairs are split on ';' and then on the first '='. Empty or malformed
    pairs are dropped and the first occurrence of a name wins. Values are
    returned exactly as sent, without any decoding.
    """
    cookies: Dict[str, str] = {}
    if not cookie_header:
        return cookies

    for pair in cookie_header.split(";"):
        pair = pair.strip()
        if not pair or "=" not in pair:
            continue
        name, value = pair.split("=", 1)
        name = name.strip()
        if not name:
            continue
        cookies.setdefault(name, value.strip())

    return cookies


def audit_log(event_type: str, user_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
    """Log security-relevant events for audit purposes"""
    logger = logging.getLogger("auth_proxy.audit")

    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "user_id": user_id,
        "details": details or {}
    }

    logger.info(f"AUDIT: {json.dumps(log_entry, default=str)}")
