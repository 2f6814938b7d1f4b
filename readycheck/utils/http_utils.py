"""HTTP helpers for cookie handling."""

from typing import Dict, Optional
from urllib.parse import unquote


def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    """
    Parse a Cookie header into a name -> value mapping.

    Total over its input: malformed pairs are skipped, never raised on.
    Whitespace around names and values is ignored, values are
    percent-decoded and unquoted, and the first occurrence of a name wins.

    Args:
        header: Raw Cookie header value, or None

    Returns:
        Dict of cookie names to values
    """
    cookies: Dict[str, str] = {}
    if not header:
        return cookies

    for pair in header.split(";"):
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name or name in cookies:
            continue

        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies[name] = unquote(value)

    return cookies


def is_secure_request(scheme: str, forwarded_proto: Optional[str]) -> bool:
    """True when the request arrived over TLS, directly or via a proxy."""
    if forwarded_proto:
        return forwarded_proto.split(",")[0].strip().lower() == "https"
    return scheme == "https"
