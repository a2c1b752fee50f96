from __future__ import annotations

import urllib.parse

CLAUDE_CALLBACK_URI = "https://claude.ai/api/mcp/auth_callback"


def is_allowed_redirect_uri(uri: str, extra_allowed: set[str] | None = None) -> bool:
    if uri == CLAUDE_CALLBACK_URI:
        return True
    if extra_allowed and uri in extra_allowed:
        return True

    parsed = urllib.parse.urlparse(uri)
    if parsed.scheme != "http":
        return False
    if parsed.hostname not in {"localhost", "127.0.0.1"}:
        return False
    if not parsed.port:
        return False
    return parsed.path == "/callback"


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def join_public_url(public_url: str, path: str) -> str:
    return f"{public_url.rstrip('/')}/{path.lstrip('/')}"
