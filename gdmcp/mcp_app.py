from __future__ import annotations

from contextvars import ContextVar
from typing import TYPE_CHECKING

from .constants import APP_VERSION, AUTH_MODE

if TYPE_CHECKING:
    from fastmcp import FastMCP


CURRENT_MCP_BEARER_TOKEN: ContextVar[str | None] = ContextVar(
    "current_mcp_bearer_token", default=None
)


class UnauthorizedRequestError(RuntimeError):
    def __init__(self, message: str = "Unauthorized request.") -> None:
        super().__init__(message)
        self.status_code = 401


def build_session_token_verifier(oauth_server, *, base_url: str):
    """Build a FastMCP TokenVerifier for gdmcp session access tokens.

    With HTTP auth enabled, /mcp answers 401 with WWW-Authenticate metadata
    before any MCP request is processed, which is what starts the OAuth flow
    on the client side.
    """
    from fastmcp.server.auth import AccessToken, TokenVerifier

    class _Verifier(TokenVerifier):
        def __init__(self, oauth_server, *, base_url: str) -> None:
            super().__init__(base_url=base_url, required_scopes=[])
            self._oauth_server = oauth_server

        async def verify_token(self, token: str) -> AccessToken | None:
            try:
                payload = self._oauth_server.decode_session_access_token(token)
            except (RuntimeError, ValueError):
                return None

            if await self._oauth_server.credential_store.get(payload["sid"]) is None:
                return None

            return AccessToken(
                token=token,
                client_id=payload.get("cid", ""),
                scopes=[],
                expires_at=int(
                    payload.get("iat", 0) + self._oauth_server.session_token_ttl_seconds
                ),
            )

    return _Verifier(oauth_server, base_url=base_url)


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header:
        return None
    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def capture_mcp_bearer_token_from_context() -> str | None:
    from fastmcp.server.dependencies import get_http_headers

    headers = get_http_headers(include_all=True)
    token = extract_bearer_token(headers.get("authorization"))
    CURRENT_MCP_BEARER_TOKEN.set(token)
    return token


def resolve_session_id(oauth_server, session_access_token: str | None = None) -> str:
    if session_access_token is None:
        session_access_token = capture_mcp_bearer_token_from_context()
    if not session_access_token:
        raise UnauthorizedRequestError("Missing Bearer token in MCP request context (401).")
    try:
        payload = oauth_server.decode_session_access_token(session_access_token)
    except (RuntimeError, ValueError) as error:
        raise UnauthorizedRequestError(
            f"Invalid or expired session token (401): {error}"
        ) from error
    return payload["sid"]


def mount_health_route(mcp: "FastMCP") -> None:
    from starlette.requests import Request
    from starlette.responses import JSONResponse, Response

    @mcp.custom_route("/health", methods=["GET"])
    async def health_route(request: Request) -> Response:
        del request
        return JSONResponse(
            {
                "status": "ok",
                "version": APP_VERSION,
                "auth_mode": AUTH_MODE,
            }
        )
