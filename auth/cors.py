from __future__ import annotations

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

DEFAULT_CORS_ORIGINS = {
    "https://claude.ai",
    "https://claude.com",
}

ALLOWED_METHODS = "GET, POST, OPTIONS"
ALLOWED_HEADERS = "Authorization, Content-Type, MCP-Protocol-Version"
PREFLIGHT_MAX_AGE = "600"


def apply_cors_response(
    request: Request,
    response: Response,
    allowed_origins: set[str],
) -> Response:
    origin = request.headers.get("origin")
    if origin and origin in allowed_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
        response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
        response.headers["Vary"] = "Origin"
    return response


def mount_preflight_route(mcp, path: str, allowed_origins: set[str]) -> None:
    @mcp.custom_route(path, methods=["OPTIONS"])
    async def preflight_route(request: Request) -> Response:
        response = apply_cors_response(request, Response(status_code=204), allowed_origins)
        if "Access-Control-Allow-Origin" in response.headers:
            response.headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
        return response


def oauth_error_response(
    request: Request,
    allowed_origins: set[str],
    code: str,
    description: str,
    status_code: int,
) -> Response:
    return apply_cors_response(
        request,
        JSONResponse(
            {"error": code, "error_description": description},
            status_code=status_code,
            headers={"Cache-Control": "no-store"},
        ),
        allowed_origins,
    )
