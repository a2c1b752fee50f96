from __future__ import annotations

import os
from typing import TYPE_CHECKING

from pydantic import AnyHttpUrl

from gdmcp.env import (
    get_env_float,
    get_env_int,
    load_env,
    parse_csv_env,
    setup_logging,
    validate_env,
)
from gdmcp.http import build_http_client
from gdmcp.mcp_app import build_session_token_verifier, mount_health_route

if TYPE_CHECKING:
    from fastmcp import FastMCP


def create_mcp() -> "FastMCP":
    from fastmcp import FastMCP
    from fastmcp.server.auth import RemoteAuthProvider

    from auth.client_registry import ClientRegistry
    from auth.oauth_server import OAuthServer
    from auth.refresher import CredentialRefresher
    from auth.state_store import FileStateStore
    from auth.token_store import FileCredentialStore
    from gdmcp.drive_client import DriveClient
    from gdmcp.http import AuthenticatedExecutor
    from gdmcp.mcp_app import resolve_session_id
    from gdmcp.tools import register_tools

    load_env()
    debug_enabled = setup_logging()
    validate_env()

    public_url_raw = os.getenv("GDMCP_PUBLIC_URL", "").strip()
    state_store = FileStateStore(os.getenv("GDMCP_STATE_STORE_PATH", ".oauth_state.json"))
    credential_store = FileCredentialStore(
        os.getenv("GDMCP_TOKEN_STORE_PATH", ".tokens.json"),
        encryption_key=os.getenv("GDMCP_TOKEN_ENCRYPTION_KEY", "").strip() or None,
    )
    client_registry = ClientRegistry(
        extra_redirect_uris=parse_csv_env("GDMCP_EXTRA_REDIRECT_URIS"),
    )
    oauth_server = OAuthServer(
        public_url=public_url_raw,
        google_client_id=os.getenv("GOOGLE_OAUTH_CLIENT_ID", ""),
        google_client_secret=os.getenv("GOOGLE_OAUTH_CLIENT_SECRET", ""),
        client_registry=client_registry,
        credential_store=credential_store,
        state_store=state_store,
        cors_origins=parse_csv_env("GDMCP_CORS_ORIGINS"),
        pending_state_ttl_seconds=get_env_int("GDMCP_STATE_TTL_SECONDS", 600),
        allowed_emails=parse_csv_env("GDMCP_ALLOWED_EMAILS"),
    )
    refresher = CredentialRefresher()
    client = build_http_client(
        timeout=get_env_float("GDMCP_API_TIMEOUT", 30.0),
        debug=debug_enabled,
    )

    public_url = AnyHttpUrl(public_url_raw)
    session_verifier = build_session_token_verifier(oauth_server, base_url=str(public_url))
    auth_provider = RemoteAuthProvider(
        token_verifier=session_verifier,
        authorization_servers=[public_url],
        base_url=public_url,
        resource_name="gdrive-mcp",
    )

    def drive_for_current_session() -> DriveClient:
        return DriveClient(
            AuthenticatedExecutor(
                session_id=resolve_session_id(oauth_server),
                credential_store=credential_store,
                refresher=refresher,
                identity=oauth_server.identity,
                client=client,
            )
        )

    mcp = FastMCP(name="Google Drive MCP", auth=auth_provider)
    register_tools(mcp, drive_for_current_session)
    oauth_server.mount_routes(mcp)
    mount_health_route(mcp)
    return mcp


def main() -> None:
    host = os.getenv("MCP_HOST", "127.0.0.1")
    port = int(os.getenv("MCP_PORT", "8000"))
    mcp = create_mcp()
    mcp.run(transport="streamable-http", host=host, port=port)


if __name__ == "__main__":
    main()
