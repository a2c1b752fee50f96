import urllib.parse

from fastmcp import FastMCP
from starlette.testclient import TestClient

from auth.client_registry import ClientRegistry
from auth.google_oauth2 import TokenResponse
from auth.models import UserIdentity
from auth.oauth_server import OAuthServer, code_challenge_s256
from auth.state_store import MemoryStateStore
from auth.token_store import MemoryCredentialStore

CLAUDE_CALLBACK = "https://claude.ai/api/mcp/auth_callback"


def _build_oauth_server(
    *,
    exchange_code_fn=None,
    fetch_user_info_fn=None,
    allowed_emails=None,
    clock=None,
):
    async def _default_exchange(**kwargs):
        del kwargs
        return TokenResponse(
            access_token="google-access-token",
            refresh_token="google-refresh-token",
            expires_in=3600,
            scope="https://www.googleapis.com/auth/drive",
        )

    async def _default_user_info(access_token):
        del access_token
        return UserIdentity(id="u1", email="a@example.com", display_name="Ada")

    extra = {} if clock is None else {"clock": clock}
    store = MemoryCredentialStore()
    registry = ClientRegistry()
    oauth = OAuthServer(
        public_url="https://gdrive-mcp.example.com",
        google_client_id="google-client",
        google_client_secret="google-secret",
        client_registry=registry,
        credential_store=store,
        state_store=MemoryStateStore(**extra),
        allowed_emails=allowed_emails,
        exchange_code_fn=exchange_code_fn or _default_exchange,
        fetch_user_info_fn=fetch_user_info_fn or _default_user_info,
        **extra,
    )

    mcp = FastMCP(name="test")
    oauth.mount_routes(mcp)
    app = mcp.http_app(path="/mcp", transport="streamable-http")
    return oauth, TestClient(app), registry, store


def _authorize(test_client, client, *, code_verifier="verifier-123", state="original-state"):
    return test_client.get(
        "/authorize",
        params={
            "client_id": client.client_id,
            "redirect_uri": CLAUDE_CALLBACK,
            "code_challenge": code_challenge_s256(code_verifier),
            "code_challenge_method": "S256",
            "state": state,
            "scope": "drive",
        },
        follow_redirects=False,
    )


def _google_state(response) -> str:
    query = urllib.parse.parse_qs(urllib.parse.urlparse(response.headers["location"]).query)
    return query["state"][0]


def _prepare_authorization_code(test_client, oauth: OAuthServer, registry: ClientRegistry):
    del oauth
    client = registry.register(client_name="Claude", redirect_uris=[CLAUDE_CALLBACK])

    code_verifier = "verifier-123"
    authorize_response = _authorize(test_client, client, code_verifier=code_verifier)

    callback_response = test_client.get(
        "/callback",
        params={"code": "google-code-123", "state": _google_state(authorize_response)},
        follow_redirects=False,
    )
    client_redirect = callback_response.headers["location"]
    client_query = urllib.parse.parse_qs(urllib.parse.urlparse(client_redirect).query)

    return {
        "client": client,
        "code_verifier": code_verifier,
        "authorization_code": client_query["code"][0],
    }


def _exchange_code(test_client, auth) -> dict:
    response = test_client.post(
        "/token",
        data={
            "grant_type": "authorization_code",
            "client_id": auth["client"].client_id,
            "client_secret": auth["client"].client_secret,
            "code": auth["authorization_code"],
            "code_verifier": auth["code_verifier"],
        },
    )
    assert response.status_code == 200
    return response.json()
