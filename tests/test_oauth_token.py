import base64
import time

from auth import signed_token
from auth.urls import CLAUDE_CALLBACK_URI
from tests.oauth_helpers import _build_oauth_server, _exchange_code, _prepare_authorization_code


def _token_request(test_client, auth, **overrides):
    data = {
        "grant_type": "authorization_code",
        "client_id": auth["client"].client_id,
        "client_secret": auth["client"].client_secret,
        "code": auth["authorization_code"],
        "code_verifier": auth["code_verifier"],
    }
    data.update(overrides)
    return test_client.post("/token", data=data)


def test_token_exchange_success() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)

    response = _token_request(test_client, auth)

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    payload = response.json()
    assert payload["access_token"]
    assert payload["refresh_token"]
    assert payload["token_type"] == "bearer"
    assert payload["expires_in"] == 7200


def test_token_exchange_invalid_code() -> None:
    _, test_client, registry, _ = _build_oauth_server()
    client = registry.register("Claude", [CLAUDE_CALLBACK_URI])

    response = test_client.post(
        "/token",
        data={
            "grant_type": "authorization_code",
            "client_id": client.client_id,
            "client_secret": client.client_secret,
            "code": "missing",
            "code_verifier": "verifier",
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_token_exchange_expired_code() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)
    oauth.pending_codes[auth["authorization_code"]].created_at = time.time() - 120

    response = _token_request(test_client, auth)

    assert response.status_code == 400


def test_token_exchange_invalid_pkce() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)

    response = _token_request(test_client, auth, code_verifier="wrong-verifier")

    assert response.status_code == 400


def test_token_exchange_redirect_uri_mismatch() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)

    response = _token_request(test_client, auth, redirect_uri="http://localhost:1234/callback")

    assert response.status_code == 400


def test_token_exchange_code_single_use() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)

    first = _token_request(test_client, auth)
    second = _token_request(test_client, auth)

    assert first.status_code == 200
    assert second.status_code == 400


def test_token_exchange_code_bound_to_client() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)
    other = registry.register("Other", [CLAUDE_CALLBACK_URI])

    response = _token_request(
        test_client, auth, client_id=other.client_id, client_secret=other.client_secret
    )

    assert response.status_code == 400


def test_token_exchange_wrong_client_secret() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)

    response = _token_request(test_client, auth, client_secret="wrong")

    assert response.status_code == 401
    assert response.json()["error"] == "invalid_client"


def test_token_exchange_client_secret_basic() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)
    creds = f"{auth['client'].client_id}:{auth['client'].client_secret}".encode()

    response = test_client.post(
        "/token",
        data={
            "grant_type": "authorization_code",
            "code": auth["authorization_code"],
            "code_verifier": auth["code_verifier"],
        },
        headers={"Authorization": f"Basic {base64.b64encode(creds).decode()}"},
    )

    assert response.status_code == 200


def test_token_exchange_unsupported_grant() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)

    response = _token_request(test_client, auth, grant_type="password")

    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_grant_type"


def test_session_tokens_name_the_session() -> None:
    oauth, test_client, registry, store = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)
    session_id = oauth.pending_codes[auth["authorization_code"]].session_id

    payload = _exchange_code(test_client, auth)

    access = signed_token.decode(payload["access_token"], oauth._session_key)
    refresh = signed_token.decode(payload["refresh_token"], oauth._session_key)
    assert access["sid"] == refresh["sid"] == session_id
    assert access["cid"] == auth["client"].client_id
    assert access["typ"] == "a"
    assert refresh["typ"] == "r"
    assert session_id in store._sessions


def test_token_refresh_success() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)
    exchanged = _exchange_code(test_client, auth)

    refreshed = test_client.post(
        "/token",
        data={
            "grant_type": "refresh_token",
            "client_id": auth["client"].client_id,
            "client_secret": auth["client"].client_secret,
            "refresh_token": exchanged["refresh_token"],
        },
    )

    assert refreshed.status_code == 200
    payload = refreshed.json()
    old = signed_token.decode(exchanged["access_token"], oauth._session_key)
    new = signed_token.decode(payload["access_token"], oauth._session_key)
    assert new["sid"] == old["sid"]


def test_token_refresh_rejects_access_token() -> None:
    oauth, test_client, registry, _ = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)
    exchanged = _exchange_code(test_client, auth)

    response = test_client.post(
        "/token",
        data={
            "grant_type": "refresh_token",
            "client_id": auth["client"].client_id,
            "client_secret": auth["client"].client_secret,
            "refresh_token": exchanged["access_token"],
        },
    )

    assert response.status_code == 400


def test_token_refresh_invalid() -> None:
    _, test_client, registry, _ = _build_oauth_server()
    client = registry.register("Claude", [CLAUDE_CALLBACK_URI])

    response = test_client.post(
        "/token",
        data={
            "grant_type": "refresh_token",
            "client_id": client.client_id,
            "client_secret": client.client_secret,
            "refresh_token": "missing",
        },
    )

    assert response.status_code == 400


def test_token_refresh_for_deleted_session_requires_reauth() -> None:
    oauth, test_client, registry, store = _build_oauth_server()
    auth = _prepare_authorization_code(test_client, oauth, registry)
    exchanged = _exchange_code(test_client, auth)
    session_id = signed_token.decode(exchanged["refresh_token"], oauth._session_key)["sid"]
    store._sessions.pop(session_id)

    response = test_client.post(
        "/token",
        data={
            "grant_type": "refresh_token",
            "client_id": auth["client"].client_id,
            "client_secret": auth["client"].client_secret,
            "refresh_token": exchanged["refresh_token"],
        },
    )

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"] == "invalid_grant"
    assert "re-auth required" in payload["error_description"]
