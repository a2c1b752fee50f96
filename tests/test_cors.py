from tests.oauth_helpers import _build_oauth_server


def _build_client():
    _, test_client, _, _ = _build_oauth_server()
    return test_client


def test_cors_allows_claude_origin() -> None:
    client = _build_client()

    response = client.get(
        "/.well-known/oauth-authorization-server",
        headers={"Origin": "https://claude.ai"},
    )

    assert response.headers["access-control-allow-origin"] == "https://claude.ai"
    assert response.headers["vary"] == "Origin"


def test_cors_blocks_unknown_origin() -> None:
    client = _build_client()

    response = client.get(
        "/.well-known/oauth-authorization-server",
        headers={"Origin": "https://unknown.example"},
    )

    assert "access-control-allow-origin" not in response.headers


def test_cors_preflight_options() -> None:
    client = _build_client()

    response = client.options(
        "/token",
        headers={
            "Origin": "https://claude.ai",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "https://claude.ai"
    assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
    assert response.headers["access-control-max-age"] == "600"


def test_cors_preflight_unknown_origin_has_no_max_age() -> None:
    client = _build_client()

    response = client.options("/register", headers={"Origin": "https://unknown.example"})

    assert response.status_code == 204
    assert "access-control-max-age" not in response.headers


def test_oauth_errors_carry_cors_headers() -> None:
    client = _build_client()

    response = client.post(
        "/token",
        data={"grant_type": "authorization_code"},
        headers={"Origin": "https://claude.com"},
    )

    assert response.status_code == 401
    assert response.headers["access-control-allow-origin"] == "https://claude.com"
    assert response.headers["cache-control"] == "no-store"
