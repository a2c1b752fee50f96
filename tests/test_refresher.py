import asyncio
import gc

import httpx
import pytest

from auth.errors import (
    CredentialRevokedError,
    GoogleAuthError,
    NoRefreshTokenError,
    RefreshFailedError,
)
from auth.google_oauth2 import GOOGLE_TOKEN_URL, TokenEndpointError, TokenResponse
from auth.models import CredentialPair
from auth.refresher import CredentialRefresher
from auth.token_store import MemoryCredentialStore


class FakeTokenEndpoint:
    def __init__(self, *responses) -> None:
        self.calls: list[dict] = []
        self._responses = list(responses)

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.mark.asyncio
async def test_valid_token_returned_without_network(identity, clock) -> None:
    endpoint = FakeTokenEndpoint()
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)
    pair = CredentialPair("AT1", "RT1", clock.now + 100)

    token, returned = await refresher.get_valid_access_token(pair, identity)

    assert token == "AT1"
    assert returned is pair
    assert endpoint.calls == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(TokenResponse(access_token="AT2", expires_in=3600))
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)
    pair = CredentialPair("AT1", "RT1", clock.now - 1)

    token, returned = await refresher.get_valid_access_token(pair, identity)

    assert token == "AT2"
    assert returned.access_token == "AT2"
    assert returned.expires_at == clock.now + 3600 - 60
    assert endpoint.calls == [
        {"client_id": "google-client", "client_secret": "google-secret", "refresh_token": "RT1"}
    ]


@pytest.mark.asyncio
async def test_token_expiring_exactly_now_is_refreshed(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(TokenResponse(access_token="AT2", expires_in=3600))
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    token, _ = await refresher.get_valid_access_token(
        CredentialPair("AT1", "RT1", clock.now), identity
    )

    assert token == "AT2"


@pytest.mark.asyncio
async def test_refresh_keeps_refresh_token_when_not_rotated(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(TokenResponse(access_token="AT2", expires_in=3600))
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    _, returned = await refresher.get_valid_access_token(
        CredentialPair("AT1", "RT1", clock.now - 1), identity
    )

    assert returned.refresh_token == "RT1"


@pytest.mark.asyncio
async def test_refresh_adopts_rotated_refresh_token(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(
        TokenResponse(access_token="AT2", refresh_token="RT2", expires_in=3600)
    )
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    _, returned = await refresher.get_valid_access_token(
        CredentialPair("AT1", "RT1", clock.now - 1), identity
    )

    assert returned.refresh_token == "RT2"


@pytest.mark.asyncio
async def test_forced_refresh_ignores_expiry(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(TokenResponse(access_token="AT2", expires_in=3600))
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    token, _ = await refresher.get_valid_access_token(
        CredentialPair("AT1", "RT1", clock.now + 3000), identity, force_refresh=True
    )

    assert token == "AT2"
    assert len(endpoint.calls) == 1


@pytest.mark.asyncio
async def test_missing_refresh_token_raises(identity, clock) -> None:
    endpoint = FakeTokenEndpoint()
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    with pytest.raises(NoRefreshTokenError):
        await refresher.get_valid_access_token(CredentialPair("AT1", "", clock.now - 1), identity)

    assert endpoint.calls == []


@pytest.mark.asyncio
async def test_invalid_grant_is_revocation(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(
        TokenEndpointError(400, '{"error": "invalid_grant"}', error="invalid_grant")
    )
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    with pytest.raises(CredentialRevokedError):
        await refresher.get_valid_access_token(
            CredentialPair("AT1", "RT1", clock.now - 1), identity
        )


@pytest.mark.asyncio
async def test_other_token_endpoint_failure_is_transient(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(TokenEndpointError(500, "backend error"))
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    with pytest.raises(RefreshFailedError):
        await refresher.get_valid_access_token(
            CredentialPair("AT1", "RT1", clock.now - 1), identity
        )
    assert len(endpoint.calls) == 1


@pytest.mark.asyncio
async def test_unusable_success_body_is_transient(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(
        TokenEndpointError(
            200,
            '{"token_type":"Bearer"}',
            error="invalid_response",
            description="Token response missing access_token.",
        )
    )
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    with pytest.raises(RefreshFailedError):
        await refresher.get_valid_access_token(
            CredentialPair("AT1", "RT1", clock.now - 1), identity
        )


@pytest.mark.asyncio
async def test_session_refresh_with_unusable_body_keeps_stored_pair(
    identity, clock, stored_session, httpx_mock
) -> None:
    httpx_mock.add_response(url=GOOGLE_TOKEN_URL, method="POST", json={"token_type": "Bearer"})
    store = MemoryCredentialStore()
    await store.set("s1", stored_session(expires_at=clock.now - 1))
    refresher = CredentialRefresher(clock=clock)

    with pytest.raises(RefreshFailedError) as error:
        await refresher.access_token_for_session(store, "s1", identity)

    assert isinstance(error.value, GoogleAuthError)
    assert (await store.get("s1")).credentials.access_token == "AT1"


@pytest.mark.asyncio
async def test_transport_failure_is_transient(identity, clock) -> None:
    endpoint = FakeTokenEndpoint(httpx.ConnectError("unreachable"))
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    with pytest.raises(RefreshFailedError):
        await refresher.get_valid_access_token(
            CredentialPair("AT1", "RT1", clock.now - 1), identity
        )


@pytest.mark.asyncio
async def test_session_refresh_is_written_back(identity, clock, stored_session) -> None:
    store = MemoryCredentialStore()
    await store.set("s1", stored_session(expires_at=clock.now - 1))
    endpoint = FakeTokenEndpoint(
        TokenResponse(access_token="AT2", refresh_token="RT2", expires_in=3600)
    )
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    token = await refresher.access_token_for_session(store, "s1", identity)

    stored = await store.get("s1")
    assert token == "AT2"
    assert stored.credentials == CredentialPair("AT2", "RT2", clock.now + 3600 - 60)
    assert stored.subject_id == "u1"
    assert stored.email == "a@example.com"


@pytest.mark.asyncio
async def test_session_without_credentials_raises(identity, clock) -> None:
    refresher = CredentialRefresher(refresh_token_fn=FakeTokenEndpoint(), clock=clock)

    with pytest.raises(NoRefreshTokenError):
        await refresher.access_token_for_session(MemoryCredentialStore(), "missing", identity)


@pytest.mark.asyncio
async def test_rejected_token_already_replaced_is_not_refreshed_again(
    identity, clock, stored_session
) -> None:
    store = MemoryCredentialStore()
    await store.set("s1", stored_session(access_token="AT2", expires_at=clock.now + 3000))
    endpoint = FakeTokenEndpoint()
    refresher = CredentialRefresher(refresh_token_fn=endpoint, clock=clock)

    token = await refresher.access_token_for_session(store, "s1", identity, rejected_token="AT1")

    assert token == "AT2"
    assert endpoint.calls == []


@pytest.mark.asyncio
async def test_concurrent_rejections_refresh_once(identity, clock, stored_session) -> None:
    store = MemoryCredentialStore()
    await store.set("s1", stored_session(expires_at=clock.now + 3000))
    release = asyncio.Event()
    calls = []

    async def slow_refresh(**kwargs):
        calls.append(kwargs["refresh_token"])
        await release.wait()
        return TokenResponse(access_token="AT2", refresh_token="RT2", expires_in=3600)

    refresher = CredentialRefresher(refresh_token_fn=slow_refresh, clock=clock)

    first = asyncio.create_task(
        refresher.access_token_for_session(store, "s1", identity, rejected_token="AT1")
    )
    second = asyncio.create_task(
        refresher.access_token_for_session(store, "s1", identity, rejected_token="AT1")
    )
    await asyncio.sleep(0)
    release.set()

    assert await first == "AT2"
    assert await second == "AT2"
    assert calls == ["RT1"]


@pytest.mark.asyncio
async def test_session_locks_are_released_after_use(identity, clock, stored_session) -> None:
    store = MemoryCredentialStore()
    refresher = CredentialRefresher(refresh_token_fn=FakeTokenEndpoint(), clock=clock)
    for index in range(3):
        await store.set(f"s{index}", stored_session(expires_at=clock.now + 3000))
        await refresher.access_token_for_session(store, f"s{index}", identity)

    gc.collect()

    assert len(refresher._locks) == 0


@pytest.mark.asyncio
async def test_session_lock_is_shared_while_held(clock) -> None:
    refresher = CredentialRefresher(refresh_token_fn=FakeTokenEndpoint(), clock=clock)

    async with refresher.lock_for("s1"):
        assert refresher.lock_for("s1").locked()
