import pytest

from auth.models import ClientIdentity, CredentialPair, StoredSession


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def identity() -> ClientIdentity:
    return ClientIdentity(client_id="google-client", client_secret="google-secret")


@pytest.fixture
def stored_session():
    def _build(access_token="AT1", refresh_token="RT1", expires_at=0.0) -> StoredSession:
        return StoredSession(
            credentials=CredentialPair(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
            ),
            subject_id="u1",
            client_id="mcp-client",
            email="a@example.com",
        )

    return _build
