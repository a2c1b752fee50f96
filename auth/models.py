from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CredentialPair:
    access_token: str
    refresh_token: str
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at


@dataclass(frozen=True)
class ClientIdentity:
    client_id: str
    client_secret: str = field(repr=False)


@dataclass(frozen=True)
class UserIdentity:
    id: str
    email: str
    display_name: str


@dataclass
class PendingAuthorization:
    state: str
    original_request: dict
    created_at: float


@dataclass
class PendingCode:
    session_id: str
    client_id: str
    code_challenge: str
    redirect_uri: str
    created_at: float


@dataclass
class StoredSession:
    credentials: CredentialPair
    subject_id: str
    client_id: str
    email: str = ""
    display_name: str = ""
    scope: str = ""
