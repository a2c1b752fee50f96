from __future__ import annotations

import hmac
import secrets
import time
import uuid
from dataclasses import dataclass, field

from auth.urls import is_allowed_redirect_uri


@dataclass
class ClientInfo:
    client_id: str
    client_secret: str = field(repr=False)
    client_name: str
    redirect_uris: list[str]
    created_at: float


class ClientRegistry:
    """Dynamically registered MCP clients, kept in process memory."""

    def __init__(self, *, extra_redirect_uris: set[str] | None = None) -> None:
        self._clients: dict[str, ClientInfo] = {}
        self.extra_redirect_uris = set(extra_redirect_uris or ())

    def accepts_redirect_uri(self, uri: str) -> bool:
        return is_allowed_redirect_uri(uri, self.extra_redirect_uris)

    def register(self, client_name: str, redirect_uris: list[str]) -> ClientInfo:
        rejected = [uri for uri in redirect_uris if not self.accepts_redirect_uri(uri)]
        if rejected:
            raise ValueError(f"Redirect URIs not allowed: {', '.join(rejected)}")

        client = ClientInfo(
            client_id=str(uuid.uuid4()),
            client_secret=secrets.token_urlsafe(32),
            client_name=client_name,
            redirect_uris=list(redirect_uris),
            created_at=time.time(),
        )
        self._clients[client.client_id] = client
        return client

    def get(self, client_id: str) -> ClientInfo | None:
        return self._clients.get(client_id)

    def authenticate(self, client_id: str, client_secret: str) -> ClientInfo | None:
        client = self.get(client_id)
        if client is None:
            return None
        if not hmac.compare_digest(client.client_secret.encode(), client_secret.encode()):
            return None
        return client

    def validate_redirect_uri(self, client_id: str, uri: str) -> bool:
        client = self.get(client_id)
        if client is None:
            return False
        return uri in client.redirect_uris
