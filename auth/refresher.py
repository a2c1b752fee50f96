"""Keeps a session's Google access token valid.

``get_valid_access_token`` is a pure step: it takes a ``CredentialPair`` and
returns a token plus the pair the caller must treat as canonical from then
on. ``access_token_for_session`` wraps that step with the load/write-back
against a ``CredentialStore`` under a per-session lock, so two callers on
the same session never refresh with the same (possibly rotated) refresh
token.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import replace
from typing import Callable

import httpx

from auth import google_oauth2
from auth.errors import (
    CredentialRevokedError,
    NoRefreshTokenError,
    RefreshFailedError,
)
from auth.models import ClientIdentity, CredentialPair
from auth.token_store import CredentialStore

LOGGER = logging.getLogger("gdmcp.auth")

EXPIRY_MARGIN_SECONDS = 60


class CredentialRefresher:
    def __init__(
        self,
        *,
        refresh_token_fn=google_oauth2.refresh_token,
        clock: Callable[[], float] = time.time,
        expiry_margin_seconds: int = EXPIRY_MARGIN_SECONDS,
    ) -> None:
        self._refresh_token_fn = refresh_token_fn
        self._clock = clock
        self._expiry_margin_seconds = expiry_margin_seconds
        # Entries vanish once no caller holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def get_valid_access_token(
        self,
        pair: CredentialPair,
        identity: ClientIdentity,
        *,
        force_refresh: bool = False,
    ) -> tuple[str, CredentialPair]:
        if not force_refresh and pair.access_token and not pair.is_expired(self._clock()):
            return pair.access_token, pair

        if not pair.refresh_token:
            raise NoRefreshTokenError()

        try:
            refreshed = await self._refresh_token_fn(
                client_id=identity.client_id,
                client_secret=identity.client_secret,
                refresh_token=pair.refresh_token,
            )
        except google_oauth2.TokenEndpointError as error:
            if error.is_invalid_grant:
                LOGGER.warning("Google refresh token rejected status=%s", error.status_code)
                raise CredentialRevokedError(
                    f"Google refresh token is invalid or revoked ({error.body})"
                ) from error
            raise RefreshFailedError(f"Token refresh failed: {error.body}") from error
        except httpx.HTTPError as error:
            raise RefreshFailedError(f"Token refresh failed: {error}") from error

        new_pair = CredentialPair(
            access_token=refreshed.access_token,
            # Google only sometimes rotates; omission means keep the old one.
            refresh_token=refreshed.refresh_token or pair.refresh_token,
            expires_at=self._clock() + refreshed.expires_in - self._expiry_margin_seconds,
        )
        LOGGER.info(
            "Refreshed Google access token forced=%s rotated=%s",
            force_refresh,
            bool(refreshed.refresh_token),
        )
        return new_pair.access_token, new_pair

    async def access_token_for_session(
        self,
        store: CredentialStore,
        session_id: str,
        identity: ClientIdentity,
        *,
        rejected_token: str | None = None,
    ) -> str:
        """Return a usable access token for ``session_id``, persisting any refresh.

        ``rejected_token`` is the token the remote API just answered 401 for.
        A refresh is forced only while that token is still the stored one;
        if another caller already replaced it, the stored token is used.
        """
        async with self.lock_for(session_id):
            stored = await store.get(session_id)
            if stored is None:
                raise NoRefreshTokenError(
                    "No stored Google credentials for this session; re-authorize."
                )

            force = (
                rejected_token is not None
                and stored.credentials.access_token == rejected_token
            )
            token, pair = await self.get_valid_access_token(
                stored.credentials,
                identity,
                force_refresh=force,
            )
            if pair is not stored.credentials:
                await store.set(session_id, replace(stored, credentials=pair))
            return token
