from __future__ import annotations

import logging
import secrets
import time
from typing import Callable, Mapping, Protocol

import httpx

from auth import google_oauth2
from auth.errors import (
    InvalidOrExpiredStateError,
    InvalidRequestError,
    MissingRefreshTokenError,
    ProviderDeniedError,
    TokenExchangeError,
)
from auth.models import ClientIdentity, CredentialPair, PendingAuthorization
from auth.state_store import StateStore

LOGGER = logging.getLogger("gdmcp.auth")

DEFAULT_STATE_TTL_SECONDS = 600


class GrantFinalizer(Protocol):
    async def finalize_grant(
        self,
        *,
        original_request: dict,
        subject_id: str,
        metadata: dict,
        scope: str,
        credentials: CredentialPair,
    ) -> str: ...


class AuthorizationExchange:
    """Google side of the authorization handshake.

    ``begin_authorization`` parks the caller's already-validated request under
    a fresh state value and returns the Google consent URL.
    ``complete_authorization`` redeems that state on the callback, exchanges
    the code, resolves the Google account and hands the new credentials to
    the finalizer, returning wherever the finalizer says to redirect.
    """

    def __init__(
        self,
        *,
        identity: ClientIdentity,
        callback_url: str,
        state_store: StateStore,
        finalizer: GrantFinalizer | None = None,
        scopes: list[str] | None = None,
        state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        exchange_code_fn=google_oauth2.exchange_code,
        fetch_user_info_fn=google_oauth2.fetch_user_info,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.identity = identity
        self.callback_url = callback_url
        self.state_store = state_store
        self.finalizer = finalizer
        self.scopes = scopes or list(google_oauth2.DEFAULT_SCOPES)
        self.state_ttl_seconds = state_ttl_seconds
        self._exchange_code_fn = exchange_code_fn
        self._fetch_user_info_fn = fetch_user_info_fn
        self._clock = clock

    async def begin_authorization(self, original_request: dict) -> str:
        state = secrets.token_urlsafe(32)
        pending = PendingAuthorization(
            state=state,
            original_request=original_request,
            created_at=self._clock(),
        )
        await self.state_store.put(
            state,
            {
                "original_request": pending.original_request,
                "created_at": pending.created_at,
            },
            self.state_ttl_seconds,
        )

        return google_oauth2.build_authorization_url(
            client_id=self.identity.client_id,
            redirect_uri=self.callback_url,
            scopes=self.scopes,
            state=state,
        )

    async def complete_authorization(self, params: Mapping[str, str]) -> str:
        if self.finalizer is None:
            raise RuntimeError("AuthorizationExchange has no grant finalizer configured.")

        error = params.get("error")
        if error:
            raise ProviderDeniedError(error, params.get("error_description"))

        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            raise InvalidRequestError("Missing code or state parameter.")

        stored = await self.state_store.pop(state)
        if stored is None:
            raise InvalidOrExpiredStateError()
        pending = PendingAuthorization(
            state=state,
            original_request=stored["original_request"],
            created_at=stored["created_at"],
        )

        try:
            tokens = await self._exchange_code_fn(
                client_id=self.identity.client_id,
                client_secret=self.identity.client_secret,
                code=code,
                redirect_uri=self.callback_url,
            )
        except google_oauth2.TokenEndpointError as error:
            LOGGER.warning(
                "Google code exchange rejected status=%s error=%s",
                error.status_code,
                error.error,
            )
            raise TokenExchangeError(
                f"Google token exchange failed: {error}",
                http_status=error.status_code,
                error=error.error,
                description=error.description,
            ) from error
        except httpx.HTTPError as error:
            LOGGER.warning("Google code exchange transport failure: %s", error)
            raise TokenExchangeError(f"Google token exchange failed: {error}") from error

        if not tokens.refresh_token:
            raise MissingRefreshTokenError()

        user = await self._fetch_user_info_fn(tokens.access_token)

        credentials = CredentialPair(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=self._clock() + tokens.expires_in,
        )
        LOGGER.info("Completed Google authorization subject=%s", user.id)
        return await self.finalizer.finalize_grant(
            original_request=pending.original_request,
            subject_id=user.id,
            metadata={"email": user.email, "name": user.display_name},
            scope=pending.original_request.get("scope", ""),
            credentials=credentials,
        )
