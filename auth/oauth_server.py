from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
import time
from typing import Callable

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from auth import google_oauth2, signed_token
from auth.client_registry import ClientRegistry
from auth.cors import (
    DEFAULT_CORS_ORIGINS,
    apply_cors_response,
    mount_preflight_route,
    oauth_error_response,
)
from auth.errors import AccessDeniedError, GoogleAuthError
from auth.handshake import DEFAULT_STATE_TTL_SECONDS, AuthorizationExchange
from auth.models import ClientIdentity, CredentialPair, PendingCode, StoredSession
from auth.state_store import MemoryStateStore, StateStore
from auth.token_store import CredentialStore
from auth.urls import append_query_params, join_public_url

LOGGER = logging.getLogger("gdmcp.auth")

CALLBACK_PATH = "/callback"
SESSION_TOKEN_TTL_SECONDS = 7200


def code_challenge_s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


class OAuthServer:
    """OAuth 2.1 authorization server facing MCP clients.

    MCP clients register, authorize with PKCE and receive signed session
    tokens. Consent itself is delegated to Google through
    ``AuthorizationExchange``; this class is its grant finalizer and owns the
    per-session credential store.
    """

    def __init__(
        self,
        *,
        public_url: str,
        google_client_id: str,
        google_client_secret: str,
        client_registry: ClientRegistry,
        credential_store: CredentialStore,
        state_store: StateStore | None = None,
        scopes: list[str] | None = None,
        cors_origins: set[str] | None = None,
        pending_state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        pending_code_ttl_seconds: int = 60,
        session_token_ttl_seconds: int = SESSION_TOKEN_TTL_SECONDS,
        allowed_emails: set[str] | None = None,
        exchange_code_fn=google_oauth2.exchange_code,
        fetch_user_info_fn=google_oauth2.fetch_user_info,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.public_url = public_url.rstrip("/")
        self.identity = ClientIdentity(
            client_id=google_client_id,
            client_secret=google_client_secret,
        )
        self.client_registry = client_registry
        self.credential_store = credential_store
        self.cors_origins = set(DEFAULT_CORS_ORIGINS)
        if cors_origins:
            self.cors_origins.update(cors_origins)

        self.pending_code_ttl_seconds = pending_code_ttl_seconds
        self.session_token_ttl_seconds = session_token_ttl_seconds
        self.allowed_emails = {email.lower() for email in allowed_emails or ()}
        self.pending_codes: dict[str, PendingCode] = {}

        self.exchange = AuthorizationExchange(
            identity=self.identity,
            callback_url=join_public_url(self.public_url, CALLBACK_PATH),
            state_store=state_store or MemoryStateStore(clock=clock),
            finalizer=self,
            scopes=scopes,
            state_ttl_seconds=pending_state_ttl_seconds,
            exchange_code_fn=exchange_code_fn,
            fetch_user_info_fn=fetch_user_info_fn,
            clock=clock,
        )
        self._session_key = signed_token.derive_key(google_client_secret)
        self._clock = clock

    # -- session tokens --------------------------------------------------------

    def _mint_session_tokens(self, *, session_id: str, client_id: str) -> dict:
        now = self._clock()
        access = signed_token.issue(
            signed_token.ACCESS,
            session_id=session_id,
            client_id=client_id,
            key=self._session_key,
            now=now,
        )
        refresh = signed_token.issue(
            signed_token.REFRESH,
            session_id=session_id,
            client_id=client_id,
            key=self._session_key,
            now=now,
        )
        return {
            "access_token": access,
            "token_type": "bearer",
            "expires_in": self.session_token_ttl_seconds,
            "refresh_token": refresh,
        }

    def decode_session_access_token(self, token: str) -> dict:
        payload = signed_token.verify(token, self._session_key, token_type=signed_token.ACCESS)
        if payload.get("iat", 0) + self.session_token_ttl_seconds <= self._clock():
            raise RuntimeError("Session access token expired.")
        return payload

    # -- grant finalization ----------------------------------------------------

    async def finalize_grant(
        self,
        *,
        original_request: dict,
        subject_id: str,
        metadata: dict,
        scope: str,
        credentials: CredentialPair,
    ) -> str:
        email = metadata.get("email") or ""
        if self.allowed_emails and email.lower() not in self.allowed_emails:
            raise AccessDeniedError("This Google account is not allowed.")

        client_id = original_request["client_id"]
        session_id = secrets.token_urlsafe(24)
        await self.credential_store.set(
            session_id,
            StoredSession(
                credentials=credentials,
                subject_id=subject_id,
                client_id=client_id,
                email=email,
                display_name=metadata.get("name") or "",
                scope=scope,
            ),
        )

        issued_code = secrets.token_urlsafe(32)
        self.pending_codes[issued_code] = PendingCode(
            session_id=session_id,
            client_id=client_id,
            code_challenge=original_request["code_challenge"],
            redirect_uri=original_request["redirect_uri"],
            created_at=self._clock(),
        )
        return append_query_params(
            original_request["redirect_uri"],
            {"code": issued_code, "state": original_request["state"]},
        )

    # -- routes ----------------------------------------------------------------

    def metadata_payload(self) -> dict:
        return {
            "issuer": self.public_url,
            "authorization_endpoint": f"{self.public_url}/authorize",
            "token_endpoint": f"{self.public_url}/token",
            "registration_endpoint": f"{self.public_url}/register",
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code", "refresh_token"],
            "token_endpoint_auth_methods_supported": [
                "client_secret_basic",
                "client_secret_post",
            ],
            "code_challenge_methods_supported": ["S256"],
            "scopes_supported": self.exchange.scopes,
        }

    def mount_routes(self, mcp) -> None:
        @mcp.custom_route("/.well-known/oauth-authorization-server", methods=["GET"])
        async def metadata_route(request: Request) -> Response:
            return apply_cors_response(
                request,
                JSONResponse(self.metadata_payload()),
                self.cors_origins,
            )

        @mcp.custom_route("/register", methods=["POST"])
        async def register_route(request: Request) -> Response:
            return await self._handle_register(request)

        @mcp.custom_route("/authorize", methods=["GET"])
        async def authorize_route(request: Request) -> Response:
            return await self._handle_authorize(request)

        @mcp.custom_route(CALLBACK_PATH, methods=["GET"])
        async def callback_route(request: Request) -> Response:
            return await self._handle_callback(request)

        @mcp.custom_route("/token", methods=["POST"])
        async def token_route(request: Request) -> Response:
            return await self._handle_token(request)

        for path in ("/.well-known/oauth-authorization-server", "/register", "/token"):
            mount_preflight_route(mcp, path, self.cors_origins)

    # -- handlers --------------------------------------------------------------

    async def _handle_register(self, request: Request) -> Response:
        try:
            payload = await request.json()
        except ValueError:
            return self._error(request, "invalid_request", "Invalid JSON body.", 400)
        if not isinstance(payload, dict):
            return self._error(request, "invalid_request", "Expected a JSON object.", 400)

        client_name = payload.get("client_name") or "MCP client"
        redirect_uris = payload.get("redirect_uris")

        if not isinstance(client_name, str):
            return self._error(request, "invalid_client_metadata", "client_name must be a string.", 400)
        if not isinstance(redirect_uris, list) or not redirect_uris:
            return self._error(request, "invalid_redirect_uri", "redirect_uris is required.", 400)
        if not all(isinstance(uri, str) for uri in redirect_uris):
            return self._error(
                request, "invalid_redirect_uri", "redirect_uris must contain strings.", 400
            )

        try:
            client = self.client_registry.register(
                client_name=client_name, redirect_uris=redirect_uris
            )
        except ValueError as error:
            return self._error(request, "invalid_redirect_uri", str(error), 400)

        return apply_cors_response(
            request,
            JSONResponse(
                {
                    "client_id": client.client_id,
                    "client_secret": client.client_secret,
                    "client_name": client.client_name,
                    "redirect_uris": client.redirect_uris,
                    "token_endpoint_auth_method": "client_secret_post",
                },
                status_code=201,
            ),
            self.cors_origins,
        )

    async def _handle_authorize(self, request: Request) -> Response:
        params = request.query_params
        client_id = params.get("client_id")
        redirect_uri = params.get("redirect_uri")
        code_challenge = params.get("code_challenge")
        state = params.get("state")

        if not client_id or not redirect_uri or not code_challenge or not state:
            return self._error(request, "invalid_request", "Missing required query parameters.", 400)
        if params.get("response_type", "code") != "code":
            return self._error(request, "unsupported_response_type", "response_type must be code.", 400)
        if params.get("code_challenge_method") != "S256":
            return self._error(request, "invalid_request", "code_challenge_method must be S256.", 400)

        if self.client_registry.get(client_id) is None:
            return self._error(request, "invalid_client", "Unknown client_id.", 400)
        if not self.client_registry.validate_redirect_uri(client_id, redirect_uri):
            return self._error(request, "invalid_redirect_uri", "Invalid redirect_uri.", 400)

        google_url = await self.exchange.begin_authorization(
            {
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "code_challenge": code_challenge,
                "state": state,
                "scope": params.get("scope", ""),
            }
        )
        return RedirectResponse(url=google_url, status_code=302)

    async def _handle_callback(self, request: Request) -> Response:
        self._cleanup_pending_codes()
        try:
            redirect_url = await self.exchange.complete_authorization(dict(request.query_params))
        except GoogleAuthError as error:
            LOGGER.warning("Google authorization failed code=%s: %s", error.code, error)
            return self._error(request, error.code, str(error), error.status_code)

        return RedirectResponse(url=redirect_url, status_code=302)

    async def _handle_token(self, request: Request) -> Response:
        self._cleanup_pending_codes()

        form = await request.form()
        form_data = {key: str(value) for key, value in form.multi_items()}
        client_id, client_secret = self._extract_client_auth(request, form_data)

        if not client_id or not client_secret:
            return self._error(request, "invalid_client", "Missing client credentials.", 401)
        if self.client_registry.authenticate(client_id, client_secret) is None:
            return self._error(request, "invalid_client", "Invalid client credentials.", 401)

        grant_type = form_data.get("grant_type")
        if grant_type == "authorization_code":
            return self._exchange_authorization_code(request, form_data, client_id)
        if grant_type == "refresh_token":
            return await self._exchange_refresh_token(request, form_data, client_id)

        return self._error(request, "unsupported_grant_type", "Unsupported grant_type.", 400)

    def _exchange_authorization_code(
        self,
        request: Request,
        form_data: dict[str, str],
        client_id: str,
    ) -> Response:
        code = form_data.get("code")
        code_verifier = form_data.get("code_verifier")
        if not code or not code_verifier:
            return self._error(request, "invalid_request", "Missing code or code_verifier.", 400)

        pending_code = self.pending_codes.pop(code, None)
        if pending_code is None:
            return self._error(request, "invalid_grant", "Invalid authorization code.", 400)
        if self._clock() - pending_code.created_at > self.pending_code_ttl_seconds:
            return self._error(request, "invalid_grant", "Authorization code expired.", 400)
        if pending_code.client_id != client_id:
            return self._error(
                request, "invalid_grant", "Authorization code does not match client.", 400
            )

        redirect_uri = form_data.get("redirect_uri")
        if redirect_uri and redirect_uri != pending_code.redirect_uri:
            return self._error(request, "invalid_grant", "redirect_uri mismatch.", 400)

        if not hmac.compare_digest(
            code_challenge_s256(code_verifier), pending_code.code_challenge
        ):
            return self._error(request, "invalid_grant", "PKCE verification failed.", 400)

        return self._token_response(
            request,
            self._mint_session_tokens(session_id=pending_code.session_id, client_id=client_id),
        )

    async def _exchange_refresh_token(
        self,
        request: Request,
        form_data: dict[str, str],
        client_id: str,
    ) -> Response:
        session_refresh_token = form_data.get("refresh_token")
        if not session_refresh_token:
            return self._error(request, "invalid_request", "Missing refresh_token.", 400)

        try:
            payload = signed_token.verify(
                session_refresh_token, self._session_key, token_type=signed_token.REFRESH
            )
        except (RuntimeError, ValueError):
            return self._error(request, "invalid_grant", "Invalid refresh_token.", 400)

        if payload.get("cid") != client_id:
            return self._error(request, "invalid_grant", "Refresh token does not match client.", 400)

        session_id = payload["sid"]
        if await self.credential_store.get(session_id) is None:
            return self._error(
                request, "invalid_grant", "Session no longer exists; re-auth required.", 400
            )

        return self._token_response(
            request,
            self._mint_session_tokens(session_id=session_id, client_id=client_id),
        )

    # -- helpers ---------------------------------------------------------------

    def _token_response(self, request: Request, payload: dict) -> Response:
        return apply_cors_response(
            request,
            JSONResponse(payload, headers={"Cache-Control": "no-store"}),
            self.cors_origins,
        )

    def _cleanup_pending_codes(self) -> None:
        cutoff = self._clock() - self.pending_code_ttl_seconds
        expired_codes = [
            code for code, pending in self.pending_codes.items() if pending.created_at < cutoff
        ]
        for code in expired_codes:
            del self.pending_codes[code]

    def _extract_client_auth(
        self,
        request: Request,
        form_data: dict[str, str],
    ) -> tuple[str | None, str | None]:
        header = request.headers.get("authorization")
        if header and header.lower().startswith("basic "):
            raw = header.split(" ", 1)[1].strip()
            try:
                decoded = base64.b64decode(raw).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                return None, None

            if ":" not in decoded:
                return None, None
            client_id, client_secret = decoded.split(":", 1)
            return client_id, client_secret

        return form_data.get("client_id"), form_data.get("client_secret")

    def _error(self, request: Request, code: str, description: str, status_code: int) -> Response:
        return oauth_error_response(
            request=request,
            allowed_origins=self.cors_origins,
            code=code,
            description=description,
            status_code=status_code,
        )
