from __future__ import annotations

import urllib.parse
from dataclasses import dataclass

import httpx

from auth.errors import UserInfoError
from auth.models import UserIdentity

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class TokenEndpointError(RuntimeError):
    """Raised when the token endpoint answers non-2xx or with an unusable body."""

    def __init__(
        self,
        status_code: int,
        body: str,
        *,
        error: str | None = None,
        description: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.error = error
        self.description = description
        detail = f"{error}: {description}" if error and description else error or body
        super().__init__(f"Token request failed with status {status_code}: {detail}")

    @property
    def is_invalid_grant(self) -> bool:
        if not 400 <= self.status_code < 500:
            return False
        return self.error == "invalid_grant" or "invalid_grant" in self.body


@dataclass
class TokenResponse:
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    scope: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenResponse":
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        scope = payload.get("scope", "")

        if not isinstance(access_token, str) or not access_token:
            raise RuntimeError("Token response missing access_token.")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise RuntimeError("Token response refresh_token must be a string.")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise RuntimeError("Token response missing expires_in.")
        if not isinstance(scope, str):
            raise RuntimeError("Token response scope must be a string.")

        return cls(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=refresh_token or None,
            scope=scope,
        )


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
) -> str:
    # prompt=consent makes Google issue a refresh token on every run.
    query = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTHORIZE_URL}?{urllib.parse.urlencode(query)}"


def _error_fields(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        payload = response.json()
    except ValueError:
        return None, None
    if not isinstance(payload, dict):
        return None, None
    error = payload.get("error")
    description = payload.get("error_description")
    return (
        error if isinstance(error, str) else None,
        description if isinstance(description, str) else None,
    )


async def _token_request(
    payload: dict[str, str],
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.post(GOOGLE_TOKEN_URL, data=payload)
        if not response.is_success:
            error, description = _error_fields(response)
            raise TokenEndpointError(
                response.status_code,
                response.text,
                error=error,
                description=description,
            )
    finally:
        if own_client:
            await http_client.aclose()

    try:
        body = response.json()
        if not isinstance(body, dict):
            raise RuntimeError("Token response is not a JSON object.")
        return TokenResponse.from_payload(body)
    except (RuntimeError, ValueError) as error:
        raise TokenEndpointError(
            response.status_code,
            response.text,
            error="invalid_response",
            description=str(error),
        ) from error


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        {
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        },
        client=client,
    )


async def refresh_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        {
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
        client=client,
    )


async def fetch_user_info(
    access_token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> UserIdentity:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
    except httpx.HTTPError as error:
        raise UserInfoError(f"Failed to fetch Google user info: {error}") from error
    finally:
        if own_client:
            await http_client.aclose()

    if not response.is_success:
        raise UserInfoError(
            f"Failed to fetch Google user info (status {response.status_code})."
        )

    try:
        payload = response.json()
    except ValueError as error:
        raise UserInfoError("Google user info response is not valid JSON.") from error
    if not isinstance(payload, dict):
        raise UserInfoError("Google user info response is not a JSON object.")
    user_id = payload.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise UserInfoError("Google user info response missing id.")

    return UserIdentity(
        id=user_id,
        email=payload.get("email") or "",
        display_name=payload.get("name") or "",
    )
