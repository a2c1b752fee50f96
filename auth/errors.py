from __future__ import annotations


class GoogleAuthError(RuntimeError):
    """Base class for handshake and credential failures.

    ``code`` and ``status_code`` are what the OAuth routes render back to the
    caller as ``{"error": code, "error_description": message}``.
    """

    code = "server_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidRequestError(GoogleAuthError):
    code = "invalid_request"


class InvalidOrExpiredStateError(GoogleAuthError):
    code = "invalid_state"

    def __init__(self, message: str = "Invalid or expired OAuth state.") -> None:
        super().__init__(message)


class ProviderDeniedError(GoogleAuthError):
    code = "access_denied"

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        super().__init__(f"Google OAuth error: {description or error}")


class MissingRefreshTokenError(GoogleAuthError):
    code = "missing_refresh_token"

    def __init__(self) -> None:
        super().__init__(
            "Google did not return a refresh token. Please revoke access at "
            "https://myaccount.google.com/permissions and try again."
        )


class TokenExchangeError(GoogleAuthError):
    code = "google_token_exchange_failed"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        error: str | None = None,
        description: str | None = None,
    ) -> None:
        self.http_status = http_status
        self.error = error
        self.description = description
        super().__init__(message)


class UserInfoError(GoogleAuthError):
    code = "user_info_failed"
    status_code = 502


class AccessDeniedError(GoogleAuthError):
    code = "access_denied"
    status_code = 403


class NoRefreshTokenError(GoogleAuthError):
    code = "invalid_grant"
    status_code = 401

    def __init__(
        self, message: str = "Access token expired and no refresh token available."
    ) -> None:
        super().__init__(message)


class CredentialRevokedError(GoogleAuthError):
    code = "invalid_grant"
    status_code = 401


class RefreshFailedError(GoogleAuthError):
    code = "temporarily_unavailable"
    status_code = 503
