from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import httpx

from auth.models import ClientIdentity
from auth.refresher import CredentialRefresher
from auth.token_store import CredentialStore

from .constants import LOGGER

MULTIPART_BOUNDARY = "-----gdmcp-boundary"


@dataclass
class MultipartBody:
    metadata: dict
    content: str | bytes
    content_type: str


@dataclass
class RequestSpec:
    method: str
    url: str
    params: dict[str, Any] | list[tuple[str, str]] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None
    multipart: MultipartBody | None = None


class RemoteRequestError(RuntimeError):
    def __init__(self, status_code: int, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload

    @property
    def guidance(self) -> str:
        if self.status_code == 401:
            return f"Authentication expired. Please check your credentials. ({self.message})"
        if self.status_code == 403:
            return (
                "Permission denied. You don't have access to this resource. "
                f"({self.message})"
            )
        if self.status_code == 404:
            return (
                "Not found. The file or resource does not exist or you don't have access. "
                f"({self.message})"
            )
        if self.status_code == 400:
            return f"Bad request: {self.message}"
        return self.message

    @classmethod
    def from_response(cls, response: httpx.Response) -> "RemoteRequestError":
        payload = None
        message = response.reason_phrase or f"HTTP {response.status_code}"
        try:
            payload = response.json()
        except ValueError:
            pass
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                message = error["message"]
        return cls(response.status_code, message, payload)


def encode_multipart_related(
    metadata: dict,
    content: str | bytes,
    content_type: str,
    *,
    boundary: str = MULTIPART_BOUNDARY,
) -> tuple[bytes, str]:
    """Build the metadata+media body used by Drive ``uploadType=multipart``."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    head = "\r\n".join(
        [
            f"--{boundary}",
            "Content-Type: application/json; charset=UTF-8",
            "",
            json.dumps(metadata, separators=(",", ":"), ensure_ascii=False),
            f"--{boundary}",
            f"Content-Type: {content_type}",
            "",
            "",
        ]
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--".encode("utf-8")
    return head + content + tail, f"multipart/related; boundary={boundary}"


def _clean_params(params):
    if params is None or isinstance(params, list):
        return params
    return {key: value for key, value in params.items() if value is not None}


class AuthenticatedExecutor:
    """Runs one Google API call for one session.

    The call is attempted with the current token; on a 401 the token is
    refreshed once and the call is attempted a second time. Anything other
    than 2xx after that is raised as ``RemoteRequestError``.
    """

    def __init__(
        self,
        *,
        session_id: str,
        credential_store: CredentialStore,
        refresher: CredentialRefresher,
        identity: ClientIdentity,
        client: httpx.AsyncClient,
    ) -> None:
        self.session_id = session_id
        self._store = credential_store
        self._refresher = refresher
        self._identity = identity
        self._client = client

    async def execute(self, spec: RequestSpec) -> httpx.Response:
        token = await self._access_token()
        response = await self._send(spec, token)

        if response.status_code == 401:
            LOGGER.info(
                "Google API rejected token, refreshing and retrying once (%s %s)",
                spec.method,
                spec.url,
            )
            token = await self._access_token(rejected_token=token)
            response = await self._send(spec, token)

        if not response.is_success:
            raise RemoteRequestError.from_response(response)
        return response

    async def _access_token(self, *, rejected_token: str | None = None) -> str:
        return await self._refresher.access_token_for_session(
            self._store,
            self.session_id,
            self._identity,
            rejected_token=rejected_token,
        )

    async def _send(self, spec: RequestSpec, token: str) -> httpx.Response:
        headers = dict(spec.headers)
        headers["Authorization"] = f"Bearer {token}"
        content = None
        json_body = None

        if spec.multipart is not None:
            content, headers["Content-Type"] = encode_multipart_related(
                spec.multipart.metadata,
                spec.multipart.content,
                spec.multipart.content_type,
            )
        elif spec.json is not None:
            json_body = spec.json

        return await self._client.request(
            spec.method,
            spec.url,
            params=_clean_params(spec.params),
            headers=headers,
            json=json_body,
            content=content,
        )


async def log_request(request: httpx.Request) -> None:
    LOGGER.info("Google API request %s %s", request.method, request.url)


async def log_response(response: httpx.Response) -> None:
    LOGGER.info(
        "Google API response %s %s -> %s",
        response.request.method,
        response.request.url,
        response.status_code,
    )
    if response.status_code >= 400:
        body = await response.aread()
        text = body.decode("utf-8", errors="replace")
        if len(text) > 1000:
            text = text[:1000] + "...<truncated>"
        LOGGER.warning("Google API error body: %s", text)


def build_http_client(
    *,
    timeout: float = 30.0,
    debug: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    event_hooks: dict[str, list] = {"request": [], "response": []}
    if debug:
        event_hooks = {"request": [log_request], "response": [log_response]}
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        event_hooks=event_hooks,
    )
