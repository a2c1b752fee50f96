"""HMAC-signed session tokens handed to MCP clients.

A token only names a session (``sid``), the MCP client (``cid``), its kind
(``typ``: ``a`` for access, ``r`` for refresh) and when it was issued
(``iat``). Google credentials stay server-side in the credential store.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time

ACCESS = "a"
REFRESH = "r"


def derive_key(client_secret: str) -> str:
    """Derive a stable signing key from the Google OAuth client secret."""
    return hashlib.sha256(f"gdmcp:session:{client_secret}".encode()).hexdigest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def encode(payload: dict, key: str) -> str:
    data = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    return f"{_b64encode(data)}.{_b64encode(sig)}"


def decode(token: str, key: str) -> dict:
    data_b64, sep, sig_b64 = token.partition(".")
    if not sep or not data_b64 or not sig_b64:
        raise RuntimeError("Invalid session token format.")
    try:
        data = _b64decode(data_b64)
        actual_sig = _b64decode(sig_b64)
    except (binascii.Error, ValueError) as error:
        raise RuntimeError("Invalid session token encoding.") from error

    expected_sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, actual_sig):
        raise RuntimeError("Session token signature verification failed.")
    payload = json.loads(data)
    if not isinstance(payload, dict):
        raise RuntimeError("Invalid session token payload.")
    return payload


def issue(token_type: str, *, session_id: str, client_id: str, key: str, now: float | None = None) -> str:
    return encode(
        {
            "sid": session_id,
            "cid": client_id,
            "typ": token_type,
            "iat": time.time() if now is None else now,
        },
        key,
    )


def verify(token: str, key: str, *, token_type: str) -> dict:
    payload = decode(token, key)
    if payload.get("typ") != token_type:
        raise RuntimeError("Session token has the wrong type.")
    if not isinstance(payload.get("sid"), str) or not payload["sid"]:
        raise RuntimeError("Session token missing session id.")
    return payload
