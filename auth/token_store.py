from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from auth.files import read_json_object, write_json_atomic
from auth.models import CredentialPair, StoredSession


def session_to_dict(session: StoredSession) -> dict:
    return asdict(session)


def session_from_dict(payload: dict) -> StoredSession:
    data = dict(payload)
    data["credentials"] = CredentialPair(**data["credentials"])
    return StoredSession(**data)


class CredentialStore(ABC):
    @abstractmethod
    async def get(self, session_id: str) -> StoredSession | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, session_id: str, data: StoredSession) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._sessions: dict[str, StoredSession] = {}

    async def get(self, session_id: str) -> StoredSession | None:
        return self._sessions.get(session_id)

    async def set(self, session_id: str, data: StoredSession) -> None:
        self._sessions[session_id] = data

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class FileCredentialStore(CredentialStore):
    """JSON file of sessions, optionally sealed with Fernet.

    With an ``encryption_key`` each record is stored as ``{"sealed": <token>}``
    and a record that cannot be decrypted is an error, not a cache miss.
    """

    def __init__(
        self,
        path: str | Path = ".tokens.json",
        *,
        encryption_key: str | bytes | None = None,
    ) -> None:
        self._path = Path(path)
        if isinstance(encryption_key, str):
            encryption_key = encryption_key.encode()
        self._fernet = Fernet(encryption_key) if encryption_key else None

    async def get(self, session_id: str) -> StoredSession | None:
        all_sessions = self._read_all()
        record = all_sessions.get(session_id)
        if record is None:
            return None
        return session_from_dict(self._open(record))

    async def set(self, session_id: str, data: StoredSession) -> None:
        all_sessions = self._read_all()
        all_sessions[session_id] = self._seal(session_to_dict(data))
        self._write_all(all_sessions)

    async def delete(self, session_id: str) -> None:
        all_sessions = self._read_all()
        all_sessions.pop(session_id, None)
        self._write_all(all_sessions)

    def _seal(self, payload: dict) -> dict:
        if self._fernet is None:
            return payload
        plaintext = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        return {"sealed": self._fernet.encrypt(plaintext).decode("ascii")}

    def _open(self, record: dict) -> dict:
        sealed = record.get("sealed")
        if sealed is None:
            if self._fernet is not None:
                raise RuntimeError("Token store record is not encrypted but a key is configured.")
            return record
        if self._fernet is None:
            raise RuntimeError("Token store record is encrypted but no key is configured.")
        try:
            plaintext = self._fernet.decrypt(sealed.encode("ascii"))
        except InvalidToken as error:
            raise RuntimeError("Token store record could not be decrypted.") from error
        return json.loads(plaintext)

    def _read_all(self) -> dict[str, dict]:
        return read_json_object(self._path, "Token store")

    def _write_all(self, payload: dict[str, dict]) -> None:
        write_json_atomic(self._path, payload)
