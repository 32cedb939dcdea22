"""
Local persistence of in-progress uploads, so an interrupted upload can be
resumed after a restart.

Records live in a string key/value store under ``upload_session_<id>``
keys, one JSON document per session.
"""
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryKeyValueStore:
    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore:
    """
    All keys in one JSON object on disk.

    Writes go to a temp file that replaces the original, so a crash leaves
    either the old or the new contents. An unreadable file counts as empty.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Ignoring unreadable session file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"⚠️ Ignoring malformed session file {self.path}")
            return {}
        return {key: value for key, value in data.items() if isinstance(value, str)}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f".{self.path.name}.tmp")
        temp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(temp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)

    def keys(self) -> list[str]:
        return list(self._read())


class SavedUploadSession(BaseModel):
    """What the client remembers about an upload it started"""
    session_id: str = Field(alias="sessionId")
    file_name: str = Field(alias="fileName")
    file_size: int = Field(alias="fileSize")
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

    model_config = ConfigDict(populate_by_name=True)


class TransferSessionStore:
    """Namespaced view over a KeyValueStore holding SavedUploadSession records"""

    def __init__(self, kv: KeyValueStore, namespace: str = "upload_session_"):
        self.kv = kv
        self.namespace = namespace

    def _key(self, session_id: str) -> str:
        return f"{self.namespace}{session_id}"

    def _parse(self, key: str, raw: Optional[str]) -> Optional[SavedUploadSession]:
        if raw is None:
            return None
        try:
            return SavedUploadSession.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"⚠️ Corrupt upload record {key}: {e.error_count()} error(s)")
            return None

    def save(self, record: SavedUploadSession) -> None:
        self.kv.set(self._key(record.session_id), record.model_dump_json(by_alias=True))

    def load(self, session_id: str) -> Optional[SavedUploadSession]:
        key = self._key(session_id)
        return self._parse(key, self.kv.get(key))

    def remove(self, session_id: str) -> None:
        self.kv.delete(self._key(session_id))

    def list_all(self) -> list[SavedUploadSession]:
        """Every readable record, newest first"""
        records = []
        for key in self.kv.keys():
            if not key.startswith(self.namespace):
                continue
            record = self._parse(key, self.kv.get(key))
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda record: record.timestamp, reverse=True)
