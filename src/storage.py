"""Durable key-value store capability and JSON persistence helpers."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, TypeVar, Union

from pydantic import TypeAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    """Dict-backed store; survives only as long as the object does."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileStore:
    """One JSON file per key under a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        tmp = self._path(key).with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(self._path(key))


def load_json(store: KeyValueStore, key: str, adapter: TypeAdapter[T], default: T) -> T:
    """Read and validate `key`; any failure yields `default`."""
    try:
        raw = store.get(key)
        if not raw:
            return default
        return adapter.validate_json(raw)
    except Exception as e:
        logger.error(f"Failed to load '{key}', starting empty: {e}")
        return default


def save_json(store: KeyValueStore, key: str, adapter: TypeAdapter[Any], value: Any) -> bool:
    """Serialize and write `value`; failures are logged, never raised."""
    try:
        payload = adapter.dump_json(value, by_alias=True, exclude_none=True)
        store.set(key, payload.decode("utf-8"))
        return True
    except Exception as e:
        logger.error(f"Failed to save '{key}': {e}")
        return False
