"""Key-value persistence used by the versioned repositories."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, raw: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...


class MemoryStore:
    """Process-local store, mostly useful for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, raw: str) -> None:
        self._values[key] = raw

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._values)


class JSONFileStore:
    """File-based store keeping one JSON document per key with crash-safe writes."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Unable to create {self._base_path}") from exc

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("Stored document %s is not valid UTF-8", path)
            return ""
        except OSError as exc:
            raise PersistenceError(f"Unable to read from {path}") from exc

    def set(self, key: str, raw: str) -> None:
        path = self._path_for(key)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as handle:
                handle.write(raw)
                handle.flush()
            # Use replace for atomic move on POSIX; ensures crash-safe persistence.
            temp_path.replace(path)
        except OSError as exc:
            raise PersistenceError(f"Unable to write to {path}") from exc

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise PersistenceError(f"Unable to delete {path}") from exc

    def keys(self) -> List[str]:
        return sorted(path.stem for path in self._base_path.glob("*.json"))

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _path_for(self, key: str) -> Path:
        return self._base_path / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"


class StoreAdapter:
    """Reads and writes raw state for one repository instance.

    Without a durable store, or once the durable store has failed, every read
    and write is served by an in-memory cell owned by this adapter. That keeps
    read-after-write consistency for the session but nothing survives a
    restart.
    """

    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self._store = store
        self._memory: Dict[str, str] = {}

    @property
    def durable(self) -> bool:
        return self._store is not None

    def read(self, key: str) -> Optional[str]:
        if self._store is not None:
            try:
                return self._store.get(key)
            except PersistenceError as exc:
                self._fall_back(exc)
        return self._memory.get(key)

    def write(self, key: str, raw: str) -> None:
        self._memory[key] = raw
        if self._store is None:
            return
        try:
            self._store.set(key, raw)
        except PersistenceError as exc:
            self._fall_back(exc)

    def _fall_back(self, exc: PersistenceError) -> None:
        logger.warning("Durable store unavailable, keeping state in memory: %s", exc)
        self._store = None
