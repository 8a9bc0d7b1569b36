"""Versioned repository pattern shared by every entity collection.

A repository owns one storage key whose value is the JSON document
``{"version": <int>, "items": [...]}``. Reading the key validates the
document against the schema of its declared version and runs the registered
``from_version -> from_version + 1`` migrations until the current version is
reached. Anything unrecognisable is discarded and replaced by the default
state; corrupt storage is never surfaced to callers.
"""

from __future__ import annotations

import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from .config import DEFAULT_NAMESPACE
from .exceptions import ValidationError
from .models import isoformat_utc
from .storage import KeyValueStore, StoreAdapter

logger = logging.getLogger(__name__)

State = Dict[str, Any]
Record = Dict[str, Any]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VersionedRepository:
    """Base class for one persisted collection."""

    key_suffix: str = ""
    version: int = 1
    payload_field: str = "items"
    model: Any = None
    # Maps a schema version to a predicate over one persisted record.
    schemas: Dict[int, Callable[[Any], bool]] = {}
    # Maps a schema version to the function upgrading a whole state to version + 1.
    migrations: Dict[int, Callable[[State], State]] = {}

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        storage_key: Optional[str] = None,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Optional[Clock] = None,
    ) -> None:
        self._adapter = StoreAdapter(store)
        self._storage_key = storage_key or f"{namespace}.{self.key_suffix}"
        self._clock = clock or utc_now

    @property
    def storage_key(self) -> str:
        return self._storage_key

    # Public API -----------------------------------------------------------
    def list(self) -> List[Any]:
        return [self.model.from_dict(item) for item in self.read_state()["items"]]

    def get_by_id(self, record_id: str) -> Optional[Any]:
        found = _find(self.read_state()["items"], record_id)
        return self.model.from_dict(found) if found is not None else None

    def create(self, payload: Dict[str, Any]) -> Any:
        _require_mapping(payload)
        state = self.read_state()
        record = self._build_created(payload, state["items"])
        state["items"].append(record)
        self.write_state(state)
        self._on_change()
        return self.model.from_dict(record)

    def update(self, record_id: str, patch: Dict[str, Any]) -> Optional[Any]:
        _require_mapping(patch)
        state = self.read_state()
        index = _index_of(state["items"], record_id)
        if index is None:
            return None
        updated = self._build_updated(state["items"][index], patch, state["items"])
        state["items"][index] = updated
        self.write_state(state)
        self._on_change()
        return self.model.from_dict(updated)

    def remove(self, record_id: str) -> bool:
        state = self.read_state()
        index = _index_of(state["items"], record_id)
        if index is None or self._is_protected(state["items"][index]):
            return False
        del state["items"][index]
        self.write_state(state)
        self._on_change()
        return True

    def clear_all(self) -> None:
        self.write_state(self.build_initial_state())
        self._on_change()

    # State handling -------------------------------------------------------
    def build_initial_state(self) -> State:
        return {"version": self.version, self.payload_field: self._initial_payload()}

    def read_state(self) -> State:
        raw = self._adapter.read(self._storage_key)
        if raw is None:
            initial = self.build_initial_state()
            self.write_state(initial)
            return initial

        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None

        state = self._upgrade(parsed) if parsed is not None else None
        if state is None:
            logger.info("Resetting unrecognised state stored under %s", self._storage_key)
            state = self.build_initial_state()
            self.write_state(state)
        return copy.deepcopy(state)

    def write_state(self, state: State) -> None:
        logger.debug("Writing %s (version %s)", self._storage_key, state.get("version"))
        self._adapter.write(self._storage_key, json.dumps(state, ensure_ascii=False))

    def matches_schema(self, version: int, state: Any) -> bool:
        if not isinstance(state, dict) or state.get("version") != version:
            return False
        predicate = self.schemas.get(version)
        if predicate is None:
            return False
        return self._payload_matches(predicate, state.get(self.payload_field))

    # Hooks for subclasses -------------------------------------------------
    def _initial_payload(self) -> Any:
        return []

    def _payload_matches(self, predicate: Callable[[Any], bool], payload: Any) -> bool:
        return isinstance(payload, list) and all(predicate(item) for item in payload)

    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        raise NotImplementedError

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        raise NotImplementedError

    def _is_protected(self, record: Record) -> bool:
        return False

    def _on_change(self) -> None:
        """Called after every successful write performed through the public API."""

    # Helpers --------------------------------------------------------------
    def _now(self) -> datetime:
        return self._clock()

    def _timestamp(self) -> str:
        return isoformat_utc(self._now())

    @staticmethod
    def _new_id() -> str:
        return str(uuid4())

    def _upgrade(self, parsed: Any) -> Optional[State]:
        if not isinstance(parsed, dict):
            return None
        version = parsed.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            return None
        if version > self.version or not self.matches_schema(version, parsed):
            return None

        state = parsed
        while version < self.version:
            migrate = self.migrations.get(version)
            if migrate is None:
                return None
            state = migrate(copy.deepcopy(state))
            version += 1
            if not self.matches_schema(version, state):
                logger.warning(
                    "Migration of %s to version %s produced an invalid state",
                    self._storage_key,
                    version,
                )
                return None
            logger.info("Migrated %s to version %s", self._storage_key, version)
            self.write_state(state)
        return state


def _require_mapping(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object")


def _index_of(items: List[Record], record_id: str) -> Optional[int]:
    for index, item in enumerate(items):
        if item.get("id") == record_id:
            return index
    return None


def _find(items: List[Record], record_id: str) -> Optional[Record]:
    index = _index_of(items, record_id)
    return items[index] if index is not None else None
