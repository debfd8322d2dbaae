"""Persistent user preferences (page size and similar UI state).

Stores are injected rather than read from ambient globals so tests can use
the in-memory variant.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from ..constants import ALLOWED_PAGE_SIZES, DEFAULT_PAGE_SIZE, PAGE_SIZE_PREFERENCE_KEY

logger = logging.getLogger(__name__)

T = TypeVar("T")

Validator = Callable[[Any], Optional[T]]


class PreferenceStore:
    """Key/value preference store.

    ``get`` runs the raw stored value through ``validator``; a validator
    returning None (or raising) means the value is ignored and ``default``
    is used instead.
    """

    def _read(self, key: str) -> Any:
        raise NotImplementedError

    def _write(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def get(self, key: str, validator: Validator, default: T) -> T:
        raw = self._read(key)
        if raw is None:
            return default
        try:
            value = validator(raw)
        except (TypeError, ValueError) as e:
            logger.debug("Ignoring invalid preference %s=%r: %s", key, raw, e)
            return default
        if value is None:
            logger.debug("Ignoring invalid preference %s=%r", key, raw)
            return default
        return value

    def set(self, key: str, value: Any) -> None:
        self._write(key, value)


class MemoryPreferenceStore(PreferenceStore):
    """Process-local store (tests, ephemeral sessions)."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = dict(initial or {})

    def _read(self, key: str) -> Any:
        return self._values.get(key)

    def _write(self, key: str, value: Any) -> None:
        self._values[key] = value


class JsonPreferenceStore(PreferenceStore):
    """Preferences persisted to a single JSON file.

    Writes go through a temp file and an atomic replace. A missing or
    corrupt file reads as empty.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            logger.warning("Failed to read preferences from %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _read(self, key: str) -> Any:
        with self._lock:
            return self._load().get(key)

    def _write(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self.path)


def page_size_validator(value: Any) -> Optional[int]:
    """Accept only page sizes from the fixed allow-list."""
    if isinstance(value, str) and value.strip().isdecimal():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value in ALLOWED_PAGE_SIZES else None


def load_page_size(store: PreferenceStore) -> int:
    """Stored page size, or the default when missing/invalid."""
    return store.get(PAGE_SIZE_PREFERENCE_KEY, page_size_validator, DEFAULT_PAGE_SIZE)


def save_page_size(store: PreferenceStore, size: int) -> None:
    store.set(PAGE_SIZE_PREFERENCE_KEY, int(size))
