"""
Persistent key-value storage for quota state, layouts and history.

Values are strings (callers store JSON); the file backend keeps every key in
one JSON object on disk so state survives process restarts.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Iterator, Optional, Protocol

from filelock import FileLock

from .config import STATE_FILE, logger


class KeyValueStore(Protocol):
    """Minimal string store the engine depends on."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def locked(self) -> ContextManager[None]:
        """Hold exclusive access across a read-modify-write of several calls."""
        ...


class JsonFileStore:
    """
    Key-value store backed by a single JSON file.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers never see a half-written file. Every
    access holds a lock file next to the state file, which serializes all
    store instances and processes sharing the same path.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = FileLock(f"{self.path}.lock")

    @contextmanager
    def locked(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            yield

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read state file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Ignoring state file {self.path}: not a JSON object")
            return {}
        return data

    def get(self, key: str) -> Optional[str]:
        with self.locked():
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self.locked():
            data = self._read_all()
            data[key] = value
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise


def get_store(path: Optional[Path] = None) -> JsonFileStore:
    """Return the store backed by the configured state file."""
    return JsonFileStore(path or STATE_FILE)
