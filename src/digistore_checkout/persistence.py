"""
Snapshot storage for client-side checkout state.

The cart and the applied gift card survive page reloads by being saved as
JSON-compatible snapshots under fixed keys. Several tabs may share one store;
the last writer wins.
"""
from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SnapshotStore(ABC):
    """Abstract interface for snapshot storage."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Get a snapshot by key."""
        pass

    @abstractmethod
    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        """Store a snapshot, replacing any previous one."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a snapshot."""
        pass


class InMemorySnapshotStore(SnapshotStore):
    """In-memory snapshot store for development and testing."""

    def __init__(self):
        self._snapshots: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._snapshots.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        # Stored serialized so callers cannot mutate a saved snapshot
        self._snapshots[key] = json.dumps(snapshot)

    async def delete(self, key: str) -> bool:
        return self._snapshots.pop(key, None) is not None


class JsonFileSnapshotStore(SnapshotStore):
    """
    Snapshot store keeping one JSON file per key in a directory.

    A corrupt file is logged and treated as missing.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._lock = asyncio.Lock()

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.directory / f"{safe}.json"

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        async with self._lock:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable snapshot {path}: {e}")
                return None

    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        path = self._path(key)
        async with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(snapshot), encoding="utf-8")
            tmp.replace(path)

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        async with self._lock:
            if path.exists():
                path.unlink()
                return True
            return False
