"""
JSON file cache of introspection results, one file per connection.

Layout of ``<cache_dir>/<conn_id>.json``:

    {
      "metadata": {"last_updated": "2024-05-01T12:00:00+00:00", "version": 1},
      "schema": {...SchemaInfo...},
      "graph": {...GraphData...}
    }
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from schema_lens.errors import CacheError
from schema_lens.models import GraphData, SchemaInfo

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

_SAFE_ID = re.compile(r"^[\w.-]+$")


@dataclass(frozen=True)
class CacheMetadata:
    last_updated: str  # ISO-8601, UTC
    version: int = CACHE_VERSION

    @property
    def updated_at(self) -> datetime:
        return datetime.fromisoformat(self.last_updated)

    def to_dict(self) -> Dict[str, Any]:
        return {"last_updated": self.last_updated, "version": self.version}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CacheMetadata:
        return cls(last_updated=data["last_updated"], version=data.get("version", CACHE_VERSION))


@dataclass(frozen=True)
class CacheEntry:
    """A cached introspection result."""
    metadata: CacheMetadata
    schema: SchemaInfo
    graph: GraphData

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "schema": self.schema.to_dict(),
            "graph": self.graph.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CacheEntry:
        return cls(
            metadata=CacheMetadata.from_dict(data["metadata"]),
            schema=SchemaInfo.from_dict(data["schema"]),
            graph=GraphData.from_dict(data["graph"]),
        )


class SchemaCache:
    """
    Persistent store of (SchemaInfo, GraphData) per connection id.

    Writes replace the file atomically. ``lock(conn_id)`` returns the lock
    that serializes refreshes of one connection within this process.
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, conn_id: str) -> Path:
        if not _SAFE_ID.match(conn_id):
            raise CacheError(f"Invalid connection id for cache: {conn_id!r}")
        return self.cache_dir / f"{conn_id}.json"

    def lock(self, conn_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(conn_id, threading.Lock())

    def get(self, conn_id: str) -> Optional[CacheEntry]:
        """Load a cache entry; missing or unreadable files yield None."""
        path = self.path_for(conn_id)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return CacheEntry.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Could not load schema cache for {conn_id} from {path}: {e}")
            return None

    def set(self, conn_id: str, schema: SchemaInfo, graph: GraphData) -> CacheEntry:
        """Store a result, replacing any previous entry."""
        entry = CacheEntry(
            metadata=CacheMetadata(last_updated=datetime.now(timezone.utc).isoformat()),
            schema=schema,
            graph=graph,
        )
        path = self.path_for(conn_id)

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{conn_id}.", suffix=".tmp", dir=self.cache_dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entry.to_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise CacheError(f"Could not write schema cache for {conn_id} to {path}: {e}") from e

        logger.info(f"Schema cache saved for {conn_id} at {path}")
        return entry

    def has(self, conn_id: str) -> bool:
        return self.path_for(conn_id).exists()

    def delete(self, conn_id: str) -> bool:
        """Remove a cache entry. Returns False when there was none."""
        path = self.path_for(conn_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Schema cache deleted for {conn_id}")
        return True

    def get_metadata(self, conn_id: str) -> Optional[CacheMetadata]:
        entry = self.get(conn_id)
        return entry.metadata if entry else None

    def is_stale(self, conn_id: str, max_age: timedelta) -> bool:
        """True when there is no entry or it is older than ``max_age``."""
        metadata = self.get_metadata(conn_id)
        if metadata is None:
            return True
        return datetime.now(timezone.utc) - metadata.updated_at > max_age

    def stats(self, conn_id: str) -> Dict[str, Any]:
        """Summary counts of a cached entry."""
        entry = self.get(conn_id)
        if entry is None:
            return {"has_cache": False, "last_updated": None}

        return {
            "has_cache": True,
            "last_updated": entry.metadata.last_updated,
            "tables": len(entry.schema.tables),
            "views": len(entry.schema.views),
            "triggers": len(entry.schema.triggers),
            "foreign_keys": len(entry.schema.foreign_keys),
            "nodes": len(entry.graph.nodes),
            "edges": len(entry.graph.edges),
        }
