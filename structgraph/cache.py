"""On-disk cache of enrichment results, stored next to the analyzed project.

Entries are keyed by struct name and are only valid while both the content
hash of the struct's source and the provider identity still match.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from .models import CacheEntry, Enrichment

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"
CACHE_FILE_NAME = ".structgraph-cache.json"


def content_hash(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EnrichmentCache:
    def __init__(self, project_root: Path, load: bool = True) -> None:
        self.path = Path(project_root) / CACHE_FILE_NAME
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._dirty = False
        if load:
            self.load()

    def load(self) -> None:
        """Read the cache file; any problem leaves the cache empty."""
        with self._lock:
            self._entries = {}
            self._dirty = False
            if not self.path.exists():
                return
            try:
                document = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Ignoring unreadable cache %s: %s", self.path, exc)
                return

            if not isinstance(document, dict) or document.get("version") != CACHE_VERSION:
                logger.info("Cache %s has an unsupported version, starting fresh", self.path)
                return

            entries = document.get("entries") or {}
            if not isinstance(entries, dict):
                logger.warning("Ignoring cache %s: entries is not a mapping", self.path)
                return

            for name, raw in entries.items():
                try:
                    entry = CacheEntry(
                        name=raw.get("name", name),
                        content_hash=raw["content_hash"],
                        provider=raw["provider"],
                        payload=dict(raw["payload"]),
                        cached_at=raw.get("cached_at", ""),
                    )
                    Enrichment.from_dict(entry.payload)
                except (AttributeError, KeyError, TypeError, ValueError):
                    logger.debug("Dropping malformed cache entry %r", name)
                    continue
                self._entries[name] = entry
            logger.debug("Loaded %d cache entries from %s", len(self._entries), self.path)

    def get(self, name: str, source: str, provider: str) -> Optional[Enrichment]:
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            return None
        if entry.content_hash != content_hash(source) or entry.provider != provider:
            return None
        try:
            return Enrichment.from_dict(entry.payload)
        except (AttributeError, TypeError, ValueError):
            logger.debug("Ignoring malformed cache payload for %s", name)
            return None

    def set(self, name: str, source: str, provider: str, enrichment: Enrichment) -> None:
        entry = CacheEntry(
            name=name,
            content_hash=content_hash(source),
            provider=provider,
            payload=enrichment.to_dict(),
            cached_at=_now(),
        )
        with self._lock:
            self._entries[name] = entry
            self._dirty = True

    def persist(self) -> bool:
        """Write the cache if it changed. Returns True when a file was written."""
        with self._lock:
            if not self._dirty:
                return False
            document = {
                "version": CACHE_VERSION,
                "updated_at": _now(),
                "entries": {name: asdict(entry) for name, entry in sorted(self._entries.items())},
            }
            try:
                self.path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
            except OSError as exc:
                logger.warning("Failed to write cache %s: %s", self.path, exc)
                return False
            self._dirty = False
            return True

    def clear(self) -> None:
        with self._lock:
            if self._entries:
                self._dirty = True
            self._entries = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
