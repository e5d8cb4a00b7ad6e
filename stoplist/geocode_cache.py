"""
Persistent geocode cache keyed by location id.

Only successful lookups are stored. The cache does not write on every set;
the owner saves it explicitly at batch boundaries (or via close()).
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from .models import GeocodeResult


logger = logging.getLogger(__name__)


def _key(location_id) -> Optional[str]:
    if location_id is None:
        return None
    key = str(location_id).strip()
    return key or None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeocodeCache:
    """JSON-file backed map of location id -> successful geocode result."""

    def __init__(self, cache_file: Union[str, Path]):
        self.cache_file = Path(cache_file)
        self._entries: Dict[str, GeocodeResult] = {}
        self.load()

    def load(self) -> None:
        """Load entries from disk; a missing or corrupt file leaves the cache empty."""
        self._entries = {}
        if not self.cache_file.exists():
            logger.info(f"No geocode cache at {self.cache_file} - starting empty")
            return
        try:
            with self.cache_file.open("r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("cache file must contain a JSON object")
            for key, value in data.items():
                try:
                    self._entries[str(key)] = GeocodeResult.model_validate(value)
                except Exception as e:
                    logger.warning(f"Dropping unreadable cache entry {key!r}: {e}")
            logger.info(f"Loaded {len(self._entries)} geocoded entries from cache")
        except Exception as e:
            logger.error(f"Error loading geocode cache {self.cache_file}: {e}")
            self._entries = {}

    def save(self) -> bool:
        """Write the whole cache atomically. Returns False if the write failed."""
        payload = {
            key: result.model_dump(mode="json", by_alias=True, exclude={"from_cache"})
            for key, result in self._entries.items()
        }
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.cache_file.parent, prefix=f".{self.cache_file.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_path, self.cache_file)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
            logger.info(f"Saved {len(self._entries)} geocoded entries to cache")
            return True
        except Exception as e:
            logger.error(f"Error saving geocode cache {self.cache_file}: {e}")
            return False

    def get(self, location_id) -> Optional[GeocodeResult]:
        """Copy of the cached result marked from_cache, or None."""
        key = _key(location_id)
        if key is None or key not in self._entries:
            return None
        return self._entries[key].model_copy(deep=True, update={"from_cache": True})

    def set(self, location_id, result: Optional[GeocodeResult]) -> None:
        """Store a successful result; failures and blank ids are ignored."""
        key = _key(location_id)
        if key is None or result is None or not result.success:
            return
        self._entries[key] = result.model_copy(
            deep=True, update={"cached_at": _utcnow(), "from_cache": False}
        )

    def has(self, location_id) -> bool:
        key = _key(location_id)
        return key is not None and key in self._entries

    def clear(self) -> None:
        self._entries.clear()
        self.save()
        logger.info("Geocode cache cleared")

    def prune_old_entries(self, max_age_days: int = 30) -> int:
        """Drop entries cached more than max_age_days ago; returns the number removed."""
        cutoff = _utcnow() - timedelta(days=max_age_days)
        stale = []
        for key, result in self._entries.items():
            cached_at = result.cached_at
            if cached_at is None:
                continue
            if cached_at.tzinfo is None:
                cached_at = cached_at.replace(tzinfo=timezone.utc)
            if cached_at < cutoff:
                stale.append(key)
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info(f"Pruned {len(stale)} old cache entries")
            self.save()
        return len(stale)

    def stats(self) -> dict:
        return {
            "totalEntries": len(self._entries),
            "cacheFilePath": str(self.cache_file),
            "keys": list(self._entries)[:10],
        }

    def close(self) -> None:
        self.save()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, location_id) -> bool:
        return self.has(location_id)

    def __enter__(self) -> "GeocodeCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
