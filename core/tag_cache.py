"""
Tag suggestion cache.

Holds the index-worthy tags in memory for fast autocomplete. The cache is an
owned object: whoever builds the application creates one and hands it to the
components that need it. Staleness is decided by an injected refresh
interval and clock; ingestion and tag mutations call invalidate() so the
next read reloads.
"""
import threading
import time
from typing import Callable, List, Optional

from utils.logging_config import get_logger
from .models import tokenize_tag_name

logger = get_logger('TagCache')


class TagCache:
    """
    In-memory list of {'id', 'name', 'category', 'imageCount'} rows.

    Args:
        loader: callable returning the current tag rows
        refresh_interval: seconds before the cache counts as stale
        clock: callable returning the current time in seconds
    """

    def __init__(self, loader: Callable[[], List[dict]], refresh_interval: float = 300,
                 clock: Callable[[], float] = time.time):
        self._loader = loader
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._lock = threading.RLock()
        self._tags: List[dict] = []
        self._last_refresh: Optional[float] = None
        self._is_refreshing = False
        self._stale = True
        # bumped by invalidate(); a refresh only clears _stale if unchanged
        self._generation = 0

    def refresh(self) -> int:
        """Reload from the loader. Returns the number of cached tags."""
        with self._lock:
            if self._is_refreshing:
                return len(self._tags)
            self._is_refreshing = True
            generation = self._generation

        try:
            rows = list(self._loader())
        except Exception as e:
            logger.error(f"Tag cache refresh failed: {e}")
            with self._lock:
                self._is_refreshing = False
            raise

        with self._lock:
            self._tags = rows
            self._last_refresh = self._clock()
            self._stale = self._generation != generation
            self._is_refreshing = False

        logger.debug(f"Tag cache refreshed with {len(rows)} tags")
        return len(rows)

    def invalidate(self):
        """Mark the cache stale so the next read reloads."""
        with self._lock:
            self._generation += 1
            self._stale = True

    def is_stale(self) -> bool:
        with self._lock:
            if self._stale or self._last_refresh is None:
                return True
            return self._clock() - self._last_refresh >= self._refresh_interval

    def refresh_if_needed(self) -> bool:
        """Refresh when stale. Returns True if a refresh happened."""
        if not self.is_stale():
            return False
        self.refresh()
        return True

    def suggest(self, query: str, limit: int = 10) -> List[dict]:
        """Case-insensitive substring match on name or tokenized name, most used first."""
        self.refresh_if_needed()

        needle = (query or '').strip().lower()
        if not needle:
            return []
        spaced = needle.replace('_', ' ')

        with self._lock:
            matches = [
                tag for tag in self._tags
                if needle in tag['name'].lower() or spaced in tokenize_tag_name(tag['name'].lower())
            ]

        matches.sort(key=lambda tag: (-tag['imageCount'], tag['name']))
        return matches[:limit]

    def get_stats(self) -> dict:
        with self._lock:
            return {
                'tagCount': len(self._tags),
                'lastRefresh': self._last_refresh,
                'isRefreshing': self._is_refreshing,
            }
