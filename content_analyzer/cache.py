"""
Two-tier cache for keyword analysis results: a process-local memory tier with
a TTL in front of the durable record store.
"""

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from content_analyzer import config
from content_analyzer.models import CacheEntry
from content_analyzer.storage import RecordStore

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Raised when the durable tier cannot be written."""
    pass


class AnalysisCache:
    """
    Caches CacheEntry objects per analysis id.

    The memory tier is shared by concurrent requests and guarded by a lock.
    Reads fall through to the store once an entry is older than ``ttl``; a
    failing store read counts as a miss, a failing store write raises.
    """

    def __init__(
        self,
        store: RecordStore,
        ttl: float = config.CACHE_TTL_SECONDS,
        max_age: float = config.CACHE_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.ttl = ttl
        self.max_age = max_age
        self._clock = clock
        self._memory: Dict[str, Tuple[CacheEntry, float]] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def _remember(self, analysis_id: str, entry: CacheEntry):
        with self._lock:
            self._memory[analysis_id] = (entry, self._clock())

    def _forget(self, analysis_id: str):
        with self._lock:
            self._memory.pop(analysis_id, None)

    async def get(self, analysis_id: str) -> Optional[CacheEntry]:
        with self._lock:
            cached = self._memory.get(analysis_id)
        if cached and self._clock() - cached[1] < self.ttl:
            logger.debug(f"Memory cache hit for analysis {analysis_id}")
            return cached[0]

        try:
            record = await self.store.get(analysis_id)
            blob = (record or {}).get('keyword_analysis')
            entry = CacheEntry.model_validate(blob) if blob else None
        except Exception as e:
            logger.error(f"Error reading cached analysis {analysis_id}: {e}", exc_info=True)
            return None

        if entry is None:
            return None
        self._remember(analysis_id, entry)
        return entry

    async def set(self, analysis_id: str, entry: CacheEntry):
        # Memory only holds entries the store has accepted
        try:
            await self.store.update(analysis_id, {
                'keyword_analysis': entry.model_dump(mode='json'),
                'last_analysis_at': datetime.now(timezone.utc).isoformat(),
            })
        except Exception as e:
            logger.error(f"Error updating cached analysis {analysis_id}: {e}", exc_info=True)
            raise CacheError(f"Failed to store analysis {analysis_id}") from e
        self._remember(analysis_id, entry)
        logger.info(f"Cached keyword analysis for {analysis_id}")

    async def invalidate(self, analysis_id: str):
        self._forget(analysis_id)
        try:
            await self.store.update(analysis_id, {'keyword_analysis': None})
        except Exception as e:
            logger.error(f"Error invalidating cached analysis {analysis_id}: {e}", exc_info=True)
            raise CacheError(f"Failed to invalidate analysis {analysis_id}") from e
        logger.info(f"Invalidated cached keyword analysis for {analysis_id}")

    async def lookup(self, analysis_id: str, content_hash: str) -> Optional[CacheEntry]:
        """Return the cached entry only if it was computed for this content and is not stale."""
        entry = await self.get(analysis_id)
        if entry is None or entry.content_hash != content_hash:
            return None
        last_updated = entry.last_updated
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)
        age = (datetime.now(timezone.utc) - last_updated).total_seconds()
        if age >= self.max_age:
            logger.info(f"Cached analysis {analysis_id} is stale ({age:.0f}s old)")
            return None
        return entry

    def sweep(self) -> int:
        """Evict memory entries older than the TTL. Returns the number evicted."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, stored_at) in self._memory.items() if now - stored_at > self.ttl]
            for key in expired:
                del self._memory[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def start_sweeper(self, interval: Optional[float] = None) -> asyncio.Task:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval or self.ttl))
        return self._sweeper

    async def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            self.sweep()
