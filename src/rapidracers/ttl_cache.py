import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger('RapidRacers.cache')


class TTLCache:
    """In-process read-through cache with a fixed time-to-live.

    Entries are per instance; there is no coherence across processes unless an
    ``on_invalidate`` hook forwards invalidations to peers (see messaging).
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time,
                 on_invalidate: Optional[Callable[[str], None]] = None):
        self.ttl = ttl
        self.clock = clock
        self.on_invalidate = on_invalidate
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key):
        entry = self._entries.get(key)
        if not entry:
            logger.debug('Cache miss (no entry) for %s', key)
            return None
        age = self.clock() - entry.get('ts', 0)
        if age > self.ttl:
            with self._lock:
                # double-check while holding lock
                entry2 = self._entries.get(key)
                if entry2 is None:
                    return None
                if (self.clock() - entry2.get('ts', 0)) > self.ttl:
                    self._entries.pop(key, None)
                    logger.info('Cache expired for %s', key)
                    return None
                return entry2.get('data')
        logger.debug('Cache hit for %s (age=%.1fs)', key, age)
        return entry.get('data')

    def set(self, key, data):
        with self._lock:
            self._entries[key] = {'data': data, 'ts': self.clock()}
        logger.info('Set in-memory cache for %s', key)

    def invalidate(self, key, publish=True):
        with self._lock:
            self._entries.pop(key, None)
        logger.info('Invalidated in-memory cache for %s', key)
        if publish and self.on_invalidate:
            self.on_invalidate(key)
