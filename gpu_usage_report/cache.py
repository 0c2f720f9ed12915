"""
Time-bounded memoization of metric lookups

Metric queries are pure functions of (cluster, time window, metric family), so
their results can be reused across report builds for a while. The cache is
shared by every builder in the process; operations lock individually and
concurrent writers to the same key resolve last-write-wins.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_SWEEP_THRESHOLD = 100

MEMORY_KIND = 'memory'
POWER_KIND = 'power'


def cluster_identity(cluster: Any) -> str:
   """
   Stable identity of a cluster for cache keys

   Prefers the cloud-assigned name, then ``<name>-<user_hash>``, then the bare
   name.
   """
   name_on_cloud = getattr(cluster, 'cluster_name_on_cloud', None)
   if name_on_cloud:
      return name_on_cloud

   name = getattr(cluster, 'name', None)
   user_hash = getattr(cluster, 'user_hash', None)
   if name and user_hash:
      return f"{name}-{user_hash}"
   if name:
      return name
   return 'unknown'


def cache_key(cluster: Any, start: float, end: float, kind: Optional[str] = None) -> str:
   """
   Build the cache key for a metric lookup

   Args:
      cluster: Cluster record
      start: Window start (Unix seconds)
      end: Window end (Unix seconds)
      kind: Metric family discriminator (None for utilization)

   Returns:
      Cache key string
   """
   key = f"{cluster_identity(cluster)}_{start}_{end}"
   if kind:
      return f"{kind}_{key}"
   return key


class MetricCache:
   """In-memory TTL cache for metric results"""

   def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
                clock: Optional[Callable[[], float]] = None):
      """
      Initialize the cache

      Args:
         ttl_seconds: Maximum age of an entry before it is treated as absent
         sweep_threshold: Entry count above which expired entries are swept
         clock: Time source returning Unix seconds (default: time.time)
      """
      self.ttl_seconds = ttl_seconds
      self.sweep_threshold = sweep_threshold
      self.clock = clock or time.time
      self._entries: Dict[str, Tuple[Any, float]] = {}
      self._lock = threading.Lock()
      self.logger = logging.getLogger(__name__)

   def get(self, key: str) -> Optional[Any]:
      """Return the cached value, or None if missing or expired"""
      with self._lock:
         entry = self._entries.get(key)
      if entry is None:
         return None

      value, stored_at = entry
      if self.clock() - stored_at < self.ttl_seconds:
         return value
      return None

   def set(self, key: str, value: Any) -> None:
      """Store a value, replacing any previous entry for the key"""
      with self._lock:
         self._entries[key] = (value, self.clock())

   def get_or_fetch(self, key: str, fetch: Callable[[], Any]) -> Any:
      """
      Return the cached value or fetch and store it

      ``None`` results are returned but not stored, so a later call retries.
      """
      cached = self.get(key)
      if cached is not None:
         return cached

      value = fetch()
      if value is not None:
         self.set(key, value)
      return value

   def sweep_expired(self) -> int:
      """Remove expired entries and return how many were removed"""
      now = self.clock()
      with self._lock:
         expired = [
            key for key, (_, stored_at) in self._entries.items()
            if now - stored_at >= self.ttl_seconds
         ]
         for key in expired:
            del self._entries[key]

      if expired:
         self.logger.debug(f"Swept {len(expired)} expired metric cache entries")
      return len(expired)

   def maybe_sweep(self) -> int:
      """Sweep expired entries once the cache grows past the threshold"""
      if len(self) > self.sweep_threshold:
         return self.sweep_expired()
      return 0

   def clear(self) -> None:
      """Drop every entry"""
      with self._lock:
         self._entries.clear()
      self.logger.debug("Metric cache cleared")

   def __len__(self) -> int:
      with self._lock:
         return len(self._entries)

   def __contains__(self, key: str) -> bool:
      return self.get(key) is not None

   def __str__(self) -> str:
      return f"MetricCache(entries={len(self)}, ttl={self.ttl_seconds}s)"


_default_cache: Optional[MetricCache] = None
_default_cache_lock = threading.Lock()


def get_default_cache() -> MetricCache:
   """Process-wide cache shared by report builders"""
   global _default_cache
   with _default_cache_lock:
      if _default_cache is None:
         _default_cache = MetricCache()
      return _default_cache


def clear_metric_cache() -> None:
   """Force the next report build to refetch every metric"""
   get_default_cache().clear()
