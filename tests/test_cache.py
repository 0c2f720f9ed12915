"""
Tests for the metric result cache
"""

from gpu_usage_report.cache import (
   MetricCache, cache_key, cluster_identity, get_default_cache, clear_metric_cache,
   MEMORY_KIND, POWER_KIND
)
from gpu_usage_report.models.cluster import ClusterRecord


class FakeClock:
   """Manually advanced time source"""

   def __init__(self, now: float = 1_000_000.0):
      self.now = now

   def __call__(self) -> float:
      return self.now

   def advance(self, seconds: float) -> None:
      self.now += seconds


class TestMetricCache:
   """Test TTL behaviour"""

   def test_get_within_ttl(self):
      """Test a stored value is returned before the TTL elapses"""
      clock = FakeClock()
      cache = MetricCache(ttl_seconds=3600, clock=clock)
      cache.set("k", 42.0)

      clock.advance(3599)
      assert cache.get("k") == 42.0
      assert "k" in cache

   def test_get_after_ttl(self):
      """Test a value is absent once the TTL has elapsed"""
      clock = FakeClock()
      cache = MetricCache(ttl_seconds=3600, clock=clock)
      cache.set("k", 42.0)

      clock.advance(3600)
      assert cache.get("k") is None
      assert "k" not in cache

   def test_missing_key(self):
      """Test unknown keys are absent"""
      assert MetricCache().get("nope") is None

   def test_set_overwrites(self):
      """Test last write wins and refreshes the timestamp"""
      clock = FakeClock()
      cache = MetricCache(ttl_seconds=10, clock=clock)
      cache.set("k", 1)
      clock.advance(8)
      cache.set("k", 2)
      clock.advance(8)
      assert cache.get("k") == 2

   def test_get_or_fetch_stores_values(self):
      """Test fetched values are stored, including the -1 sentinel"""
      cache = MetricCache(clock=FakeClock())
      calls = []

      def fetch():
         calls.append(1)
         return -1

      assert cache.get_or_fetch("util", fetch) == -1
      assert cache.get_or_fetch("util", fetch) == -1
      assert len(calls) == 1

   def test_get_or_fetch_does_not_store_none(self):
      """Test None results are retried on the next call"""
      cache = MetricCache(clock=FakeClock())
      calls = []

      def fetch():
         calls.append(1)
         return None

      assert cache.get_or_fetch("memory", fetch) is None
      assert cache.get_or_fetch("memory", fetch) is None
      assert len(calls) == 2
      assert len(cache) == 0

   def test_sweep_expired(self):
      """Test sweeping removes only expired entries"""
      clock = FakeClock()
      cache = MetricCache(ttl_seconds=100, clock=clock)
      cache.set("old", 1)
      clock.advance(150)
      cache.set("new", 2)

      assert cache.sweep_expired() == 1
      assert len(cache) == 1
      assert cache.get("new") == 2

   def test_maybe_sweep_threshold(self):
      """Test sweeping only happens above the size threshold"""
      clock = FakeClock()
      cache = MetricCache(ttl_seconds=100, sweep_threshold=2, clock=clock)
      cache.set("a", 1)
      cache.set("b", 2)
      clock.advance(200)

      assert cache.maybe_sweep() == 0
      assert len(cache) == 2

      cache.set("c", 3)
      assert cache.maybe_sweep() == 2
      assert len(cache) == 1

   def test_clear(self):
      """Test clear drops every entry"""
      cache = MetricCache()
      cache.set("a", 1)
      cache.clear()
      assert len(cache) == 0


class TestCacheKeys:
   """Test cache key construction"""

   def test_identity_prefers_cloud_name(self):
      """Test cloud-side name is the preferred identity"""
      cluster = ClusterRecord(name="dev", user_hash="abc", cluster_name_on_cloud="dev-abc-head")
      assert cluster_identity(cluster) == "dev-abc-head"

   def test_identity_fallbacks(self):
      """Test name-user_hash, then name, then unknown"""
      assert cluster_identity(ClusterRecord(name="dev", user_hash="abc")) == "dev-abc"
      assert cluster_identity(ClusterRecord(name="dev")) == "dev"
      assert cluster_identity(ClusterRecord(name="")) == "unknown"

   def test_key_kinds_are_distinct(self):
      """Test utilization, memory and power keys never collide"""
      cluster = ClusterRecord(name="dev", user_hash="abc")
      util_key = cache_key(cluster, 100, 200)
      memory_key = cache_key(cluster, 100, 200, MEMORY_KIND)
      power_key = cache_key(cluster, 100, 200, POWER_KIND)

      assert util_key == "dev-abc_100_200"
      assert memory_key == "memory_dev-abc_100_200"
      assert power_key == "power_dev-abc_100_200"

   def test_key_depends_on_window(self):
      """Test different windows give different keys"""
      cluster = ClusterRecord(name="dev")
      assert cache_key(cluster, 0, 10) != cache_key(cluster, 0, 20)


class TestDefaultCache:
   """Test the process-wide cache"""

   def test_singleton(self):
      """Test the same instance is returned"""
      assert get_default_cache() is get_default_cache()

   def test_clear_metric_cache(self):
      """Test clearing the process-wide cache"""
      get_default_cache().set("x", 1)
      clear_metric_cache()
      assert get_default_cache().get("x") is None
