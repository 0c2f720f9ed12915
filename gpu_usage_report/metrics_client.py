"""
Metrics backend client - aggregated GPU metrics over a time window

Queries a Prometheus-compatible ``query_range`` endpoint (directly or through
a Grafana datasource proxy) for DCGM (NVIDIA) or AMD exporter series that
belong to a cluster's pods. Every failure degrades to ``None`` (or ``-1`` for
utilization); nothing here raises to the caller.
"""

import logging
import math
from typing import Any, Dict, List, Optional

import numpy as np
import requests

from .resources import is_amd_gpu


DEFAULT_QUERY_PATH = "/api/datasources/proxy/uid/prometheus/api/v1/query_range"
DEFAULT_STEP_SECONDS = 300
DEFAULT_TIMEOUT_SECONDS = 30

BYTES_PER_GB = 1024 * 1024 * 1024

UTILIZATION_UNKNOWN = -1

# (NVIDIA DCGM metric, AMD exporter metric)
METRIC_FAMILIES = {
   'utilization': ('DCGM_FI_DEV_GPU_UTIL', 'amd_gpu_gfx_activity'),
   'memory': ('DCGM_FI_DEV_FB_USED', 'amd_gpu_memory_used_bytes'),
   'power': ('DCGM_FI_DEV_POWER_USAGE', 'amd_gpu_average_package_power'),
}

AGGREGATIONS = ('avg', 'p95', 'max', 'min')


def wrap_aggregation(query: str, aggregation: str = 'avg') -> str:
   """Wrap a selector in the aggregation operator"""
   if aggregation == 'p95':
      return f"quantile(0.95, {query})"
   if aggregation == 'max':
      return f"max({query})"
   if aggregation == 'min':
      return f"min({query})"
   return f"avg({query})"


def pod_name_prefix(cluster: Any) -> str:
   """
   Pod name prefix of a cluster's workloads

   Pods are named after the cloud-side cluster name with ``.``/``_`` turned
   into ``-`` and lower-cased.
   """
   name_on_cloud = getattr(cluster, 'cluster_name_on_cloud', None)
   if name_on_cloud:
      base = name_on_cloud
   else:
      name = getattr(cluster, 'name', None) or ''
      user_hash = getattr(cluster, 'user_hash', None) or ''
      base = f"{name}-{user_hash}"
   return base.replace('.', '-').replace('_', '-').lower()


def metric_query(family: str, cluster: Any, gpu_type: Optional[str]) -> str:
   """Selector for a metric family, picking the vendor naming by GPU type"""
   nvidia_metric, amd_metric = METRIC_FAMILIES[family]
   metric = amd_metric if is_amd_gpu(gpu_type) else nvidia_metric
   return f'{metric}{{pod=~"^{pod_name_prefix(cluster)}.*"}}'


class MetricsClient:
   """Client for aggregated range queries against the metrics backend"""

   def __init__(self, base_url: str = "", query_path: str = DEFAULT_QUERY_PATH,
                timeout: float = DEFAULT_TIMEOUT_SECONDS, step: int = DEFAULT_STEP_SECONDS,
                session: Optional[requests.Session] = None,
                headers: Optional[Dict[str, str]] = None):
      """
      Initialize metrics client

      Args:
         base_url: Backend base URL, e.g. http://grafana.example.org
         query_path: Path of the range-query endpoint
         timeout: Per-request timeout in seconds
         step: Sampling step in seconds
         session: Optional requests session (shared connection pool)
         headers: Extra request headers (e.g. authorization)
      """
      self.base_url = base_url.rstrip('/')
      self.query_path = query_path
      self.timeout = timeout
      self.step = step
      self.session = session or requests.Session()
      self.headers = {'Accept': 'application/json'}
      if headers:
         self.headers.update(headers)
      self.logger = logging.getLogger(__name__)

   @property
   def query_url(self) -> str:
      return f"{self.base_url}{self.query_path}"

   def fetch_aggregated_metric(self, cluster: Any, query: str, start: float, end: float,
                               aggregation: str = 'avg') -> Optional[float]:
      """
      Run an aggregated range query and reduce it to one number

      Args:
         cluster: Cluster record (used for log context)
         query: Metric selector, e.g. DCGM_FI_DEV_GPU_UTIL{pod=~"^name.*"}
         start: Window start (Unix seconds)
         end: Window end (Unix seconds)
         aggregation: One of avg, p95, max, min

      Returns:
         Mean of every sample of every returned series, or None on failure
      """
      final_query = wrap_aggregation(query, aggregation)
      params = {
         'query': final_query,
         'start': str(start),
         'end': str(end),
         'step': str(self.step),
      }
      cluster_name = getattr(cluster, 'name', None) or 'unknown'

      try:
         self.logger.debug(f"Querying metrics for {cluster_name}: {final_query}")
         response = self.session.get(
            self.query_url,
            params=params,
            headers=self.headers,
            timeout=self.timeout
         )
      except requests.Timeout:
         self.logger.warning(f"Metric query timed out after {self.timeout}s for {cluster_name}: {query}")
         return None
      except requests.RequestException as e:
         self.logger.warning(f"Metric query failed for {cluster_name} ({query}): {str(e)}")
         return None

      if not response.ok:
         self.logger.warning(f"Metric query returned HTTP {response.status_code} for {cluster_name}: {query}")
         return None

      try:
         payload = response.json()
      except ValueError as e:
         self.logger.warning(f"Metric response is not JSON for {cluster_name}: {str(e)}")
         return None

      return self._average_samples(payload, query)

   def fetch_gpu_utilization(self, cluster: Any, start: float, end: float,
                             gpu_type: Optional[str]) -> float:
      """Average GPU utilization percentage, or -1 when unavailable"""
      query = metric_query('utilization', cluster, gpu_type)
      result = self.fetch_aggregated_metric(cluster, query, start, end, 'avg')
      if result is None or math.isnan(result):
         return UTILIZATION_UNKNOWN
      return result

   def fetch_gpu_memory(self, cluster: Any, start: float, end: float,
                        gpu_type: Optional[str]) -> Optional[float]:
      """P95 GPU memory used in GB, or None when unavailable"""
      query = metric_query('memory', cluster, gpu_type)
      result = self.fetch_aggregated_metric(cluster, query, start, end, 'p95')
      if result is not None and result > 0:
         return result / BYTES_PER_GB
      return None

   def fetch_gpu_power(self, cluster: Any, start: float, end: float,
                       gpu_type: Optional[str]) -> Optional[float]:
      """Average GPU power draw in watts, or None when unavailable"""
      query = metric_query('power', cluster, gpu_type)
      return self.fetch_aggregated_metric(cluster, query, start, end, 'avg')

   def _average_samples(self, payload: Dict[str, Any], query: str) -> Optional[float]:
      if not isinstance(payload, dict) or payload.get('status') != 'success':
         self.logger.debug(f"Metric query did not succeed: {query}")
         return None

      series_list = (payload.get('data') or {}).get('result') or []
      if not series_list:
         self.logger.debug(f"Metric query returned no series: {query}")
         return None

      samples: List[float] = []
      try:
         for series in series_list:
            for _, value in series.get('values') or []:
               samples.append(float(value))
      except (TypeError, ValueError, AttributeError) as e:
         self.logger.warning(f"Malformed samples in metric response ({query}): {str(e)}")
         return None

      if not samples:
         return None

      return float(np.mean(samples))
