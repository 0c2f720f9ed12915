"""
Monthly usage report builder

Turns cluster inventory records of arbitrary lifetime into month-scoped usage
records:

- lifetime/month intersection gives the execution time billed to the month
- queue time, job type (interactive vs managed batch) and status mapping
- GPU utilization, p95 memory and power enrichment from the metrics backend,
  memoized through the shared metric cache
- idle time estimated from utilization, cost scaled or priced per GPU-hour

Records are built independently on a thread pool; a failure in one record
drops that record and never the batch.
"""

from __future__ import annotations

import calendar
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..cache import MetricCache, MEMORY_KIND, POWER_KIND, cache_key, get_default_cache
from ..metrics_client import MetricsClient, UTILIZATION_UNKNOWN
from ..models.cluster import ClusterRecord, ManagedJobRecord, to_unix
from ..models.report import (
   MonthlyReportRecord, JOB_TYPE_INTERACTIVE, JOB_TYPE_MANAGED_BATCH,
   INSTANCE_SPOT, INSTANCE_ON_DEMAND, STATUS_UNKNOWN
)
from ..resources import GPUInfo, extract_gpu_info, extract_node_count
from ..utils.logging_setup import create_report_logger



Period = Tuple[float, float]

# USD per GPU-hour; matched as case-insensitive substrings in this order
GPU_HOURLY_COST: Tuple[Tuple[str, float], ...] = (
   ('H100', 4.0),
   ('A100', 2.5),
   ('A10', 1.0),
   ('A10G', 1.2),
   ('V100', 0.8),
   ('T4', 0.4),
   ('MI250', 1.5),
   ('MI210', 0.8),
)
DEFAULT_HOURLY_COST = 0.0
SPOT_DISCOUNT = 0.7

MANAGED_JOB_STATUS_MAP = {
   'PENDING': 'Pending',
   'SUBMITTED': 'Pending',
   'STARTING': 'Pending',
   'RUNNING': 'Running',
   'RECOVERING': 'Running',
   'CANCELLING': 'Cancelling',
   'SUCCEEDED': 'Succeeded',
   'CANCELLED': 'Cancelled',
   'FAILED': 'Failed',
   'FAILED_SETUP': 'Failed',
   'FAILED_PRECHECKS': 'Failed',
   'FAILED_NO_RESOURCE': 'Failed',
   'FAILED_CONTROLLER': 'Failed',
}

CLUSTER_STATUS_MAP = {
   'RUNNING': 'Running',
   'STOPPED': 'Stopped',
   'TERMINATED': 'Succeeded',
   'LAUNCHING': 'Pending',
}


# --------- Calendar and lifetime arithmetic ---------

def current_month(now: Optional[datetime] = None) -> str:
   """Current month as YYYY-MM"""
   now = now or datetime.now()
   return f"{now.year:04d}-{now.month:02d}"


def month_bounds(report_month: str) -> Period:
   """
   Local-calendar boundaries of a month

   Args:
      report_month: Month in YYYY-MM format

   Returns:
      (start, end) Unix seconds for day 1 00:00:00.000 and the last day
      23:59:59.999

   Raises:
      ValueError: If the month string is malformed
   """
   try:
      year_str, month_str = report_month.split('-')
      year, month = int(year_str), int(month_str)
   except (AttributeError, ValueError):
      raise ValueError(f"Invalid report month {report_month!r}, expected YYYY-MM")
   if not 1 <= month <= 12:
      raise ValueError(f"Invalid report month {report_month!r}, expected YYYY-MM")

   last_day = calendar.monthrange(year, month)[1]
   month_start = datetime(year, month, 1, 0, 0, 0, 0)
   month_end = datetime(year, month, last_day, 23, 59, 59, 999000)
   return month_start.timestamp(), month_end.timestamp()


def execution_period(cluster: ClusterRecord, now: Optional[float] = None) -> Optional[Period]:
   """
   Absolute lifetime of a cluster

   The end is the explicit end time, else launch + duration, else now (a
   running cluster, or one without any end signal, is treated as active).

   Returns:
      (start, end) Unix seconds, or None without a launch time
   """
   start = to_unix(cluster.launched_at)
   if start is None:
      return None

   if cluster.end_time is not None:
      end = to_unix(cluster.end_time)
   elif cluster.duration is not None:
      end = start + math.floor(cluster.duration)
   else:
      end = now if now is not None else time.time()

   return start, end


def overlaps_month(period: Optional[Period], bounds: Period) -> bool:
   """Lifetime and month overlap when neither ends before the other starts"""
   if period is None:
      return False
   return period[0] <= bounds[1] and period[1] >= bounds[0]


def month_window(period: Period, bounds: Period) -> Period:
   """Intersection of a lifetime with the month boundaries"""
   return max(period[0], bounds[0]), min(period[1], bounds[1])


def execution_seconds_in_month(period: Optional[Period], bounds: Period) -> int:
   """Seconds of the lifetime that fall inside the month"""
   if period is None:
      return 0
   window_start, window_end = month_window(period, bounds)
   return max(0, math.floor(window_end - window_start))


def queue_seconds(cluster: ClusterRecord) -> int:
   """
   Time between submission and launch

   Falls back to an explicit queue_time field, then 0. Sources without a
   submission timestamp therefore report no queueing at all.
   """
   if cluster.submitted_at is not None and cluster.launched_at is not None:
      waited = to_unix(cluster.launched_at) - to_unix(cluster.submitted_at)
      return math.floor(max(0.0, waited))

   if cluster.queue_time is not None:
      return math.floor(cluster.queue_time)

   return 0


def idle_seconds(execution_seconds: float, utilization_pct: Optional[float]) -> int:
   """
   Estimated idle time from average utilization

   Idle time is not measured; it is the share of the execution time the GPUs
   were not busy on average. Unknown utilization gives 0.
   """
   if not execution_seconds or execution_seconds <= 0:
      return 0
   if utilization_pct is None or utilization_pct < 0:
      return 0

   ratio = max(0.0, min(1.0, utilization_pct / 100.0))
   return math.floor(execution_seconds * (1 - ratio))


# --------- Matching and status mapping ---------

def find_matching_job(cluster: ClusterRecord,
                      jobs: Optional[Sequence[ManagedJobRecord]]) -> Optional[ManagedJobRecord]:
   """
   Managed job that ran on a cluster

   A job matches when its bound cluster name equals the cluster's name,
   cloud-side name or hash, or when the cluster is named ``<job name>-<job id>``.
   """
   if not jobs:
      return None

   for job in jobs:
      bound = job.current_cluster_name
      if bound and bound in (cluster.name, cluster.cluster_name_on_cloud, cluster.cluster_hash):
         return job

      if job.job_id and job.name and cluster.name == f"{job.name}-{job.job_id}":
         return job

   return None


def map_managed_job_status(status: Optional[str]) -> str:
   if not status:
      return STATUS_UNKNOWN
   return MANAGED_JOB_STATUS_MAP.get(status, status)


def map_cluster_status(status: Optional[str]) -> str:
   return CLUSTER_STATUS_MAP.get(status or '', STATUS_UNKNOWN)


# --------- Cost ---------

def hourly_rate_per_gpu(gpu_type: Optional[str]) -> float:
   """Per-GPU hourly price; first table entry contained in the type wins"""
   upper_type = (gpu_type or '').upper()
   for key, rate in GPU_HOURLY_COST:
      if key.upper() in upper_type:
         return rate
   return DEFAULT_HOURLY_COST


def round_currency(amount: float) -> float:
   """Round half up to cents"""
   return math.floor(amount * 100 + 0.5) / 100


def cost_for_month(cluster: ClusterRecord, execution_seconds: float, gpu_info: GPUInfo,
                   node_count: float = 1, period: Optional[Period] = None) -> float:
   """
   Cost of the month's portion of a cluster

   A recorded total cost is scaled by month execution time / lifetime. Without
   one, the cost is priced from the rate table:
   rate x GPUs per node x nodes x hours, with the spot discount applied.

   Returns:
      Cost in USD rounded to 2 decimals
   """
   if cluster.total_cost is not None and cluster.total_cost > 0 and period is not None:
      lifetime = period[1] - period[0]
      if lifetime > 0:
         return round_currency(execution_seconds / lifetime * cluster.total_cost)

   if not execution_seconds or execution_seconds <= 0:
      return 0.0
   if gpu_info is None or not gpu_info.count or gpu_info.count <= 0:
      return 0.0

   spot_discount = SPOT_DISCOUNT if cluster.is_spot() else 1.0
   total_gpus = gpu_info.count * node_count
   hours = execution_seconds / 3600.0
   cost = hourly_rate_per_gpu(gpu_info.type) * total_gpus * hours * spot_discount
   return round_currency(cost)


# --------- Builder ---------

ClusterInput = Union[ClusterRecord, Dict[str, Any]]
JobInput = Union[ManagedJobRecord, Dict[str, Any]]


class MonthlyReportBuilder:
   """Build month-scoped usage records from cluster inventory"""

   def __init__(self, metrics_client: Optional[MetricsClient] = None,
                cache: Optional[MetricCache] = None,
                max_workers: int = 8,
                clock: Optional[Callable[[], float]] = None):
      """
      Initialize the builder

      Args:
         metrics_client: Client for the metrics backend; without one no
            metric enrichment takes place
         cache: Metric cache (default: the process-wide cache)
         max_workers: Threads used to build records concurrently
         clock: Time source for open-ended lifetimes (default: time.time)
      """
      self.metrics_client = metrics_client
      self.cache = cache if cache is not None else get_default_cache()
      self.max_workers = max(1, int(max_workers))
      self.clock = clock or time.time
      self.logger = logging.getLogger(__name__)

   def build(self, clusters: Iterable[ClusterInput], report_month: Optional[str] = None,
             managed_jobs: Optional[Iterable[JobInput]] = None,
             use_cache: bool = True,
             skip_fetch_enrichment: bool = False) -> List[MonthlyReportRecord]:
      """
      Build the monthly report

      Args:
         clusters: Cluster records or inventory mappings
         report_month: Target month (YYYY-MM), default current month
         managed_jobs: Managed job records or mappings used for matching
         use_cache: Reuse and store metric results in the cache
         skip_fetch_enrichment: Do not query the metrics backend at all

      Returns:
         Records for every cluster overlapping the month, in input order
      """
      target_month = report_month or current_month()
      bounds = month_bounds(target_month)
      jobs = self._coerce_jobs(managed_jobs)
      clusters = list(clusters or [])
      now = self.clock()

      if use_cache:
         self.cache.maybe_sweep()

      logger = create_report_logger(__name__, month=target_month)
      logger.debug(f"Building report from {len(clusters)} clusters and {len(jobs)} managed jobs")

      def build_one(cluster: ClusterInput) -> Optional[MonthlyReportRecord]:
         return self._safe_build_record(cluster, target_month, bounds, jobs,
                                        use_cache, skip_fetch_enrichment, now)

      if self.max_workers == 1 or len(clusters) <= 1:
         results = [build_one(cluster) for cluster in clusters]
      else:
         with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(build_one, clusters))

      records = [record for record in results if record is not None]
      logger.info(f"Built {len(records)} report records from {len(clusters)} clusters")
      return records

   def _safe_build_record(self, cluster: ClusterInput, target_month: str, bounds: Period,
                          jobs: List[ManagedJobRecord], use_cache: bool,
                          skip_fetch_enrichment: bool, now: float) -> Optional[MonthlyReportRecord]:
      try:
         if isinstance(cluster, dict):
            cluster = ClusterRecord.from_dict(cluster)
         return self.build_record(cluster, target_month, bounds, jobs,
                                  use_cache, skip_fetch_enrichment, now)
      except Exception as e:
         name = getattr(cluster, 'name', None) or (cluster.get('cluster') if isinstance(cluster, dict) else None)
         self.logger.warning(f"Skipping cluster {name or '?'}: {str(e)}")
         self.logger.debug("Report record failure", exc_info=True)
         return None

   def build_record(self, cluster: ClusterRecord, target_month: str, bounds: Period,
                    jobs: Sequence[ManagedJobRecord], use_cache: bool = True,
                    skip_fetch_enrichment: bool = False,
                    now: Optional[float] = None) -> Optional[MonthlyReportRecord]:
      """
      Build the record for one cluster

      Returns:
         The month-scoped record, or None when the cluster's lifetime does not
         overlap the month
      """
      period = execution_period(cluster, now)
      if not overlaps_month(period, bounds):
         return None

      matched_job = find_matching_job(cluster, jobs)
      job_type = JOB_TYPE_MANAGED_BATCH if matched_job else JOB_TYPE_INTERACTIVE

      execution_seconds = execution_seconds_in_month(period, bounds)
      queue_time = queue_seconds(cluster)

      descriptor = cluster.resource_descriptor()
      gpu_info = extract_gpu_info(cluster.accelerators, descriptor)
      node_count = extract_node_count(descriptor, cluster.num_nodes)

      window_start, window_end = month_window(period, bounds)
      utilization, memory_gb, power_watts = self._enrich(
         cluster, gpu_info, window_start, window_end, use_cache, skip_fetch_enrichment
      )

      if matched_job is not None:
         job_status = map_managed_job_status(matched_job.status)
      else:
         job_status = map_cluster_status(cluster.status)

      return MonthlyReportRecord(
         report_month=target_month,
         user_id=cluster.user_hash or cluster.user or 'unknown',
         user_name=cluster.user or 'unknown',
         project_id=cluster.workspace or 'default',
         job_id=cluster.name,
         job_type=job_type,
         cluster_name=cluster.name or '-',
         cluster_hash=cluster.cluster_hash,
         requested_gpu_type=gpu_info.type or '-',
         actual_gpu_type=gpu_info.type or '-',
         requested_gpu_count=gpu_info.count or 0,
         actual_gpu_count=gpu_info.count or 0,
         requested_instance_type=INSTANCE_SPOT if cluster.is_spot() else INSTANCE_ON_DEMAND,
         total_cost_usd=cost_for_month(cluster, execution_seconds, gpu_info, node_count, period),
         total_queue_time_seconds=queue_time,
         total_execution_time_seconds=execution_seconds,
         total_idle_time_seconds=idle_seconds(execution_seconds, utilization),
         avg_gpu_utilization_pct=utilization,
         p95_gpu_memory_used_gb=memory_gb if memory_gb is not None else 0,
         avg_gpu_power_watts=power_watts if power_watts is not None else 0,
         preemption_count=cluster.recoveries or 0,
         job_status=job_status,
         launched_at=to_unix(cluster.launched_at),
         duration=cluster.duration or execution_seconds,
         num_nodes=node_count
      )

   def _enrich(self, cluster: ClusterRecord, gpu_info: GPUInfo, start: float, end: float,
               use_cache: bool, skip_fetch_enrichment: bool) -> Tuple[float, Optional[float], Optional[float]]:
      """Utilization, p95 memory (GB) and power (W) over the month window"""
      if skip_fetch_enrichment or not gpu_info.count or gpu_info.count <= 0:
         return UTILIZATION_UNKNOWN, None, None
      if self.metrics_client is None:
         self.logger.debug(f"No metrics backend configured, skipping enrichment for {cluster.name}")
         return UTILIZATION_UNKNOWN, None, None

      client = self.metrics_client
      gpu_type = gpu_info.type

      # Utilization failures come back as -1 and are cached like any other
      # value so a broken series is not queried again within the TTL.
      utilization = self._lookup(
         cache_key(cluster, start, end), use_cache,
         lambda: client.fetch_gpu_utilization(cluster, start, end, gpu_type)
      )
      memory_gb = self._lookup(
         cache_key(cluster, start, end, MEMORY_KIND), use_cache,
         lambda: client.fetch_gpu_memory(cluster, start, end, gpu_type)
      )
      power_watts = self._lookup(
         cache_key(cluster, start, end, POWER_KIND), use_cache,
         lambda: client.fetch_gpu_power(cluster, start, end, gpu_type)
      )

      if utilization is None:
         utilization = UTILIZATION_UNKNOWN
      return utilization, memory_gb, power_watts

   def _lookup(self, key: str, use_cache: bool, fetch: Callable[[], Any]) -> Any:
      if use_cache:
         return self.cache.get_or_fetch(key, fetch)
      return fetch()

   def _coerce_jobs(self, managed_jobs: Optional[Iterable[JobInput]]) -> List[ManagedJobRecord]:
      jobs: List[ManagedJobRecord] = []
      for job in managed_jobs or []:
         try:
            jobs.append(job if isinstance(job, ManagedJobRecord) else ManagedJobRecord.from_dict(job))
         except Exception as e:
            self.logger.warning(f"Skipping malformed managed job: {str(e)}")
      return jobs


def generate_monthly_report_data(clusters: Iterable[ClusterInput], report_month: Optional[str] = None,
                                 managed_jobs: Optional[Iterable[JobInput]] = None,
                                 use_cache: bool = True, skip_fetch_enrichment: bool = False,
                                 metrics_client: Optional[MetricsClient] = None,
                                 cache: Optional[MetricCache] = None) -> List[MonthlyReportRecord]:
   """Build a monthly report with a one-off builder"""
   builder = MonthlyReportBuilder(metrics_client=metrics_client, cache=cache)
   return builder.build(
      clusters,
      report_month=report_month,
      managed_jobs=managed_jobs,
      use_cache=use_cache,
      skip_fetch_enrichment=skip_fetch_enrichment
   )
