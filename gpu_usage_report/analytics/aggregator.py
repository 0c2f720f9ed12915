"""
Platform-wide summary of a monthly report
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Sequence

import logging

import pandas as pd

from ..models.report import (
   MonthlyReportRecord, JOB_TYPE_INTERACTIVE, JOB_TYPE_MANAGED_BATCH,
   INSTANCE_SPOT, STATUS_SUCCEEDED, STATUS_FAILED, records_to_dataframe
)


_LOGGER = logging.getLogger(__name__)


@dataclass
class ReportSummary:
   total_users: int = 0
   total_jobs: int = 0
   total_cost: float = 0.0
   total_execution_time: float = 0.0
   total_idle_time: float = 0.0
   total_queue_time: float = 0.0
   interactive_jobs: int = 0
   batch_jobs: int = 0
   spot_jobs: int = 0
   on_demand_jobs: int = 0
   gpu_utilization_sum: float = 0.0
   preemption_count: int = 0
   succeeded_jobs: int = 0
   failed_jobs: int = 0

   @property
   def avg_gpu_utilization(self) -> float:
      return self.gpu_utilization_sum / self.total_jobs if self.total_jobs else 0.0

   @property
   def interactive_ratio(self) -> float:
      return self.interactive_jobs / self.total_jobs if self.total_jobs else 0.0

   @property
   def batch_ratio(self) -> float:
      return self.batch_jobs / self.total_jobs if self.total_jobs else 0.0

   @property
   def spot_ratio(self) -> float:
      return self.spot_jobs / self.total_jobs if self.total_jobs else 0.0

   @property
   def success_rate(self) -> float:
      return self.succeeded_jobs / self.total_jobs if self.total_jobs else 0.0

   @property
   def idle_ratio(self) -> float:
      if not self.total_execution_time:
         return 0.0
      return self.total_idle_time / self.total_execution_time

   def to_dict(self) -> Dict[str, Any]:
      data = asdict(self)
      data.update({
         'avg_gpu_utilization': self.avg_gpu_utilization,
         'interactive_ratio': self.interactive_ratio,
         'batch_ratio': self.batch_ratio,
         'spot_ratio': self.spot_ratio,
         'success_rate': self.success_rate,
         'idle_ratio': self.idle_ratio,
      })
      return data


def aggregate_monthly_report(records: Sequence[MonthlyReportRecord]) -> ReportSummary:
   """
   Reduce report records to platform-wide totals

   Unknown utilization (-1) counts as 0 in the utilization sum, so the
   average is taken over every job, measured or not.

   Args:
      records: Month-scoped report records

   Returns:
      ReportSummary (all zeros for an empty report)
   """
   df = records_to_dataframe(records)
   if df.empty:
      return ReportSummary()

   def column_sum(column: str) -> float:
      return float(pd.to_numeric(df[column], errors='coerce').fillna(0).sum())

   utilization = pd.to_numeric(df['avg_gpu_utilization_pct'], errors='coerce').fillna(0).clip(lower=0)

   summary = ReportSummary(
      total_users=int(df['user_id'].nunique(dropna=False)),
      total_jobs=int(len(df)),
      total_cost=column_sum('total_cost_usd'),
      total_execution_time=column_sum('total_execution_time_seconds'),
      total_idle_time=column_sum('total_idle_time_seconds'),
      total_queue_time=column_sum('total_queue_time_seconds'),
      interactive_jobs=int((df['job_type'] == JOB_TYPE_INTERACTIVE).sum()),
      batch_jobs=int((df['job_type'] == JOB_TYPE_MANAGED_BATCH).sum()),
      spot_jobs=int((df['requested_instance_type'] == INSTANCE_SPOT).sum()),
      on_demand_jobs=int((df['requested_instance_type'] != INSTANCE_SPOT).sum()),
      gpu_utilization_sum=float(utilization.sum()),
      preemption_count=int(column_sum('preemption_count')),
      succeeded_jobs=int((df['job_status'] == STATUS_SUCCEEDED).sum()),
      failed_jobs=int((df['job_status'] == STATUS_FAILED).sum())
   )

   _LOGGER.debug(f"Aggregated {summary.total_jobs} records from {summary.total_users} users")
   return summary
