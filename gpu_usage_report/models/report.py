"""
Monthly usage report record
"""

from dataclasses import dataclass, asdict, fields
from typing import Dict, List, Optional, Any, Sequence

import pandas as pd


JOB_TYPE_INTERACTIVE = "Interactive"
JOB_TYPE_MANAGED_BATCH = "Managed Batch"

INSTANCE_SPOT = "Spot"
INSTANCE_ON_DEMAND = "On-Demand"

STATUS_SUCCEEDED = "Succeeded"
STATUS_FAILED = "Failed"
STATUS_UNKNOWN = "Unknown"


@dataclass(frozen=True)
class MonthlyReportRecord:
   """Usage of one cluster/job restricted to a calendar month"""

   report_month: str
   user_id: str
   user_name: str
   project_id: str
   job_id: str
   job_type: str
   cluster_name: str
   cluster_hash: Optional[str]

   requested_gpu_type: str
   actual_gpu_type: str
   requested_gpu_count: float
   actual_gpu_count: float
   requested_instance_type: str

   total_cost_usd: float
   total_queue_time_seconds: int
   total_execution_time_seconds: int
   total_idle_time_seconds: int

   # -1 when utilization could not be fetched
   avg_gpu_utilization_pct: float
   p95_gpu_memory_used_gb: float
   avg_gpu_power_watts: float

   preemption_count: int
   job_status: str
   launched_at: Optional[float]
   duration: float
   num_nodes: float

   def is_spot(self) -> bool:
      return self.requested_instance_type == INSTANCE_SPOT

   def has_utilization(self) -> bool:
      return self.avg_gpu_utilization_pct is not None and self.avg_gpu_utilization_pct >= 0

   def to_dict(self) -> Dict[str, Any]:
      return asdict(self)


REPORT_COLUMNS: List[str] = [f.name for f in fields(MonthlyReportRecord)]


def records_to_dataframe(records: Sequence[MonthlyReportRecord]) -> pd.DataFrame:
   """One row per report record, columns named after the record fields"""
   if not records:
      return pd.DataFrame(columns=REPORT_COLUMNS)
   return pd.DataFrame.from_records([r.to_dict() for r in records], columns=REPORT_COLUMNS)
