"""
Cluster and managed-job inventory records
"""

from datetime import datetime, timezone
from typing import Dict, Optional, Any, Union
from dataclasses import dataclass, field


TimestampLike = Union[datetime, int, float, str, None]


def parse_timestamp(value: TimestampLike) -> Optional[datetime]:
   """
   Parse an inventory timestamp

   Accepts datetimes, Unix seconds (int/float or numeric strings) and
   ISO-8601 strings. Unix seconds are converted to naive local time so they
   compare with local calendar months.

   Returns:
      datetime or None if the value is missing or unparsable
   """
   if value is None or value == '':
      return None

   if isinstance(value, datetime):
      return value

   if isinstance(value, bool):
      return None

   if isinstance(value, (int, float)):
      return _from_unix(value)

   if isinstance(value, str):
      text = value.strip()
      try:
         return _from_unix(float(text))
      except ValueError:
         pass
      try:
         # fromisoformat() only accepts a trailing "Z" from Python 3.11
         if text.endswith('Z'):
            text = text[:-1] + '+00:00'
         return datetime.fromisoformat(text)
      except ValueError:
         return None

   return None


def to_unix(value: Optional[datetime]) -> Optional[float]:
   """Unix seconds for a datetime (naive values are local time)"""
   if value is None:
      return None
   return value.timestamp()


def _from_unix(seconds: float) -> Optional[datetime]:
   if seconds != seconds:  # NaN
      return None
   try:
      return datetime.fromtimestamp(seconds, tz=timezone.utc).astimezone().replace(tzinfo=None)
   except (OverflowError, OSError, ValueError):
      return None


def _optional_float(value: Any) -> Optional[float]:
   if value is None or value == '' or isinstance(value, bool):
      return None
   try:
      number = float(value)
   except (TypeError, ValueError):
      return None
   if number != number:
      return None
   return number


@dataclass
class ClusterRecord:
   """A cluster (interactive session or managed-job worker) from the inventory"""

   name: str
   user: Optional[str] = None
   user_hash: Optional[str] = None
   workspace: Optional[str] = None

   cluster_hash: Optional[str] = None
   cluster_name_on_cloud: Optional[str] = None

   # Lifecycle
   status: Optional[str] = None
   launched_at: Optional[datetime] = None
   end_time: Optional[datetime] = None
   duration: Optional[float] = None
   submitted_at: Optional[datetime] = None
   queue_time: Optional[float] = None

   # Resources
   accelerators: Any = None
   resources_str: Optional[str] = None
   resources_str_full: Optional[str] = None
   num_nodes: Any = None

   # Accounting
   total_cost: Optional[float] = None
   recoveries: int = 0

   raw_attributes: Dict[str, Any] = field(default_factory=dict)

   @classmethod
   def from_dict(cls, data: Dict[str, Any]) -> 'ClusterRecord':
      """Create ClusterRecord from an inventory mapping"""
      status = data.get('status')
      if status is not None:
         status = str(status).upper()

      # A zero end time means the cluster has not ended
      end_time = data.get('end_time')
      if _optional_float(end_time) == 0:
         end_time = None

      recoveries = data.get('recoveries') or 0
      try:
         recoveries = int(recoveries)
      except (TypeError, ValueError):
         recoveries = 0

      return cls(
         name=data.get('cluster') or data.get('name') or '',
         user=data.get('user') or data.get('owner'),
         user_hash=data.get('user_hash'),
         workspace=data.get('workspace'),
         cluster_hash=data.get('cluster_hash'),
         cluster_name_on_cloud=data.get('cluster_name_on_cloud'),
         status=status,
         launched_at=parse_timestamp(data.get('time', data.get('launched_at'))),
         end_time=parse_timestamp(end_time),
         duration=_optional_float(data.get('duration')),
         submitted_at=parse_timestamp(data.get('submitted_at')),
         queue_time=_optional_float(data.get('queue_time')),
         accelerators=data.get('gpus', data.get('accelerators')),
         resources_str=data.get('resources_str'),
         resources_str_full=data.get('resources_str_full'),
         num_nodes=data.get('num_nodes'),
         total_cost=_optional_float(data.get('total_cost')),
         recoveries=recoveries,
         raw_attributes=dict(data)
      )

   def resource_descriptor(self) -> Optional[str]:
      """Full resource string when available, else the short one"""
      if self.resources_str_full is not None:
         return self.resources_str_full
      return self.resources_str

   def is_spot(self) -> bool:
      """Spot clusters carry a 'Spot' marker in their resource string"""
      descriptor = self.resources_str if self.resources_str is not None else self.resources_str_full
      return bool(descriptor) and 'Spot' in descriptor

   def is_running(self) -> bool:
      return self.status == 'RUNNING'

   def __str__(self) -> str:
      return f"Cluster {self.name} ({self.status or 'UNKNOWN'}) - {self.user or 'unknown'}"


@dataclass
class ManagedJobRecord:
   """A managed (batch) job from the jobs controller"""

   job_id: Optional[str] = None
   name: Optional[str] = None
   current_cluster_name: Optional[str] = None
   status: Optional[str] = None

   raw_attributes: Dict[str, Any] = field(default_factory=dict)

   @classmethod
   def from_dict(cls, data: Dict[str, Any]) -> 'ManagedJobRecord':
      """Create ManagedJobRecord from a jobs-controller mapping"""
      job_id = data.get('id', data.get('job_id'))
      status = data.get('status')
      return cls(
         job_id=str(job_id) if job_id is not None else None,
         name=data.get('name') or data.get('job_name'),
         current_cluster_name=data.get('current_cluster_name'),
         status=str(status).upper() if status is not None else None,
         raw_attributes=dict(data)
      )

   def __str__(self) -> str:
      return f"Managed job {self.job_id}: {self.name} ({self.status or 'UNKNOWN'})"
