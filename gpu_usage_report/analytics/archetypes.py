"""
User archetype classification

Each user's monthly records are folded into a UserAggregate, then matched
against an ordered rule table. The first rule whose conditions hold decides
the archetype; users matching none are labelled Interactive Developer with a
fixed low confidence.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

from ..models.report import MonthlyReportRecord, INSTANCE_SPOT


_LOGGER = logging.getLogger(__name__)

INTERACTIVE_JOB_TYPES = ('Interactive', 'sky launch')
BATCH_JOB_TYPES = ('Managed Batch', 'sky jobs launch')
HIGH_END_GPU_MARKERS = ('H100', 'A100')

DEFAULT_CONFIDENCE = 0.3


class Archetype(Enum):
   """Behavioral classes of GPU platform users"""

   INTERACTIVE_DEVELOPER = 'interactive_developer'
   BATCH_TRAINER = 'batch_trainer'
   COST_OPTIMIZER = 'cost_optimizer'
   HOG_USER = 'hog_user'
   WAITING_USER = 'waiting_user'

   @property
   def display_name(self) -> str:
      return ARCHETYPE_NAMES[self]

   @property
   def description(self) -> str:
      return ARCHETYPE_DESCRIPTIONS[self]

   def __str__(self) -> str:
      return self.display_name


ARCHETYPE_NAMES = {
   Archetype.INTERACTIVE_DEVELOPER: 'Interactive Developer',
   Archetype.BATCH_TRAINER: 'Batch Trainer',
   Archetype.COST_OPTIMIZER: 'Cost Optimizer',
   Archetype.HOG_USER: 'Resource Hog',
   Archetype.WAITING_USER: 'Waiting User',
}

ARCHETYPE_DESCRIPTIONS = {
   Archetype.INTERACTIVE_DEVELOPER: (
      'Users who keep clusters up for long stretches over SSH or Jupyter to '
      'develop or debug code. GPUs are mostly idle.'
   ),
   Archetype.BATCH_TRAINER: (
      'Core users who run the platform as intended and rely on managed jobs '
      'with spot auto-recovery.'
   ),
   Archetype.COST_OPTIMIZER: (
      'Power users who chase the cheapest capacity with spot instances and '
      'flexible GPU choices.'
   ),
   Archetype.HOG_USER: (
      'Users who hold expensive accelerators and leave them idle, starving '
      'other users of capacity.'
   ),
   Archetype.WAITING_USER: (
      'Users who spend more time queued than running, a signal of missing '
      'GPU capacity or inefficient scheduling.'
   ),
}


@dataclass
class UserAggregate:
   """Monthly totals for one user"""

   user_id: str
   user_name: str
   project_id: str = 'default'
   total_jobs: int = 0
   interactive_jobs: int = 0
   batch_jobs: int = 0
   total_cost: float = 0.0
   total_execution_time: float = 0.0
   total_idle_time: float = 0.0
   total_queue_time: float = 0.0
   gpu_utilization_sum: float = 0.0
   spot_requests: int = 0
   total_requests: int = 0
   high_end_gpu_requests: int = 0
   preemption_count: int = 0
   job_ids: List[str] = field(default_factory=list)

   @property
   def avg_gpu_utilization(self) -> float:
      return self.gpu_utilization_sum / self.total_jobs if self.total_jobs else 0.0

   @property
   def spot_ratio(self) -> float:
      return self.spot_requests / self.total_requests if self.total_requests else 0.0

   @property
   def interactive_ratio(self) -> float:
      return self.interactive_jobs / self.total_jobs if self.total_jobs else 0.0

   @property
   def batch_ratio(self) -> float:
      return self.batch_jobs / self.total_jobs if self.total_jobs else 0.0

   @property
   def idle_ratio(self) -> float:
      if not self.total_execution_time:
         return 0.0
      return self.total_idle_time / self.total_execution_time

   @property
   def queue_ratio(self) -> float:
      """Queue time per second of execution (infinite when queued but never run)"""
      if not self.total_execution_time:
         return math.inf if self.total_queue_time > 0 else 0.0
      return self.total_queue_time / self.total_execution_time

   def add_record(self, record: MonthlyReportRecord) -> None:
      self.total_jobs += 1
      self.total_cost += record.total_cost_usd or 0
      self.total_execution_time += record.total_execution_time_seconds or 0
      self.total_idle_time += record.total_idle_time_seconds or 0
      self.total_queue_time += record.total_queue_time_seconds or 0
      self.preemption_count += record.preemption_count or 0
      self.job_ids.append(record.job_id)

      if record.job_type in INTERACTIVE_JOB_TYPES:
         self.interactive_jobs += 1
      elif record.job_type in BATCH_JOB_TYPES:
         self.batch_jobs += 1

      self.gpu_utilization_sum += max(0.0, record.avg_gpu_utilization_pct or 0)

      if record.requested_instance_type == INSTANCE_SPOT:
         self.spot_requests += 1
      self.total_requests += 1

      gpu_type = record.requested_gpu_type or ''
      if any(marker in gpu_type for marker in HIGH_END_GPU_MARKERS):
         self.high_end_gpu_requests += 1


@dataclass
class ClassificationResult:
   stats: UserAggregate
   archetype: Archetype
   confidence: float

   @property
   def user_id(self) -> str:
      return self.stats.user_id

   def to_dict(self) -> Dict[str, Any]:
      data = {f.name: getattr(self.stats, f.name) for f in fields(self.stats)}
      data['job_ids'] = list(self.stats.job_ids)
      data.update({
         'avg_gpu_utilization': self.stats.avg_gpu_utilization,
         'spot_ratio': self.stats.spot_ratio,
         'interactive_ratio': self.stats.interactive_ratio,
         'batch_ratio': self.stats.batch_ratio,
         'idle_ratio': self.stats.idle_ratio,
         'archetype': self.archetype.value,
         'archetype_name': self.archetype.display_name,
         'confidence': self.confidence,
      })
      return data


@dataclass(frozen=True)
class ArchetypeRule:
   """Conditions and confidence formula for one archetype"""

   archetype: Archetype
   predicate: Callable[[UserAggregate], bool]
   confidence: Callable[[UserAggregate], float]

   def matches(self, stats: UserAggregate) -> bool:
      return bool(self.predicate(stats))


def _interactive_developer(s: UserAggregate) -> bool:
   return (s.interactive_ratio > 0.6 and s.avg_gpu_utilization < 20
           and s.idle_ratio > 0.3 and s.total_execution_time > 3600)


def _batch_trainer(s: UserAggregate) -> bool:
   return s.batch_ratio > 0.7 and s.avg_gpu_utilization >= 80 and s.total_jobs >= 5


def _cost_optimizer(s: UserAggregate) -> bool:
   return s.spot_ratio > 0.8 and s.total_jobs >= 3


def _hog_user(s: UserAggregate) -> bool:
   return s.high_end_gpu_requests > 0 and s.avg_gpu_utilization < 15 and s.total_cost > 100


def _waiting_user(s: UserAggregate) -> bool:
   return s.total_queue_time > s.total_execution_time * 0.5 and s.total_jobs >= 2


# Evaluated in order; the first match wins
ARCHETYPE_RULES: Tuple[ArchetypeRule, ...] = (
   ArchetypeRule(
      Archetype.INTERACTIVE_DEVELOPER, _interactive_developer,
      lambda s: 0.5 + (s.interactive_ratio - 0.6) * 0.5 + ((20 - s.avg_gpu_utilization) / 20) * 0.2
   ),
   ArchetypeRule(
      Archetype.BATCH_TRAINER, _batch_trainer,
      lambda s: 0.6 + (s.batch_ratio - 0.7) * 0.3 + ((s.avg_gpu_utilization - 80) / 20) * 0.2
   ),
   ArchetypeRule(
      Archetype.COST_OPTIMIZER, _cost_optimizer,
      lambda s: 0.5 + (s.spot_ratio - 0.8) * 2
   ),
   ArchetypeRule(
      Archetype.HOG_USER, _hog_user,
      lambda s: 0.4 + ((15 - s.avg_gpu_utilization) / 15) * 0.3 + min(s.total_cost / 500, 0.3)
   ),
   ArchetypeRule(
      Archetype.WAITING_USER, _waiting_user,
      lambda s: 0.4 + ((s.queue_ratio - 0.5) * 2) * 0.4
   ),
)


def aggregate_user_stats(records: Iterable[MonthlyReportRecord]) -> Dict[str, UserAggregate]:
   """Fold report records into per-user aggregates (records without a user id are skipped)"""
   user_stats: Dict[str, UserAggregate] = {}
   for record in records:
      user_id = record.user_id
      if not user_id:
         continue

      stats = user_stats.get(user_id)
      if stats is None:
         stats = UserAggregate(
            user_id=user_id,
            user_name=record.user_name or user_id,
            project_id=record.project_id or 'default'
         )
         user_stats[user_id] = stats
      stats.add_record(record)

   return user_stats


def _clamp_confidence(value: float) -> float:
   if value != value:  # NaN
      return 0.0
   return max(0.0, min(1.0, value))


def classify_user(stats: UserAggregate,
                  rules: Sequence[ArchetypeRule] = ARCHETYPE_RULES) -> ClassificationResult:
   """
   Assign exactly one archetype to a user

   Args:
      stats: The user's monthly aggregate
      rules: Ordered rule table

   Returns:
      ClassificationResult with confidence in [0, 1]
   """
   for rule in rules:
      if rule.matches(stats):
         confidence = _clamp_confidence(rule.confidence(stats))
         return ClassificationResult(stats, rule.archetype, confidence or DEFAULT_CONFIDENCE)

   return ClassificationResult(stats, Archetype.INTERACTIVE_DEVELOPER, DEFAULT_CONFIDENCE)


def analyze_user_archetypes(records: Iterable[MonthlyReportRecord]) -> Dict[str, ClassificationResult]:
   """Classify every user appearing in a monthly report"""
   results = {
      user_id: classify_user(stats)
      for user_id, stats in aggregate_user_stats(records).items()
   }
   _LOGGER.debug(f"Classified {len(results)} users")
   return results


def archetype_distribution(results: Dict[str, ClassificationResult]) -> Dict[Archetype, int]:
   """Number of users per archetype, every archetype present"""
   distribution = {archetype: 0 for archetype in Archetype}
   for result in results.values():
      distribution[result.archetype] += 1
   return distribution
