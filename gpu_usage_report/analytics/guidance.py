"""
Advice derived from archetype classification

Per-user guidelines map an archetype (and a few of the user's numbers) to
advisory items. Platform improvements map platform-wide ratios to prioritized
suggestions for administrators.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional

from .aggregator import ReportSummary
from .archetypes import Archetype, ClassificationResult, DEFAULT_CONFIDENCE


AUTOSTOP_IDLE_THRESHOLD_SECONDS = 3600
AUTOSTOP_COMMAND = 'sky launch --idle-minutes-to-autostop=30'

INTERACTIVE_RATIO_THRESHOLD = 0.4
WAITING_RATIO_THRESHOLD = 0.2
PLATFORM_UTILIZATION_THRESHOLD = 50


@dataclass
class Guideline:
   severity: str  # success | info | warning | error
   title: str
   message: str
   action: Optional[str] = None

   def to_dict(self) -> Dict[str, Any]:
      return asdict(self)


@dataclass
class PlatformImprovement:
   priority: str  # high | medium
   title: str
   description: str
   category: str

   def to_dict(self) -> Dict[str, Any]:
      return asdict(self)


def generate_user_guidelines(result: ClassificationResult) -> List[Guideline]:
   """
   Advice for one classified user

   Args:
      result: The user's classification

   Returns:
      Guidelines in display order (possibly empty)
   """
   stats = result.stats
   archetype = result.archetype
   guidelines: List[Guideline] = []

   if archetype == Archetype.INTERACTIVE_DEVELOPER:
      if stats.total_idle_time > AUTOSTOP_IDLE_THRESHOLD_SECONDS:
         guidelines.append(Guideline(
            'warning', 'Autostop Configuration Recommended',
            f"Total idle time is high. Launch interactive clusters with {AUTOSTOP_COMMAND}.",
            action=AUTOSTOP_COMMAND
         ))
      guidelines.append(Guideline(
         'info', 'Use Managed Jobs',
         'For long-running tasks, use sky jobs launch instead of sky launch.'
      ))

   elif archetype == Archetype.BATCH_TRAINER:
      guidelines.append(Guideline(
         'success', 'Optimal Usage Pattern',
         'Your current usage pattern uses the platform efficiently. Keep it up.'
      ))

   elif archetype == Archetype.COST_OPTIMIZER:
      guidelines.append(Guideline(
         'success', 'Excellent Cost Optimization',
         'You are making good use of spot instances. Avoid pinning a single GPU type; offer several.'
      ))
      guidelines.append(Guideline(
         'info', 'Expand GPU Options',
         'List several candidates in the task YAML, e.g. accelerators: [A100:8, H100:8, A10g:8].'
      ))

   elif archetype == Archetype.HOG_USER:
      guidelines.append(Guideline(
         'error', 'Resource Usage Optimization Required',
         'You are requesting expensive GPUs but utilization is low. Profile on fractional or smaller GPUs first.'
      ))
      guidelines.append(Guideline(
         'warning', 'Autostop Required',
         'Do not leave idle resources behind. Set autostop or terminate clusters when work is complete.'
      ))

   elif archetype == Archetype.WAITING_USER:
      guidelines.append(Guideline(
         'warning', 'Excessive Wait Time',
         'Queue wait time is long compared to execution time, which points to a capacity shortage. '
         'Please contact the platform administrators.'
      ))

   return guidelines


def generate_platform_improvements(interactive_ratio: float, waiting_ratio: float,
                                   hog_count: int, avg_gpu_utilization: float) -> List[PlatformImprovement]:
   """
   Suggestions for platform administrators

   Args:
      interactive_ratio: Fraction of jobs that were interactive
      waiting_ratio: Fraction of users classified as Waiting User
      hog_count: Number of users classified as Resource Hog
      avg_gpu_utilization: Platform average GPU utilization (%)

   Returns:
      Improvements, high priority first
   """
   improvements: List[PlatformImprovement] = []

   if interactive_ratio > INTERACTIVE_RATIO_THRESHOLD:
      improvements.append(PlatformImprovement(
         'high', 'Idle Resource Auto-Reclamation Policy',
         'Force autostop or delete interactive pods whose GPU utilization stays below 5% for more than 1 hour.',
         'Policy'
      ))

   if waiting_ratio > WAITING_RATIO_THRESHOLD:
      improvements.append(PlatformImprovement(
         'high', 'K8s Kueue and DWS Integration',
         'Integrate Kubernetes Kueue with the launcher to provision GPUs dynamically.',
         'Scheduling'
      ))

   if hog_count > 0:
      improvements.append(PlatformImprovement(
         'medium', 'Quota System Implementation',
         'Apply monthly budget limits and concurrent GPU quotas per user or project.',
         'Control'
      ))

   if avg_gpu_utilization < PLATFORM_UTILIZATION_THRESHOLD:
      improvements.append(PlatformImprovement(
         'medium', 'User Dashboard Construction',
         'Give users their own Grafana dashboards so they can correct their usage themselves.',
         'Observability'
      ))

   return improvements


def platform_improvements_for(summary: ReportSummary,
                              classifications: Mapping[str, ClassificationResult]) -> List[PlatformImprovement]:
   """Platform improvements from a report summary and user classifications"""
   total_users = len(classifications)
   waiting_users = sum(1 for r in classifications.values() if r.archetype == Archetype.WAITING_USER)
   hog_count = sum(1 for r in classifications.values() if r.archetype == Archetype.HOG_USER)
   waiting_ratio = waiting_users / total_users if total_users else 0.0

   return generate_platform_improvements(
      interactive_ratio=summary.interactive_ratio,
      waiting_ratio=waiting_ratio,
      hog_count=hog_count,
      avg_gpu_utilization=summary.avg_gpu_utilization
   )


_CONFIDENCE_FORMULAS = {
   Archetype.INTERACTIVE_DEVELOPER: (
      ['Base: 0.5', '+ (Interactive Ratio - 0.6) x 0.5', '+ ((20% - GPU Utilization) / 20%) x 0.2'],
      'Interactive jobs > 60%, GPU utilization < 20%, idle time > 30% of execution time, '
      'total execution time > 1 hour'
   ),
   Archetype.BATCH_TRAINER: (
      ['Base: 0.6', '+ (Batch Ratio - 0.7) x 0.3', '+ ((GPU Utilization - 80%) / 20%) x 0.2'],
      'Batch jobs > 70%, GPU utilization >= 80%, total jobs >= 5'
   ),
   Archetype.COST_OPTIMIZER: (
      ['Base: 0.5', '+ (Spot Instance Ratio - 0.8) x 2'],
      'Spot instance ratio > 80%, total jobs >= 3'
   ),
   Archetype.HOG_USER: (
      ['Base: 0.4', '+ ((15% - GPU Utilization) / 15%) x 0.3', '+ min(Total Cost / 500, 0.3)'],
      'High-end GPU requests (H100, A100), GPU utilization < 15%, total cost > $100'
   ),
   Archetype.WAITING_USER: (
      ['Base: 0.4', '+ ((Queue Time / Execution Time - 0.5) x 2) x 0.4'],
      'Queue time > execution time x 0.5, total jobs >= 2'
   ),
}


def explain_archetype(archetype: Optional[Archetype]) -> str:
   """
   Human-readable explanation of how an archetype is assigned

   Returns the description, the confidence formula and the conditions; for
   an unknown archetype, the default-confidence rule.
   """
   formula = _CONFIDENCE_FORMULAS.get(archetype) if archetype is not None else None
   if formula is None:
      return '\n'.join([
         'No description available',
         'Confidence Calculation:',
         f"Default: {DEFAULT_CONFIDENCE} ({DEFAULT_CONFIDENCE:.0%})",
         'Applied when no archetype conditions are met',
      ])

   terms, conditions = formula
   lines = [archetype.description, 'Confidence Calculation:']
   lines.extend(terms)
   lines.append(f"Conditions: {conditions}")
   return '\n'.join(lines)
