"""
Command implementations for GPU Usage Report CLI
"""

import argparse
import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from tabulate import tabulate
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import Config
from ..cache import MetricCache
from ..data_loader import Inventory, InventoryLoader, InventoryError
from ..metrics_client import MetricsClient
from ..models.report import MonthlyReportRecord, records_to_dataframe
from ..analytics.monthly_report import MonthlyReportBuilder, current_month, month_bounds
from ..analytics.aggregator import ReportSummary, aggregate_monthly_report
from ..analytics.archetypes import (
   ClassificationResult, analyze_user_archetypes, archetype_distribution
)
from ..analytics.guidance import (
   generate_user_guidelines, platform_improvements_for, explain_archetype
)
from ..utils.formatters import (
   format_duration, format_currency, format_percentage, format_number,
   format_timestamp, truncate_string
)


SEVERITY_STYLES = {
   'success': 'green',
   'info': 'cyan',
   'warning': 'yellow',
   'error': 'red',
}


class BaseCommand(ABC):
   """Base class for CLI commands"""

   def __init__(self, config: Config):
      self.config = config
      self.logger = logging.getLogger(__name__)

      self.console = Console(
         width=self.config.display.max_table_width,
         force_terminal=True if config.display.use_colors else False
      )

   @abstractmethod
   def execute(self, args: argparse.Namespace) -> int:
      """Execute the command"""
      pass

   def _create_table(self, title: str, headers: List[str], rows: List[List[str]]) -> Table:
      table = Table(title=title, show_header=True, header_style="bold magenta")
      for header in headers:
         table.add_column(header, style="cyan", no_wrap=True)
      for row in rows:
         table.add_row(*row)
      return table

   def _print_table(self, title: str, headers: List[str], rows: List[List[str]]) -> None:
      """Print a rich table, or a plain grid when colors are disabled"""
      if self.config.display.use_colors:
         self.console.print(self._create_table(title, headers, rows))
      else:
         print(f"\n{title}")
         print(tabulate(rows, headers=headers, tablefmt="grid"))

   def _name(self, value: Optional[str]) -> str:
      text = value or "-"
      if self.config.display.truncate_long_names:
         return truncate_string(text, self.config.display.max_name_length)
      return text

   def _load_inventory(self, path: str) -> Inventory:
      return InventoryLoader().load(path)

   def _create_builder(self, skip_metrics: bool) -> MonthlyReportBuilder:
      metrics_client = None
      if not skip_metrics and self.config.metrics.base_url:
         metrics_client = MetricsClient(
            base_url=self.config.metrics.base_url,
            query_path=self.config.metrics.query_path,
            timeout=self.config.metrics.timeout,
            step=self.config.metrics.step,
            headers=self.config.metrics.headers
         )
      elif not skip_metrics:
         self.logger.info("No metrics URL configured, GPU metrics will be reported as unknown")

      cache = MetricCache(
         ttl_seconds=self.config.cache.ttl_seconds,
         sweep_threshold=self.config.cache.sweep_threshold
      )
      return MonthlyReportBuilder(
         metrics_client=metrics_client,
         cache=cache,
         max_workers=self.config.report.max_workers
      )

   def _build_records(self, args: argparse.Namespace) -> List[MonthlyReportRecord]:
      """Load the inventory and build the month's records"""
      month = args.month or current_month()
      month_bounds(month)  # fail fast on a malformed month

      inventory = self._load_inventory(args.inventory)
      skip_metrics = args.skip_metrics or self.config.report.skip_metrics
      builder = self._create_builder(skip_metrics)

      return builder.build(
         inventory.clusters,
         report_month=month,
         managed_jobs=inventory.jobs,
         use_cache=self.config.cache.enabled and not args.no_cache,
         skip_fetch_enrichment=skip_metrics
      )

   def _format_utilization(self, value: Optional[float]) -> str:
      if value is None or value < 0:
         return "N/A"
      return format_percentage(value)


class ReportCommand(BaseCommand):
   """Show the monthly usage report"""

   def execute(self, args: argparse.Namespace) -> int:
      try:
         records = self._build_records(args)
      except (InventoryError, ValueError) as e:
         print(f"Error: {str(e)}", file=sys.stderr)
         return 1

      month = args.month or current_month()
      summary = aggregate_monthly_report(records)
      output_format = args.format or self.config.report.default_format

      if output_format == "json":
         print(json.dumps({
            'report_month': month,
            'summary': summary.to_dict(),
            'records': [record.to_dict() for record in records]
         }, indent=2, default=str))
      elif output_format == "csv":
         print(records_to_dataframe(records).to_csv(index=False), end="")
      else:
         self._display_summary(month, summary)
         self._display_records(month, records)

      return 0

   def _display_summary(self, month: str, summary: ReportSummary) -> None:
      headers = ["Metric", "Value"]
      rows = [
         ["Users", format_number(summary.total_users)],
         ["Jobs", format_number(summary.total_jobs)],
         ["Interactive / Batch", f"{summary.interactive_jobs} / {summary.batch_jobs}"],
         ["Spot / On-Demand", f"{summary.spot_jobs} / {summary.on_demand_jobs}"],
         ["Total cost", format_currency(summary.total_cost)],
         ["Execution time", format_duration(summary.total_execution_time)],
         ["Idle time (est.)", format_duration(summary.total_idle_time)],
         ["Queue time", format_duration(summary.total_queue_time)],
         ["Avg GPU utilization", format_percentage(summary.avg_gpu_utilization)],
         ["Success rate", format_percentage(summary.success_rate * 100)],
         ["Preemptions", format_number(summary.preemption_count)],
      ]
      self._print_table(f"GPU Usage Summary - {month}", headers, rows)

   def _display_records(self, month: str, records: List[MonthlyReportRecord]) -> None:
      if not records:
         print(f"No clusters ran during {month}")
         return

      headers = ["User", "Cluster", "Type", "GPUs", "Instance", "Launched",
                 "Execution", "Idle", "GPU Util", "Mem p95", "Cost", "Status"]
      time_format = self.config.display.time_format
      rows = []
      for record in records:
         gpus = "-" if not record.actual_gpu_count else f"{record.actual_gpu_type}:{record.actual_gpu_count:g}"
         if record.num_nodes > 1:
            gpus = f"{record.num_nodes:g}x {gpus}"
         memory = f"{record.p95_gpu_memory_used_gb:.1f}GB" if record.p95_gpu_memory_used_gb else "-"
         rows.append([
            self._name(record.user_name),
            self._name(record.cluster_name),
            record.job_type,
            gpus,
            record.requested_instance_type,
            format_timestamp(record.launched_at, time_format),
            format_duration(record.total_execution_time_seconds),
            format_duration(record.total_idle_time_seconds),
            self._format_utilization(record.avg_gpu_utilization_pct),
            memory,
            format_currency(record.total_cost_usd),
            record.job_status
         ])

      self._print_table(f"Monthly Usage Records ({len(records)})", headers, rows)


class ArchetypesCommand(BaseCommand):
   """Classify users into archetypes and show guidance"""

   def execute(self, args: argparse.Namespace) -> int:
      try:
         records = self._build_records(args)
      except (InventoryError, ValueError) as e:
         print(f"Error: {str(e)}", file=sys.stderr)
         return 1

      month = args.month or current_month()
      classifications = analyze_user_archetypes(records)
      summary = aggregate_monthly_report(records)

      if args.user:
         result = self._find_user(classifications, args.user)
         if result is None:
            print(f"No usage found for user {args.user} in {month}")
            return 1
         classifications = {result.user_id: result}

      improvements = platform_improvements_for(summary, classifications) if not args.user else []

      if args.format == "json":
         print(json.dumps(self._to_json(month, classifications, improvements), indent=2, default=str))
         return 0

      if args.user:
         self._display_user(next(iter(classifications.values())))
         return 0

      self._display_users(month, classifications)
      self._display_distribution(classifications)
      self._display_improvements(improvements)
      return 0

   def _find_user(self, classifications: Dict[str, ClassificationResult],
                  user: str) -> Optional[ClassificationResult]:
      if user in classifications:
         return classifications[user]
      for result in classifications.values():
         if result.stats.user_name == user:
            return result
      return None

   def _to_json(self, month: str, classifications: Dict[str, ClassificationResult],
                improvements: List[Any]) -> Dict[str, Any]:
      users = []
      for result in classifications.values():
         data = result.to_dict()
         data['guidelines'] = [g.to_dict() for g in generate_user_guidelines(result)]
         users.append(data)

      return {
         'report_month': month,
         'users': users,
         'distribution': {a.value: n for a, n in archetype_distribution(classifications).items()},
         'platform_improvements': [i.to_dict() for i in improvements]
      }

   def _display_users(self, month: str, classifications: Dict[str, ClassificationResult]) -> None:
      if not classifications:
         print(f"No usage recorded for {month}")
         return

      headers = ["User", "Archetype", "Confidence", "Jobs", "Interactive", "Spot",
                 "Avg GPU Util", "Idle", "Cost"]
      ordered = sorted(classifications.values(), key=lambda r: r.stats.total_cost, reverse=True)
      rows = []
      for result in ordered:
         stats = result.stats
         rows.append([
            self._name(stats.user_name),
            result.archetype.display_name,
            format_percentage(result.confidence * 100, 0),
            format_number(stats.total_jobs),
            format_percentage(stats.interactive_ratio * 100, 0),
            format_percentage(stats.spot_ratio * 100, 0),
            format_percentage(stats.avg_gpu_utilization),
            format_percentage(stats.idle_ratio * 100, 0),
            format_currency(stats.total_cost)
         ])
      self._print_table(f"User Archetypes - {month}", headers, rows)

   def _display_distribution(self, classifications: Dict[str, ClassificationResult]) -> None:
      distribution = archetype_distribution(classifications)
      total = sum(distribution.values())
      rows = []
      for archetype, count in distribution.items():
         share = count / total * 100 if total else 0
         rows.append([archetype.display_name, format_number(count), format_percentage(share)])
      self._print_table("Archetype Distribution", ["Archetype", "Users", "Share"], rows)

   def _display_improvements(self, improvements: List[Any]) -> None:
      if not improvements:
         return
      rows = [[i.priority.upper(), i.category, i.title, i.description] for i in improvements]
      self._print_table("Platform Improvements", ["Priority", "Category", "Title", "Description"], rows)

   def _display_user(self, result: ClassificationResult) -> None:
      stats = result.stats
      headers = ["Field", "Value"]
      rows = [
         ["User", stats.user_name],
         ["Project", stats.project_id],
         ["Archetype", result.archetype.display_name],
         ["Confidence", format_percentage(result.confidence * 100, 0)],
         ["Jobs (interactive / batch)", f"{stats.total_jobs} ({stats.interactive_jobs} / {stats.batch_jobs})"],
         ["Execution time", format_duration(stats.total_execution_time)],
         ["Idle time (est.)", format_duration(stats.total_idle_time)],
         ["Queue time", format_duration(stats.total_queue_time)],
         ["Avg GPU utilization", format_percentage(stats.avg_gpu_utilization)],
         ["Spot ratio", format_percentage(stats.spot_ratio * 100, 0)],
         ["High-end GPU requests", format_number(stats.high_end_gpu_requests)],
         ["Preemptions", format_number(stats.preemption_count)],
         ["Total cost", format_currency(stats.total_cost)],
      ]
      self._print_table(f"User {stats.user_name}", headers, rows)

      print()
      print(explain_archetype(result.archetype))

      guidelines = generate_user_guidelines(result)
      if guidelines:
         print()
      for guideline in guidelines:
         style = SEVERITY_STYLES.get(guideline.severity, 'white')
         if self.config.display.use_colors:
            self.console.print(f"[{style}]{guideline.severity.upper()}[/{style}] {escape(guideline.title)}: {escape(guideline.message)}",
                               markup=True, highlight=False)
         else:
            print(f"{guideline.severity.upper()} {guideline.title}: {guideline.message}")
         if guideline.action:
            print(f"   $ {guideline.action}")
