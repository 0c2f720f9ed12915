"""
Tests for user archetype classification and report aggregation
"""

import itertools

import pytest

from gpu_usage_report.models.report import MonthlyReportRecord
from gpu_usage_report.analytics.aggregator import ReportSummary, aggregate_monthly_report
from gpu_usage_report.analytics.archetypes import (
   Archetype, ArchetypeRule, UserAggregate, ARCHETYPE_RULES, DEFAULT_CONFIDENCE,
   aggregate_user_stats, classify_user, analyze_user_archetypes, archetype_distribution
)


def make_record(**overrides) -> MonthlyReportRecord:
   fields = dict(
      report_month="2024-02",
      user_id="u1",
      user_name="alice",
      project_id="default",
      job_id="job",
      job_type="Interactive",
      cluster_name="job",
      cluster_hash=None,
      requested_gpu_type="T4",
      actual_gpu_type="T4",
      requested_gpu_count=1,
      actual_gpu_count=1,
      requested_instance_type="On-Demand",
      total_cost_usd=1.0,
      total_queue_time_seconds=0,
      total_execution_time_seconds=3600,
      total_idle_time_seconds=0,
      avg_gpu_utilization_pct=50.0,
      p95_gpu_memory_used_gb=0,
      avg_gpu_power_watts=0,
      preemption_count=0,
      job_status="Succeeded",
      launched_at=None,
      duration=3600,
      num_nodes=1,
   )
   fields.update(overrides)
   return MonthlyReportRecord(**fields)


def classify(records):
   results = analyze_user_archetypes(records)
   assert len(results) == 1
   return next(iter(results.values()))


class TestUserAggregate:
   """Test per-user aggregation"""

   def test_zero_jobs_ratios(self):
      """Test every ratio is zero without jobs"""
      stats = UserAggregate(user_id="u", user_name="u")
      assert stats.avg_gpu_utilization == 0
      assert stats.spot_ratio == 0
      assert stats.interactive_ratio == 0
      assert stats.batch_ratio == 0
      assert stats.idle_ratio == 0
      assert stats.queue_ratio == 0

   def test_job_type_aliases(self):
      """Test launcher command names count as job types"""
      stats = aggregate_user_stats([
         make_record(job_type="Interactive"),
         make_record(job_type="sky launch"),
         make_record(job_type="Managed Batch"),
         make_record(job_type="sky jobs launch"),
         make_record(job_type="other"),
      ])["u1"]
      assert stats.total_jobs == 5
      assert stats.interactive_jobs == 2
      assert stats.batch_jobs == 2

   def test_negative_utilization_clamped(self):
      """Test unknown utilization counts as zero"""
      stats = aggregate_user_stats([
         make_record(avg_gpu_utilization_pct=-1),
         make_record(avg_gpu_utilization_pct=60.0),
      ])["u1"]
      assert stats.gpu_utilization_sum == 60.0
      assert stats.avg_gpu_utilization == 30.0

   def test_high_end_detection_is_case_sensitive(self):
      """Test H100/A100 substrings mark high-end requests"""
      stats = aggregate_user_stats([
         make_record(requested_gpu_type="H100-80GB"),
         make_record(requested_gpu_type="A100"),
         make_record(requested_gpu_type="h100"),
         make_record(requested_gpu_type="A10G"),
      ])["u1"]
      assert stats.high_end_gpu_requests == 2

   def test_records_without_user_skipped(self):
      """Test records with an empty user id are ignored"""
      stats = aggregate_user_stats([make_record(user_id=""), make_record(user_id="u2")])
      assert list(stats) == ["u2"]

   def test_totals(self):
      """Test sums and job ids"""
      stats = aggregate_user_stats([
         make_record(job_id="a", total_cost_usd=2.5, preemption_count=1, requested_instance_type="Spot"),
         make_record(job_id="b", total_cost_usd=1.5, total_queue_time_seconds=60),
      ])["u1"]
      assert stats.total_cost == 4.0
      assert stats.total_queue_time == 60
      assert stats.preemption_count == 1
      assert stats.spot_ratio == 0.5
      assert stats.job_ids == ["a", "b"]


class TestClassification:
   """Test archetype rules"""

   def test_interactive_developer(self):
      """Test mostly idle interactive user"""
      records = [
         make_record(job_type="Interactive", avg_gpu_utilization_pct=5.0,
                     total_execution_time_seconds=3600, total_idle_time_seconds=2880)
         for _ in range(9)
      ]
      records.append(make_record(job_type="Managed Batch", avg_gpu_utilization_pct=5.0,
                                 total_execution_time_seconds=3600, total_idle_time_seconds=2880))
      result = classify(records)

      assert result.archetype == Archetype.INTERACTIVE_DEVELOPER
      assert result.confidence >= 0.65
      assert result.confidence == pytest.approx(0.5 + 0.3 * 0.5 + (15 / 20) * 0.2)

   def test_cost_optimizer(self):
      """Test spot-heavy user"""
      records = [make_record(requested_instance_type="Spot") for _ in range(4)]
      result = classify(records)

      assert result.archetype == Archetype.COST_OPTIMIZER
      assert result.confidence == pytest.approx(0.9)

   def test_batch_trainer(self):
      """Test busy managed-job user"""
      records = [make_record(job_type="Managed Batch", avg_gpu_utilization_pct=90.0) for _ in range(5)]
      result = classify(records)

      assert result.archetype == Archetype.BATCH_TRAINER
      assert result.confidence == pytest.approx(0.6 + 0.3 * 0.3 + 0.5 * 0.2)

   def test_resource_hog(self):
      """Test expensive idle accelerators"""
      records = [make_record(job_type="Managed Batch", requested_gpu_type="H100",
                             avg_gpu_utilization_pct=5.0, total_cost_usd=250.0)]
      result = classify(records)

      assert result.archetype == Archetype.HOG_USER
      assert result.confidence == pytest.approx(0.4 + (10 / 15) * 0.3 + 0.3)

   def test_waiting_user(self):
      """Test queue time dominating execution time"""
      records = [
         make_record(total_queue_time_seconds=1500, total_execution_time_seconds=1000),
         make_record(total_queue_time_seconds=1500, total_execution_time_seconds=1000),
      ]
      result = classify(records)

      assert result.archetype == Archetype.WAITING_USER
      assert result.confidence == 1.0

   def test_waiting_user_without_execution(self):
      """Test queued-only users get a bounded confidence"""
      records = [
         make_record(total_queue_time_seconds=100, total_execution_time_seconds=0),
         make_record(total_queue_time_seconds=100, total_execution_time_seconds=0),
      ]
      result = classify(records)

      assert result.archetype == Archetype.WAITING_USER
      assert result.confidence == 1.0

   def test_default(self):
      """Test users matching no rule"""
      result = classify([make_record()])
      assert result.archetype == Archetype.INTERACTIVE_DEVELOPER
      assert result.confidence == DEFAULT_CONFIDENCE

   def test_rule_priority(self):
      """Test earlier rules win over later ones"""
      records = [
         make_record(job_type="Interactive", requested_gpu_type="H100", avg_gpu_utilization_pct=2.0,
                     total_cost_usd=300.0, total_execution_time_seconds=7200,
                     total_idle_time_seconds=7000)
      ]
      assert classify(records).archetype == Archetype.INTERACTIVE_DEVELOPER

   def test_zero_confidence_falls_back(self):
      """Test a matched rule yielding zero confidence gets the default"""
      rules = (ArchetypeRule(Archetype.BATCH_TRAINER, lambda s: True, lambda s: 0.0),)
      result = classify_user(UserAggregate(user_id="u", user_name="u"), rules)
      assert result.archetype == Archetype.BATCH_TRAINER
      assert result.confidence == DEFAULT_CONFIDENCE

   def test_exactly_one_archetype_in_range(self):
      """Test every synthetic aggregate gets one archetype with bounded confidence"""
      for jobs, interactive, spot, util, cost, queue, execution, idle in itertools.product(
         [0, 1, 5], [0, 1], [0, 1], [0.0, 10.0, 95.0], [0.0, 1000.0],
         [0, 10_000], [0, 3600, 100_000], [0, 5000]
      ):
         stats = UserAggregate(
            user_id="u", user_name="u",
            total_jobs=jobs,
            interactive_jobs=jobs * interactive,
            batch_jobs=jobs * (1 - interactive),
            total_cost=cost,
            total_execution_time=execution,
            total_idle_time=min(idle, execution),
            total_queue_time=queue,
            gpu_utilization_sum=util * jobs,
            spot_requests=jobs * spot,
            total_requests=jobs,
            high_end_gpu_requests=jobs,
         )
         result = classify_user(stats)
         assert isinstance(result.archetype, Archetype)
         assert 0.0 <= result.confidence <= 1.0

   def test_rule_table_order(self):
      """Test rules are evaluated in the documented order"""
      assert [rule.archetype for rule in ARCHETYPE_RULES] == [
         Archetype.INTERACTIVE_DEVELOPER,
         Archetype.BATCH_TRAINER,
         Archetype.COST_OPTIMIZER,
         Archetype.HOG_USER,
         Archetype.WAITING_USER,
      ]


class TestClassificationOutput:
   """Test result presentation helpers"""

   def test_display_names(self):
      """Test archetype display names"""
      assert Archetype.HOG_USER.display_name == "Resource Hog"
      assert str(Archetype.WAITING_USER) == "Waiting User"
      assert all(archetype.description for archetype in Archetype)

   def test_to_dict(self):
      """Test flattened classification"""
      result = classify([make_record(requested_instance_type="Spot") for _ in range(3)])
      data = result.to_dict()
      assert data['user_id'] == "u1"
      assert data['archetype'] == "cost_optimizer"
      assert data['archetype_name'] == "Cost Optimizer"
      assert data['spot_ratio'] == 1.0
      assert data['total_jobs'] == 3

   def test_distribution_includes_zeros(self):
      """Test every archetype is counted"""
      results = analyze_user_archetypes([
         make_record(user_id="a"),
         make_record(user_id="b"),
      ])
      distribution = archetype_distribution(results)
      assert set(distribution) == set(Archetype)
      assert distribution[Archetype.INTERACTIVE_DEVELOPER] == 2
      assert distribution[Archetype.HOG_USER] == 0


class TestReportAggregation:
   """Test platform-wide summary"""

   def test_empty_report(self):
      """Test zero records give zero totals and ratios"""
      summary = aggregate_monthly_report([])
      assert summary == ReportSummary()
      assert summary.avg_gpu_utilization == 0
      assert summary.interactive_ratio == 0
      assert summary.batch_ratio == 0
      assert summary.spot_ratio == 0
      assert summary.success_rate == 0
      assert summary.idle_ratio == 0

   def test_totals_and_counts(self):
      """Test sums, counts and distinct users"""
      summary = aggregate_monthly_report([
         make_record(user_id="a", total_cost_usd=10.0, total_idle_time_seconds=1800,
                     requested_instance_type="Spot", job_status="Succeeded"),
         make_record(user_id="a", job_type="Managed Batch", total_cost_usd=5.0,
                     avg_gpu_utilization_pct=-1, job_status="Failed", preemption_count=2),
         make_record(user_id="b", total_queue_time_seconds=30, job_status="Running"),
      ])

      assert summary.total_users == 2
      assert summary.total_jobs == 3
      assert summary.total_cost == pytest.approx(16.0)
      assert summary.total_execution_time == 3 * 3600
      assert summary.total_idle_time == 1800
      assert summary.total_queue_time == 30
      assert summary.interactive_jobs == 2
      assert summary.batch_jobs == 1
      assert summary.spot_jobs == 1
      assert summary.on_demand_jobs == 2
      assert summary.succeeded_jobs == 1
      assert summary.failed_jobs == 1
      assert summary.preemption_count == 2
      assert summary.gpu_utilization_sum == pytest.approx(100.0)
      assert summary.avg_gpu_utilization == pytest.approx(100.0 / 3)
      assert summary.success_rate == pytest.approx(1 / 3)
      assert summary.idle_ratio == pytest.approx(1800 / (3 * 3600))

   def test_to_dict(self):
      """Test derived ratios are serialized"""
      data = aggregate_monthly_report([make_record()]).to_dict()
      assert data['total_jobs'] == 1
      assert data['interactive_ratio'] == 1.0
      assert 'success_rate' in data
