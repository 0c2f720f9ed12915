"""
Tests for the command-line interface
"""

import json
import logging
from datetime import datetime

import pytest

from gpu_usage_report.cli.main import main, create_parser
from gpu_usage_report.config import METRICS_URL_ENV


def ts(*args) -> float:
   return datetime(*args).timestamp()


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
   monkeypatch.delenv(METRICS_URL_ENV, raising=False)
   root = logging.getLogger()
   saved_handlers, saved_level = list(root.handlers), root.level
   yield
   root.handlers[:] = saved_handlers
   root.setLevel(saved_level)


@pytest.fixture
def inventory(tmp_path):
   path = tmp_path / "inventory.json"
   path.write_text(json.dumps({
      "clusters": [
         {
            "cluster": "dev-box",
            "user": "alice",
            "user_hash": "a1",
            "status": "STOPPED",
            "time": ts(2024, 2, 10, 8, 0),
            "duration": 7200,
            "resources_str": "1x(gpus=T4:1, cpus=8)",
            "num_nodes": 1,
         },
         {
            "cluster": "train-42",
            "user": "bob",
            "user_hash": "b2",
            "status": "STOPPED",
            "time": ts(2024, 2, 12, 9, 0),
            "duration": 3600,
            "resources_str": "1x(gpus=A100:2, cpus=16, Spot)",
            "num_nodes": 1,
         },
         {
            "cluster": "old-box",
            "user": "carol",
            "time": ts(2023, 12, 1, 9, 0),
            "duration": 60,
         },
      ],
      "jobs": [
         {"id": 42, "name": "train", "current_cluster_name": "train-42", "status": "SUCCEEDED"}
      ]
   }))
   return str(path)


@pytest.fixture
def config_args(tmp_path):
   return ["-q", "-c", str(tmp_path / "missing.yaml")]


class TestParser:
   """Test argument parsing"""

   def test_report_defaults(self):
      """Test report arguments and defaults"""
      args = create_parser().parse_args(["report", "inv.json"])
      assert args.command == "report"
      assert args.inventory == "inv.json"
      assert args.month is None
      assert args.format is None
      assert not args.no_cache
      assert not args.skip_metrics

   def test_archetypes_options(self):
      """Test archetype arguments"""
      args = create_parser().parse_args(["archetypes", "inv.json", "-m", "2024-02", "--user", "bob"])
      assert args.month == "2024-02"
      assert args.user == "bob"
      assert args.format == "table"


class TestReportCommand:
   """Test the report subcommand"""

   def test_json(self, inventory, config_args, capsys):
      """Test JSON report for a month"""
      code = main(config_args + ["report", inventory, "-m", "2024-02", "--skip-metrics", "--format", "json"])
      assert code == 0

      data = json.loads(capsys.readouterr().out)
      assert data['report_month'] == "2024-02"
      assert data['summary']['total_jobs'] == 2
      assert data['summary']['total_users'] == 2

      by_cluster = {r['cluster_name']: r for r in data['records']}
      assert set(by_cluster) == {"dev-box", "train-42"}
      assert by_cluster["dev-box"]['job_type'] == "Interactive"
      assert by_cluster["dev-box"]['total_execution_time_seconds'] == 7200
      assert by_cluster["train-42"]['job_type'] == "Managed Batch"
      assert by_cluster["train-42"]['job_status'] == "Succeeded"
      assert by_cluster["train-42"]['requested_instance_type'] == "Spot"

   def test_csv(self, inventory, config_args, capsys):
      """Test CSV export has a header and one row per record"""
      code = main(config_args + ["report", inventory, "-m", "2024-02", "--format", "csv"])
      assert code == 0

      lines = capsys.readouterr().out.strip().splitlines()
      assert lines[0].startswith("report_month,")
      assert len(lines) == 3

   def test_plain_table(self, inventory, config_args, capsys):
      """Test grid tables without colors"""
      code = main(config_args + ["--no-color", "report", inventory, "-m", "2024-02"])
      assert code == 0

      out = capsys.readouterr().out
      assert "GPU Usage Summary - 2024-02" in out
      assert "Monthly Usage Records (2)" in out
      assert "+--" in out
      assert "dev-box" in out

   def test_empty_month(self, inventory, config_args, capsys):
      """Test a month with no activity"""
      code = main(config_args + ["--no-color", "report", inventory, "-m", "2022-01"])
      assert code == 0
      assert "No clusters ran during 2022-01" in capsys.readouterr().out

   def test_invalid_month(self, inventory, config_args, capsys):
      """Test malformed months are rejected"""
      code = main(config_args + ["report", inventory, "-m", "2024-13"])
      assert code == 1
      assert "Invalid report month" in capsys.readouterr().err

   def test_missing_inventory(self, tmp_path, config_args, capsys):
      """Test missing inventory files are reported"""
      code = main(config_args + ["report", str(tmp_path / "nope.json"), "-m", "2024-02"])
      assert code == 1
      assert "not found" in capsys.readouterr().err


class TestArchetypesCommand:
   """Test the archetypes subcommand"""

   def test_json(self, inventory, config_args, capsys):
      """Test classifications, distribution and improvements as JSON"""
      code = main(config_args + ["archetypes", inventory, "-m", "2024-02", "--format", "json"])
      assert code == 0

      data = json.loads(capsys.readouterr().out)
      assert {u['user_name'] for u in data['users']} == {"alice", "bob"}
      assert all('guidelines' in u for u in data['users'])
      assert sum(data['distribution'].values()) == 2
      assert 'platform_improvements' in data

   def test_single_user(self, inventory, config_args, capsys):
      """Test one user's classification and explanation"""
      code = main(config_args + ["--no-color", "archetypes", inventory, "-m", "2024-02", "--user", "alice"])
      assert code == 0

      out = capsys.readouterr().out
      assert "User alice" in out
      assert "Conditions:" in out or "Default:" in out

   def test_unknown_user(self, inventory, config_args, capsys):
      """Test users without usage"""
      code = main(config_args + ["archetypes", inventory, "-m", "2024-02", "--user", "nobody"])
      assert code == 1
      assert "No usage found for user nobody" in capsys.readouterr().out

   def test_table(self, inventory, config_args, capsys):
      """Test summary tables"""
      code = main(config_args + ["--no-color", "archetypes", inventory, "-m", "2024-02"])
      assert code == 0

      out = capsys.readouterr().out
      assert "User Archetypes - 2024-02" in out
      assert "Archetype Distribution" in out


class TestConfigCommand:
   """Test the config subcommand and global handling"""

   def test_create(self, tmp_path, capsys):
      """Test sample configuration creation"""
      config_file = tmp_path / "conf" / "config.yaml"
      code = main(["-q", "-c", str(config_file), "config", "--create"])
      assert code == 0
      assert config_file.exists()

   def test_show(self, config_args, capsys):
      """Test configuration display"""
      code = main(config_args + ["config", "--show"])
      assert code == 0
      assert "Metrics URL: (not set)" in capsys.readouterr().out

   def test_no_option(self, config_args, capsys):
      """Test config without an action"""
      assert main(config_args + ["config"]) == 1

   def test_no_command(self, config_args, capsys):
      """Test help is printed without a command"""
      assert main(config_args) == 1
      assert "usage:" in capsys.readouterr().out
