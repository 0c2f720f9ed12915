"""
Main CLI entry point for GPU Usage Report
"""

import argparse
import sys
import logging
from typing import List, Optional

from ..config import Config, METRICS_URL_ENV
from ..utils.logging_setup import setup_logging
from .commands import ReportCommand, ArchetypesCommand


def create_parser() -> argparse.ArgumentParser:
   """Create argument parser for GPU Usage Report CLI"""

   parser = argparse.ArgumentParser(
      prog="gpu-usage-report",
      description=f"""Monthly GPU usage report and user archetype analysis

Configuration file locations (searched in order):
  ~/.gpu_usage_report.yaml
  ~/.config/gpu_usage_report/config.yaml
  /etc/gpu_usage_report/config.yaml
  gpu_usage_report.yaml (current directory)

The metrics backend URL can also be set with {METRICS_URL_ENV}.""",
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  gpu-usage-report report clusters.json                 # Current month
  gpu-usage-report report clusters.json -m 2024-02      # A given month
  gpu-usage-report report clusters.json --format csv    # CSV export
  gpu-usage-report archetypes clusters.json             # Classify users
  gpu-usage-report archetypes clusters.json --user bob  # One user's guidance
  gpu-usage-report config --create                      # Create sample configuration
      """
   )

   # Global options
   parser.add_argument(
      "-c", "--config",
      help="Configuration file path",
      default=None
   )

   parser.add_argument(
      "-v", "--verbose",
      action="store_true",
      help="Enable verbose logging"
   )

   parser.add_argument(
      "-q", "--quiet",
      action="store_true",
      help="Suppress normal output"
   )

   parser.add_argument(
      "--log-file",
      help="Log file path",
      default=None
   )

   parser.add_argument(
      "--max-width",
      type=int,
      help="Maximum table width (overrides config)"
   )

   parser.add_argument(
      "--no-color",
      action="store_true",
      help="Plain grid tables without colors"
   )

   # Create subparsers
   subparsers = parser.add_subparsers(
      dest="command",
      help="Available commands"
   )

   # Report command
   report_parser = subparsers.add_parser(
      "report",
      help="Show the monthly usage report"
   )
   _add_report_arguments(report_parser)
   report_parser.add_argument(
      "--format",
      choices=["table", "json", "csv"],
      default=None,
      help="Output format (default: from config, table)"
   )

   # Archetypes command
   archetypes_parser = subparsers.add_parser(
      "archetypes",
      help="Classify users into archetypes"
   )
   _add_report_arguments(archetypes_parser)
   archetypes_parser.add_argument(
      "--user",
      help="Show classification and guidance for one user (id or name)"
   )
   archetypes_parser.add_argument(
      "--format",
      choices=["table", "json"],
      default="table",
      help="Output format (default: table)"
   )

   # Config command
   config_parser = subparsers.add_parser(
      "config",
      help="Configuration management"
   )
   config_parser.add_argument(
      "--create",
      action="store_true",
      help="Create sample configuration file"
   )
   config_parser.add_argument(
      "--show",
      action="store_true",
      help="Show current configuration"
   )

   return parser


def _add_report_arguments(parser: argparse.ArgumentParser) -> None:
   parser.add_argument(
      "inventory",
      help="Cluster inventory JSON file"
   )
   parser.add_argument(
      "-m", "--month",
      help="Report month as YYYY-MM (default: current month)"
   )
   parser.add_argument(
      "--no-cache",
      action="store_true",
      help="Do not reuse cached metric results"
   )
   parser.add_argument(
      "--skip-metrics",
      action="store_true",
      help="Do not query the metrics backend"
   )


def setup_logging_from_args(args: argparse.Namespace, config: Config) -> None:
   """Setup logging based on command line arguments and configuration"""

   # Determine log level
   if args.verbose:
      level = logging.DEBUG
   elif args.quiet:
      level = logging.ERROR
   else:
      level = config.get_log_level()

   # Determine log file
   log_file = args.log_file or config.logging.log_file

   # Setup logging
   setup_logging(
      level=level,
      log_file=log_file,
      log_format=config.logging.log_format,
      date_format=config.logging.date_format,
      console_output=not args.quiet
   )


def apply_cli_overrides(args: argparse.Namespace, config: Config) -> None:
   """Apply command-line overrides to configuration"""

   if getattr(args, 'max_width', None):
      config.display.max_table_width = args.max_width

   if getattr(args, 'no_color', False):
      config.display.use_colors = False


def handle_config_command(args: argparse.Namespace, config: Config) -> int:
   """Handle configuration management commands"""

   if args.create:
      return 0 if config.create_sample_config() else 1

   if args.show:
      print(f"Configuration file: {config.config_file}")
      print(f"Metrics URL: {config.metrics.base_url or '(not set)'}")
      print(f"Metrics query path: {config.metrics.query_path}")
      print(f"Metrics step / timeout: {config.metrics.step}s / {config.metrics.timeout}s")
      print(f"Cache enabled: {config.cache.enabled} (TTL {config.cache.ttl_seconds}s)")
      print(f"Report workers: {config.report.max_workers}")
      print(f"Skip metrics: {config.report.skip_metrics}")
      print(f"Log level: {config.logging.level}")
      print(f"Use colors: {config.display.use_colors}")
      print(f"Max table width: {config.display.max_table_width}")
      return 0

   print("Use --create to create sample configuration or --show to display current settings")
   return 1


def main(argv: Optional[List[str]] = None) -> int:
   """
   Main entry point for GPU Usage Report CLI

   Args:
      argv: Command line arguments (optional, for testing)

   Returns:
      Exit code
   """

   # Parse arguments
   parser = create_parser()
   args = parser.parse_args(argv)

   # Load configuration
   try:
      config = Config(config_file=args.config)
   except Exception as e:
      print(f"Error loading configuration: {str(e)}", file=sys.stderr)
      return 1

   # Apply command-line overrides to config
   apply_cli_overrides(args, config)

   # Setup logging
   setup_logging_from_args(args, config)
   logger = logging.getLogger(__name__)

   # Handle no command
   if not args.command:
      parser.print_help()
      return 1

   # Handle config command
   if args.command == "config":
      return handle_config_command(args, config)

   # Execute command
   try:
      if args.command == "report":
         cmd = ReportCommand(config)
         return cmd.execute(args)

      elif args.command == "archetypes":
         cmd = ArchetypesCommand(config)
         return cmd.execute(args)

      else:
         print(f"Unknown command: {args.command}", file=sys.stderr)
         return 1

   except KeyboardInterrupt:
      print("\nInterrupted by user", file=sys.stderr)
      return 130

   except Exception as e:
      logger.error(f"Command execution failed: {str(e)}")
      print(f"Error: {str(e)}", file=sys.stderr)
      return 1


if __name__ == "__main__":
   sys.exit(main())
