"""
Configuration management for GPU Usage Report
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field

from .cache import DEFAULT_TTL_SECONDS, DEFAULT_SWEEP_THRESHOLD
from .metrics_client import DEFAULT_QUERY_PATH, DEFAULT_STEP_SECONDS, DEFAULT_TIMEOUT_SECONDS


METRICS_URL_ENV = "GPU_REPORT_METRICS_URL"


@dataclass
class MetricsConfig:
   """Metrics backend configuration"""

   # Base URL of the Grafana / Prometheus server; empty disables enrichment
   base_url: str = ""
   query_path: str = DEFAULT_QUERY_PATH

   # Range query sampling step and per-request timeout (seconds)
   step: int = DEFAULT_STEP_SECONDS
   timeout: int = DEFAULT_TIMEOUT_SECONDS

   # Extra request headers, e.g. {"Authorization": "Bearer ..."}
   headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class CacheConfig:
   """Metric cache configuration"""

   enabled: bool = True
   ttl_seconds: int = DEFAULT_TTL_SECONDS
   sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD


@dataclass
class ReportConfig:
   """Report generation configuration"""

   # Concurrent record builders
   max_workers: int = 8

   # Do not query the metrics backend at all
   skip_metrics: bool = False

   # table, json or csv
   default_format: str = "table"


@dataclass
class DisplayConfig:
   """Display and output configuration"""

   max_table_width: int = 160
   truncate_long_names: bool = True
   max_name_length: int = 24
   use_colors: bool = True

   # Time format
   time_format: str = "%d-%m %H:%M"


@dataclass
class LoggingConfig:
   """Logging configuration"""

   # Log level
   level: str = "INFO"

   # Log file path
   log_file: Optional[str] = None

   # Log format
   log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

   date_format: str = "%d-%m %H:%M"


class Config:
   """Main configuration manager"""

   def __init__(self, config_file: Optional[str] = None):
      """
      Initialize configuration

      Args:
         config_file: Path to configuration file
      """
      self.config_file = config_file or self._get_default_config_path()
      self.logger = logging.getLogger(__name__)

      # Initialize default configurations
      self.metrics = MetricsConfig()
      self.cache = CacheConfig()
      self.report = ReportConfig()
      self.display = DisplayConfig()
      self.logging = LoggingConfig()

      # Load configuration from file, then the environment
      self._load_config()
      self._apply_environment()

   def _get_default_config_path(self) -> str:
      """Get default configuration file path"""
      # Try these locations in order
      config_paths = [
         os.path.expanduser("~/.gpu_usage_report.yaml"),
         os.path.expanduser("~/.config/gpu_usage_report/config.yaml"),
         "/etc/gpu_usage_report/config.yaml",
         "gpu_usage_report.yaml"
      ]

      for path in config_paths:
         if os.path.exists(path):
            return path

      # Return first path as default
      return config_paths[0]

   def _load_config(self) -> None:
      """Load configuration from file"""
      if not os.path.exists(self.config_file):
         self.logger.debug(f"Configuration file not found: {self.config_file}")
         return

      try:
         with open(self.config_file, 'r') as f:
            config_data = yaml.safe_load(f)

         if not config_data:
            return

         for section in ('metrics', 'cache', 'report', 'display', 'logging'):
            if isinstance(config_data.get(section), dict):
               self._update_config_object(getattr(self, section), config_data[section])

         self.logger.info(f"Configuration loaded from {self.config_file}")

      except Exception as e:
         self.logger.error(f"Failed to load configuration: {str(e)}")

   def _apply_environment(self) -> None:
      """Environment overrides"""
      metrics_url = os.environ.get(METRICS_URL_ENV)
      if metrics_url:
         self.metrics.base_url = metrics_url
         self.logger.debug(f"Metrics URL taken from {METRICS_URL_ENV}")

   def _update_config_object(self, config_obj: Any, config_data: Dict[str, Any]) -> None:
      """Update configuration object with data from file"""
      for key, value in config_data.items():
         if hasattr(config_obj, key):
            setattr(config_obj, key, value)
         else:
            self.logger.warning(f"Unknown configuration key ignored: {key}")

   def save_config(self) -> None:
      """Save current configuration to file"""
      try:
         # Create directory if it doesn't exist
         config_dir = os.path.dirname(self.config_file)
         if config_dir:
            os.makedirs(config_dir, exist_ok=True)

         config_data = self.to_dict()

         with open(self.config_file, 'w') as f:
            yaml.dump(config_data, f, default_flow_style=False, indent=2)

         self.logger.info(f"Configuration saved to {self.config_file}")

      except Exception as e:
         self.logger.error(f"Failed to save configuration: {str(e)}")

   def to_dict(self) -> Dict[str, Dict[str, Any]]:
      return {
         'metrics': self._config_to_dict(self.metrics),
         'cache': self._config_to_dict(self.cache),
         'report': self._config_to_dict(self.report),
         'display': self._config_to_dict(self.display),
         'logging': self._config_to_dict(self.logging)
      }

   def _config_to_dict(self, config_obj: Any) -> Dict[str, Any]:
      """Convert configuration object to dictionary"""
      if hasattr(config_obj, '__dict__'):
         return {k: v for k, v in config_obj.__dict__.items() if not k.startswith('_')}
      return {}

   def create_sample_config(self) -> bool:
      """Create a sample configuration file"""
      sample_config = {
         'metrics': {
            'base_url': '',
            'query_path': DEFAULT_QUERY_PATH,
            'step': DEFAULT_STEP_SECONDS,
            'timeout': DEFAULT_TIMEOUT_SECONDS,
            'headers': {}
         },
         'cache': {
            'enabled': True,
            'ttl_seconds': DEFAULT_TTL_SECONDS,
            'sweep_threshold': DEFAULT_SWEEP_THRESHOLD
         },
         'report': {
            'max_workers': 8,
            'skip_metrics': False,
            'default_format': 'table'
         },
         'display': {
            'max_table_width': 160,
            'truncate_long_names': True,
            'max_name_length': 24,
            'use_colors': True,
            'time_format': '%d-%m %H:%M'
         },
         'logging': {
            'level': 'INFO',
            'log_file': None,
            'log_format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'date_format': '%d-%m %H:%M'
         }
      }

      try:
         config_dir = os.path.dirname(self.config_file)
         if config_dir:
            os.makedirs(config_dir, exist_ok=True)

         with open(self.config_file, 'w') as f:
            yaml.dump(sample_config, f, default_flow_style=False, indent=2)

         print(f"Sample configuration created at {self.config_file}")
         return True

      except Exception as e:
         print(f"Failed to create sample configuration: {str(e)}")
         return False

   def get_log_level(self) -> int:
      """Get numeric log level"""
      level_map = {
         'DEBUG': logging.DEBUG,
         'INFO': logging.INFO,
         'WARNING': logging.WARNING,
         'ERROR': logging.ERROR,
         'CRITICAL': logging.CRITICAL
      }

      return level_map.get(str(self.logging.level).upper(), logging.INFO)

   def __str__(self) -> str:
      return f"Config(file={self.config_file})"
