"""
Inventory loading - cluster and managed-job records from JSON exports
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Tuple, Union

from .models.cluster import ClusterRecord, ManagedJobRecord


class ReportError(Exception):
   """Base exception for report generation failures surfaced to the caller"""
   pass


class InventoryError(ReportError):
   """Exception raised when an inventory file cannot be read"""
   pass


@dataclass
class Inventory:
   clusters: List[ClusterRecord] = field(default_factory=list)
   jobs: List[ManagedJobRecord] = field(default_factory=list)

   def __str__(self) -> str:
      return f"Inventory({len(self.clusters)} clusters, {len(self.jobs)} managed jobs)"


class InventoryLoader:
   """
   Read cluster inventory exports

   Accepted layouts:
   - ``{"clusters": [...], "jobs": [...]}`` (``managed_jobs`` is accepted for ``jobs``)
   - a bare list of cluster mappings
   """

   def __init__(self):
      self.logger = logging.getLogger(__name__)

   def load(self, path: Union[str, Path]) -> Inventory:
      """
      Load an inventory file

      Args:
         path: Path to the JSON file

      Returns:
         Inventory with parsed cluster and job records

      Raises:
         InventoryError: If the file is missing, unreadable or not an inventory
      """
      file_path = Path(path).expanduser()
      if not file_path.exists():
         raise InventoryError(f"Inventory file not found: {file_path}")

      try:
         with open(file_path, 'r') as f:
            data = json.load(f)
      except json.JSONDecodeError as e:
         raise InventoryError(f"Failed to parse inventory {file_path}: {str(e)}")
      except OSError as e:
         raise InventoryError(f"Failed to read inventory {file_path}: {str(e)}")

      inventory = self.from_data(data)
      self.logger.info(f"Loaded {inventory} from {file_path}")
      return inventory

   def from_data(self, data: Any) -> Inventory:
      """Build an Inventory from already-decoded JSON"""
      raw_clusters, raw_jobs = self._split(data)

      clusters = []
      for index, entry in enumerate(raw_clusters):
         try:
            if not isinstance(entry, dict):
               raise ValueError(f"expected an object, got {type(entry).__name__}")
            clusters.append(ClusterRecord.from_dict(entry))
         except Exception as e:
            self.logger.warning(f"Skipping cluster entry {index}: {str(e)}")

      jobs = []
      for index, entry in enumerate(raw_jobs):
         try:
            if not isinstance(entry, dict):
               raise ValueError(f"expected an object, got {type(entry).__name__}")
            jobs.append(ManagedJobRecord.from_dict(entry))
         except Exception as e:
            self.logger.warning(f"Skipping managed job entry {index}: {str(e)}")

      return Inventory(clusters=clusters, jobs=jobs)

   def _split(self, data: Any) -> Tuple[List[Any], List[Any]]:
      if isinstance(data, list):
         return data, []

      if isinstance(data, dict):
         clusters = data.get('clusters') or []
         jobs = data.get('jobs', data.get('managed_jobs')) or []
         if not isinstance(clusters, list) or not isinstance(jobs, list):
            raise InventoryError("Inventory 'clusters' and 'jobs' must be lists")
         return clusters, jobs

      raise InventoryError(f"Unsupported inventory layout: {type(data).__name__}")
