"""
Resource descriptor parsing for GPU clusters

Cluster inventories describe hardware in two shapes: a structured accelerator
map (``{'H100': 8}``, sometimes serialized with Python quoting) and a free-form
resource string such as ``2x(gpus=MI250:8, cpus=64, ...)``. The helpers here
turn either shape into a node count and a ``GPUInfo`` and never raise.
"""

import json
import logging
import re
from dataclasses import dataclass
from numbers import Number, Real
from typing import Any, Optional


_LOGGER = logging.getLogger(__name__)

_NODE_COUNT_PATTERN = re.compile(r'^(\d+)x\(')
_GPUS_PATTERN = re.compile(r'gpus=([^,]+)')


@dataclass(frozen=True)
class GPUInfo:
   """GPU type and per-node GPU count"""

   type: Optional[str] = None
   count: float = 0


def extract_node_count(descriptor: Optional[str], explicit_node_count: Any = None) -> float:
   """
   Extract node count from an explicit value or a resource descriptor

   Args:
      descriptor: Resource descriptor string, e.g. "2x(gpus=H100:8, ...)"
      explicit_node_count: Node count reported by the inventory, if any.
         A finite non-zero number is returned as given.

   Returns:
      Node count (defaults to 1)
   """
   if _is_finite_number(explicit_node_count) and explicit_node_count:
      return explicit_node_count

   if isinstance(descriptor, str) and descriptor:
      match = _NODE_COUNT_PATTERN.match(descriptor)
      if match:
         return int(match.group(1))

   return 1


def extract_gpu_info(accelerators: Any, descriptor: Optional[str] = None) -> GPUInfo:
   """
   Extract GPU type and count from the accelerators field or descriptor

   The structured accelerators field is tried first, then the ``gpus=`` token
   of the descriptor string. Anything unparsable yields ``GPUInfo(None, 0)``.

   Args:
      accelerators: Mapping of GPU type to count, or a string encoding one
      descriptor: Resource descriptor string

   Returns:
      GPUInfo with the first GPU type found
   """
   info = _gpu_info_from_accelerators(accelerators)
   if info is not None:
      return info

   info = _gpu_info_from_descriptor(descriptor)
   if info is not None:
      return info

   return GPUInfo()


def is_amd_gpu(gpu_type: Optional[str]) -> bool:
   """AMD Instinct parts are named MI250, MI210, MI300X, ..."""
   if not gpu_type:
      return False
   return gpu_type.upper().startswith('MI')


def _gpu_info_from_accelerators(accelerators: Any) -> Optional[GPUInfo]:
   if not accelerators:
      return None

   parsed = accelerators
   if isinstance(accelerators, str):
      # Inventories often store str(dict) instead of JSON
      json_str = accelerators.replace("'", '"').replace('None', 'null')
      try:
         parsed = json.loads(json_str)
      except ValueError:
         _LOGGER.debug(f"Accelerators field is not a mapping: {accelerators!r}")
         return None

   if not isinstance(parsed, dict) or not parsed:
      return None

   gpu_type, raw_count = next(iter(parsed.items()))
   return GPUInfo(type=str(gpu_type), count=_coerce_count(raw_count))


def _gpu_info_from_descriptor(descriptor: Optional[str]) -> Optional[GPUInfo]:
   if not isinstance(descriptor, str) or not descriptor:
      return None

   match = _GPUS_PATTERN.search(descriptor)
   if not match:
      return None

   # e.g. "MI250:8"
   gpus_value = match.group(1)
   if ':' not in gpus_value:
      return None

   gpu_type, _, count_str = gpus_value.partition(':')
   count_match = re.match(r'\s*[+-]?\d+', count_str)
   count = int(count_match.group(0)) if count_match else 0
   return GPUInfo(type=gpu_type, count=count)


def _coerce_count(value: Any) -> float:
   if isinstance(value, bool):
      return int(value)
   if _is_number(value):
      return value
   try:
      number = float(value)
   except (TypeError, ValueError):
      return 0
   if number != number:  # NaN
      return 0
   return int(number) if number.is_integer() else number


def _is_number(value: Any) -> bool:
   return isinstance(value, Number) and not isinstance(value, bool)


def _is_finite_number(value: Any) -> bool:
   # NaN and infinities fail the range check
   return isinstance(value, Real) and not isinstance(value, bool) and -float('inf') < value < float('inf')
