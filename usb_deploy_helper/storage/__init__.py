"""Removable drive inventory and risk classification."""

from .exceptions import EnumerationError, ProbeError
from .scanner import scan_removable_devices

__all__ = [
    "EnumerationError",
    "ProbeError",
    "scan_removable_devices",
]
