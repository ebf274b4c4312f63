"""Domain models for removable drive inventory.

This package contains the immutable records that cross the boundary between
the drive classifier and the menu/deployment layer.
"""

from __future__ import annotations

from .models import (
    BootCapability,
    Bootloader,
    BootloaderKind,
    ContentKind,
    ContentSummary,
    MountedVolume,
    PartitionStyle,
    RemovableDevice,
    RiskStatus,
    VolumeClassification,
    human_size,
)


__all__ = [
    "BootCapability",
    "Bootloader",
    "BootloaderKind",
    "ContentKind",
    "ContentSummary",
    "MountedVolume",
    "PartitionStyle",
    "RemovableDevice",
    "RiskStatus",
    "VolumeClassification",
    "human_size",
]
