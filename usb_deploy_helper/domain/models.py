"""Domain model for removable drive inventory and risk classification.

Every scan builds these objects from scratch. They are frozen so a list handed
to the caller can never change underneath it, and the risk verdict is derived
from the warnings rather than stored next to them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


RECOMMEND_BACKUP = "Backup data before proceeding"
RECOMMEND_FORMAT = "Can be formatted and used"
RECOMMEND_READY = "Ready for deployment"


def human_size(size_bytes: int | None) -> str:
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


# ==============================================================================
# Enumerations
# ==============================================================================


class PartitionStyle(Enum):
    """Partition table format reported by the platform."""

    GPT = "GPT"
    MBR = "MBR"
    RAW = "RAW"
    UNKNOWN = "Unknown"


class BootloaderKind(Enum):
    NONE = "None"
    VENTOY = "Ventoy"
    WINDOWS = "Windows Bootloader"
    GENERIC_UEFI = "Generic UEFI"
    LINUX_GRUB = "Linux GRUB"


class BootCapability(Enum):
    """Boot modes a drive can serve, as far as its contents tell."""

    UEFI = "UEFI"
    BIOS = "BIOS"
    UEFI_OR_BIOS_MULTIBOOT = "UEFI/BIOS (Multiboot)"
    UEFI_CAPABLE_UNFORMATTED = "UEFI Capable (Unformatted)"
    BIOS_CAPABLE = "BIOS Capable"
    NOT_FORMATTED = "Not Formatted"
    UNKNOWN = "Unknown"


class ContentKind(Enum):
    EMPTY = "Empty"
    UNFORMATTED = "Unformatted"
    WINDOWS_INSTALLATION_MEDIA = "Windows Installation Media"
    ISO_FILES = "ISO Files"
    OTHER = "Other"


class RiskStatus(Enum):
    READY = "Ready"
    WARNING = "Warning"


# ==============================================================================
# Value objects
# ==============================================================================


@dataclass(frozen=True)
class Bootloader:
    """A bootloader fingerprint. Only Ventoy carries a version."""

    kind: BootloaderKind = BootloaderKind.NONE
    version: str | None = None

    @property
    def detected(self) -> bool:
        return self.kind is not BootloaderKind.NONE

    @property
    def label(self) -> str:
        """Display name, e.g. "Ventoy 1.0.99" or "Windows Bootloader"."""
        if self.version:
            return f"{self.kind.value} {self.version}"
        return self.kind.value

    @classmethod
    def none(cls) -> Bootloader:
        return cls(BootloaderKind.NONE)

    @classmethod
    def ventoy(cls, version: str | None = None) -> Bootloader:
        return cls(BootloaderKind.VENTOY, version)


@dataclass(frozen=True)
class ContentSummary:
    kind: ContentKind
    iso_count: int = 0

    @property
    def label(self) -> str:
        if self.kind is ContentKind.ISO_FILES:
            return f"{self.iso_count} ISO file(s)"
        return self.kind.value

    @classmethod
    def iso_files(cls, count: int) -> ContentSummary:
        return cls(ContentKind.ISO_FILES, count)


@dataclass(frozen=True)
class MountedVolume:
    """A mounted filesystem on one of the drive's partitions."""

    mount_point: str  # e.g., "E:\\" or "/media/user/VENTOY"
    label: str | None = None
    file_system: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mount_point": self.mount_point,
            "label": self.label,
            "file_system": self.file_system,
        }


@dataclass(frozen=True)
class VolumeClassification:
    """Result of fingerprinting a single volume.

    boot_capability is UNKNOWN and content is None when the matching rule
    did not decide them; the scanner fills both in afterwards.
    """

    bootloader: Bootloader = field(default_factory=Bootloader.none)
    boot_capability: BootCapability = BootCapability.UNKNOWN
    content: ContentSummary | None = None
    warnings: tuple[str, ...] = ()
    iso_file_names: tuple[str, ...] = ()


# ==============================================================================
# Removable Device
# ==============================================================================


@dataclass(frozen=True)
class RemovableDevice:
    """One physical removable disk together with its risk verdict."""

    index: int
    device_path: str  # e.g., "/dev/sdb" or "\\\\.\\PhysicalDrive1"
    model: str
    size_bytes: int
    partition_style: PartitionStyle = PartitionStyle.UNKNOWN
    partition_count: int = 0
    has_efi_system_partition: bool = False
    mounted_volumes: tuple[MountedVolume, ...] = ()
    detected_bootloader: Bootloader = field(default_factory=Bootloader.none)
    boot_capability: BootCapability = BootCapability.UNKNOWN
    content_summary: ContentSummary = field(
        default_factory=lambda: ContentSummary(ContentKind.UNFORMATTED)
    )
    iso_file_names: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.partition_count < 0:
            raise ValueError(f"partition_count must be >= 0, got {self.partition_count}")
        if self.has_efi_system_partition and self.partition_style is not PartitionStyle.GPT:
            raise ValueError(
                f"EFI System Partition reported on a {self.partition_style.value} disk"
            )

    @property
    def risk_status(self) -> RiskStatus:
        return RiskStatus.WARNING if self.warnings else RiskStatus.READY

    @property
    def recommendation(self) -> str:
        if self.risk_status is RiskStatus.WARNING:
            return RECOMMEND_BACKUP
        if self.content_summary.kind is ContentKind.UNFORMATTED:
            return RECOMMEND_FORMAT
        return RECOMMEND_READY

    @property
    def primary_volume(self) -> MountedVolume | None:
        return self.mounted_volumes[0] if self.mounted_volumes else None

    @property
    def size_gb(self) -> float:
        return self.size_bytes / (1024**3)

    def format_label(self) -> str:
        """Human-readable label, e.g. "Disk 1: SanDisk Cruzer (14.9GB) [E:\\]"."""
        label = f"Disk {self.index}: {self.model or 'USB Drive'} ({self.size_gb:.1f}GB)"
        primary = self.primary_volume
        if primary is not None:
            label += f" [{primary.mount_point}]"
        return label

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "device_path": self.device_path,
            "model": self.model,
            "size_bytes": self.size_bytes,
            "partition_style": self.partition_style.value,
            "partition_count": self.partition_count,
            "has_efi_system_partition": self.has_efi_system_partition,
            "mounted_volumes": [volume.to_dict() for volume in self.mounted_volumes],
            "detected_bootloader": {
                "kind": self.detected_bootloader.kind.value,
                "version": self.detected_bootloader.version,
            },
            "boot_capability": self.boot_capability.value,
            "content_summary": {
                "kind": self.content_summary.kind.value,
                "iso_count": self.content_summary.iso_count,
            },
            "iso_file_names": list(self.iso_file_names),
            "warnings": list(self.warnings),
            "risk_status": self.risk_status.value,
            "recommendation": self.recommendation,
        }
