"""Tests for domain models.

These tests cover the derived fields and constructor invariants of the
drive records; no hardware or filesystem is touched.
"""
from __future__ import annotations

import dataclasses

import pytest

from usb_deploy_helper.domain import (
    BootCapability,
    Bootloader,
    BootloaderKind,
    ContentKind,
    ContentSummary,
    MountedVolume,
    PartitionStyle,
    RemovableDevice,
    RiskStatus,
    human_size,
)
from usb_deploy_helper.domain.models import (
    RECOMMEND_BACKUP,
    RECOMMEND_FORMAT,
    RECOMMEND_READY,
)


def make_device(**overrides) -> RemovableDevice:
    values = dict(
        index=1,
        device_path="/dev/sdb",
        model="SanDisk Cruzer",
        size_bytes=16 * 1024**3,
        partition_style=PartitionStyle.GPT,
        partition_count=1,
        mounted_volumes=(MountedVolume("E:\\", "DATA", "exFAT"),),
        content_summary=ContentSummary(ContentKind.EMPTY),
    )
    values.update(overrides)
    return RemovableDevice(**values)


# ==============================================================================
# Value object Tests
# ==============================================================================


class TestBootloader:
    """Test Bootloader value object."""

    def test_none_is_not_detected(self):
        assert Bootloader.none().detected is False
        assert Bootloader.none().label == "None"

    def test_ventoy_label_includes_version(self):
        assert Bootloader.ventoy("1.0.99").label == "Ventoy 1.0.99"

    def test_ventoy_without_version(self):
        bootloader = Bootloader.ventoy()
        assert bootloader.detected is True
        assert bootloader.label == "Ventoy"

    def test_windows_label(self):
        assert Bootloader(BootloaderKind.WINDOWS).label == "Windows Bootloader"


class TestContentSummary:
    """Test ContentSummary labels."""

    def test_iso_files_label(self):
        assert ContentSummary.iso_files(3).label == "3 ISO file(s)"

    def test_plain_label(self):
        assert ContentSummary(ContentKind.WINDOWS_INSTALLATION_MEDIA).label == (
            "Windows Installation Media"
        )


class TestHumanSize:
    """Tests for human_size() function."""

    def test_bytes(self):
        assert human_size(500) == "500.0B"

    def test_gigabytes(self):
        assert human_size(16106127360) == "15.0GB"

    def test_none_value(self):
        assert human_size(None) == "0B"


# ==============================================================================
# RemovableDevice Tests
# ==============================================================================


class TestRemovableDeviceInvariants:
    """Test constructor invariants."""

    def test_esp_on_mbr_rejected(self):
        """Test that an EFI System Partition requires GPT."""
        with pytest.raises(ValueError, match="EFI System Partition"):
            make_device(partition_style=PartitionStyle.MBR, has_efi_system_partition=True)

    def test_esp_on_gpt_accepted(self):
        device = make_device(has_efi_system_partition=True)
        assert device.has_efi_system_partition is True

    def test_negative_partition_count_rejected(self):
        with pytest.raises(ValueError):
            make_device(partition_count=-1)

    def test_device_is_frozen(self):
        """Test that scan results cannot be modified after the fact."""
        device = make_device()
        with pytest.raises(dataclasses.FrozenInstanceError):
            device.warnings = ("changed",)


class TestRiskStatus:
    """Test derived risk status and recommendation."""

    def test_ready_without_warnings(self):
        device = make_device()
        assert device.risk_status is RiskStatus.READY
        assert device.recommendation == RECOMMEND_READY

    def test_warning_with_warnings(self):
        device = make_device(warnings=("Linux GRUB detected - will be overwritten!",))
        assert device.risk_status is RiskStatus.WARNING
        assert device.recommendation == RECOMMEND_BACKUP

    def test_unformatted_recommendation(self):
        device = make_device(
            mounted_volumes=(),
            content_summary=ContentSummary(ContentKind.UNFORMATTED),
        )
        assert device.risk_status is RiskStatus.READY
        assert device.recommendation == RECOMMEND_FORMAT

    def test_warning_beats_unformatted(self):
        device = make_device(
            content_summary=ContentSummary(ContentKind.UNFORMATTED),
            warnings=("something",),
        )
        assert device.recommendation == RECOMMEND_BACKUP


class TestRemovableDeviceDisplay:
    """Test display helpers."""

    def test_primary_volume_is_first(self):
        volumes = (MountedVolume("E:\\"), MountedVolume("F:\\"))
        device = make_device(mounted_volumes=volumes)
        assert device.primary_volume == volumes[0]
        assert device.mounted_volumes == volumes

    def test_primary_volume_none_without_volumes(self):
        assert make_device(mounted_volumes=()).primary_volume is None

    def test_format_label(self):
        label = make_device().format_label()
        assert label == "Disk 1: SanDisk Cruzer (16.0GB) [E:\\]"

    def test_to_dict(self):
        device = make_device(
            detected_bootloader=Bootloader.ventoy("1.0.99"),
            boot_capability=BootCapability.UEFI_CAPABLE_UNFORMATTED,
            content_summary=ContentSummary.iso_files(2),
            iso_file_names=("a.iso", "b.iso"),
            warnings=("w1", "w2"),
        )
        data = device.to_dict()
        assert data["detected_bootloader"] == {"kind": "Ventoy", "version": "1.0.99"}
        assert data["content_summary"] == {"kind": "ISO Files", "iso_count": 2}
        assert data["iso_file_names"] == ["a.iso", "b.iso"]
        assert data["risk_status"] == "Warning"
        assert data["recommendation"] == RECOMMEND_BACKUP
        assert data["mounted_volumes"][0]["mount_point"] == "E:\\"
