"""
Pytest configuration and shared fixtures for usb-deploy-helper tests.

This module provides common fixtures and utilities used across all test modules.
"""

import json
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional
from unittest.mock import Mock

import pytest

from usb_deploy_helper.storage.devices import DiskRecord, PartitionRecord
from usb_deploy_helper.storage.exceptions import EnumerationError, ProbeError


ESP_GUID = "c12a7328-f81f-11d2-ba4b-00a0c93ec93b"
BASIC_DATA_GUID = "ebd0a0a2-b9e5-4433-87c0-68b6b72699c7"


# ==============================================================================
# lsblk Fixtures
# ==============================================================================


@pytest.fixture
def mock_usb_device() -> Dict[str, Any]:
    """
    Fixture providing a GPT USB stick as returned by lsblk.

    Partition 1 is an EFI System Partition, partition 2 a mounted exFAT volume.
    """
    return {
        "name": "sdb",
        "type": "disk",
        "size": 15931539456,
        "model": "Cruzer Blade",
        "vendor": "SanDisk ",
        "tran": "usb",
        "rm": True,
        "mountpoint": None,
        "fstype": None,
        "label": None,
        "pttype": "gpt",
        "parttype": None,
        "children": [
            {
                "name": "sdb1",
                "type": "part",
                "size": 33554432,
                "mountpoint": None,
                "fstype": "vfat",
                "label": "VTOYEFI",
                "pttype": "gpt",
                "parttype": ESP_GUID,
            },
            {
                "name": "sdb2",
                "type": "part",
                "size": 15897985024,
                "mountpoint": "/media/user/Ventoy",
                "fstype": "exfat",
                "label": "Ventoy",
                "pttype": "gpt",
                "parttype": BASIC_DATA_GUID,
            },
        ],
    }


@pytest.fixture
def mock_system_disk() -> Dict[str, Any]:
    """
    Fixture providing the system disk, which must never be listed.
    """
    return {
        "name": "mmcblk0",
        "type": "disk",
        "size": 31914983424,
        "model": None,
        "vendor": None,
        "tran": None,
        "rm": False,
        "mountpoint": None,
        "fstype": None,
        "label": None,
        "pttype": "dos",
        "parttype": None,
        "children": [
            {
                "name": "mmcblk0p1",
                "type": "part",
                "mountpoint": "/boot/firmware",
                "fstype": "vfat",
                "label": "bootfs",
                "parttype": "0xc",
            },
            {
                "name": "mmcblk0p2",
                "type": "part",
                "mountpoint": "/",
                "fstype": "ext4",
                "label": "rootfs",
                "parttype": "0x83",
            },
        ],
    }


@pytest.fixture
def mock_lsblk_output(mock_usb_device, mock_system_disk) -> str:
    """
    Fixture providing lsblk JSON output with the system disk and one USB stick.
    """
    return json.dumps({"blockdevices": [mock_system_disk, mock_usb_device]})


@pytest.fixture
def mock_lsblk_empty() -> str:
    """Fixture providing empty lsblk output (no devices)."""
    return json.dumps({"blockdevices": []})


# ==============================================================================
# Subprocess Mock Fixtures
# ==============================================================================


@pytest.fixture
def command_result() -> Callable[..., Mock]:
    """Fixture building fake subprocess.CompletedProcess objects."""

    def build(stdout: str = "", stderr: str = "", returncode: int = 0) -> Mock:
        result = Mock()
        result.stdout = stdout
        result.stderr = stderr
        result.returncode = returncode
        return result

    return build


@pytest.fixture
def mock_subprocess_failure(mocker) -> Mock:
    """
    Fixture providing a mock subprocess.run that always fails.
    """

    def raise_error(*args, **kwargs):
        raise subprocess.CalledProcessError(1, args[0], stderr="Access denied")

    return mocker.patch("subprocess.run", side_effect=raise_error)


# ==============================================================================
# Inventory Fixtures
# ==============================================================================


class FakeInventory:
    """In-memory disk inventory used in place of lsblk/PowerShell."""

    name = "fake"

    def __init__(self) -> None:
        self.fail_enumeration = False
        self._disks: list[DiskRecord] = []
        self._styles: dict[str, object] = {}
        self._partitions: dict[str, object] = {}

    def add_disk(
        self,
        *,
        index: int = 1,
        model: str = "SanDisk Cruzer",
        size_bytes: int = 16 * 1024**3,
        style: object = "GPT",
        partitions: Iterable[PartitionRecord] = (),
    ) -> DiskRecord:
        disk = DiskRecord(
            index=index,
            name=f"disk{index}",
            device_path=f"/dev/fake{index}",
            model=model,
            size_bytes=size_bytes,
        )
        self._disks.append(disk)
        self._styles[disk.name] = style
        self._partitions[disk.name] = partitions
        return disk

    def list_disks(self) -> list[DiskRecord]:
        if self.fail_enumeration:
            raise EnumerationError(self.name, "access denied")
        return list(self._disks)

    def get_partition_style(self, disk: DiskRecord) -> Optional[str]:
        style = self._styles[disk.name]
        if isinstance(style, Exception):
            raise style
        return style

    def list_partitions(self, disk: DiskRecord) -> list[PartitionRecord]:
        partitions = self._partitions[disk.name]
        if isinstance(partitions, Exception):
            raise partitions
        return list(partitions)


@pytest.fixture
def fake_inventory() -> FakeInventory:
    """Fixture providing an empty FakeInventory."""
    return FakeInventory()


@pytest.fixture
def probe_error() -> Callable[[str], ProbeError]:
    """Fixture building ProbeError instances for FakeInventory failures."""
    return lambda query: ProbeError("disk1", query, "device removed")


# ==============================================================================
# File System Fixtures
# ==============================================================================


@pytest.fixture
def make_volume(tmp_path) -> Callable[..., Path]:
    """
    Fixture creating a fake volume root under tmp_path.

    Args (of the returned function):
        name: Directory name for the volume
        files: Relative file paths to create (empty files)
        dirs: Relative directories to create
        texts: Mapping of relative path -> text content

    Returns:
        Path to the volume root.
    """

    def build(
        name: str = "volume",
        *,
        files: Iterable[str] = (),
        dirs: Iterable[str] = (),
        texts: Optional[Dict[str, str]] = None,
    ) -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for directory in dirs:
            (root / directory).mkdir(parents=True, exist_ok=True)
        for file_name in files:
            path = root / file_name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"")
        for file_name, text in (texts or {}).items():
            path = root / file_name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        return root

    return build


@pytest.fixture
def temp_settings_file(tmp_path) -> Path:
    """
    Fixture providing a temporary settings file path.
    """
    settings_dir = tmp_path / ".config" / "usb-deploy-helper"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "settings.json"
