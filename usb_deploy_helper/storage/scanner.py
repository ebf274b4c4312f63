"""Removable drive scan: inventory, probes and classification per device.

scan_removable_devices() is the one entry point the menu and deployment code
use. Each call builds a brand new list of RemovableDevice records; nothing is
cached between scans.

Per device, the pipeline runs sequentially:
    1. partition style (ProbeError -> UNKNOWN)
    2. partition list and mounted volumes (ProbeError -> no partitions)
    3. EFI System Partition check, GPT only
    4. bootloader/content classification of every mounted volume
    5. boot capability fallback from the partition layout

A RAW disk skips steps 4 and 5's bootloader input entirely: it is reported
as unformatted with no warnings whatever files a stale mount may still show.

Failures of one device never affect its siblings. Only an EnumerationError
from the inventory itself aborts the scan.
"""

from __future__ import annotations

from typing import Callable, Optional

from usb_deploy_helper.domain.models import (
    BootCapability,
    Bootloader,
    ContentKind,
    ContentSummary,
    MountedVolume,
    PartitionStyle,
    RemovableDevice,
)
from usb_deploy_helper.logging import EventLogger, LoggerFactory, operation_context

from . import classifier
from .devices import DiskInventory, DiskRecord, PartitionRecord, default_inventory
from .exceptions import ProbeError
from .probe import VolumeProbe


ProbeFactory = Callable[[str], classifier.Probe]

log = LoggerFactory.for_usb()


def _query_partition_style(inventory: DiskInventory, disk: DiskRecord) -> PartitionStyle:
    try:
        native = inventory.get_partition_style(disk)
    except (ProbeError, OSError) as error:
        log.warning(f"{disk.device_path}: partition style unavailable, using Unknown ({error})")
        return PartitionStyle.UNKNOWN
    style = classifier.map_partition_style(native)
    log.debug(f"{disk.device_path}: partition style {native!r} -> {style.value}")
    return style


def _query_partitions(inventory: DiskInventory, disk: DiskRecord) -> list[PartitionRecord]:
    try:
        return inventory.list_partitions(disk)
    except (ProbeError, OSError) as error:
        log.warning(f"{disk.device_path}: partition list unavailable ({error})")
        return []


def _mounted_volumes(partitions: list[PartitionRecord]) -> tuple[MountedVolume, ...]:
    return tuple(
        MountedVolume(
            mount_point=partition.mount_point,
            label=partition.label,
            file_system=partition.file_system,
        )
        for partition in partitions
        if partition.mount_point
    )


def classify_disk(
    inventory: DiskInventory,
    disk: DiskRecord,
    probe_factory: ProbeFactory = VolumeProbe,
) -> RemovableDevice:
    """Build the RemovableDevice record for one inventory disk."""
    partition_style = _query_partition_style(inventory, disk)
    partitions = _query_partitions(inventory, disk)
    has_esp = classifier.has_efi_system_partition(
        partition_style, (partition.type_id for partition in partitions)
    )
    volumes = _mounted_volumes(partitions)

    bootloader = Bootloader.none()
    boot_capability = BootCapability.UNKNOWN
    content = ContentSummary(ContentKind.UNFORMATTED)
    iso_file_names: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    if partition_style is not PartitionStyle.RAW and volumes:
        results = [
            classifier.classify_volume(
                probe_factory(volume.mount_point),
                mount_point=volume.mount_point,
                has_efi_system_partition=has_esp,
            )
            for volume in volumes
        ]
        selected = classifier.select_device_result(results)
        if selected is not None:
            bootloader = selected.bootloader
            boot_capability = selected.boot_capability
            content = selected.content or content
            iso_file_names = selected.iso_file_names
            warnings = selected.warnings

    if boot_capability is BootCapability.UNKNOWN:
        boot_capability = classifier.fallback_boot_capability(partition_style, has_esp)

    return RemovableDevice(
        index=disk.index,
        device_path=disk.device_path,
        model=disk.model,
        size_bytes=disk.size_bytes,
        partition_style=partition_style,
        partition_count=len(partitions),
        has_efi_system_partition=has_esp,
        mounted_volumes=volumes,
        detected_bootloader=bootloader,
        boot_capability=boot_capability,
        content_summary=content,
        iso_file_names=iso_file_names,
        warnings=warnings,
    )


def scan_removable_devices(
    inventory: Optional[DiskInventory] = None,
    *,
    probe_factory: ProbeFactory = VolumeProbe,
) -> list[RemovableDevice]:
    """Enumerate and classify every attached removable disk.

    Returns an empty list when nothing is attached.

    Raises:
        EnumerationError: If the platform inventory cannot be queried
    """
    inventory = inventory or default_inventory()
    with operation_context("scan", backend=inventory.name) as scan_log:
        disks = inventory.list_disks()
        devices = []
        for disk in disks:
            device = classify_disk(inventory, disk, probe_factory)
            EventLogger.log_device_classified(scan_log, device)
            devices.append(device)
        scan_log.info(f"Found {len(devices)} removable device(s)")
    return devices
