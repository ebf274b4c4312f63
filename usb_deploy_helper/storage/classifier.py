"""Bootloader fingerprinting and risk classification rules.

Classification is split into small pure steps so each one can be tested
without a real disk:

    classify_volume()       probe results of one volume -> VolumeClassification
    select_device_result()  per-volume results -> the one the device reports
    fallback_boot_capability()  partition layout -> boot mode when no rule set it
    map_partition_style()   native partition table value -> PartitionStyle

Bootloader rules live in BOOTLOADER_RULES and are evaluated in order; the
first rule whose predicate matches decides the volume's bootloader. A volume
holding both a ``ventoy`` directory and ``bootmgr`` is therefore Ventoy.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

from usb_deploy_helper.domain.models import (
    BootCapability,
    Bootloader,
    BootloaderKind,
    ContentKind,
    ContentSummary,
    PartitionStyle,
    VolumeClassification,
)


EFI_SYSTEM_PARTITION_GUID = "c12a7328-f81f-11d2-ba4b-00a0c93ec93b"
VENTOY_VERSION_PATTERN = re.compile(r"Ventoy\s+(\d+\.\d+\.\d+)")

UEFI_BOOT_FILE = "efi/boot/bootx64.efi"
VENTOY_DIR = "ventoy"
VENTOY_GRUB_CONFIG = "grub/grub.cfg"
WINDOWS_BOOT_FILES = ("bootmgr.efi", "bootmgr")
WINDOWS_INSTALL_IMAGES = ("sources/install.wim", "sources/install.esd")
GRUB_DIR = "grub"

# Root entries each bootloader writes itself; they are not user data
VENTOY_ROOT_ENTRIES = ("ventoy", "grub", "efi", "tool")
WINDOWS_ROOT_ENTRIES = (
    "bootmgr",
    "bootmgr.efi",
    "boot",
    "efi",
    "sources",
    "support",
    "setup.exe",
    "autorun.inf",
)
UEFI_ROOT_ENTRIES = ("efi",)
GRUB_ROOT_ENTRIES = ("grub", "boot")

PARTITION_STYLE_MAP = {
    "gpt": PartitionStyle.GPT,
    "mbr": PartitionStyle.MBR,
    "dos": PartitionStyle.MBR,
    "raw": PartitionStyle.RAW,
    # Get-Disk enum values when they arrive unformatted
    "0": PartitionStyle.RAW,
    "1": PartitionStyle.MBR,
    "2": PartitionStyle.GPT,
}


class Probe(Protocol):
    def is_file(self, relative: str) -> bool:
        ...

    def is_dir(self, relative: str) -> bool:
        ...

    def read_text(self, relative: str) -> Optional[str]:
        ...

    def root_files(self, suffix: str) -> list[str]:
        ...

    def count_root_entries(self, exclude: Iterable[str] = ()) -> Optional[int]:
        ...


def overwrite_warning(bootloader: Bootloader) -> str:
    return f"{bootloader.label} detected - will be overwritten!"


def map_partition_style(native: Optional[str]) -> PartitionStyle:
    if native is None or not native.strip():
        return PartitionStyle.RAW
    return PARTITION_STYLE_MAP.get(native.strip().lower(), PartitionStyle.UNKNOWN)


def is_efi_system_partition(type_id: Optional[str]) -> bool:
    if not type_id:
        return False
    return type_id.strip().strip("{}").lower() == EFI_SYSTEM_PARTITION_GUID


def has_efi_system_partition(
    partition_style: PartitionStyle, type_ids: Iterable[Optional[str]]
) -> bool:
    if partition_style is not PartitionStyle.GPT:
        return False
    return any(is_efi_system_partition(type_id) for type_id in type_ids)


def extract_ventoy_version(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = VENTOY_VERSION_PATTERN.search(text)
    return match.group(1) if match else None


# ==============================================================================
# Bootloader rules
# ==============================================================================


@dataclass(frozen=True)
class BootloaderRule:
    """One fingerprint: a predicate over a volume and the result it produces."""

    name: str
    matches: Callable[[Probe], bool]
    build: Callable[[Probe, bool], VolumeClassification]
    root_entries: tuple[str, ...] = ()


def _build_ventoy(probe: Probe, has_esp: bool) -> VolumeClassification:
    bootloader = Bootloader.ventoy(extract_ventoy_version(probe.read_text(VENTOY_GRUB_CONFIG)))
    warnings = [overwrite_warning(bootloader)]
    content = None
    iso_files = tuple(probe.root_files(".iso"))
    if iso_files:
        content = ContentSummary.iso_files(len(iso_files))
        warnings.append(f"{len(iso_files)} ISO file(s) found on drive - will be erased!")
    # Ventoy sets no boot mode of its own; the partition layout decides it later
    return VolumeClassification(
        bootloader=bootloader,
        content=content,
        warnings=tuple(warnings),
        iso_file_names=iso_files,
    )


def _matches_windows(probe: Probe) -> bool:
    return any(probe.is_file(name) for name in WINDOWS_BOOT_FILES)


def _build_windows(probe: Probe, has_esp: bool) -> VolumeClassification:
    bootloader = Bootloader(BootloaderKind.WINDOWS)
    uefi = has_esp or probe.is_file(UEFI_BOOT_FILE)
    warnings = [overwrite_warning(bootloader)]
    content = None
    install_image = next((path for path in WINDOWS_INSTALL_IMAGES if probe.is_file(path)), None)
    if install_image is not None:
        content = ContentSummary(ContentKind.WINDOWS_INSTALLATION_MEDIA)
        warnings.append(f"Windows installation media found ({install_image}) - will be erased!")
    return VolumeClassification(
        bootloader=bootloader,
        boot_capability=BootCapability.UEFI if uefi else BootCapability.BIOS,
        content=content,
        warnings=tuple(warnings),
    )


def _build_generic_uefi(probe: Probe, has_esp: bool) -> VolumeClassification:
    bootloader = Bootloader(BootloaderKind.GENERIC_UEFI)
    return VolumeClassification(
        bootloader=bootloader,
        boot_capability=BootCapability.UEFI,
        warnings=(overwrite_warning(bootloader),),
    )


def _build_grub(probe: Probe, has_esp: bool) -> VolumeClassification:
    bootloader = Bootloader(BootloaderKind.LINUX_GRUB)
    return VolumeClassification(
        bootloader=bootloader,
        boot_capability=BootCapability.UEFI_OR_BIOS_MULTIBOOT,
        warnings=(overwrite_warning(bootloader),),
    )


BOOTLOADER_RULES: tuple[BootloaderRule, ...] = (
    BootloaderRule(
        "ventoy", lambda probe: probe.is_dir(VENTOY_DIR), _build_ventoy, VENTOY_ROOT_ENTRIES
    ),
    BootloaderRule("windows", _matches_windows, _build_windows, WINDOWS_ROOT_ENTRIES),
    BootloaderRule(
        "generic-uefi",
        lambda probe: probe.is_file(UEFI_BOOT_FILE),
        _build_generic_uefi,
        UEFI_ROOT_ENTRIES,
    ),
    BootloaderRule("grub", lambda probe: probe.is_dir(GRUB_DIR), _build_grub, GRUB_ROOT_ENTRIES),
)


def match_bootloader(
    probe: Probe,
    *,
    has_efi_system_partition: bool = False,
    rules: Iterable[BootloaderRule] = BOOTLOADER_RULES,
) -> Optional[VolumeClassification]:
    """Return the result of the first matching rule, or None."""
    rule = first_matching_rule(probe, rules)
    if rule is None:
        return None
    return rule.build(probe, has_efi_system_partition)


def first_matching_rule(
    probe: Probe, rules: Iterable[BootloaderRule] = BOOTLOADER_RULES
) -> Optional[BootloaderRule]:
    for rule in rules:
        if rule.matches(probe):
            return rule
    return None


def classify_volume(
    probe: Probe,
    *,
    mount_point: str,
    has_efi_system_partition: bool = False,
    rules: Iterable[BootloaderRule] = BOOTLOADER_RULES,
) -> VolumeClassification:
    """Fingerprint one volume and summarize its content.

    The result always carries a content summary. Boot capability stays
    UNKNOWN unless a bootloader rule decided it. Root entries the matched
    bootloader owns are left out of the content count.
    """
    rule = first_matching_rule(probe, rules)
    if rule is None:
        result = VolumeClassification()
    else:
        result = rule.build(probe, has_efi_system_partition)
    if result.content is not None:
        return result

    warnings = list(result.warnings)
    entries = probe.count_root_entries(exclude=rule.root_entries if rule else ())
    if entries is None:
        content = ContentSummary(ContentKind.OTHER)
        warnings.append(f"Could not inspect contents of {mount_point} - treat as in use!")
    elif entries == 0:
        content = ContentSummary(ContentKind.EMPTY)
    else:
        content = ContentSummary(ContentKind.OTHER)
        warnings.append(f"Existing data found on {mount_point} ({entries} items)")
    return VolumeClassification(
        bootloader=result.bootloader,
        boot_capability=result.boot_capability,
        content=content,
        warnings=tuple(warnings),
        iso_file_names=result.iso_file_names,
    )


def select_device_result(
    volumes: Iterable[VolumeClassification],
) -> Optional[VolumeClassification]:
    """Pick the classification a device reports.

    The first volume with a bootloader wins. Without one, the first volume
    with content other than EMPTY wins, then simply the first volume.
    """
    volumes = list(volumes)
    if not volumes:
        return None
    for volume in volumes:
        if volume.bootloader.detected:
            return volume
    for volume in volumes:
        if volume.content is not None and volume.content.kind is not ContentKind.EMPTY:
            return volume
    return volumes[0]


def fallback_boot_capability(
    partition_style: PartitionStyle, has_efi_system_partition: bool
) -> BootCapability:
    if partition_style is PartitionStyle.GPT:
        if has_efi_system_partition:
            return BootCapability.UEFI_CAPABLE_UNFORMATTED
        return BootCapability.NOT_FORMATTED
    if partition_style is PartitionStyle.MBR:
        return BootCapability.BIOS_CAPABLE
    if partition_style is PartitionStyle.RAW:
        return BootCapability.NOT_FORMATTED
    return BootCapability.UNKNOWN
