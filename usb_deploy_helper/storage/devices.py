"""Removable disk enumeration backends.

This module talks to the platform's disk inventory and returns plain records
describing each removable disk and its partitions. It does no classification;
that happens in the scanner once the records are in hand.

Backends:
    LsblkInventory (Linux):
        One lsblk call with JSON output provides disks, partitions, partition
        table type, GPT partition type GUIDs and mountpoints. Disks count as
        removable when lsblk reports ``tran == "usb"`` or ``rm`` set, and any
        disk holding /, /boot or /boot/firmware is always skipped.

    PowerShellInventory (Windows):
        Get-Disk filtered to BusType USB for the disk list, then per disk a
        partition-style query and a Get-Partition/Get-Volume query. Output is
        requested as JSON via ConvertTo-Json.

Every backend exposes the same three calls:
    - list_disks(): all removable disks; raises EnumerationError
    - get_partition_style(disk): native partition table value; raises ProbeError
    - list_partitions(disk): partitions with mounted volume; raises ProbeError

Implementation Notes:
    - Commands run through run_command(), which logs each invocation
    - ConvertTo-Json emits a bare object instead of a list for a single
      result, and nothing at all for no results; parse_powershell_json()
      normalizes both cases
"""

from __future__ import annotations

import json
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from usb_deploy_helper.logging import LoggerFactory

from .exceptions import EnumerationError, ProbeError


ROOT_MOUNTPOINTS = {"/", "/boot", "/boot/firmware"}
LSBLK_COLUMNS = "NAME,TYPE,SIZE,MODEL,VENDOR,TRAN,RM,MOUNTPOINT,FSTYPE,LABEL,PTTYPE,PARTTYPE"
POWERSHELL = ["powershell", "-NoProfile", "-NonInteractive", "-Command"]

log = LoggerFactory.for_usb()


@dataclass(frozen=True)
class PartitionRecord:
    number: int
    type_id: Optional[str] = None  # GPT type GUID, or MBR type such as "0xc"
    mount_point: Optional[str] = None
    label: Optional[str] = None
    file_system: Optional[str] = None


@dataclass(frozen=True)
class DiskRecord:
    index: int
    name: str  # e.g., "sdb" or "PhysicalDrive1"
    device_path: str
    model: str
    size_bytes: int
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class DiskInventory(Protocol):
    name: str

    def list_disks(self) -> list[DiskRecord]:
        ...

    def get_partition_style(self, disk: DiskRecord) -> Optional[str]:
        ...

    def list_partitions(self, disk: DiskRecord) -> list[PartitionRecord]:
        ...


def run_command(command, check=True, log_output=True, log_command=True):
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(command, check=check, text=True, capture_output=True)
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            log.debug(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        log.debug(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    return result


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _is_flag_set(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true"}
    return bool(value)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).replace("\x00", "").strip()
    return text or None


# ==============================================================================
# lsblk backend
# ==============================================================================


def get_children(device: dict) -> list[dict]:
    return device.get("children", []) or []


def has_root_mountpoint(device: dict) -> bool:
    mountpoint = device.get("mountpoint")
    if mountpoint in ROOT_MOUNTPOINTS:
        return True
    for child in get_children(device):
        if has_root_mountpoint(child):
            return True
    return False


def is_root_device(device: dict) -> bool:
    if device.get("type") != "disk":
        return False
    return has_root_mountpoint(device)


def is_removable_disk(device: dict) -> bool:
    if device.get("type") != "disk":
        return False
    if is_root_device(device):
        return False
    return device.get("tran") == "usb" or _is_flag_set(device.get("rm"))


class LsblkInventory:
    name = "lsblk"

    def list_disks(self) -> list[DiskRecord]:
        try:
            result = run_command(
                ["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS],
                log_output=False,
            )
            data = json.loads(result.stdout)
        except FileNotFoundError as error:
            raise EnumerationError(self.name, f"lsblk not available: {error}") from error
        except subprocess.CalledProcessError as error:
            reason = (error.stderr or "").strip() or f"exit status {error.returncode}"
            raise EnumerationError(self.name, reason) from error
        except json.JSONDecodeError as error:
            raise EnumerationError(self.name, f"invalid JSON output: {error}") from error

        if not isinstance(data, dict):
            raise EnumerationError(self.name, "unexpected output shape")

        disks = [device for device in data.get("blockdevices", []) or [] if device.get("type") == "disk"]
        records = []
        for index, device in enumerate(disks):
            if not is_removable_disk(device):
                continue
            name = device.get("name") or ""
            vendor = _clean(device.get("vendor"))
            model = _clean(device.get("model"))
            model_label = " ".join(part for part in (vendor, model) if part) or "USB Drive"
            records.append(
                DiskRecord(
                    index=index,
                    name=name,
                    device_path=f"/dev/{name}",
                    model=model_label,
                    size_bytes=_as_int(device.get("size")),
                    raw=device,
                )
            )
        log.debug(f"lsblk reported {len(records)} removable disk(s)")
        return records

    def get_partition_style(self, disk: DiskRecord) -> Optional[str]:
        pttype = _clean(disk.raw.get("pttype"))
        if pttype is None and disk.raw.get("fstype"):
            # Filesystem written straight onto the disk, no partition table
            return "superfloppy"
        return pttype

    def list_partitions(self, disk: DiskRecord) -> list[PartitionRecord]:
        partitions = []
        children = [child for child in get_children(disk.raw) if child.get("type") == "part"]
        for number, child in enumerate(children, start=1):
            partitions.append(
                PartitionRecord(
                    number=number,
                    type_id=_clean(child.get("parttype")),
                    mount_point=_clean(child.get("mountpoint")),
                    label=_clean(child.get("label")),
                    file_system=_clean(child.get("fstype")),
                )
            )
        if not children and disk.raw.get("mountpoint"):
            partitions.append(
                PartitionRecord(
                    number=0,
                    mount_point=_clean(disk.raw.get("mountpoint")),
                    label=_clean(disk.raw.get("label")),
                    file_system=_clean(disk.raw.get("fstype")),
                )
            )
        return partitions


# ==============================================================================
# PowerShell backend
# ==============================================================================


DISK_LIST_SCRIPT = """
Get-Disk | Where-Object { $_.BusType -eq 'USB' } |
    Select-Object Number, FriendlyName, Size |
    ConvertTo-Json -Compress
"""

PARTITION_STYLE_SCRIPT = """
[string](Get-Disk -Number {number} -ErrorAction Stop).PartitionStyle
"""

PARTITION_LIST_SCRIPT = """
Get-Partition -DiskNumber {number} -ErrorAction Stop | ForEach-Object {{
    $volume = $_ | Get-Volume -ErrorAction SilentlyContinue
    [pscustomobject]@{{
        PartitionNumber = $_.PartitionNumber
        GptType = $_.GptType
        MbrType = $_.MbrType
        DriveLetter = [string]$_.DriveLetter
        AccessPaths = $_.AccessPaths
        FileSystemLabel = $volume.FileSystemLabel
        FileSystem = $volume.FileSystem
    }}
}} | ConvertTo-Json -Compress
"""


def parse_powershell_json(output: str) -> list[dict]:
    """Parse ConvertTo-Json output into a list of objects."""
    text = (output or "").strip()
    if not text:
        return []
    data = json.loads(text)
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    raise ValueError(f"unexpected PowerShell JSON value: {type(data).__name__}")


def _windows_mount_point(partition: dict) -> Optional[str]:
    letter = _clean(partition.get("DriveLetter"))
    if letter:
        return f"{letter[0].upper()}:\\"
    for path in partition.get("AccessPaths") or []:
        path = _clean(path)
        if path and not path.startswith("\\\\?\\Volume"):
            return path
    return None


class PowerShellInventory:
    name = "powershell"

    def _run_script(self, script: str):
        return run_command([*POWERSHELL, script], log_output=False)

    def list_disks(self) -> list[DiskRecord]:
        try:
            result = self._run_script(DISK_LIST_SCRIPT)
            disks = parse_powershell_json(result.stdout)
        except FileNotFoundError as error:
            raise EnumerationError(self.name, f"PowerShell not available: {error}") from error
        except subprocess.CalledProcessError as error:
            reason = (error.stderr or "").strip() or f"exit status {error.returncode}"
            raise EnumerationError(self.name, reason) from error
        except ValueError as error:
            raise EnumerationError(self.name, f"invalid JSON output: {error}") from error

        records = []
        for disk in disks:
            number = _as_int(disk.get("Number"), default=-1)
            if number < 0:
                log.warning(f"Skipping disk without a number: {disk}")
                continue
            records.append(
                DiskRecord(
                    index=number,
                    name=f"PhysicalDrive{number}",
                    device_path=f"\\\\.\\PhysicalDrive{number}",
                    model=_clean(disk.get("FriendlyName")) or "USB Drive",
                    size_bytes=_as_int(disk.get("Size")),
                    raw=disk,
                )
            )
        log.debug(f"Get-Disk reported {len(records)} USB disk(s)")
        return records

    def get_partition_style(self, disk: DiskRecord) -> Optional[str]:
        try:
            result = self._run_script(PARTITION_STYLE_SCRIPT.format(number=disk.index))
        except (OSError, subprocess.CalledProcessError) as error:
            raise ProbeError(disk.name, "partition style", str(error)) from error
        return _clean(result.stdout)

    def list_partitions(self, disk: DiskRecord) -> list[PartitionRecord]:
        try:
            result = self._run_script(PARTITION_LIST_SCRIPT.format(number=disk.index))
            partitions = parse_powershell_json(result.stdout)
        except (OSError, subprocess.CalledProcessError, ValueError) as error:
            raise ProbeError(disk.name, "partition list", str(error)) from error

        records = []
        for partition in partitions:
            type_id = _clean(partition.get("GptType"))
            if type_id is None and partition.get("MbrType") is not None:
                type_id = hex(_as_int(partition.get("MbrType")))
            records.append(
                PartitionRecord(
                    number=_as_int(partition.get("PartitionNumber")),
                    type_id=type_id,
                    mount_point=_windows_mount_point(partition),
                    label=_clean(partition.get("FileSystemLabel")),
                    file_system=_clean(partition.get("FileSystem")),
                )
            )
        return records


def default_inventory() -> DiskInventory:
    if sys.platform.startswith("win"):
        return PowerShellInventory()
    return LsblkInventory()
