"""Custom exceptions for drive inventory operations.

Exception Hierarchy:
    StorageError (base)
        └── DeviceError
            ├── EnumerationError
            └── ProbeError

EnumerationError is fatal to a scan and reaches the caller. ProbeError only
ever describes a single device's sub-query; the scanner absorbs it and falls
back to a default value for the affected field.

Usage:
    from usb_deploy_helper.storage.exceptions import EnumerationError

    try:
        devices = scan_removable_devices()
    except EnumerationError as error:
        console.print(f"[red]{error}[/]")
"""


class StorageError(Exception):
    """Base exception for all storage operations."""


class DeviceError(StorageError):
    """Base exception for device-related errors."""


class EnumerationError(DeviceError):
    """The platform device inventory could not be queried."""

    def __init__(self, backend: str, reason: str):
        self.backend = backend
        self.reason = reason
        super().__init__(f"Device enumeration via {backend} failed: {reason}")


class ProbeError(DeviceError):
    """A per-device query failed (partition style, partition list, ...)."""

    def __init__(self, device_name: str, query: str, reason: str = ""):
        self.device_name = device_name
        self.query = query
        self.reason = reason
        msg = f"{query} query failed for {device_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
