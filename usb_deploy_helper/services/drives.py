"""Drive selection with a confirmation gate for drives that hold data.

The selection loop owns the scan result it shows. A rescan throws the old
list away and scans again; nothing else ever refreshes it. Declining the
confirmation is a normal outcome that returns to the list.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from rich.console import Console

from usb_deploy_helper.domain.models import RemovableDevice, RiskStatus
from usb_deploy_helper.logging import LoggerFactory
from usb_deploy_helper.storage.scanner import scan_removable_devices
from usb_deploy_helper.ui import console as console_ui


RESCAN_KEY = "r"
QUIT_KEY = "q"

Scanner = Callable[[], Sequence[RemovableDevice]]
Prompt = Callable[[str], str]

log = LoggerFactory.for_menu()


def pick_device(devices: Sequence[RemovableDevice], choice: str) -> Optional[RemovableDevice]:
    """Map a 1-based list position typed by the operator to a device."""
    try:
        position = int(choice)
    except ValueError:
        return None
    if position < 1 or position > len(devices):
        return None
    return devices[position - 1]


def confirm_destructive_use(
    device: RemovableDevice,
    *,
    prompt: Prompt,
    console: Console,
    confirmation_token: str,
) -> bool:
    """Ask for the exact confirmation token when the device carries warnings."""
    if device.risk_status is RiskStatus.READY:
        return True
    console_ui.render_device_warnings(console, device)
    answer = prompt(f"Type {confirmation_token} to erase this drive, anything else to go back:")
    if answer == confirmation_token:
        log.info(f"Operator confirmed erase of {device.device_path}")
        return True
    log.info(f"Operator cancelled selection of {device.device_path}")
    return False


def select_target_device(
    *,
    prompt: Prompt,
    console: Console,
    confirmation_token: str,
    scan: Scanner = scan_removable_devices,
) -> Optional[RemovableDevice]:
    """Run the interactive drive picker.

    Returns the chosen device, or None when the operator quits.

    Raises:
        EnumerationError: If a scan cannot query the platform inventory
    """
    devices = list(scan())
    while True:
        console_ui.render_device_table(console, devices)
        choice = prompt(
            f"Select a drive (1-{len(devices)}), {RESCAN_KEY.upper()} to rescan, "
            f"{QUIT_KEY.upper()} to go back:"
            if devices
            else f"{RESCAN_KEY.upper()} to rescan, {QUIT_KEY.upper()} to go back:"
        ).strip()

        if choice.lower() == QUIT_KEY:
            log.debug("Drive selection closed")
            return None
        if choice.lower() == RESCAN_KEY:
            log.debug("Rescan requested")
            devices = list(scan())
            continue

        device = pick_device(devices, choice)
        if device is None:
            console_ui.render_message(console, f"Invalid choice: {choice!r}", style="red")
            continue

        if confirm_destructive_use(
            device, prompt=prompt, console=console, confirmation_token=confirmation_token
        ):
            log.info(f"Selected {device.device_path} ({device.format_label()})")
            return device
        console_ui.render_message(console, "Selection cancelled.", style="yellow")
