"""Terminal rendering for the drive list and menus."""

from __future__ import annotations

from typing import Iterable, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from usb_deploy_helper.domain.models import RemovableDevice, RiskStatus, human_size


STATUS_STYLES = {
    RiskStatus.READY: "green",
    RiskStatus.WARNING: "bold yellow",
}


def _short_size(size_bytes: int) -> str:
    return human_size(size_bytes).replace(".0", "")


def build_device_table(devices: Sequence[RemovableDevice]) -> Table:
    table = Table(title="Removable drives")
    table.add_column("#", justify="right")
    table.add_column("Drive")
    table.add_column("Size", justify="right")
    table.add_column("Scheme", justify="center")
    table.add_column("Bootloader")
    table.add_column("Boot mode")
    table.add_column("Content")
    table.add_column("Status")
    for position, device in enumerate(devices, start=1):
        primary = device.primary_volume
        drive = device.model
        if primary is not None:
            drive = f"{drive} [{primary.mount_point}]"
        style = STATUS_STYLES[device.risk_status]
        table.add_row(
            str(position),
            escape(drive),
            _short_size(device.size_bytes),
            device.partition_style.value,
            escape(device.detected_bootloader.label),
            device.boot_capability.value,
            device.content_summary.label,
            f"[{style}]{device.risk_status.value}[/]",
        )
    return table


def render_device_table(console: Console, devices: Sequence[RemovableDevice]) -> None:
    if not devices:
        console.print("[yellow]No removable drives found.[/] Plug in a USB drive and rescan.")
        return
    console.print(build_device_table(devices))


def render_device_warnings(console: Console, device: RemovableDevice) -> None:
    console.print(f"[bold]{escape(device.format_label())}[/]")
    for warning in device.warnings:
        console.print(f"  [yellow]![/] {escape(warning)}")
    if device.iso_file_names:
        console.print("  ISO files: " + escape(", ".join(device.iso_file_names)))
    console.print(f"  {device.recommendation}")


def render_menu(console: Console, title: str, options: Iterable[tuple[str, str]]) -> None:
    console.print(f"\n[bold cyan]{title}[/]")
    for key, label in options:
        console.print(f"  [bold]{key}[/]  {label}")


def render_message(console: Console, message: str, *, style: str | None = None) -> None:
    text = escape(message)
    console.print(f"[{style}]{text}[/]" if style else text)


class ConsolePrompt:
    """Reads one line of operator input through the rich console."""

    def __init__(self, console: Console):
        self.console = console

    def __call__(self, prompt: str) -> str:
        return self.console.input(f"{prompt} ")
