from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from rich.console import Console

from usb_deploy_helper.__version__ import __version__
from usb_deploy_helper.config.settings import AppConfig, load_config, save_config
from usb_deploy_helper.logging import LoggerFactory, setup_logging
from usb_deploy_helper.services import drives, tools
from usb_deploy_helper.storage.exceptions import EnumerationError
from usb_deploy_helper.storage.scanner import scan_removable_devices
from usb_deploy_helper.ui import console as console_ui


EXIT_ENUMERATION_ERROR = 2

MAIN_MENU = (
    ("1", "Deploy with Rufus"),
    ("2", "Deploy with Ventoy"),
    ("3", "Show drives"),
    ("4", "Download tools"),
    ("q", "Quit"),
)
DEPLOY_CHOICES = {"1": "rufus", "2": "ventoy"}

log = LoggerFactory.for_system()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="usb-deploy-helper",
        description="Prepare a USB drive for Windows deployment",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log every file probe")
    parser.add_argument("--config", type=Path, help="Path to settings.json")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    parser.add_argument("--list", action="store_true", help="List removable drives and exit")
    parser.add_argument("--json", action="store_true", help="With --list, print JSON")
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Write the effective settings to the settings file and exit",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def list_drives(console: Console, *, as_json: bool = False) -> int:
    devices = scan_removable_devices()
    if as_json:
        print(json.dumps([device.to_dict() for device in devices], indent=2))
    else:
        console_ui.render_device_table(console, devices)
    return 0


def run_deploy(config: AppConfig, console: Console, prompt, tool_name: str) -> None:
    device = drives.select_target_device(
        prompt=prompt,
        console=console,
        confirmation_token=config.confirmation_token,
    )
    if device is None:
        return
    try:
        returncode = tools.deploy(config, tool_name, device)
    except tools.ToolError as error:
        console_ui.render_message(console, str(error), style="red")
        return
    if returncode == 0:
        console_ui.render_message(console, f"{tool_name.capitalize()} finished.", style="green")
    else:
        console_ui.render_message(
            console, f"{tool_name.capitalize()} exited with status {returncode}.", style="yellow"
        )


def run_downloads(config: AppConfig, console: Console) -> None:
    for name in tools.TOOLS:
        console_ui.render_message(console, f"Downloading {name}...")
        try:
            path = tools.download_tool(config, name)
        except tools.ToolError as error:
            console_ui.render_message(console, str(error), style="red")
            continue
        console_ui.render_message(console, f"Saved {path}", style="green")


def interactive_loop(config: AppConfig, console: Console, prompt) -> int:
    while True:
        console_ui.render_menu(console, "USB deployment helper", MAIN_MENU)
        choice = prompt("Choose an option:").strip().lower()
        if choice == "q":
            return 0
        if choice in DEPLOY_CHOICES:
            run_deploy(config, console, prompt, DEPLOY_CHOICES[choice])
        elif choice == "3":
            console_ui.render_device_table(console, scan_removable_devices())
        elif choice == "4":
            run_downloads(config, console)
        else:
            console_ui.render_message(console, f"Unknown option: {choice!r}", style="red")


def main(argv=None, *, console: Console | None = None, prompt=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    config = load_config(args.config)
    if console is None:
        console = Console()
    if prompt is None:
        prompt = console_ui.ConsolePrompt(console)
    log.info(f"usb-deploy-helper {__version__} starting")

    if args.save_config:
        path = save_config(config, args.config)
        console_ui.render_message(console, f"Settings written to {path}", style="green")
        return 0

    try:
        if args.list:
            return list_drives(console, as_json=args.json)
        return interactive_loop(config, console, prompt)
    except EnumerationError as error:
        log.error(str(error))
        console_ui.render_message(console, f"Cannot list drives: {error}", style="bold red")
        return EXIT_ENUMERATION_ERROR
    except (KeyboardInterrupt, EOFError):
        console_ui.render_message(console, "\nAborted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
