"""Settings storage for application configuration.

The configuration is read once at startup into an AppConfig value that is
passed explicitly to whatever needs it. The drive classifier takes none.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from usb_deploy_helper.logging import LoggerFactory


SETTINGS_PATH = Path(
    os.environ.get(
        "USB_DEPLOY_HELPER_SETTINGS_PATH",
        Path.home() / ".config" / "usb-deploy-helper" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_TOOLS_DIR = str(Path.home() / ".local" / "share" / "usb-deploy-helper" / "tools")
DEFAULT_CONFIRMATION_TOKEN = "ERASE"
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 600
DEFAULT_RUFUS_URL = "https://github.com/pbatard/rufus/releases/download/v4.6/rufus-4.6p.exe"
DEFAULT_VENTOY_URL = (
    "https://github.com/ventoy/Ventoy/releases/download/v1.0.99/"
    "ventoy-1.0.99-windows.zip"
)

DEFAULT_SETTINGS: dict[str, Any] = {
    "tools_dir": DEFAULT_TOOLS_DIR,
    "rufus_url": DEFAULT_RUFUS_URL,
    "ventoy_url": DEFAULT_VENTOY_URL,
    "rufus_path": None,
    "ventoy_path": None,
    "confirmation_token": DEFAULT_CONFIRMATION_TOKEN,
    "download_timeout_seconds": DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
}

log = LoggerFactory.for_system()


@dataclass(frozen=True)
class AppConfig:
    tools_dir: str = DEFAULT_TOOLS_DIR
    rufus_url: str = DEFAULT_RUFUS_URL
    ventoy_url: str = DEFAULT_VENTOY_URL
    rufus_path: str | None = None
    ventoy_path: str | None = None
    confirmation_token: str = DEFAULT_CONFIRMATION_TOKEN
    download_timeout_seconds: int = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS

    @property
    def tools_path(self) -> Path:
        return Path(self.tools_dir).expanduser()

    def get(self, key: str, default: Any | None = None) -> Any:
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        """Build a config from a settings dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = dict(DEFAULT_SETTINGS)
        values.update({key: value for key, value in data.items() if key in known})
        if not values.get("confirmation_token"):
            values["confirmation_token"] = DEFAULT_CONFIRMATION_TOKEN
        return cls(**values)


def load_config(path: Path | None = None) -> AppConfig:
    settings_path = path or SETTINGS_PATH
    if not settings_path.exists():
        return AppConfig.from_dict({})
    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        log.warning(f"Ignoring unreadable settings file {settings_path}: {error}")
        return AppConfig.from_dict({})
    if not isinstance(data, dict):
        log.warning(f"Ignoring settings file {settings_path}: expected a JSON object")
        return AppConfig.from_dict({})
    return AppConfig.from_dict(data)


def save_config(config: AppConfig, path: Path | None = None) -> Path:
    settings_path = path or SETTINGS_PATH
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(
        json.dumps(asdict(config), indent=2, sort_keys=True),
        encoding="utf-8",
    )
    return settings_path
