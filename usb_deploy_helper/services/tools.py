"""Download and launch of the external deployment tools.

Rufus ships as a single portable executable and is launched as-is; the
operator drives its window. Ventoy ships as an archive which this program
does not unpack: the operator points ``ventoy_path`` at the unpacked
Ventoy2Disk executable, which is then run in CLI mode against the chosen disk.

Downloads are a single streamed attempt into ``<name>.part`` that is renamed
once complete.
"""

from __future__ import annotations

import asyncio
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import aiohttp

from usb_deploy_helper.config.settings import AppConfig
from usb_deploy_helper.domain.models import RemovableDevice, human_size
from usb_deploy_helper.logging import (
    EventLogger,
    LoggerFactory,
    ThrottledLogger,
    operation_context,
)


DOWNLOAD_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int, Optional[int]], None]

log = LoggerFactory.for_tools()


class ToolError(Exception):
    """Base exception for tool download and launch errors."""

    pass


class ToolNotFoundError(ToolError):
    """The tool executable is not where the configuration says."""

    def __init__(self, tool: str, hint: str):
        self.tool = tool
        self.hint = hint
        super().__init__(f"{tool} not found: {hint}")


class ToolDownloadError(ToolError):
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Download of {url} failed: {reason}")


class ToolLaunchError(ToolError):
    def __init__(self, tool: str, reason: str):
        self.tool = tool
        self.reason = reason
        super().__init__(f"Could not launch {tool}: {reason}")


@dataclass(frozen=True)
class ToolInfo:
    key: str
    display_name: str
    url_setting: str
    path_setting: str
    is_archive: bool = False


TOOLS: dict[str, ToolInfo] = {
    "rufus": ToolInfo("rufus", "Rufus", "rufus_url", "rufus_path"),
    "ventoy": ToolInfo("ventoy", "Ventoy", "ventoy_url", "ventoy_path", is_archive=True),
}


def get_tool(name: str) -> ToolInfo:
    try:
        return TOOLS[name]
    except KeyError as error:
        raise ToolError(f"Unknown tool '{name}'") from error


def download_target(config: AppConfig, name: str) -> Path:
    """Where a tool's download is stored: tools_dir plus the URL's file name."""
    tool = get_tool(name)
    url = config.get(tool.url_setting)
    filename = Path(urlparse(url).path).name or f"{tool.key}.download"
    return config.tools_path / filename


def resolve_tool_path(config: AppConfig, name: str) -> Path:
    tool = get_tool(name)
    configured = config.get(tool.path_setting)
    if configured:
        path = Path(configured).expanduser()
        if path.is_file():
            return path
        raise ToolNotFoundError(tool.display_name, f"{tool.path_setting} points to missing file {path}")

    target = download_target(config, name)
    if tool.is_archive:
        raise ToolNotFoundError(
            tool.display_name,
            f"unpack {target.name} and set {tool.path_setting} in the settings file",
        )
    if target.is_file():
        return target
    raise ToolNotFoundError(tool.display_name, f"download it first (expected {target})")


def _discard_partial(partial: Path) -> None:
    try:
        partial.unlink(missing_ok=True)
    except OSError as error:
        # e.g. tools_dir is a regular file, so the .part path cannot exist
        log.debug(f"Could not remove {partial}: {error}")


async def download_file(
    url: str,
    destination: Path,
    *,
    timeout_seconds: int = 600,
    progress_callback: ProgressCallback | None = None,
) -> Path:
    """Stream ``url`` to ``destination``.

    Raises:
        ToolDownloadError: On HTTP errors, network errors, timeouts or
            local filesystem errors (bad tools_dir, disk full, permissions)
    """
    partial = destination.with_name(destination.name + ".part")
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    progress_log = ThrottledLogger(log, interval_seconds=2.0)
    written = 0

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as resp:
                if resp.status >= 400:
                    raise ToolDownloadError(url, f"HTTP {resp.status}")
                total = resp.content_length
                with partial.open("wb") as handle:
                    async for chunk in resp.content.iter_chunked(DOWNLOAD_CHUNK_SIZE):
                        handle.write(chunk)
                        written += len(chunk)
                        if progress_callback:
                            progress_callback(written, total)
                        progress_log.debug(url, f"Downloaded {human_size(written)}")
        partial.replace(destination)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        _discard_partial(partial)
        log.error(f"Network error downloading {url}: {e}")
        raise ToolDownloadError(url, str(e) or type(e).__name__) from e
    except ToolDownloadError:
        _discard_partial(partial)
        raise
    except OSError as e:
        _discard_partial(partial)
        log.error(f"Could not write {destination}: {e}")
        raise ToolDownloadError(url, str(e) or type(e).__name__) from e

    log.info(f"Downloaded {url} to {destination} ({human_size(written)})")
    return destination


def download_tool(
    config: AppConfig,
    name: str,
    progress_callback: ProgressCallback | None = None,
) -> Path:
    tool = get_tool(name)
    url = config.get(tool.url_setting)
    destination = download_target(config, name)
    with operation_context("download", tool=tool.key, url=url):
        return asyncio.run(
            download_file(
                url,
                destination,
                timeout_seconds=config.download_timeout_seconds,
                progress_callback=progress_callback,
            )
        )


def build_launch_command(
    name: str,
    tool_path: Path,
    device: RemovableDevice,
    *,
    platform: str | None = None,
) -> list[str]:
    platform = platform or sys.platform
    windows = platform.startswith("win")
    tool = get_tool(name)
    if tool.key == "rufus":
        if not windows:
            raise ToolLaunchError(tool.display_name, "Rufus only runs on Windows")
        return [str(tool_path)]
    if windows:
        return [str(tool_path), "VTOYCLI", "/I", f"/PhyDrive:{device.index}"]
    return [str(tool_path), "-i", device.device_path]


def launch_tool(command: list[str]) -> int:
    """Run a tool in the foreground and return its exit status."""
    try:
        result = subprocess.run(command, check=False)
    except OSError as error:
        raise ToolLaunchError(Path(command[0]).name, str(error)) from error
    return result.returncode


def deploy(config: AppConfig, name: str, device: RemovableDevice) -> int:
    """Launch ``name`` against ``device`` and return the tool's exit status."""
    tool = get_tool(name)
    with operation_context("deploy", tool=tool.key, device=device.device_path) as deploy_log:
        tool_path = resolve_tool_path(config, name)
        command = build_launch_command(name, tool_path, device)
        EventLogger.log_tool_launched(deploy_log, tool.display_name, command)
        returncode = launch_tool(command)
        if returncode != 0:
            deploy_log.warning(f"{tool.display_name} exited with status {returncode}")
        return returncode
