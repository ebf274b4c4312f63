from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "USB_DEPLOY_HELPER_LOG_DIR",
        Path.home() / ".local" / "state" / "usb-deploy-helper" / "logs",
    )
)


def _should_log_probe(record) -> bool:
    """Filter per-path probe logs - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    # Always log problems
    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "probe" in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _should_log_probe(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    console_level: str | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    The interactive menu owns the terminal, so the console sink stays at
    WARNING unless --debug or --trace asks for more.

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (every path probe)
        log_dir: Custom log directory (defaults to ~/.local/state/usb-deploy-helper/logs)
        console_level: Explicit console level, overrides the debug/trace choice
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        resolved_console_level = "TRACE"
        file_level = "TRACE"
    elif debug:
        resolved_console_level = "DEBUG"
        file_level = "DEBUG"
    else:
        resolved_console_level = "WARNING"
        file_level = "INFO"
    if console_level is not None:
        resolved_console_level = console_level.upper()

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=resolved_console_level,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <15} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level=file_level,
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            filter=_combined_filter,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <15} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["usb", "probe"])
        source: Source component (e.g., "usb", "menu", "tools")
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking operations with automatic timing.

    Logs operation start, completion, and failure with duration tracking.

    Example:
        with operation_context("scan") as log:
            log.debug("Querying lsblk")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.
    """

    @staticmethod
    def for_usb() -> Logger:
        """Logger for USB device enumeration and classification."""
        return get_logger(source="usb", tags=["usb", "hardware"])

    @staticmethod
    def for_probe() -> Logger:
        """Logger for per-path volume probes (TRACE only on the console)."""
        return get_logger(source="probe", tags=["usb", "probe"])

    @staticmethod
    def for_menu() -> Logger:
        """Logger for menu navigation and operator input."""
        return get_logger(source="menu", tags=["ui", "menu"])

    @staticmethod
    def for_tools(tool: str | None = None) -> Logger:
        """Logger for tool download and launch."""
        return get_logger(source="tools", tags=["tools"]).bind(tool=tool or "-")

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, shutdown, config)."""
        return get_logger(source="system", tags=["system"])


class ThrottledLogger:
    """
    Logger wrapper that throttles high-frequency log events.

    Used for download progress, which would otherwise log every chunk.
    """

    def __init__(self, log: Logger, interval_seconds: float = 5.0):
        self.log = log
        self.interval = interval_seconds
        self.last_log_time: dict[str, float] = {}

    def debug(self, key: str, message: str, **kwargs) -> None:
        self._throttled_log("DEBUG", key, message, **kwargs)

    def _throttled_log(self, level: str, key: str, message: str, **kwargs) -> None:
        now = time.time()
        last_time = self.last_log_time.get(key, 0)

        if now - last_time >= self.interval:
            log_method = getattr(self.log, level.lower())
            log_method(message, **kwargs)
            self.last_log_time[key] = now


class EventLogger:
    """
    Structured event logger using standardized schemas.
    """

    @staticmethod
    def log_device_classified(log: Logger, device, **extra) -> None:
        """Log the verdict for one scanned device."""
        log.info(
            f"Classified {device.device_path}: {device.risk_status.value}",
            event_type="device_classified",
            device_path=device.device_path,
            partition_style=device.partition_style.value,
            bootloader=device.detected_bootloader.label,
            boot_capability=device.boot_capability.value,
            content=device.content_summary.label,
            warning_count=len(device.warnings),
            **extra,
        )

    @staticmethod
    def log_tool_launched(log: Logger, tool: str, command: list[str], **extra) -> None:
        """Log an external tool launch."""
        log.info(
            f"Launching {tool}",
            event_type="tool_launched",
            tool=tool,
            command=command,
            **extra,
        )
