"""Read-only file probes scoped to a mounted volume root.

Removable media is usually FAT32 or exFAT, where the same file may show up as
``EFI/BOOT/BOOTX64.EFI`` or ``efi/boot/bootx64.efi`` depending on who wrote
it. Lookups therefore fall back to a case-insensitive match per path component
when the exact name does not exist.

Probe failures (permission errors, a drive pulled mid-scan) never raise: a
path that cannot be checked is reported as absent and logged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from usb_deploy_helper.logging import LoggerFactory


# Platform housekeeping entries that do not count as user content
IGNORED_ROOT_ENTRIES = {
    "system volume information",
    "$recycle.bin",
    "lost+found",
    ".trashes",
    ".fseventsd",
    ".spotlight-v100",
}

MAX_TEXT_BYTES = 64 * 1024

log = LoggerFactory.for_probe()


class VolumeProbe:
    """File existence and small text reads relative to a volume root."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"VolumeProbe({str(self.root)!r})"

    def _resolve(self, relative: str) -> Optional[Path]:
        current = self.root
        for part in relative.replace("\\", "/").split("/"):
            if not part:
                continue
            candidate = current / part
            if candidate.exists():
                current = candidate
                continue
            if not current.is_dir():
                return None
            wanted = part.casefold()
            match = None
            for entry in current.iterdir():
                if entry.name.casefold() == wanted:
                    match = entry
                    break
            if match is None:
                return None
            current = match
        return current

    def _lookup(self, relative: str) -> Optional[Path]:
        try:
            path = self._resolve(relative)
        except OSError as error:
            log.warning(f"Probe of {relative} under {self.root} failed: {error}")
            return None
        log.trace(f"{self.root}: {relative} -> {'found' if path else 'missing'}")
        return path

    def is_file(self, relative: str) -> bool:
        path = self._lookup(relative)
        try:
            return path is not None and path.is_file()
        except OSError:
            return False

    def is_dir(self, relative: str) -> bool:
        path = self._lookup(relative)
        try:
            return path is not None and path.is_dir()
        except OSError:
            return False

    def read_text(self, relative: str, limit: int = MAX_TEXT_BYTES) -> Optional[str]:
        """Return up to ``limit`` bytes of a text file, or None if unreadable."""
        path = self._lookup(relative)
        if path is None:
            return None
        try:
            with path.open("rb") as handle:
                data = handle.read(limit)
        except OSError as error:
            log.warning(f"Could not read {path}: {error}")
            return None
        return data.decode("utf-8", errors="ignore")

    def root_files(self, suffix: str) -> list[str]:
        """Names of files directly under the root ending in ``suffix``, sorted."""
        wanted = suffix.casefold()
        try:
            names = [
                entry.name
                for entry in self.root.iterdir()
                if entry.is_file() and entry.name.casefold().endswith(wanted)
            ]
        except OSError as error:
            log.warning(f"Could not list {self.root}: {error}")
            return []
        return sorted(names, key=str.casefold)

    def count_root_entries(self, exclude: Iterable[str] = ()) -> Optional[int]:
        """Number of user-visible root entries, or None if the root is unreadable.

        Names in ``exclude`` are skipped case-insensitively, on top of the
        platform housekeeping entries.
        """
        skipped = IGNORED_ROOT_ENTRIES | {name.casefold() for name in exclude}
        try:
            return sum(1 for entry in self.root.iterdir() if entry.name.casefold() not in skipped)
        except OSError as error:
            log.warning(f"Could not list {self.root}: {error}")
            return None
