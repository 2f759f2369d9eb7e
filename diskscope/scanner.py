"""
Disk sizing engine for diskscope.
Measures directory trees with one batched `du` process, or with a recursive
walk where `du` is unavailable or a finer-grained pass is needed.
"""

import logging
import os
import shutil
import subprocess
import threading
from typing import Iterable, Iterator, Optional

from diskscope import config
from diskscope.errors import ProbeUnavailableError
from diskscope.models import DiskUsage

logger = logging.getLogger(__name__)

KB = 1024

# Directory suffixes treated as opaque packages: listed, never descended into.
BUNDLE_SUFFIXES = {
    ".app",
    ".appex",
    ".bundle",
    ".framework",
    ".kext",
    ".plugin",
    ".photoslibrary",
    ".musiclibrary",
    ".tvlibrary",
    ".xcarchive",
    ".xcodeproj",
    ".xcworkspace",
    ".pkg",
    ".mpkg",
    ".rtfd",
    ".imovielibrary",
    ".fcpbundle",
    ".logicx",
}


def _run(cmd: list[str], timeout: int = 30) -> Optional[str]:
    """Run a subprocess command and return stdout, or None on failure."""
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            errors="surrogateescape",  # undecodable names round-trip like os.scandir paths
            timeout=timeout,
        )
        return result.stdout
    except (subprocess.TimeoutExpired, OSError):
        return None


class CancelToken:
    """Cooperative cancellation flag shared between a coordinator and its workers."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_bundle(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in BUNDLE_SUFFIXES


class DirectoryEnumerator:
    """Recursive walker: skips hidden entries and does not descend into bundles."""

    def iter_files(
        self, path: str, cancel: Optional[CancelToken] = None
    ) -> Iterator[tuple[str, os.stat_result]]:
        """Yield (path, stat) for every regular file below path."""
        stack = [path]
        while stack:
            if cancel is not None and cancel.cancelled:
                return
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logger.debug(f"Skipping unreadable directory {current}: {e}")
                continue

            for entry in entries:
                if cancel is not None and cancel.cancelled:
                    return
                if is_hidden(entry.name):
                    continue
                try:
                    if entry.is_dir(follow_symlinks=False):
                        if not is_bundle(entry.name):
                            stack.append(entry.path)
                    elif entry.is_file(follow_symlinks=False):
                        yield entry.path, entry.stat(follow_symlinks=False)
                except OSError as e:
                    logger.debug(f"Skipping unreadable entry {entry.path}: {e}")
                    continue

    def size_of(self, path: str, cancel: Optional[CancelToken] = None) -> int:
        """Sum of regular-file sizes below path. Partial if cancelled, 0 if missing."""
        return sum(st.st_size for _, st in self.iter_files(path, cancel))


class SizeProbe:
    """Aggregate size measurement for one or many directory trees."""

    def sizes_of(self, paths: Iterable[str]) -> dict[str, int]:
        raise NotImplementedError

    def size_of(self, path: str) -> int:
        return self.sizes_of([path]).get(path, 0)


class DuSizeProbe(SizeProbe):
    """
    Sizes directories with a single `du -sk` process per batch.

    `du` reports allocated 1024-byte blocks, not the logical sum of file
    sizes, so results are block-rounded.
    """

    def __init__(self, executable: str = config.DU_EXECUTABLE, timeout: int = config.DU_TIMEOUT):
        self.executable = executable
        self.timeout = timeout

    def _output(self, paths: list[str]) -> str:
        out = _run([self.executable, "-sk", *paths], timeout=self.timeout)
        if out is None:
            raise ProbeUnavailableError(f"{self.executable} failed for {len(paths)} path(s)")
        return out

    def sizes_of(self, paths: Iterable[str]) -> dict[str, int]:
        paths = list(paths)
        if not paths:
            return {}
        try:
            out = self._output(paths)
        except ProbeUnavailableError as e:
            logger.warning(f"Size probe unavailable: {e}")
            return {}

        # du exits non-zero when any argument is missing but still reports the rest
        results: dict[str, int] = {}
        for line in out.splitlines():
            parts = line.split("\t", 1)
            if len(parts) != 2:
                continue
            try:
                results[parts[1]] = int(parts[0]) * KB
            except ValueError:
                continue
        return results


class WalkSizeProbe(SizeProbe):
    """SizeProbe substitute backed by DirectoryEnumerator (logical file sizes)."""

    def __init__(self, enumerator: Optional[DirectoryEnumerator] = None):
        self.enumerator = enumerator or DirectoryEnumerator()

    def sizes_of(self, paths: Iterable[str]) -> dict[str, int]:
        return {p: self.enumerator.size_of(p) for p in paths if os.path.isdir(p)}


def default_probe() -> SizeProbe:
    """Use du when it is installed, otherwise fall back to walking."""
    if shutil.which(config.DU_EXECUTABLE):
        return DuSizeProbe()
    logger.info(f"{config.DU_EXECUTABLE} not found, sizing by directory walk")
    return WalkSizeProbe()


def disk_overview(path: str = "/") -> DiskUsage:
    """Get usage of the volume holding path via `df -Pk`."""
    out = _run(["df", "-Pk", path])
    if not out:
        return DiskUsage()

    lines = out.strip().splitlines()
    if len(lines) < 2:
        return DiskUsage()

    # df -P fields: Filesystem 1024-blocks Used Available Capacity Mounted-on
    parts = lines[1].split()
    try:
        return DiskUsage(
            total=int(parts[1]) * KB,
            used=int(parts[2]) * KB,
            free=int(parts[3]) * KB,
        )
    except (IndexError, ValueError):
        return DiskUsage()
