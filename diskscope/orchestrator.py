"""
Scan coordinator.

Fans out one worker per category, then applies each result in the calling
thread as it arrives, so category state has a single writer. Also runs the
deadline-bounded largest-files sweep and per-category reloads where the
most recent selection wins.
"""

import enum
import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from datetime import datetime
from typing import Callable, Iterator, Optional

from send2trash import send2trash

from diskscope import config
from diskscope.access import AccessBroker
from diskscope.cache import ResultCache
from diskscope.categories import build_catalog, largest_file_roots
from diskscope.errors import AccessDeniedError
from diskscope.models import Category, Item, ScanProgress
from diskscope.scanner import CancelToken, DirectoryEnumerator, SizeProbe, default_probe, is_hidden

logger = logging.getLogger(__name__)

# OS-protected cache directories that fail or stall when read.
RESTRICTED_NAMES = frozenset({
    "com.apple.findmy.fmipcore",
    "com.apple.HomeKit",
    "com.apple.CloudKit",
    "com.apple.ap.adprivacyd",
    "com.apple.homed",
    "com.apple.Music",
    "FamilyCircle",
})

LARGEST_FILES_LABEL = "Finding Largest Files..."


class ScanState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"


def _mtime(st: os.stat_result) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(st.st_mtime)
    except (OverflowError, OSError, ValueError):
        return None


class ScanOrchestrator:
    def __init__(
        self,
        broker: AccessBroker,
        cache: ResultCache,
        probe: Optional[SizeProbe] = None,
        enumerator: Optional[DirectoryEnumerator] = None,
        item_limit: int = config.ITEM_LIMIT,
        settle_delay: float = config.SETTLE_DELAY,
    ):
        self.broker = broker
        self.cache = cache
        self.probe = probe or default_probe()
        self.enumerator = enumerator or DirectoryEnumerator()
        self.item_limit = item_limit
        self.settle_delay = settle_delay

        self.state = ScanState.IDLE
        self.categories: list[Category] = build_catalog(broker.current_root)
        self.progress = 0.0
        self.current_label: Optional[str] = None
        self.largest_files: list[Item] = []
        self.access_required = False

        self.selected_category_id: Optional[str] = None
        self.current_items: list[Item] = []
        self.is_loading_items = False
        self._selection_token: Optional[CancelToken] = None
        self._lock = threading.Lock()
        self._reload_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="diskscope-reload")

    # ─── Catalog & cache ─────────────────────────────────────────────────────

    def rebuild_catalog(self) -> list[Category]:
        """Rebuild categories for the broker's current root (e.g. after a new grant)."""
        with self._lock:
            self.categories = build_catalog(self.broker.current_root)
        return self.categories

    def load_cached(self) -> bool:
        """Seed the catalog from the persisted snapshot. True if the cache is valid."""
        with self._lock:
            self.categories = self.cache.load(build_catalog(self.broker.current_root))
        return self.has_valid_cache

    @property
    def last_scan_date(self) -> Optional[datetime]:
        return self.cache.last_scan_date

    @property
    def has_valid_cache(self) -> bool:
        return self.cache.is_valid(self.categories, self.cache.last_scan_date)

    def category(self, category_id: str) -> Optional[Category]:
        for c in self.categories:
            if c.id == category_id:
                return c
        return None

    # ─── Per-category listing ────────────────────────────────────────────────

    def list_items(
        self,
        category: Category,
        limit: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[Item]:
        """List and size the immediate children of a category path, largest first."""
        limit = self.item_limit if limit is None else limit
        path = category.root_path
        if not os.path.isdir(path):
            return []
        if not os.access(path, os.R_OK | os.X_OK):
            raise AccessDeniedError(path)

        try:
            with os.scandir(path) as it:
                entries = [e for e in it if not is_hidden(e.name) and e.name not in RESTRICTED_NAMES]
        except PermissionError as e:
            raise AccessDeniedError(path) from e
        entries.sort(key=lambda e: e.name)
        entries = entries[:limit]

        dirs, files = [], []
        for entry in entries:
            try:
                st = entry.stat(follow_symlinks=False)
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {entry.path}: {e}")
                continue
            (dirs if is_dir else files).append((entry, st))

        if cancel is not None and cancel.cancelled:
            return []

        # One batched probe for every child directory of this category
        dir_sizes = self.probe.sizes_of([e.path for e, _ in dirs]) if dirs else {}

        items = [
            Item(
                path=e.path,
                name=e.name,
                size=dir_sizes.get(e.path, 0),
                modification_time=_mtime(st),
                is_directory=True,
                color_tag=category.color_tag,
            )
            for e, st in dirs
        ]
        items.extend(
            Item(
                path=e.path,
                name=e.name,
                size=st.st_size,
                modification_time=_mtime(st),
                is_directory=False,
                color_tag=category.color_tag,
            )
            for e, st in files
        )
        return sorted(items, key=lambda i: i.size, reverse=True)

    def _scan_category(self, category: Category) -> tuple[str, int, list[Item], Optional[str]]:
        logger.debug(f"Scan started for {category.name}")
        try:
            items = self.list_items(category)
        except AccessDeniedError as e:
            logger.warning(str(e))
            return category.id, 0, [], "access_denied"
        except Exception as e:
            logger.warning(f"Scan failed for {category.name}: {e!r}")
            return category.id, 0, [], str(e) or type(e).__name__
        return category.id, sum(i.size for i in items), items, None

    # ─── Full scan ───────────────────────────────────────────────────────────

    def scan_all(self, categories: Optional[list[Category]] = None) -> Iterator[ScanProgress]:
        """Scan every category concurrently, yielding progress as each result is applied."""
        if categories is None:
            categories = self.categories
        by_id = {c.id: c for c in categories}
        total = len(categories)

        self.state = ScanState.SCANNING
        self.progress = 0.0
        self.current_label = "Initializing..."
        self.access_required = False
        for c in categories:
            c.is_scanning = True

        if not categories:
            self.progress = 1.0
            return

        completed = 0
        with ThreadPoolExecutor(max_workers=total, thread_name_prefix="diskscope-scan") as pool:
            futures = [pool.submit(self._scan_category, c) for c in categories]
            for future in as_completed(futures):
                cat_id, size, items, error = future.result()
                category = by_id[cat_id]
                completed += 1
                with self._lock:
                    category.size = size
                    category.items = items
                    category.is_scanning = False
                    if error == "access_denied":
                        self.access_required = True
                    if self.selected_category_id == cat_id:
                        self.current_items = items
                    self.progress = completed / total
                    self.current_label = category.name
                logger.info(f"Category '{category.name}' finished. Size: {size}")
                yield ScanProgress(
                    category_id=cat_id,
                    label=category.name,
                    size=size,
                    items=items,
                    completed=completed,
                    total=total,
                    error=error,
                )

    def full_scan(self, on_progress: Optional[Callable[[ScanProgress], None]] = None) -> list[Category]:
        """Scan all categories, persist the snapshot, then sweep for the largest files."""
        for event in self.scan_all():
            if on_progress is not None:
                on_progress(event)
        logger.info("All category scans finished")

        time.sleep(self.settle_delay)
        self.cache.save(self.categories)

        self.current_label = LARGEST_FILES_LABEL
        self.largest_files = self.scan_largest_files()
        logger.info(f"Largest files loaded: {len(self.largest_files)}")

        self.state = ScanState.COMPLETED
        self.current_label = None
        return self.categories

    # ─── Largest files ───────────────────────────────────────────────────────

    def _collect_large(self, root: str, threshold: int, cancel: CancelToken) -> list[Item]:
        if not os.access(root, os.R_OK | os.X_OK):
            return []
        return [
            Item(
                path=path,
                name=os.path.basename(path),
                size=st.st_size,
                modification_time=_mtime(st),
                is_directory=False,
            )
            for path, st in self.enumerator.iter_files(root, cancel)
            if st.st_size > threshold
        ]

    def scan_largest_files(
        self,
        roots: Optional[list[str]] = None,
        threshold: int = config.LARGE_FILE_THRESHOLD,
        limit: int = config.LARGEST_LIMIT,
        deadline: float = config.SWEEP_DEADLINE,
    ) -> list[Item]:
        """Top files above threshold across roots; partial or empty if the deadline passes."""
        if roots is None:
            roots = largest_file_roots(self.broker.current_root)
        if not roots:
            return []

        cancel = CancelToken()
        pool = ThreadPoolExecutor(max_workers=len(roots), thread_name_prefix="diskscope-largest")
        futures = [pool.submit(self._collect_large, r, threshold, cancel) for r in roots]
        done, pending = wait(futures, timeout=deadline)
        if pending:
            logger.warning(f"Largest files sweep hit its {deadline}s deadline, {len(pending)} root(s) cancelled")
            cancel.cancel()
        pool.shutdown(wait=False, cancel_futures=True)

        found: list[Item] = []
        for future in done:
            try:
                found.extend(future.result())
            except OSError as e:
                logger.warning(f"Largest files walk failed: {e}")
        return sorted(found, key=lambda i: i.size, reverse=True)[:limit]

    # ─── Selection ───────────────────────────────────────────────────────────

    def load_items(self, category: Category, token: Optional[CancelToken] = None) -> Optional[list[Item]]:
        """
        Reload one category. A newer selection invalidates this call's token;
        a result whose token was invalidated is dropped and None is returned.
        """
        if token is None:
            token = self._new_selection_token()

        denied = False
        try:
            items = self.list_items(category, cancel=token)
        except AccessDeniedError as e:
            logger.warning(str(e))
            denied = True
            items = []
        except OSError as e:
            logger.warning(f"Reload failed for {category.name}: {e}")
            items = []

        with self._lock:
            if token.cancelled or token is not self._selection_token:
                logger.debug(f"Discarding stale reload for {category.name}")
                return None
            if denied:
                self.access_required = True
            target = self.category(category.id)
            if target is not None:
                target.items = items
                target.size = sum(i.size for i in items)
            self.current_items = items
            self.is_loading_items = False
        logger.info(f"Loaded {len(items)} items for {category.name}")
        self.cache.save(self.categories)
        return items

    def select_category(self, category: Category) -> Future:
        """Make category the current selection; reload it in the background if needed."""
        token = self._new_selection_token()
        with self._lock:
            self.selected_category_id = category.id
            if category.items:
                logger.debug(f"Cache hit for {category.name}")
                self.current_items = list(category.items)
                self.is_loading_items = False
                done: Future = Future()
                done.set_result(self.current_items)
                return done
            self.current_items = []
            self.is_loading_items = True
        return self._reload_pool.submit(self.load_items, category, token)

    # ─── Removal ─────────────────────────────────────────────────────────────

    def trash_items(self, category: Category, items: list[Item]) -> list[Item]:
        """
        Move items of category to the Trash and drop them from the results.

        Items that fail to move stay listed. Returns the items that were moved.
        """
        trashed: list[Item] = []
        for item in items:
            try:
                send2trash(item.path)
            except OSError as e:
                logger.error(f"Failed to move {item.path} to Trash: {e}")
                continue
            logger.info(f"Moved to Trash: {item.path}")
            trashed.append(item)

        if not trashed:
            return trashed

        removed_paths = {i.path for i in trashed}
        with self._lock:
            target = self.category(category.id) or category
            kept = [i for i in target.items if i.path not in removed_paths]
            # A file trashed from deeper down shrinks the listed directory holding it
            for gone in trashed:
                for entry in kept:
                    if entry.is_directory and gone.path.startswith(entry.path + os.sep):
                        entry.size = max(0, entry.size - gone.size)
            target.items = kept
            target.size = sum(i.size for i in kept)
            if self.selected_category_id == target.id:
                self.current_items = list(kept)
            self.largest_files = [i for i in self.largest_files if i.path not in removed_paths]
        self.cache.save(self.categories)
        return trashed

    def _new_selection_token(self) -> CancelToken:
        token = CancelToken()
        with self._lock:
            if self._selection_token is not None:
                self._selection_token.cancel()
            self._selection_token = token
        return token

    def close(self) -> None:
        self._reload_pool.shutdown(wait=True)
