"""
Persistence for the last completed scan.

The snapshot holds only per-category sizes and items. Labels, paths and
colors always come from the current catalog, so a cached scan survives
catalog changes between versions.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from diskscope import config
from diskscope.errors import CacheCorruptError
from diskscope.models import Category, Item, ScanSnapshot

logger = logging.getLogger(__name__)

MAX_AGE = timedelta(hours=config.CACHE_MAX_AGE_HOURS)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _record_id(record) -> str:
    if not isinstance(record, dict) or "id" not in record:
        raise CacheCorruptError(f"Malformed category record: {record!r}")
    return record["id"]


def _record_items(record: dict) -> list[dict]:
    items = record.get("items", [])
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise CacheCorruptError(f"Malformed items for category {record['id']}")
    return items


class ResultCache:
    def __init__(self, cache_dir: str = config.CACHE_DIR):
        self.cache_dir = cache_dir
        self.last_scan_date: Optional[datetime] = None

    @property
    def cache_path(self) -> str:
        return os.path.join(self.cache_dir, config.CACHE_FILE)

    @property
    def scan_date_path(self) -> str:
        return os.path.join(self.cache_dir, config.SCAN_DATE_FILE)

    def save(self, categories: list[Category], now: Optional[datetime] = None) -> bool:
        """Write the snapshot and its timestamp. Returns False on I/O failure."""
        now = _aware(now or _now())
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            tmp = self.cache_path + ".tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump([c.snapshot_dict() for c in categories], f)
            os.replace(tmp, self.cache_path)
            tmp = self.scan_date_path + ".tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(now.isoformat())
            os.replace(tmp, self.scan_date_path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save cache: {e}")
            return False

        self.last_scan_date = now
        logger.debug(f"Cache saved with {len(categories)} categories")
        return True

    def read_snapshot(self) -> Optional[ScanSnapshot]:
        """Decode the persisted snapshot, or None when there is none."""
        if not os.path.exists(self.cache_path):
            return None
        try:
            with open(self.cache_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CacheCorruptError(f"{self.cache_path}: {e}") from e
        if not isinstance(data, list):
            raise CacheCorruptError(f"{self.cache_path}: expected a list of categories")

        timestamp = None
        if os.path.exists(self.scan_date_path):
            try:
                with open(self.scan_date_path, encoding="utf-8") as f:
                    timestamp = _aware(datetime.fromisoformat(f.read().strip()))
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable scan date: {e}")
        return ScanSnapshot(categories=data, timestamp=timestamp)

    def load(self, fresh_catalog: list[Category]) -> list[Category]:
        """Merge cached sizes and items into fresh_catalog by category id."""
        try:
            snapshot = self.read_snapshot()
            if snapshot is None:
                return fresh_catalog
            cached = {}
            for record in snapshot.categories:
                cached[_record_id(record)] = (
                    int(record.get("size", 0)),
                    [Item.from_dict(i) for i in _record_items(record)],
                )
        except (CacheCorruptError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to load cache: {e}")
            return fresh_catalog

        for category in fresh_catalog:
            if category.id in cached:
                category.size, category.items = cached[category.id]

        self.last_scan_date = snapshot.timestamp
        logger.debug(f"Cache loaded. Last scan: {snapshot.timestamp or 'unknown'}")
        return fresh_catalog

    @staticmethod
    def is_valid(
        categories: list[Category],
        timestamp: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> bool:
        """True when some category has data and the scan is less than 7 days old."""
        if not any(c.size > 0 for c in categories):
            return False
        if timestamp is None:
            return False
        return _aware(now or _now()) - _aware(timestamp) < MAX_AGE
