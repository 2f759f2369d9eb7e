"""
Runtime settings for diskscope.
Every value can be overridden through a DISKSCOPE_* environment variable.
"""

import os
import sys

HOME = os.path.expanduser(os.environ.get("DISKSCOPE_HOME", "~"))


def _default_dir(mac_subdir: str, xdg_var: str, xdg_fallback: str) -> str:
    if sys.platform == "darwin":
        return os.path.join(os.path.expanduser("~"), "Library", mac_subdir, "diskscope")
    base = os.environ.get(xdg_var) or os.path.join(os.path.expanduser("~"), xdg_fallback)
    return os.path.join(base, "diskscope")


CACHE_DIR = os.path.expanduser(
    os.environ.get("DISKSCOPE_CACHE_DIR", _default_dir("Caches", "XDG_CACHE_HOME", ".cache"))
)
CONFIG_DIR = os.path.expanduser(
    os.environ.get("DISKSCOPE_CONFIG_DIR", _default_dir("Preferences", "XDG_CONFIG_HOME", ".config"))
)

# ─── Size probe ──────────────────────────────────────────────────────────────
DU_EXECUTABLE = os.environ.get("DISKSCOPE_DU", "du")
DU_TIMEOUT = int(os.environ.get("DISKSCOPE_DU_TIMEOUT", "60"))

# ─── Scanning ────────────────────────────────────────────────────────────────
ITEM_LIMIT = int(os.environ.get("DISKSCOPE_ITEM_LIMIT", "100"))
LARGE_FILE_THRESHOLD = int(os.environ.get("DISKSCOPE_LARGE_FILE_THRESHOLD", str(100 * 1024 * 1024)))
LARGEST_LIMIT = int(os.environ.get("DISKSCOPE_LARGEST_LIMIT", "20"))
SWEEP_DEADLINE = float(os.environ.get("DISKSCOPE_SWEEP_DEADLINE", "5"))
SETTLE_DELAY = 0.5  # pause between the last category join and the final state

# ─── Cache ───────────────────────────────────────────────────────────────────
CACHE_FILE = "categories_cache.json"
SCAN_DATE_FILE = "last_scan_date.txt"
CACHE_MAX_AGE_HOURS = 7 * 24

# ─── Access ──────────────────────────────────────────────────────────────────
PREFERENCES_FILE = "preferences.json"
BOOKMARK_KEY = "securityScopedBookmarks"
