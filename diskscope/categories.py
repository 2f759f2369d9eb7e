"""
Category definitions for the storage scan.
Each category maps a stable id to a display label and a path relative to the scan root.
"""

import os

from diskscope.models import DEFAULT_COLOR, Category

# Insertion order is the display order.
CATEGORIES = {
    "system_junk": {
        "name": "System Junk",
        "emoji": "🧹",
        "icon": "gearshape.2.fill",
        "color": "D97757",
        "description": "Application caches under Library/Caches",
        "path": os.path.join("Library", "Caches"),
    },
    "user_library": {
        "name": "User Library",
        "emoji": "🔧",
        "icon": "folder.fill",
        "color": "4A90E2",
        "description": "Application support data and settings",
        "path": os.path.join("Library", "Application Support"),
    },
    "downloads": {
        "name": "Downloads",
        "emoji": "⬇️",
        "icon": "arrow.down.circle.fill",
        "color": "7ED321",
        "description": "Files in the Downloads folder",
        "path": "Downloads",
    },
    "containers": {
        "name": "Containers",
        "emoji": "📦",
        "icon": "archivebox.fill",
        "color": "9B59B6",
        "description": "Sandboxed application containers",
        "path": os.path.join("Library", "Containers"),
    },
    "desktop": {
        "name": "Desktop",
        "emoji": "🖥",
        "icon": "desktopcomputer",
        "color": "AAB7B8",
        "description": "Files on the Desktop",
        "path": "Desktop",
    },
    "media": {
        "name": "Media",
        "emoji": "🎬",
        "icon": "film.fill",
        "color": "BD10E0",
        "description": "Movies and video projects",
        "path": "Movies",
    },
    "documents": {
        "name": "Documents",
        "emoji": "📄",
        "icon": "doc.fill",
        "color": "F5A623",
        "description": "Files in the Documents folder",
        "path": "Documents",
    },
    "applications": {
        "name": "Applications",
        "emoji": "🧩",
        "icon": "app.fill",
        "color": "50E3C2",
        "description": "Installed applications",
        "path": "/Applications",  # absolute, independent of the scan root
    },
}

CATEGORY_IDS = list(CATEGORIES)

# Directories walked by the largest-files sweep, relative to the scan root.
LARGEST_FILE_ROOTS = [
    "Downloads",
    "Documents",
    "Desktop",
    "Movies",
    "Music",
    os.path.join("Library", "Application Support"),
]


def hex_color(category_id: str) -> str:
    """Return the hex color tag for a category id, gray for unknown ids."""
    return CATEGORIES.get(category_id, {}).get("color", DEFAULT_COLOR)


def icon(category_id: str) -> str:
    return CATEGORIES.get(category_id, {}).get("icon", "folder")


def category_path(root: str, relative: str) -> str:
    # os.path.join keeps an absolute suffix as-is
    return os.path.join(root, relative)


def build_catalog(root: str) -> list[Category]:
    """Build the ordered category list for a resolved root path."""
    return [
        Category(
            id=cat_id,
            name=meta["name"],
            root_path=category_path(root, meta["path"]),
            color_tag=meta["color"],
            icon=meta["icon"],
            description=meta["description"],
        )
        for cat_id, meta in CATEGORIES.items()
    ]


def largest_file_roots(root: str) -> list[str]:
    return [category_path(root, rel) for rel in LARGEST_FILE_ROOTS]
