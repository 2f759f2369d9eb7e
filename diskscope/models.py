"""
Data model shared by the scanner, orchestrator, cache and display layers.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

DEFAULT_COLOR = "4D4C48"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Item:
    """One file or top-level directory entry found inside a category."""

    path: str
    name: str
    size: int
    modification_time: Optional[datetime] = None
    is_directory: bool = False
    color_tag: str = DEFAULT_COLOR
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": self.path,
            "name": self.name,
            "size": self.size,
            "modificationTime": (
                self.modification_time.isoformat() if self.modification_time else None
            ),
            "isDirectory": self.is_directory,
            "colorTag": self.color_tag,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        mtime = data.get("modificationTime")
        return cls(
            id=str(data.get("id") or _new_id()),
            path=data["path"],
            name=data["name"],
            size=int(data["size"]),
            modification_time=datetime.fromisoformat(mtime) if mtime else None,
            is_directory=bool(data.get("isDirectory", False)),
            color_tag=data.get("colorTag", DEFAULT_COLOR),
        )


@dataclass
class Category:
    """A fixed storage location of interest, plus its latest scan result."""

    id: str
    name: str
    root_path: str
    color_tag: str = DEFAULT_COLOR
    icon: str = "folder"
    description: str = ""
    size: int = 0
    is_scanning: bool = False
    items: list[Item] = field(default_factory=list)

    def snapshot_dict(self) -> dict:
        """Only the scan result is persisted; labels and paths come from the catalog."""
        return {
            "id": self.id,
            "size": self.size,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class AccessGrant:
    token: bytes
    resolved_path: Optional[str] = None
    stale: bool = False


@dataclass
class ScanSnapshot:
    categories: list[dict]
    timestamp: Optional[datetime] = None


@dataclass
class ScanProgress:
    """Emitted once per category as its scan result is applied."""

    category_id: str
    label: str
    size: int
    items: list[Item]
    completed: int
    total: int
    error: Optional[str] = None

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0


@dataclass
class DiskUsage:
    total: int = 0
    used: int = 0
    free: int = 0

    @property
    def used_pct(self) -> float:
        return round(self.used / self.total * 100, 1) if self.total > 0 else 0.0
