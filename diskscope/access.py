"""
Access grant management.

Remembers the directory the user approved for scanning so later runs can
scan it without asking again. The persisted token records the directory's
path together with its (device, inode) identity; a token whose path now
points at a different directory is stale and gets re-issued.
"""

import base64
import binascii
import json
import logging
import os
import threading
from typing import Callable, Optional

from diskscope import config
from diskscope.errors import BookmarkError
from diskscope.models import AccessGrant

logger = logging.getLogger(__name__)

# Presentation-layer collaborator: given an optional starting directory,
# returns the path the user approved, or None if they declined.
Chooser = Callable[[Optional[str]], Optional[str]]

# Readable only with elevated access; used to tell "can see the root" apart
# from "can see everything the scan needs".
ELEVATED_INDICATOR = "Library"


class PreferenceStore:
    """Small JSON key/value file standing in for user defaults."""

    def __init__(self, config_dir: str = config.CONFIG_DIR):
        self.path = os.path.join(config_dir, config.PREFERENCES_FILE)

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable preferences {self.path}: {e}")
            return {}

    def get_bytes(self, key: str) -> Optional[bytes]:
        value = self._read().get(key)
        if value is None:
            return None
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, TypeError, ValueError):
            logger.warning(f"Preference {key} is not valid base64")
            return None

    def set_bytes(self, key: str, value: bytes) -> None:
        data = self._read()
        data[key] = base64.b64encode(value).decode("ascii")
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)


def create_token(path: str) -> bytes:
    """Issue a token scoped to path."""
    try:
        st = os.stat(path)
    except OSError as e:
        raise BookmarkError(f"Cannot create token for {path}: {e}") from e
    doc = {"path": os.path.abspath(path), "dev": st.st_dev, "ino": st.st_ino}
    return json.dumps(doc).encode("utf-8")


def resolve_token(token: bytes) -> AccessGrant:
    """Resolve a token to its path, flagging it stale if the directory was replaced."""
    try:
        doc = json.loads(token.decode("utf-8"))
        path = doc["path"]
        dev, ino = int(doc["dev"]), int(doc["ino"])
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise BookmarkError(f"Undecodable token: {e}") from e

    try:
        st = os.stat(path)
    except OSError as e:
        raise BookmarkError(f"Cannot resolve {path}: {e}") from e

    stale = (st.st_dev, st.st_ino) != (dev, ino)
    return AccessGrant(token=token, resolved_path=path, stale=stale)


class AccessBroker:
    """Obtains, persists and restores permission to read the scan root."""

    def __init__(
        self,
        chooser: Optional[Chooser] = None,
        preferences: Optional[PreferenceStore] = None,
        default_home: str = config.HOME,
    ):
        self.chooser = chooser
        self.preferences = preferences or PreferenceStore()
        self.default_home = default_home
        self.grant: Optional[AccessGrant] = None
        self.root_readable = False
        self.has_full_access = False
        self._lock = threading.Lock()

    @property
    def current_root(self) -> str:
        grant = self.grant
        if grant is not None and grant.resolved_path:
            return grant.resolved_path
        return self.default_home

    def restore_access(self) -> bool:
        """Resume the persisted grant. Returns False when running on the default home."""
        token = self.preferences.get_bytes(config.BOOKMARK_KEY)
        if token is None:
            logger.info(f"No saved access grant, using {self.default_home}")
            return False

        try:
            grant = resolve_token(token)
        except BookmarkError as e:
            logger.error(f"Failed to resolve access grant: {e}")
            return False

        if grant.stale:
            logger.warning(f"Access grant for {grant.resolved_path} is stale, saving it again")
            try:
                grant = self._persist(grant.resolved_path)
            except (BookmarkError, OSError) as e:
                logger.error(f"Failed to refresh access grant: {e}")
                return False

        return self._start_using(grant)

    def check_access(self) -> bool:
        """True when the root and the elevated indicator below it are both readable."""
        root = self.current_root
        self.root_readable = os.path.isdir(root) and os.access(root, os.R_OK | os.X_OK)
        indicator = os.path.join(root, ELEVATED_INDICATOR)
        self.has_full_access = self.root_readable and os.access(indicator, os.R_OK | os.X_OK)
        logger.info(
            f"Access check for {root}: readable={self.root_readable}, "
            f"full={self.has_full_access}"
        )
        return self.root_readable and self.has_full_access

    def request_access(self, initial_dir: Optional[str] = None) -> bool:
        """
        Ask the chooser for a directory, persist a grant for it and start using it.
        Returns True when the granted root is readable.
        """
        if self.chooser is None:
            logger.error("No chooser configured, cannot request access")
            return False

        try:
            path = self.chooser(initial_dir)
        except Exception as e:
            logger.error(f"Directory chooser failed: {e!r}")
            return False
        if not path:
            logger.info("Access request declined")
            return False

        try:
            grant = self._persist(os.path.expanduser(path))
        except (BookmarkError, OSError) as e:
            logger.error(f"Failed to save access grant: {e}")
            return False

        if not self._start_using(grant):
            return False
        # Full access is reported separately through has_full_access
        self.check_access()
        return self.root_readable

    def release(self) -> None:
        with self._lock:
            if self.grant is not None:
                logger.info(f"Stopped accessing {self.grant.resolved_path}")
            self.grant = None

    def _persist(self, path: str) -> AccessGrant:
        token = create_token(path)
        self.preferences.set_bytes(config.BOOKMARK_KEY, token)
        logger.info(f"Saved access grant for {path}")
        return AccessGrant(token=token, resolved_path=json.loads(token)["path"])

    def _start_using(self, grant: AccessGrant) -> bool:
        path = grant.resolved_path
        if not path or not os.path.isdir(path):
            logger.error(f"Failed to start accessing {path}")
            return False
        with self._lock:
            self.grant = grant
        logger.info(f"Started accessing {path}")
        return True
