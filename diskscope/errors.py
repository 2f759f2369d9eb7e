"""Exceptions raised inside diskscope components.

None of these escape a component boundary: the scanner, broker and cache
catch them, log, and fall back to an empty or degraded result.
"""


class DiskscopeError(Exception):
    """Base class for all diskscope errors."""


class AccessDeniedError(DiskscopeError):
    """A path is unreadable at the current grant level."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Permission denied for: {path}")


class ProbeUnavailableError(DiskscopeError):
    """The external size probe could not be launched or did not finish."""


class CacheCorruptError(DiskscopeError):
    """The persisted snapshot could not be decoded."""


class BookmarkError(DiskscopeError):
    """A persisted access token could not be created or resolved."""
