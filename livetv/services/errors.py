"""
Errors raised by the live source pipeline.
"""


class LiveSourceError(Exception):
    """Base class for live source failures."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(message)


class M3UFetchError(LiveSourceError):
    """Playlist could not be downloaded and no cached copy exists."""


class M3UContentMissingError(LiveSourceError):
    """A stored-playlist pointer references content that is not in the store."""


class LiveSourceNotFoundError(LiveSourceError):
    """No live source is configured under the requested key."""
