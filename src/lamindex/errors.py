"""Exceptions raised by lamindex."""


class LamindexError(Exception):
    """Base class for lamindex failures."""


class PersistenceError(LamindexError):
    """The index file could not be written; the previous file is untouched."""

    def __init__(self, path, cause):
        super().__init__(f"could not write {path}: {cause}")
        self.path = path
        self.cause = cause


class FetchError(LamindexError):
    """A listing page could not be fetched after all retries."""
