"""
Error types shared by the record store, storage backend and paste service.
"""


class PasteError(Exception):
    """Base class for all cloudpaste errors."""


class PasteNotFoundError(PasteError):
    """No record exists for the requested slug."""

    def __init__(self, slug: str):
        super().__init__(f"Paste {slug} not found")
        self.slug = slug


class StorageError(PasteError):
    """The storage backend failed to upload or download content."""


class StorageNotReadyError(StorageError):
    """The storage backend handshake has not completed successfully."""


class PersistenceError(PasteError):
    """The record store could not be read or written."""


class SlugExistsError(PersistenceError):
    """A record is already stored under this slug."""

    def __init__(self, slug: str):
        super().__init__(f"Slug {slug} already exists")
        self.slug = slug
