"""Restore error kinds and the envelope status each one is reported with."""

from typing import Any, Dict


class RestoreError(Exception):
    """Base exception for every error surfaced to the restore caller."""

    status = 417

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class NotFound(RestoreError):
    """Backup file, manifest, part or dump file is missing."""
    pass


class WriteError(RestoreError):
    """Uploaded chunk could not be written to the target archive."""
    pass


class DatabaseConnectionError(RestoreError):
    """Database server is unreachable or rejected the credentials."""
    pass


class StatementError(RestoreError):
    """A dump statement failed with a non duplicate-key error.

    ``offset`` points at the first line of the failing statement so the
    caller can resubmit exactly that statement.
    """

    status = 418

    def __init__(self, message: str, statement: str = "", offset: int = 0, **context: Any) -> None:
        super().__init__(message, **context)
        self.statement = statement
        self.offset = offset


class ArchiveError(RestoreError):
    """Archive processing failed."""
    pass


class ArchiveCorrupted(ArchiveError):
    """Archive headers or compressed stream are damaged."""
    pass


class IllegalCompression(ArchiveError):
    """Archive uses a compression scheme the extractor cannot read."""
    pass


class ArchiveIOError(ArchiveError):
    """Archive or destination could not be read or written."""
    pass


class PreconditionFailed(RestoreError):
    """Restore cannot start: encrypted source or unsuitable host."""

    status = 500
