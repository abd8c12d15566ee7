"""Typed restore runtime context and caller-held cursor values."""
from dataclasses import dataclass
from typing import Any

from siterestore.state.cursors import ExtractionCursor, ImportCursor


@dataclass
class RestoreContext:
    """Per-process restore settings and log writers shared by every action."""
    ROOT_DIR: Any
    ARCHIVE_DIR: Any
    LOG_DIR: Any
    LOG_FILE: Any
    DISPLAY_TZ: Any
    MYSQL_RECORDS_LIMIT: int
    EXTRACT_MAX_SECONDS: float
    EXTRACT_MAX_BYTES: int
    MAX_UPLOAD_SIZE: int
    DATABASE_URL: str
    log_restore_action: Any
    log_restore_exception: Any


__all__ = ["ExtractionCursor", "ImportCursor", "RestoreContext"]
