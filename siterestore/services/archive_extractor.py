"""Multipart-aware extraction and listing orchestration over the tar primitive."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from siterestore.core.errors import NotFound, PreconditionFailed
from siterestore.core.filesystem_utils import LocalFilesystem
from siterestore.services.multipart import get_backup_size, resolve_backup
from siterestore.services.tar_archive import TarArchive
from siterestore.state.cursors import ExtractionCursor


@dataclass
class ExtractionResult:
    """One slice outcome: entries touched plus the cursor to send back."""
    entries: List[Dict[str, Any]] = field(default_factory=list)
    cursor: ExtractionCursor = field(default_factory=ExtractionCursor)
    total_size: int = 0
    part_file: str = ""


def processed_bytes(fs, archive, part_index, offset):
    """Return the logical-stream byte count for a position inside ``part_index``.

    Completed parts count with their file size, the active part with its
    continuation offset capped at its own size, so the value never drops when
    crossing a part boundary (compressed offsets can exceed file sizes).
    """
    total = fs.file_size(archive.name) if archive.is_multipart else 0
    for part in archive.parts[:part_index]:
        total += fs.file_size(part)
    if part_index < len(archive.parts):
        total += min(int(offset), fs.file_size(archive.parts[part_index]))
    return total


def _active_part(archive, cursor):
    """Return the part file named by the cursor, refusing encrypted payloads."""
    if cursor.part_index >= len(archive.parts):
        raise NotFound(
            f"Backup part #{cursor.part_index} of {archive.name} does not exists",
            path=archive.name,
        )
    part_file = archive.parts[cursor.part_index]
    if archive.is_encrypted:
        raise PreconditionFailed(
            f"Backup file {part_file} seems encrypted, please decrypt it first from your Manage Backups panel.",
            path=part_file,
        )
    return part_file


def _next_cursor(fs, archive, cursor, continuation):
    """Advance within the part, to the next part, or to overall completion."""
    if continuation is not None:
        processed = processed_bytes(fs, archive, cursor.part_index, continuation)
        return ExtractionCursor(continuation, cursor.part_index, processed, False)
    next_part = cursor.part_index + 1
    processed = processed_bytes(fs, archive, next_part, 0)
    if next_part < len(archive.parts):
        return ExtractionCursor(0, next_part, processed, False)
    return ExtractionCursor(0, next_part, processed, True)


def _run(ctx, backup_name, cursor, action, work):
    fs = LocalFilesystem(ctx.ARCHIVE_DIR)
    archive = resolve_backup(fs, backup_name, active_part=cursor.part_index)
    part_file = _active_part(archive, cursor)
    ctx.log_restore_action(
        action,
        command=f"Opening backup archive {part_file} at position {cursor.start} (part {cursor.part_index + 1}/{len(archive.parts)})",
    )
    with TarArchive(fs.path(part_file), ctx.EXTRACT_MAX_SECONDS, ctx.EXTRACT_MAX_BYTES) as tar:
        entries, continuation = work(tar)
    return ExtractionResult(
        entries=entries,
        cursor=_next_cursor(fs, archive, cursor, continuation),
        total_size=get_backup_size(fs, backup_name),
        part_file=part_file,
    )


def extract(ctx, backup_name, destination_root, include_filter="", exclude_filter="", cursor=None):
    """Extract one budgeted slice of ``backup_name`` into ``destination_root``.

    The part index only advances once the tar primitive reports the current
    part complete; ``finished`` is set after the last part.
    """
    cursor = cursor or ExtractionCursor()
    result = _run(
        ctx,
        backup_name,
        cursor,
        "restore-files",
        lambda tar: tar.extract_slice(destination_root, exclude_filter, include_filter, cursor.start),
    )
    for entry in result.entries:
        ctx.log_restore_action("restore-files", command=f"Extracted {entry['path']} file")
    if result.cursor.finished:
        ctx.log_restore_action("restore-files", command=f"Done extracting {backup_name}")
    return result


def list_contents(ctx, backup_name, cursor=None):
    """List one budgeted slice of archive members with multipart sequencing."""
    cursor = cursor or ExtractionCursor()
    return _run(ctx, backup_name, cursor, "list-files", lambda tar: tar.list_entries(cursor.start))
