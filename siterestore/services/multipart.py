"""Multipart backup resolution: one logical backup name to ordered part files."""

import csv
from dataclasses import dataclass, field
import io
from pathlib import PurePath
from typing import Tuple

from siterestore.core.errors import NotFound
from siterestore.services.encryption_probe import is_encrypted_file

MULTIPART_MARKER = "-multipart"


@dataclass(frozen=True)
class BackupArchive:
    """A logical backup resolved against the archive directory for one request."""
    name: str
    is_multipart: bool
    parts: Tuple[str, ...] = field(default_factory=tuple)
    is_encrypted: bool = False


def is_multipart(backup_name):
    """Return True when the name carries the multipart marker (any case)."""
    return MULTIPART_MARKER in str(backup_name or "").lower()


def _normalize_part_path(raw):
    """Map one manifest entry onto a path relative to the archive directory."""
    part = PurePath(raw.strip())
    if part.is_absolute():
        # Manifests written on the source host may carry its absolute paths.
        return part.name
    return part.as_posix()


def get_multipart_files(fs, backup_name):
    """Return manifest part paths in file order; empty for single archives."""
    if not is_multipart(backup_name):
        return []
    text = fs.read(backup_name).decode("utf-8", errors="replace")
    files = []
    for row in csv.reader(io.StringIO(text)):
        if not row or not row[0].strip():
            continue
        files.append(_normalize_part_path(row[0]))
    return files


def resolve_backup(fs, backup_name, active_part=0):
    """Resolve ``backup_name`` into a BackupArchive with every part verified.

    ``is_encrypted`` reports the probe of part ``active_part`` (False when
    that index is past the last part).

    Raises NotFound when the backup, its manifest, or any listed part is
    missing. Nothing is cached: every request re-reads the manifest.
    """
    if not fs.exists(backup_name):
        raise NotFound(f"Backup archive {backup_name} does not exists", path=str(backup_name))
    multipart = is_multipart(backup_name)
    if multipart:
        parts = tuple(get_multipart_files(fs, backup_name))
        if not parts:
            raise NotFound(f"Multipart manifest {backup_name} lists no parts", path=str(backup_name))
        for part in parts:
            if not fs.exists(part):
                raise NotFound(f"Backup part {part} does not exists", path=str(part))
    else:
        parts = (str(backup_name),)
    return BackupArchive(
        name=str(backup_name),
        is_multipart=multipart,
        parts=parts,
        is_encrypted=active_part < len(parts) and is_encrypted_file(fs, parts[active_part]),
    )


def get_backup_size(fs, backup_name):
    """Return the manifest size plus every part size (single file: its size)."""
    size = fs.file_size(backup_name)
    for part in get_multipart_files(fs, backup_name):
        size += fs.file_size(part)
    return size
