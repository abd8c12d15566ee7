"""Budgeted tar reader used as the archive extraction primitive.

Each call processes members from a continuation offset until a time or byte
budget is spent, then returns the offset of the next member header. Offsets
are positions in the uncompressed tar stream, so gzip/bzip2/xz archives are
resumed by seeking the decompressor forward.
"""

import bz2
import fnmatch
import gzip
import lzma
import tarfile
import time
import zlib

from siterestore.core.errors import ArchiveCorrupted, ArchiveError, ArchiveIOError, IllegalCompression

DEFAULT_MAX_SECONDS = 10.0
DEFAULT_MAX_BYTES = 64 * 1024 * 1024

_COMPRESSED_READERS = (
    (b"\x1f\x8b", lambda raw: gzip.GzipFile(fileobj=raw, mode="rb")),
    (b"BZh", lambda raw: bz2.BZ2File(raw, mode="rb")),
    (b"\xfd7zXZ\x00", lambda raw: lzma.LZMAFile(raw, mode="rb")),
)

# Containers the tar reader must refuse instead of misreading as tar headers.
_UNSUPPORTED_MAGIC = (
    (b"PK\x03\x04", "zip"),
    (b"7z\xbc\xaf\x27\x1c", "7z"),
    (b"Rar!\x1a\x07", "rar"),
    (b"\x28\xb5\x2f\xfd", "zstd"),
)

_CORRUPTION_ERRORS = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile, lzma.LZMAError)


def matches_any(name, patterns):
    """Return True when ``name`` matches one of the comma separated globs."""
    for pattern in str(patterns or "").split(","):
        pattern = pattern.strip()
        if pattern and fnmatch.fnmatch(name, pattern):
            return True
    return False


def entry_info(member):
    """Describe one tar member as a ``{path, size, mtime}`` dict."""
    return {"path": member.name, "size": int(member.size), "mtime": int(member.mtime)}


def translate_archive_error(exc, path):
    """Map tarfile/decompressor/OS failures onto the restore archive errors."""
    if isinstance(exc, ArchiveError):
        return exc
    if isinstance(exc, tarfile.CompressionError):
        return IllegalCompression(f"Illegal compression in {path}: {exc}", path=str(path))
    if isinstance(exc, _CORRUPTION_ERRORS):
        return ArchiveCorrupted(f"Archive {path} is corrupted: {exc}", path=str(path))
    return ArchiveIOError(f"Could not read archive {path}: {exc}", path=str(path))


class TarArchive:
    """Open one tar file and process it in budgeted slices."""

    def __init__(self, path, max_seconds=DEFAULT_MAX_SECONDS, max_bytes=DEFAULT_MAX_BYTES):
        self.path = path
        self.max_seconds = max_seconds
        self.max_bytes = max_bytes
        self._raw = None
        self._stream = None

    def open(self):
        """Open the file and pick a decompressor from its magic bytes."""
        try:
            self._raw = open(self.path, "rb")
            magic = self._raw.read(8)
            self._raw.seek(0)
        except OSError as exc:
            self.close()
            raise ArchiveIOError(f"Could not open archive {self.path}: {exc}", path=str(self.path))
        for prefix, label in _UNSUPPORTED_MAGIC:
            if magic.startswith(prefix):
                self.close()
                raise IllegalCompression(f"Unsupported {label} compression in {self.path}", path=str(self.path))
        self._stream = self._raw
        for prefix, reader in _COMPRESSED_READERS:
            if magic.startswith(prefix):
                self._stream = reader(self._raw)
                break
        return self

    def close(self):
        if self._stream is not None and self._stream is not self._raw:
            self._stream.close()
        if self._raw is not None:
            self._raw.close()
        self._stream = None
        self._raw = None

    def __enter__(self):
        if self._raw is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _iter_members(self, start):
        """Yield ``(member, tar, next_offset)`` tuples from ``start`` on."""
        # Compressed streams decompress from byte 0 again to reach ``start``.
        self._stream.seek(start)
        tar = tarfile.open(fileobj=self._stream, mode="r:")
        member = tar.next()
        while member is not None:
            yield member, tar, tar.offset
            member = tar.next()

    def _run_slice(self, start, handle_member):
        """Feed members to ``handle_member`` until the budget runs out.

        Returns ``(entries, continuation)``; continuation is None once the end
        of the archive is reached. One member is always processed so every
        call makes progress.
        """
        if self._stream is None:
            raise ArchiveIOError(f"Archive {self.path} is not open", path=str(self.path))
        deadline = time.monotonic() + self.max_seconds
        consumed = 0
        entries = []
        members = self._iter_members(int(start or 0))
        try:
            for member, tar, next_offset in members:
                info = handle_member(member, tar)
                if info is not None:
                    entries.append(info)
                consumed += int(member.size)
                if consumed >= self.max_bytes or time.monotonic() >= deadline:
                    # Peek so an exhausted archive reports completion right away.
                    if next(members, None) is None:
                        return entries, None
                    return entries, next_offset
        except (tarfile.TarError, EOFError, zlib.error, lzma.LZMAError, OSError) as exc:
            raise translate_archive_error(exc, self.path)
        finally:
            members.close()
        return entries, None

    def list_entries(self, start=0):
        """List member descriptions for one budgeted slice."""
        return self._run_slice(start, lambda member, tar: entry_info(member))

    def extract_slice(self, destination, exclude=None, include=None, start=0):
        """Extract one budgeted slice of members below ``destination``.

        ``include``/``exclude`` are comma separated shell globs on member
        paths; skipped members still count against the budget.
        """

        def handle(member, tar):
            if include and not matches_any(member.name, include):
                return None
            if exclude and matches_any(member.name, exclude):
                return None
            try:
                tar.extract(member, path=str(destination), filter="data")
            except tarfile.FilterError as exc:
                raise ArchiveCorrupted(f"Refusing unsafe member {member.name}: {exc}", path=member.name)
            except OSError as exc:
                raise ArchiveIOError(f"Could not extract {member.name}: {exc}", path=member.name)
            return entry_info(member)

        return self._run_slice(start, handle)
