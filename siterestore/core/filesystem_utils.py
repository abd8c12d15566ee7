"""Filesystem helpers: a root-confined local filesystem plus listing utilities."""

from datetime import datetime
from pathlib import Path
import shutil

from siterestore.core.errors import NotFound, RestoreError


def safe_filename_in_dir(base_dir, filename):
    """Validate and return a direct-child filename within ``base_dir``.

    Unlike a download lookup, the file does not need to exist yet: upload
    targets are created by the first chunk.
    """
    if not filename:
        return None
    name = Path(filename).name
    if name != filename or name in {".", ".."}:
        return None
    candidate = Path(base_dir) / name
    try:
        base_resolved = Path(base_dir).resolve()
        candidate_resolved = candidate.resolve()
    except OSError:
        return None
    try:
        candidate_resolved.relative_to(base_resolved)
    except ValueError:
        return None
    if candidate_resolved.exists() and not candidate_resolved.is_file():
        return None
    return name


def format_mtime(ts, display_tz, fmt="%Y-%m-%d %H:%M:%S"):
    """Render an epoch timestamp in the display timezone."""
    return datetime.fromtimestamp(ts, tz=display_tz).strftime(fmt)


class LocalFilesystem:
    """Read/list/delete primitives confined to one root directory."""

    def __init__(self, root):
        self.root = Path(root)

    def path(self, relative):
        """Resolve ``relative`` inside the root; escaping paths raise NotFound."""
        candidate = (self.root / relative).resolve()
        try:
            candidate.relative_to(self.root.resolve())
        except ValueError:
            raise NotFound(f"Path {relative} is outside of {self.root}", path=str(relative))
        return candidate

    def exists(self, relative):
        try:
            return self.path(relative).exists()
        except NotFound:
            return False

    def read(self, relative):
        """Return the whole file content as bytes."""
        target = self.path(relative)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise NotFound(f"File {target} does not exists", path=str(target))

    def read_stream(self, relative):
        """Open ``relative`` for binary reading; the caller closes the handle."""
        target = self.path(relative)
        try:
            return target.open("rb")
        except FileNotFoundError:
            raise NotFound(f"File {target} does not exists", path=str(target))

    def file_size(self, relative):
        target = self.path(relative)
        try:
            return target.stat().st_size
        except FileNotFoundError:
            raise NotFound(f"File {target} does not exists", path=str(target))

    def list(self, relative="."):
        """Return direct children as ``{path, is_dir, size, mtime}`` dicts."""
        base = self.path(relative)
        if not base.is_dir():
            raise NotFound(f"Directory {base} does not exists", path=str(base))
        items = []
        for child in sorted(base.iterdir()):
            try:
                stat = child.stat()
            except OSError:
                continue
            items.append({
                "path": child.relative_to(self.root.resolve()).as_posix(),
                "is_dir": child.is_dir(),
                "size": 0 if child.is_dir() else stat.st_size,
                "mtime": stat.st_mtime,
            })
        return items

    def delete(self, relative):
        target = self.path(relative)
        try:
            target.unlink()
        except FileNotFoundError:
            raise NotFound(f"File {target} does not exists", path=str(target))

    def delete_directory(self, relative):
        """Remove a directory tree; a missing directory is already deleted."""
        target = self.path(relative)
        if target == self.root.resolve():
            raise RestoreError(f"Refusing to delete filesystem root {target}", path=str(target))
        if target.is_dir():
            shutil.rmtree(target)
