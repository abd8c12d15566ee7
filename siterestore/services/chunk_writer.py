"""Upload assembly: write sequential binary chunks at caller-supplied offsets."""

import os
from pathlib import Path

from siterestore.core.action_logging import noop_log_action
from siterestore.core.errors import WriteError


def _read_payload(payload):
    """Return ``(data, temp_path)`` for bytes or a detached temporary file path."""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload), None
    temp_path = Path(payload)
    try:
        return temp_path.read_bytes(), temp_path
    except OSError as exc:
        _discard_temp_file(temp_path)
        raise WriteError(f"Unable to read uploaded chunk {temp_path}: {exc}", path=str(temp_path))


def _open_target(target_file, is_first_chunk):
    """Open the target truncated for the first chunk, read/write otherwise."""
    if is_first_chunk:
        return open(target_file, "wb")
    # O_APPEND would ignore the seek, so later chunks open read/write instead.
    fd = os.open(target_file, os.O_RDWR | os.O_CREAT, 0o644)
    return os.fdopen(fd, "r+b")


def _discard_temp_file(temp_path):
    """Best-effort removal of the detached upload file."""
    if temp_path is None:
        return
    try:
        temp_path.unlink(missing_ok=True)
    except OSError:
        pass


def write_chunk(target_file, start_offset, is_first_chunk, payload, log=noop_log_action):
    """Write ``payload`` into ``target_file`` at ``start_offset``.

    ``payload`` is raw bytes or the path of a temporary upload file, which is
    removed once the call returns, whether or not the write succeeded.
    Returns the number of bytes written.
    """
    data, temp_path = _read_payload(payload)
    try:
        return _store(target_file, start_offset, is_first_chunk, data, temp_path is not None, log)
    finally:
        _discard_temp_file(temp_path)


def _store(target_file, start_offset, is_first_chunk, data, from_upload, log):
    source = "FILES blob" if from_upload else "POST blob"
    log(
        "write-file",
        command=f"Writing {len(data)} bytes to file {target_file} starting position {start_offset} using {source}",
    )
    try:
        fp = _open_target(target_file, is_first_chunk)
    except OSError as exc:
        raise WriteError(f"Unable to open {target_file} file for writing: {exc}", path=str(target_file))
    with fp:
        try:
            fp.seek(int(start_offset))
            bytes_written = fp.write(data)
        except OSError as exc:
            raise WriteError(f"Unable to write data to file {target_file}: {exc}", path=str(target_file))
    if data and not bytes_written:
        raise WriteError(f"Unable to write data to file {target_file}", path=str(target_file))
    return bytes_written
