"""Cheap encrypted-backup detection from the leading bytes of a file."""

import re

from siterestore.core.errors import NotFound

PROBE_LENGTH = 16

# Numeric token as accepted by PHP is_numeric(), which produced the header.
_NUMERIC_TOKEN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def looks_numeric(raw):
    """Return True when ``raw`` bytes decode to a purely numeric token."""
    try:
        text = raw.decode("ascii")
    except UnicodeDecodeError:
        return False
    return bool(_NUMERIC_TOKEN.match(text))


def is_encrypted_file(fs, filename):
    """Classify ``filename`` as encrypted from its first 16 bytes.

    A missing file is reported as not encrypted: no bytes were observed.
    Callers resolve the backup first, so absence is raised as NotFound there.
    """
    try:
        stream = fs.read_stream(filename)
    except (NotFound, OSError):
        return False
    with stream:
        head = stream.read(PROBE_LENGTH)
    return looks_numeric(head)
