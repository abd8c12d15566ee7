"""Caller-held progress cursors exchanged with every restore action.

The server keeps no session between polls. Each action reads the cursor
fields the browser sent back (``start``, ``part``, ``processed``) and answers
with the next cursor plus a ``finished`` flag.
"""

from dataclasses import dataclass


def parse_int_field(form, name, default=0):
    """Read a non-negative integer form field; blank or junk values fall back."""
    raw = form.get(name) if form is not None else None
    if raw is None:
        return default
    text = str(raw).strip()
    if not text:
        return default
    try:
        value = int(text)
    except ValueError:
        # Mirror FILTER_SANITIZE_NUMBER_INT style input such as "12.0".
        digits = "".join(ch for ch in text if ch.isdigit())
        if not digits:
            return default
        value = int(digits)
    return max(0, value)


@dataclass(frozen=True)
class ImportCursor:
    """Resume point inside a SQL dump; always on a line boundary."""
    byte_offset: int = 0
    processed_statements: int = 0

    @classmethod
    def from_form(cls, form):
        return cls(
            byte_offset=parse_int_field(form, "start"),
            processed_statements=parse_int_field(form, "processed"),
        )

    def advance(self, next_offset, executed_count):
        """Return the cursor for the next slice."""
        return ImportCursor(next_offset, self.processed_statements + executed_count)

    def to_payload(self):
        return {"start": self.byte_offset, "processed": self.processed_statements}


@dataclass(frozen=True)
class ExtractionCursor:
    """Resume point across the physical parts of one logical backup.

    ``start`` is the archive primitive's continuation offset inside the active
    part, ``part_index`` the active part and ``processed`` the running byte
    total over the whole logical stream.
    """
    start: int = 0
    part_index: int = 0
    processed: int = 0
    finished: bool = False

    @classmethod
    def from_form(cls, form):
        return cls(
            start=parse_int_field(form, "start"),
            part_index=parse_int_field(form, "part"),
            processed=parse_int_field(form, "processed"),
            finished=bool(parse_int_field(form, "finished")),
        )

    def to_payload(self):
        return {
            "start": self.start,
            "part": self.part_index,
            "processed": self.processed,
            "finished": 1 if self.finished else 0,
        }
