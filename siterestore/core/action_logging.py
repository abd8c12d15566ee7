"""Restore action log: one sanitized line per event, appended to a size-rotated file."""

from datetime import datetime
import os
import traceback

from flask import has_request_context, request

LOG_ROTATE_MAX_BYTES = 5 * 1024 * 1024
LOG_ROTATE_BACKUP_COUNT = 5
TRACEBACK_LIMIT = 700
REQUEST_ID_LENGTH = 15


def clean_fragment(text):
    """Collapse whitespace and line breaks so one event stays on one line."""
    return " ".join(str(text or "").split())


def request_origin():
    """Return ``client`` or ``client#request-id`` for the current request."""
    if not has_request_context():
        return "restore"
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    client = (
        forwarded
        or (request.headers.get("X-Real-IP") or "").strip()
        or (request.remote_addr or "").strip()
        or "restore"
    )
    api_id = (request.form.get("API_ID") or "").strip()[:REQUEST_ID_LENGTH]
    return f"{client}#{api_id}" if api_id else client


def rotate_if_needed(path, max_bytes, backup_count):
    """Shift ``log`` to ``log.1`` (and so on up to ``backup_count``) once it reaches ``max_bytes``."""
    if max_bytes <= 0 or backup_count <= 0:
        return
    try:
        if path.stat().st_size < max_bytes:
            return
    except FileNotFoundError:
        return
    names = [path] + [path.with_name(f"{path.name}.{idx}") for idx in range(1, backup_count + 1)]
    for src, dst in reversed(list(zip(names, names[1:]))):
        if src.exists():
            os.replace(src, dst)


class ActionLog:
    """Append-only restore event log bound to one file."""

    def __init__(self, display_tz, log_file, max_bytes=LOG_ROTATE_MAX_BYTES, backup_count=LOG_ROTATE_BACKUP_COUNT):
        self.display_tz = display_tz
        self.log_file = log_file
        self.max_bytes = max_bytes
        self.backup_count = backup_count

    def format_line(self, action, command=None, rejection_message=None):
        stamp = datetime.now(tz=self.display_tz).strftime("%b %d %H:%M:%S")
        origin = clean_fragment(request_origin()) or "unknown"
        line = f"{stamp} <{origin}> [restore/{clean_fragment(action) or 'unknown'}]"
        detail = clean_fragment(command)
        if detail:
            line += f" {detail}"
        rejection = clean_fragment(rejection_message)
        if rejection:
            line += f" rejected: {rejection}"
        return line

    def action(self, action, command=None, rejection_message=None):
        """Append one event line; write failures are dropped."""
        line = self.format_line(action, command, rejection_message)
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            rotate_if_needed(self.log_file, self.max_bytes, self.backup_count)
            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:
            # Logging must not break restore actions.
            pass

    def exception(self, context, exc):
        """Log ``context``, the exception and a truncated traceback as one rejection."""
        summary = f"{context}: {type(exc).__name__}"
        text = clean_fragment(exc)
        if text:
            summary += f": {text}"
        tb = clean_fragment(" | ".join(traceback.format_exception(exc)))
        if tb:
            summary += f" | traceback: {tb[:TRACEBACK_LIMIT]}"
        self.action("error", rejection_message=summary)


def noop_log_action(action, command=None, rejection_message=None):
    """Discard a log event; default for helpers called without a context."""
    return None
