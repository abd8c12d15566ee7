"""Sliced SQL dump import with URL rewriting and byte-offset resume points.

Statement boundaries are detected the way mysqldump output is laid out, not
by tokenizing SQL: a line ending in ``;`` plus the line terminator closes the
buffered statement. Semicolons inside quoted data that are not at a line end
therefore never split a statement.
"""

from dataclasses import dataclass
from typing import Optional

from siterestore.core.action_logging import noop_log_action
from siterestore.core.errors import NotFound, StatementError
from siterestore.services.database import is_duplicate_key_error
from siterestore.services.serialized_rewriter import apply_rewrites

STATEMENT_TERMINATORS = (b";\n", b";\r\n")


@dataclass
class ImportResult:
    """Outcome of one import slice."""
    next_offset: int
    finished: bool
    executed_count: int
    error: Optional[StatementError] = None


def is_skipped_line(line):
    """Comment (``#``) and blank lines never belong to a statement."""
    return line.startswith(b"#") or not line.strip()


def iter_statements(fp):
    """Yield ``(statement_start, statement_bytes)`` from the current position.

    ``statement_start`` is the offset of the statement's first line. The file
    position after each yield sits right after the terminating line.
    """
    buffer = []
    statement_start = None
    while True:
        line_start = fp.tell()
        line = fp.readline()
        if not line:
            break
        if is_skipped_line(line):
            continue
        if statement_start is None:
            statement_start = line_start
        buffer.append(line)
        if not line.endswith(STATEMENT_TERMINATORS):
            continue
        yield statement_start, b"".join(buffer)
        buffer = []
        statement_start = None
    if buffer:
        yield statement_start, None


def import_slice(
    dump_path,
    start_offset,
    rewrite_specs,
    row_budget,
    connection,
    override_statement=None,
    encoding="utf-8",
    log=noop_log_action,
):
    """Execute up to ``row_budget`` statements of ``dump_path`` from ``start_offset``.

    ``override_statement`` replaces the first statement of the slice (the
    caller's edited retry of a failed statement). Duplicate-key failures are
    counted as executed and skipped; any other failure stops the slice with
    ``error`` set and ``next_offset`` pointing at the failing statement.
    ``finished`` is only reported once the end of the file is reached.
    ``encoding`` is the Python codec of the connection charset; statements
    are decoded with it so the driver re-encodes them byte for byte.
    """
    try:
        fp = open(dump_path, "rb")
    except FileNotFoundError:
        raise NotFound(f"Mysql backup file {dump_path} does not exists", path=str(dump_path))
    executed = 0
    with fp:
        fp.seek(0, 2)
        file_size = fp.tell()
        fp.seek(int(start_offset))
        log("restore-db", command=f"Opening mysql dump file {dump_path} at position {start_offset}.")
        statements = iter_statements(fp)
        for statement_start, raw in statements:
            if raw is None:
                log("restore-db", rejection_message=f"Ignoring unterminated statement at offset {statement_start}")
                break
            # surrogateescape keeps bytes that are invalid in the dump charset intact.
            query = raw.decode(encoding, errors="surrogateescape").strip()
            if override_statement:
                query = override_statement.strip()
                override_statement = None
            query = apply_rewrites(query, rewrite_specs, encoding=encoding, log=log)
            ok, error_message = connection.query(query)
            if not ok and not is_duplicate_key_error(error_message):
                message = f"Mysql Error: {error_message}"
                log("restore-db", rejection_message=message)
                return ImportResult(
                    next_offset=statement_start,
                    finished=False,
                    executed_count=executed,
                    error=StatementError(message, statement=query, offset=statement_start),
                )
            executed += 1
            if executed >= row_budget:
                break
        statements.close()
        next_offset = fp.tell()
    log(
        "restore-db",
        command=f"Executed {executed} queries of size {next_offset - int(start_offset)} bytes",
    )
    finished = next_offset >= file_size
    if finished:
        log("restore-db", command="Mysql Import Done.")
    return ImportResult(next_offset=next_offset, finished=finished, executed_count=executed)
