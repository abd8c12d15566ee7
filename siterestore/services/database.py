"""Database client used by the dump importer and the finish step.

Connections are opened per request and closed before the response is sent.
Every statement is committed on its own (autocommit); dump statements are
executed verbatim without bind-parameter parsing.
"""

from pymysql.charset import charset_by_name
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from siterestore.core.action_logging import noop_log_action
from siterestore.core.errors import DatabaseConnectionError

DEFAULT_CHARSET = "utf8"

# Driver messages that identify a duplicate primary/unique key.
DUPLICATE_KEY_MARKERS = ("duplicate entry", "unique constraint failed", "duplicate key value")


def build_mysql_url(host, user, password, database, charset=DEFAULT_CHARSET):
    """Build a PyMySQL URL; ``host`` may carry a ``:port`` suffix."""
    host = (host or "localhost").strip()
    port = None
    if ":" in host:
        host, _, raw_port = host.rpartition(":")
        if raw_port.isdigit():
            port = int(raw_port)
    return URL.create(
        "mysql+pymysql",
        username=user or None,
        password=password or None,
        host=host or "localhost",
        port=port,
        database=database or None,
        query={"charset": charset},
    )


def dump_encoding(charset):
    """Return the Python codec PyMySQL uses for a MySQL charset name, or None."""
    found = charset_by_name((charset or DEFAULT_CHARSET).strip())
    return found.encoding if found is not None else None


def driver_message(exc):
    """Return the DBAPI error text without SQLAlchemy's statement echo."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


def is_duplicate_key_error(message):
    lowered = str(message or "").lower()
    return any(marker in lowered for marker in DUPLICATE_KEY_MARKERS)


class DatabaseConnection:
    """One autocommit connection with raw-statement execution."""

    def __init__(self, engine, connection, charset=DEFAULT_CHARSET):
        self.engine = engine
        self.connection = connection
        self.charset = charset
        self.encoding = dump_encoding(charset)

    @property
    def dialect_name(self):
        return self.engine.dialect.name

    def query(self, sql):
        """Execute one raw statement; return ``(ok, error_message)``."""
        try:
            self.connection.exec_driver_sql(sql)
        except DBAPIError as exc:
            return False, driver_message(exc)
        return True, ""

    def execute(self, sql, params=None):
        """Execute an internally built statement with bound parameters."""
        return self.connection.execute(text(sql), params or {})

    def close(self):
        try:
            self.connection.close()
        finally:
            self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def _prepare_session(conn, charset):
    """Relax MySQL checks for dump import and set the client charset."""
    if conn.dialect_name != "mysql":
        return
    for statement in ("SET sql_mode=''", "SET foreign_key_checks = 0", f"SET NAMES {charset}"):
        ok, error = conn.query(statement)
        if not ok:
            raise DatabaseConnectionError(f"Could not prepare session ({statement}): {error}")


def _with_client_charset(url, charset):
    """Pin the client charset on MySQL URLs that do not choose one."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "mysql" and "charset" not in parsed.query:
        return parsed.update_query_dict({"charset": charset})
    return parsed


def connect(host, user, password, database, charset=None, url=None, log=noop_log_action):
    """Open a database connection; raise DatabaseConnectionError on failure.

    ``url`` overrides the MySQL coordinates (any SQLAlchemy URL, e.g. SQLite
    for local checks).
    """
    charset = (charset or DEFAULT_CHARSET).strip()
    if dump_encoding(charset) is None:
        raise DatabaseConnectionError(f"Invalid charset {charset}")
    target = _with_client_charset(url, charset) if url else build_mysql_url(host, user, password, database, charset)
    log("mysql-connect", command=f"Connecting to mysql database {database} with {user}@{host}")
    try:
        engine = create_engine(target, isolation_level="AUTOCOMMIT", poolclass=NullPool)
        raw = engine.connect().execution_options(no_parameters=True)
    except SQLAlchemyError as exc:
        raise DatabaseConnectionError(f"Connect Error: {driver_message(exc)}", host=host, database=database)
    conn = DatabaseConnection(engine, raw, charset)
    try:
        _prepare_session(conn, charset)
    except DatabaseConnectionError:
        conn.close()
        raise
    return conn
