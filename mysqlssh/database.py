"""MySQL connections whose sockets come from a registered transport."""

from __future__ import annotations

import logging
import time

import pymysql
from pymysql.constants import CR

from .config import DatabaseConfig
from .dsn import DataSource
from .errors import ConfigError, ConnectError, DialError, QueryError
from .query import QueryResult, rows_to_result
from .transports import DialFunc, TransportRegistry

LOG = logging.getLogger(__name__)

# Client error codes PyMySQL raises when the underlying stream is gone.
_CONNECTION_LOST = frozenset(
    {CR.CR_CONNECTION_ERROR, CR.CR_CONN_HOST_ERROR, CR.CR_SERVER_GONE_ERROR, CR.CR_SERVER_LOST}
)


class TunneledDatabase:
    """A single MySQL connection carried over a dialed transport channel.

    The database layer never dials the network itself: the socket handed to
    PyMySQL always comes from the transport named in the DSN.
    """

    def __init__(self, source: DataSource, connection: pymysql.connections.Connection) -> None:
        self._source = source
        self._connection = connection
        self._closed = False

    @classmethod
    def open(cls, dsn: str, registry: TransportRegistry) -> TunneledDatabase:
        """Open, authenticate and ping a connection described by `dsn`.

        Raises:
            ConfigError: The DSN is malformed or names an unknown transport.
            ConnectError: The transport could not be dialed, the server
                rejected the handshake, or the liveness check failed. The
                partially opened connection is released first.
        """

        source = DataSource.parse(dsn)
        dial = registry.resolve(source.transport)
        try:
            connection = pymysql.connect(**source.connect_kwargs(), defer_connect=True)
        except (ValueError, TypeError) as exc:
            raise ConfigError(f"invalid connection settings for {source.redacted()}: {exc}") from exc
        database = cls(source, connection)
        try:
            database._attach(dial)
            database.ping()
        except (ConnectError, ConfigError):
            database.close()
            raise
        LOG.info("Database connection ready", extra={"dsn": source.redacted()})
        return database

    @classmethod
    def from_config(cls, config: DatabaseConfig, transport: str, registry: TransportRegistry) -> TunneledDatabase:
        """Open a connection to the server in `config` through the named transport."""

        return cls.open(DataSource.from_config(config, transport).format(), registry)

    @property
    def source(self) -> DataSource:
        return self._source

    @property
    def closed(self) -> bool:
        return self._closed

    def ping(self) -> None:
        """Check the server is still reachable over the transport."""

        self._ensure_open()
        try:
            # reconnect=True would make PyMySQL dial the host directly.
            self._connection.ping(reconnect=False)
        except pymysql.err.Error as exc:
            raise ConnectError(f"database {self._source.address} did not answer ping: {exc}") from exc

    def execute(self, sql: str, args: object = None) -> QueryResult:
        """Run one statement and return its normalized result."""

        statement = sql.strip()
        if not statement:
            raise QueryError("Provide SQL to execute.")
        self._ensure_open()
        started = time.perf_counter()
        try:
            with self._connection.cursor() as cursor:
                affected = cursor.execute(statement, args)
                rows = cursor.fetchall() if cursor.description is not None else ()
                description = cursor.description
        except (pymysql.err.OperationalError, pymysql.err.InterfaceError) as exc:
            if _is_connection_lost(exc):
                raise ConnectError(f"lost connection to database {self._source.address}: {exc}") from exc
            raise QueryError(str(exc)) from exc
        except pymysql.err.Error as exc:
            raise QueryError(str(exc)) from exc
        except (OSError, EOFError) as exc:
            raise ConnectError(f"lost connection to database {self._source.address}: {exc}") from exc
        except (UnicodeDecodeError, ValueError) as exc:
            raise QueryError(f"cannot decode result: {exc}") from exc
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return rows_to_result(description, rows, elapsed_ms=elapsed_ms, affected=affected)

    def close(self) -> bool:
        """Release the connection; returns False when it was already closed."""

        if self._closed:
            return False
        self._closed = True
        try:
            self._connection.close()
        except (pymysql.err.Error, OSError) as exc:
            LOG.debug("Ignoring error while closing database connection", extra={"error": str(exc)})
        LOG.info("Database connection closed", extra={"database": self._source.address})
        return True

    def __enter__(self) -> TunneledDatabase:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _attach(self, dial: DialFunc) -> None:
        source = self._source
        try:
            stream = dial(source.address)
        except (DialError, OSError) as exc:
            raise ConnectError(f"cannot reach database {source.address} via '{source.transport}': {exc}") from exc

        # PyMySQL ignores connect_timeout for injected sockets and applies the
        # read/write timeouts on every I/O, so the handshake borrows them.
        connection = self._connection
        read_timeout, write_timeout = connection._read_timeout, connection._write_timeout
        connection._read_timeout = connection._write_timeout = connection.connect_timeout
        try:
            connection.connect(sock=stream)
        except pymysql.err.Error as exc:
            raise ConnectError(f"database handshake with {source.address} failed: {exc}") from exc
        except (OSError, EOFError) as exc:
            raise ConnectError(f"database handshake with {source.address} failed: {exc}") from exc
        finally:
            connection._read_timeout, connection._write_timeout = read_timeout, write_timeout

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectError(f"database connection to {self._source.address} is closed")


def _is_connection_lost(exc: pymysql.err.Error) -> bool:
    if isinstance(exc, pymysql.err.InterfaceError):
        return True
    code = exc.args[0] if exc.args else None
    return code in _CONNECTION_LOST


__all__ = ["TunneledDatabase"]
