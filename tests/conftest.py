"""Shared fakes standing in for paramiko and PyMySQL at the driver boundary."""

from __future__ import annotations

import io
import threading
from dataclasses import dataclass, field
from typing import Any

import paramiko
import pymysql
import pytest

from mysqlssh.config import AppConfig, DatabaseConfig, HostKeyPolicy, TunnelConfig


class FakeChannel:
    def __init__(self, dest: tuple[str, int], events: list[str]) -> None:
        self.dest = dest
        self.closed = False
        self.sent: list[bytes] = []
        self.timeout: float | None = None
        self._events = events

    def makefile(self, *args: object) -> io.BytesIO:
        return io.BytesIO()

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("Socket is closed")
        self.sent.append(data)

    def settimeout(self, timeout: float | None) -> None:
        self.timeout = timeout

    def close(self) -> None:
        if not self.closed:
            self._events.append(f"channel closed {self.dest[0]}:{self.dest[1]}")
        self.closed = True


class FakeTransport:
    def __init__(self, server: "SSHServerStub") -> None:
        self._server = server
        self._lock = threading.Lock()
        self.active = True
        self.keepalive: int | None = None
        self.channels: list[FakeChannel] = []

    def is_active(self) -> bool:
        return self.active

    def set_keepalive(self, interval: int) -> None:
        self.keepalive = interval

    def open_channel(self, kind, dest_addr=None, src_addr=None, window_size=None, max_packet_size=None, timeout=None):  # type: ignore[no-untyped-def]
        assert kind == "direct-tcpip"
        self._server.dial_timeouts.append(timeout)
        if not self.active:
            raise paramiko.SSHException("SSH session not active")
        if dest_addr in self._server.unreachable:
            raise paramiko.ChannelException(2, "Connect failed")
        channel = FakeChannel(dest_addr, self._server.events)
        with self._lock:
            self.channels.append(channel)
        return channel

    def close(self) -> None:
        self.active = False
        for channel in self.channels:
            channel.close()


class FakeSSHClient:
    def __init__(self, server: "SSHServerStub") -> None:
        self._server = server
        self.policy: paramiko.MissingHostKeyPolicy | None = None
        self.connect_kwargs: dict[str, Any] | None = None
        self.transport: FakeTransport | None = None
        self.closed = False
        self.loaded_host_keys: list[str | None] = []

    def set_missing_host_key_policy(self, policy: paramiko.MissingHostKeyPolicy) -> None:
        self.policy = policy

    def load_host_keys(self, filename: str) -> None:
        self.loaded_host_keys.append(filename)

    def load_system_host_keys(self, filename: str | None = None) -> None:
        self.loaded_host_keys.append(filename)

    def connect(self, **kwargs: Any) -> None:
        self.connect_kwargs = kwargs
        # Sockets are allocated before authentication, like the real client.
        self.transport = FakeTransport(self._server)
        if self._server.connect_error is not None:
            raise self._server.connect_error
        if self._server.password is not None and kwargs.get("password") != self._server.password:
            raise paramiko.AuthenticationException("Authentication failed.")

    def get_transport(self) -> FakeTransport | None:
        return self.transport

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
        if not self.closed:
            self._server.events.append("tunnel closed")
        self.closed = True


@dataclass
class SSHServerStub:
    """Bastion double: records every client the code under test creates."""

    events: list[str]
    password: str | None = "secret"
    connect_error: BaseException | None = None
    unreachable: set[tuple[str, int]] = field(default_factory=set)
    clients: list[FakeSSHClient] = field(default_factory=list)
    dial_timeouts: list[float | None] = field(default_factory=list)

    def new_client(self) -> FakeSSHClient:
        client = FakeSSHClient(self)
        self.clients.append(client)
        return client


class FakeCursor:
    def __init__(self, connection: "FakeMySQLConnection") -> None:
        self._connection = connection
        self.description: tuple[tuple[str, ...], ...] | None = None

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def execute(self, sql: str, args: object = None) -> int:
        server = self._connection.server
        server.statements.append(sql)
        sock = self._connection.sock
        if sock is None:
            raise pymysql.err.InterfaceError(0, "")
        try:
            sock.sendall(sql.encode())
        except OSError as exc:
            raise pymysql.err.OperationalError(2006, f"MySQL server has gone away ({exc!r})") from exc
        if server.query_error is not None:
            raise server.query_error
        if sql.lstrip().upper().startswith("SELECT"):
            self.description = tuple((name,) for name in server.columns)
            return len(server.rows)
        self.description = None
        return 1

    def fetchall(self) -> tuple[tuple[object, ...], ...]:
        return tuple(self._connection.server.rows)


class FakeMySQLConnection:
    def __init__(self, server: "MySQLServerStub", **kwargs: Any) -> None:
        self.server = server
        self.kwargs = kwargs
        self.sock: FakeChannel | None = None
        self.closed = False
        self.pings: list[bool] = []
        self.connect_timeout = kwargs.get("connect_timeout", 10)
        self._read_timeout = kwargs.get("read_timeout")
        self._write_timeout = kwargs.get("write_timeout")
        self.handshake_timeouts: tuple[object, object] | None = None

    def connect(self, sock: Any = None) -> None:
        if sock is None:
            raise AssertionError("the database layer must not dial the network itself")
        self.sock = sock
        self.handshake_timeouts = (self._read_timeout, self._write_timeout)
        if self.server.handshake_error is not None:
            raise self.server.handshake_error

    def ping(self, reconnect: bool = True) -> None:
        self.pings.append(reconnect)
        if self.server.ping_error is not None:
            raise self.server.ping_error

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        if self.closed:
            raise pymysql.err.Error("Already closed")
        self.closed = True
        self.server.events.append("database closed")
        if self.sock is not None:
            self.sock.close()


@dataclass
class MySQLServerStub:
    """MySQL server double reached through whatever socket it is handed."""

    events: list[str]
    columns: tuple[str, ...] = ("id", "name")
    rows: list[tuple[object, ...]] = field(default_factory=lambda: [(1, "a"), (2, "b")])
    handshake_error: BaseException | None = None
    ping_error: BaseException | None = None
    query_error: BaseException | None = None
    connections: list[FakeMySQLConnection] = field(default_factory=list)
    statements: list[str] = field(default_factory=list)

    def connect(self, **kwargs: Any) -> FakeMySQLConnection:
        assert kwargs.get("defer_connect") is True
        connection = FakeMySQLConnection(self, **kwargs)
        self.connections.append(connection)
        return connection


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def ssh_server(monkeypatch: pytest.MonkeyPatch, events: list[str]) -> SSHServerStub:
    server = SSHServerStub(events=events)
    monkeypatch.setattr("mysqlssh.tunnel.paramiko.SSHClient", server.new_client)
    return server


@pytest.fixture
def mysql_server(monkeypatch: pytest.MonkeyPatch, events: list[str]) -> MySQLServerStub:
    server = MySQLServerStub(events=events)
    monkeypatch.setattr("mysqlssh.database.pymysql.connect", server.connect)
    return server


@pytest.fixture
def tunnel_config() -> TunnelConfig:
    return TunnelConfig(
        host="bastion.example",
        port=22,
        user="alice",
        password="secret",
        host_key_policy=HostKeyPolicy.ACCEPT_ANY,
    )


@pytest.fixture
def database_config() -> DatabaseConfig:
    return DatabaseConfig(host="db.internal", port=3306, user="app", password="pw", database="orders")


@pytest.fixture
def app_config(tunnel_config: TunnelConfig, database_config: DatabaseConfig) -> AppConfig:
    return AppConfig(tunnel=tunnel_config, database=database_config)
