"""Error taxonomy shared by the tunnel, database and CLI layers."""

from __future__ import annotations


class MysqlSshError(RuntimeError):
    """Base class for every error raised by mysqlssh."""


class ConfigError(MysqlSshError):
    """Raised when configuration is missing, unreadable or invalid."""


class AuthenticationError(MysqlSshError):
    """Raised when the bastion rejects the configured credentials."""


class ConnectError(MysqlSshError):
    """Raised when a host is unreachable, a handshake fails or a liveness check fails."""


class HostKeyVerificationError(ConnectError):
    """Raised when the bastion presents a host key the active policy rejects."""


class DialError(MysqlSshError):
    """Raised when a single tunneled channel cannot be opened."""


class QueryError(MysqlSshError):
    """Raised when a statement fails or a result row cannot be decoded."""


class PhaseError(MysqlSshError):
    """Wraps a failure with the name of the run phase it happened in."""

    def __init__(self, phase: str, cause: BaseException) -> None:
        super().__init__(f"{phase} failed: {cause}")
        self.phase = phase
        self.cause = cause


__all__ = [
    "AuthenticationError",
    "ConfigError",
    "ConnectError",
    "DialError",
    "HostKeyVerificationError",
    "MysqlSshError",
    "PhaseError",
    "QueryError",
]
