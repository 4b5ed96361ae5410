"""Query a MySQL server that is only reachable through an SSH bastion host."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import AppConfig, DatabaseConfig, HostKeyPolicy, TunnelConfig, load_config
from .database import TunneledDatabase
from .errors import (
    AuthenticationError,
    ConfigError,
    ConnectError,
    DialError,
    HostKeyVerificationError,
    MysqlSshError,
    PhaseError,
    QueryError,
)
from .transports import TransportRegistry
from .tunnel import SecureTunnel

__all__ = [
    "AppConfig",
    "AuthenticationError",
    "ConfigError",
    "ConnectError",
    "DatabaseConfig",
    "DialError",
    "HostKeyPolicy",
    "HostKeyVerificationError",
    "MysqlSshError",
    "PhaseError",
    "QueryError",
    "SecureTunnel",
    "TransportRegistry",
    "TunnelConfig",
    "TunneledDatabase",
    "load_config",
    "__version__",
]
