"""Data-source descriptors naming a registered transport.

A DSN has the shape::

    user:password@transport(host:port)/database?charset=utf8mb4&parseTime=true
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Mapping
from urllib.parse import parse_qsl, urlencode

from pymysql.charset import charset_by_name
from pymysql.constants import FIELD_TYPE
from pymysql.converters import conversions

from .config import DatabaseConfig
from .errors import ConfigError

DEFAULT_PARAMS: Mapping[str, str] = {
    "charset": "utf8mb4",
    "parseTime": "true",
    "loc": "Local",
    "allowNativePasswords": "true",
}

SUPPORTED_PARAMS = frozenset(
    {"charset", "parseTime", "loc", "allowNativePasswords", "timeout", "readTimeout", "writeTimeout"}
)

_NETWORK = re.compile(r"^(?P<transport>[^()]+)\((?P<address>[^()]*)\)$")
_DURATION = re.compile(r"^(?P<value>\d+(?:\.\d+)?)(?P<unit>ms|s|m|h)$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_TEMPORAL_TYPES = (FIELD_TYPE.DATE, FIELD_TYPE.DATETIME, FIELD_TYPE.TIMESTAMP, FIELD_TYPE.NEWDATE)


@dataclass(frozen=True, slots=True)
class DataSource:
    """Parsed form of a DSN."""

    user: str
    password: str
    transport: str
    host: str
    port: int
    database: str
    params: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_PARAMS))

    @classmethod
    def from_config(cls, config: DatabaseConfig, transport: str) -> DataSource:
        params = dict(DEFAULT_PARAMS)
        params["charset"] = config.charset
        for key, seconds in (
            ("timeout", config.connect_timeout),
            ("readTimeout", config.read_timeout),
            ("writeTimeout", config.write_timeout),
        ):
            if seconds is not None:
                params[key] = _format_duration(seconds)
        return cls(
            user=config.user,
            password=config.password_value(),
            transport=transport,
            host=config.host,
            port=config.port,
            database=config.database,
            params=params,
        )

    @classmethod
    def parse(cls, dsn: str) -> DataSource:
        """Parse a DSN string.

        Raises:
            ConfigError: If the DSN is malformed or uses an unsupported parameter.
        """

        head, slash, tail = dsn.rpartition("/")
        if not slash:
            raise ConfigError("DSN is missing the '/database' part")
        database, _, query = tail.partition("?")
        credentials, at, network = head.rpartition("@")
        if not at:
            network = head
            credentials = ""
        user, _, password = credentials.partition(":")

        match = _NETWORK.match(network)
        if not match:
            raise ConfigError(f"DSN network part {network!r} is not in transport(host:port) form")
        host, sep, port_text = match.group("address").rpartition(":")
        if not sep or not host or not port_text.isdigit():
            raise ConfigError(f"DSN address {match.group('address')!r} is not in host:port form")

        params = dict(parse_qsl(query, keep_blank_values=True))
        unknown = sorted(set(params) - SUPPORTED_PARAMS)
        if unknown:
            raise ConfigError(f"unsupported DSN parameter(s): {', '.join(unknown)}")
        source = cls(
            user=user,
            password=password,
            transport=match.group("transport"),
            host=host.strip("[]"),
            port=int(port_text),
            database=database,
            params=params,
        )
        source.connect_kwargs()
        return source

    @property
    def address(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def format(self) -> str:
        """Render the DSN string."""

        dsn = f"{self.user}:{self.password}@{self.transport}({self.address})/{self.database}"
        if self.params:
            dsn += "?" + urlencode(dict(self.params))
        return dsn

    def redacted(self) -> str:
        """DSN with the password masked, safe for logs and error messages."""

        return replace(self, password="***" if self.password else "").format()

    def connect_kwargs(self) -> dict[str, object]:
        """Translate the DSN into keyword arguments for `pymysql.connect`."""

        params = self.params
        kwargs: dict[str, object] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database or None,
            "charset": _parse_charset(params.get("charset", DEFAULT_PARAMS["charset"])),
            "autocommit": None,
        }
        for key, name in (
            ("timeout", "connect_timeout"),
            ("readTimeout", "read_timeout"),
            ("writeTimeout", "write_timeout"),
        ):
            if key in params:
                kwargs[name] = _parse_duration(key, params[key])
        if not _parse_bool("parseTime", params.get("parseTime", "false")):
            kwargs["conv"] = {
                type_code: converter
                for type_code, converter in conversions.items()
                if type_code not in _TEMPORAL_TYPES
            }
        if "allowNativePasswords" in params:
            _parse_bool("allowNativePasswords", params["allowNativePasswords"])
        return kwargs


def _parse_charset(value: str) -> str:
    if not value or charset_by_name(value) is None:
        raise ConfigError(f"DSN parameter charset={value!r} is not a charset known to the MySQL client")
    return value


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in {"true", "1"}:
        return True
    if lowered in {"false", "0"}:
        return False
    raise ConfigError(f"DSN parameter {key}={value!r} is not a boolean")


def _parse_duration(key: str, value: str) -> float:
    match = _DURATION.match(value)
    if not match:
        raise ConfigError(f"DSN parameter {key}={value!r} is not a duration such as 5s or 250ms")
    seconds = float(match.group("value")) * _UNIT_SECONDS[match.group("unit")]
    if seconds <= 0:
        raise ConfigError(f"DSN parameter {key}={value!r} must be positive")
    return seconds


def _format_duration(seconds: float) -> str:
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{int(round(seconds * 1000))}ms"


__all__ = ["DEFAULT_PARAMS", "DataSource", "SUPPORTED_PARAMS"]
