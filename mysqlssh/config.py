"""Configuration loading helpers."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

import tomllib

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from .errors import ConfigError

CONFIG_ENV_VAR = "MYSQL_VIA_SSH_CONFIG"
CONFIG_FILENAME = "config.toml"
DEFAULT_KNOWN_HOSTS = Path.home() / ".config" / "mysql-via-ssh" / "known_hosts"


class HostKeyPolicy(str, Enum):
    """How the bastion's host key is verified."""

    ACCEPT_ANY = "accept-any"
    TRUST_ON_FIRST_USE = "trust-on-first-use"
    FINGERPRINT = "fingerprint"
    KNOWN_HOSTS = "known-hosts"


class TunnelConfig(BaseModel):
    """Bastion host and credentials, the `[ssh]` section of config.toml."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    host: str
    port: int = 22
    user: str
    password: SecretStr | None = Field(default=None, validation_alias=AliasChoices("password", "pwd"))
    key_file: str | None = None
    key_passphrase: SecretStr | None = None
    allow_agent: bool = False
    host_key_policy: HostKeyPolicy = HostKeyPolicy.TRUST_ON_FIRST_USE
    known_hosts: str | None = None
    fingerprint: str | None = None
    connect_timeout: float = 10.0
    dial_timeout: float = 10.0
    keepalive_interval: int = 30

    @field_validator("password", "key_passphrase", "key_file", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value:
            return None
        return value

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def password_value(self) -> str | None:
        """Plain-text password, or None when password auth is not configured."""

        if self.password is None:
            return None
        return self.password.get_secret_value() or None


class DatabaseConfig(BaseModel):
    """Database server as seen from the bastion, the `[mysql]` section of config.toml."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    host: str
    port: int = Field(default=3306, ge=1, le=65535)
    user: str
    password: SecretStr | None = Field(default=None, validation_alias=AliasChoices("password", "pwd"))
    database: str
    charset: str = "utf8mb4"
    connect_timeout: float | None = None
    read_timeout: float | None = None
    write_timeout: float | None = None
    table: str = "table"

    @field_validator("password", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value:
            return None
        return value

    def password_value(self) -> str:
        if self.password is None:
            return ""
        return self.password.get_secret_value()


class AppConfig(BaseModel):
    """Shape of the configuration file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tunnel: TunnelConfig = Field(validation_alias=AliasChoices("tunnel", "ssh"))
    database: DatabaseConfig = Field(validation_alias=AliasChoices("database", "mysql"))


def default_config_path() -> Path:
    """Resolve the config path used when none is given on the command line."""

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.cwd() / CONFIG_FILENAME


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load and validate configuration from a TOML file.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid TOML or
            does not match the schema.
    """

    config_path = Path(path) if path is not None else default_config_path()
    try:
        data = _read_config_file(config_path)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {config_path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"cannot read config file {config_path}: {exc}") from exc

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration in {config_path}: {_summarize(exc)}") from exc


def _read_config_file(path: Path) -> dict[str, object]:
    with path.expanduser().open("rb") as handle:
        return tomllib.load(handle)


def _summarize(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"])
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


__all__ = [
    "AppConfig",
    "CONFIG_ENV_VAR",
    "DEFAULT_KNOWN_HOSTS",
    "DatabaseConfig",
    "HostKeyPolicy",
    "TunnelConfig",
    "default_config_path",
    "load_config",
]
