"""SSH session to a bastion host that dials tunneled TCP channels on demand."""

from __future__ import annotations

import logging
import threading
import weakref
from pathlib import Path

import paramiko

from .config import TunnelConfig
from .errors import AuthenticationError, ConfigError, ConnectError, DialError, HostKeyVerificationError
from .hostkeys import apply_host_key_policy

LOG = logging.getLogger(__name__)

# Originator address reported to the bastion for direct-tcpip channels.
_SOURCE_ADDRESS = ("127.0.0.1", 0)


def split_address(address: str) -> tuple[str, int]:
    """Split `host:port` (or `[v6-host]:port`) into its parts.

    Raises:
        ValueError: If the address has no port or the port is not a number
            between 1 and 65535.
    """

    host, sep, port_text = address.rpartition(":")
    if not sep or not host:
        raise ValueError(f"address {address!r} is not in host:port form")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"address {address!r} has a non-numeric port") from None
    if not 0 < port < 65536:
        raise ValueError(f"address {address!r} has an out-of-range port")
    return host, port


class SecureTunnel:
    """One authenticated SSH transport to a bastion, multiplexing dialed channels.

    Usage:
        with SecureTunnel.open(config.tunnel) as tunnel:
            channel = tunnel.dial("db.internal:3306")
            ...
        # transport and every channel closed on exit
    """

    def __init__(self, client: paramiko.SSHClient, config: TunnelConfig) -> None:
        self._client = client
        self._config = config
        self._lock = threading.Lock()
        self._closed = False
        self._channels: weakref.WeakSet[paramiko.Channel] = weakref.WeakSet()

    @classmethod
    def open(cls, config: TunnelConfig) -> SecureTunnel:
        """Connect and authenticate to the bastion described by `config`.

        Raises:
            ConfigError: Host or user missing, bad port, no auth method, or an
                unusable host key setting.
            AuthenticationError: The bastion rejected the credentials.
            HostKeyVerificationError: The bastion's host key was rejected.
            ConnectError: The bastion is unreachable or the handshake failed.
        """

        _validate(config)
        client = paramiko.SSHClient()
        try:
            apply_host_key_policy(client, config)
            LOG.info("Opening SSH tunnel", extra={"bastion": config.address, "user": config.user})
            client.connect(**_connect_kwargs(config))
            transport = client.get_transport()
            if transport is None or not transport.is_active():
                raise ConnectError(f"SSH transport to {config.address} is not active after connect")
            if config.keepalive_interval > 0:
                transport.set_keepalive(config.keepalive_interval)
        except paramiko.AuthenticationException as exc:
            client.close()
            raise AuthenticationError(f"{config.user}@{config.address} rejected credentials: {exc}") from exc
        except paramiko.BadHostKeyException as exc:
            client.close()
            raise HostKeyVerificationError(f"host key for {config.address} has changed: {exc}") from exc
        except (ConfigError, ConnectError):
            client.close()
            raise
        except (paramiko.SSHException, OSError, EOFError) as exc:
            client.close()
            raise ConnectError(f"cannot connect to {config.address}: {exc}") from exc
        LOG.info("SSH tunnel established", extra={"bastion": config.address})
        return cls(client, config)

    @property
    def address(self) -> str:
        return self._config.address

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def open_channels(self) -> int:
        """Number of dialed channels that have not been closed yet."""

        with self._lock:
            return sum(1 for channel in self._channels if not channel.closed)

    def dial(self, address: str, *, timeout: float | None = None) -> paramiko.Channel:
        """Open a channel to `address`, resolved and reached from the bastion.

        Safe to call from several threads at once; every call yields an
        independent channel. A failed dial leaves the tunnel usable.

        Raises:
            DialError: The tunnel is closed, the address is malformed, or the
                bastion could not open a channel to it within the timeout.
        """

        try:
            host, port = split_address(address)
        except ValueError as exc:
            raise DialError(str(exc)) from exc
        with self._lock:
            if self._closed:
                raise DialError(f"cannot dial {address}: tunnel to {self.address} is closed")
            transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise DialError(f"cannot dial {address}: SSH transport to {self.address} is no longer active")

        wait = timeout if timeout is not None else self._config.dial_timeout
        try:
            channel = transport.open_channel(
                "direct-tcpip",
                dest_addr=(host, port),
                src_addr=_SOURCE_ADDRESS,
                timeout=wait,
            )
        except paramiko.ChannelException as exc:
            raise DialError(f"bastion {self.address} could not reach {address}: {exc.text}") from exc
        except (paramiko.SSHException, OSError, EOFError) as exc:
            raise DialError(f"cannot dial {address} through {self.address}: {exc}") from exc

        with self._lock:
            if self._closed:
                channel.close()
                raise DialError(f"cannot dial {address}: tunnel to {self.address} closed while dialing")
            self._channels.add(channel)
        LOG.debug("Dialed tunneled channel", extra={"target": address, "bastion": self.address})
        return channel

    def close(self) -> bool:
        """Tear down the transport and every channel dialed from it.

        Returns True for the call that performed the teardown, False when the
        tunnel was already closed.
        """

        with self._lock:
            if self._closed:
                LOG.debug("SSH tunnel already closed", extra={"bastion": self.address})
                return False
            self._closed = True
            channels = list(self._channels)
            self._channels.clear()

        for channel in channels:
            if not channel.closed:
                channel.close()
        self._client.close()
        LOG.info("SSH tunnel closed", extra={"bastion": self.address, "channels": len(channels)})
        return True

    def __enter__(self) -> SecureTunnel:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _validate(config: TunnelConfig) -> None:
    if not config.host.strip():
        raise ConfigError("tunnel host must not be empty")
    if not config.user.strip():
        raise ConfigError("tunnel user must not be empty")
    if not 0 < config.port < 65536:
        raise ConfigError(f"tunnel port {config.port} is out of range")
    if config.password_value() is None and not config.key_file and not config.allow_agent:
        raise ConfigError("no SSH authentication method configured (password, key_file or allow_agent)")


def _connect_kwargs(config: TunnelConfig) -> dict[str, object]:
    kwargs: dict[str, object] = {
        "hostname": config.host,
        "port": config.port,
        "username": config.user,
        "timeout": config.connect_timeout,
        "banner_timeout": config.connect_timeout,
        "auth_timeout": config.connect_timeout,
        "allow_agent": config.allow_agent,
        "look_for_keys": False,
    }
    password = config.password_value()
    if password is not None:
        kwargs["password"] = password
    if config.key_file:
        kwargs["key_filename"] = str(Path(config.key_file).expanduser())
        if config.key_passphrase is not None:
            kwargs["passphrase"] = config.key_passphrase.get_secret_value()
    return kwargs


__all__ = ["SecureTunnel", "split_address"]
