"""Host-identity verification strategies for the bastion connection."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from pathlib import Path

import paramiko

from .config import DEFAULT_KNOWN_HOSTS, HostKeyPolicy, TunnelConfig
from .errors import ConfigError, HostKeyVerificationError

LOG = logging.getLogger(__name__)


def fingerprint(key: paramiko.PKey) -> str:
    """Return the OpenSSH-style SHA256 fingerprint of a public key."""

    digest = hashlib.sha256(key.asbytes()).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def md5_fingerprint(key: paramiko.PKey) -> str:
    """Return the legacy colon-separated MD5 fingerprint of a public key."""

    raw = hashlib.md5(key.asbytes()).hexdigest()
    return "MD5:" + ":".join(raw[i : i + 2] for i in range(0, len(raw), 2))


def fingerprint_matches(key: paramiko.PKey, expected: str) -> bool:
    """Compare a key against an expected `SHA256:` or `MD5:` fingerprint."""

    expected = expected.strip()
    if expected.upper().startswith("MD5:"):
        actual = md5_fingerprint(key)
        return hmac.compare_digest(actual.lower(), expected.lower())
    if not expected.startswith("SHA256:"):
        expected = "SHA256:" + expected
    return hmac.compare_digest(fingerprint(key), expected.rstrip("="))


class FingerprintPolicy(paramiko.MissingHostKeyPolicy):
    """Accept exactly one host key, identified by its fingerprint."""

    def __init__(self, expected: str) -> None:
        self._expected = expected

    def missing_host_key(self, client: paramiko.SSHClient, hostname: str, key: paramiko.PKey) -> None:
        if not fingerprint_matches(key, self._expected):
            raise HostKeyVerificationError(
                f"host key for {hostname} does not match the configured fingerprint "
                f"(got {fingerprint(key)}, expected {self._expected})"
            )
        LOG.debug("Host key matched configured fingerprint", extra={"host": hostname})


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """Record unknown host keys in a persistent store and trust them afterwards.

    Keys already present in the store are checked by paramiko itself, which
    raises `BadHostKeyException` when the bastion presents a different key.
    """

    def __init__(self, store: Path) -> None:
        self._store = store

    def missing_host_key(self, client: paramiko.SSHClient, hostname: str, key: paramiko.PKey) -> None:
        LOG.warning(
            "Trusting previously unseen host key %s for %s",
            fingerprint(key),
            hostname,
            extra={"host": hostname, "store": str(self._store)},
        )
        client.get_host_keys().add(hostname, key.get_name(), key)
        client.save_host_keys(str(self._store))


class AcceptAnyPolicy(paramiko.MissingHostKeyPolicy):
    """Accept every host key without checking it. Insecure, opt-in only."""

    def missing_host_key(self, client: paramiko.SSHClient, hostname: str, key: paramiko.PKey) -> None:
        LOG.warning(
            "Host key verification disabled, accepting %s for %s",
            fingerprint(key),
            hostname,
            extra={"host": hostname},
        )


def apply_host_key_policy(client: paramiko.SSHClient, config: TunnelConfig) -> None:
    """Configure `client` to verify the bastion according to `config.host_key_policy`."""

    policy = config.host_key_policy
    if policy is HostKeyPolicy.ACCEPT_ANY:
        client.set_missing_host_key_policy(AcceptAnyPolicy())
    elif policy is HostKeyPolicy.TRUST_ON_FIRST_USE:
        store = _prepare_store(config.known_hosts)
        try:
            client.load_host_keys(str(store))
        except (OSError, paramiko.SSHException) as exc:
            raise ConfigError(f"cannot load host key store {store}: {exc}") from exc
        client.set_missing_host_key_policy(TrustOnFirstUsePolicy(store))
    elif policy is HostKeyPolicy.FINGERPRINT:
        if not config.fingerprint:
            raise ConfigError("host_key_policy 'fingerprint' requires a fingerprint")
        client.set_missing_host_key_policy(FingerprintPolicy(config.fingerprint))
    elif policy is HostKeyPolicy.KNOWN_HOSTS:
        path = str(Path(config.known_hosts).expanduser()) if config.known_hosts else None
        try:
            client.load_system_host_keys(path)
        except OSError as exc:
            raise ConfigError(f"cannot load known_hosts file {path}: {exc}") from exc
        client.set_missing_host_key_policy(paramiko.RejectPolicy())
    else:  # pragma: no cover - enum is exhaustive
        raise ConfigError(f"unsupported host_key_policy: {policy}")


def _prepare_store(location: str | None) -> Path:
    store = Path(location).expanduser() if location else DEFAULT_KNOWN_HOSTS
    try:
        store.parent.mkdir(parents=True, exist_ok=True)
        store.touch(exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"cannot create host key store {store}: {exc}") from exc
    return store


__all__ = [
    "AcceptAnyPolicy",
    "FingerprintPolicy",
    "TrustOnFirstUsePolicy",
    "apply_host_key_policy",
    "fingerprint",
    "fingerprint_matches",
    "md5_fingerprint",
]
