"""Registry mapping DSN transport names to dial functions."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Protocol

from .errors import ConfigError

LOG = logging.getLogger(__name__)

# Reserved for the driver's own TCP stack; never routed through a registry entry.
NATIVE_TRANSPORT = "tcp"


class StreamConnection(Protocol):
    """Socket-like object PyMySQL can speak the wire protocol over."""

    def makefile(self, *args: object) -> object: ...

    def sendall(self, data: bytes) -> object: ...

    def settimeout(self, timeout: float | None) -> None: ...

    def close(self) -> None: ...


DialFunc = Callable[[str], StreamConnection]


class TransportRegistry:
    """Named network transports available to `TunneledDatabase.open`.

    Register each transport once during startup, before any DSN naming it is
    opened. Registering an existing name replaces the previous dial function
    (last write wins).
    """

    def __init__(self) -> None:
        self._transports: dict[str, DialFunc] = {}

    def register(self, name: str, dial: DialFunc) -> None:
        """Associate `name` with `dial`."""

        if not name or not name.strip():
            raise ValueError("transport name must not be empty")
        if name == NATIVE_TRANSPORT:
            raise ValueError(f"transport name '{NATIVE_TRANSPORT}' is reserved")
        if not callable(dial):
            raise ValueError(f"dial function for transport '{name}' is not callable")
        if name in self._transports:
            LOG.debug("Replacing registered transport", extra={"transport": name})
        self._transports[name] = dial

    def unregister(self, name: str) -> bool:
        """Remove a transport; returns False when it was not registered."""

        return self._transports.pop(name, None) is not None

    def resolve(self, name: str) -> DialFunc:
        """Return the dial function registered for `name`."""

        try:
            return self._transports[name]
        except KeyError:
            raise ConfigError(f"unknown network transport '{name}'") from None

    def names(self) -> list[str]:
        return sorted(self._transports)

    def __contains__(self, name: object) -> bool:
        return name in self._transports

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())


__all__ = ["DialFunc", "NATIVE_TRANSPORT", "StreamConnection", "TransportRegistry"]
