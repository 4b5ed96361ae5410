"""Tests for the transport registry."""

from __future__ import annotations

import pytest

from mysqlssh.errors import ConfigError
from mysqlssh.transports import TransportRegistry


def _dial_a(address: str):  # type: ignore[no-untyped-def]
    return ("a", address)


def _dial_b(address: str):  # type: ignore[no-untyped-def]
    return ("b", address)


def test_register_and_resolve() -> None:
    registry = TransportRegistry()
    registry.register("mysql+tcp", _dial_a)

    assert "mysql+tcp" in registry
    assert registry.names() == ["mysql+tcp"]
    assert registry.resolve("mysql+tcp")("db:3306") == ("a", "db:3306")


def test_register_same_name_last_write_wins() -> None:
    registry = TransportRegistry()
    registry.register("mysql+tcp", _dial_a)
    registry.register("mysql+tcp", _dial_b)

    assert registry.resolve("mysql+tcp") is _dial_b
    assert list(registry) == ["mysql+tcp"]


def test_resolve_unknown_transport_raises_config_error() -> None:
    registry = TransportRegistry()

    with pytest.raises(ConfigError, match="unknown network transport"):
        registry.resolve("mysql+ssh")


@pytest.mark.parametrize("name", ["", "   ", "tcp"])
def test_register_rejects_bad_names(name: str) -> None:
    registry = TransportRegistry()

    with pytest.raises(ValueError):
        registry.register(name, _dial_a)


def test_register_rejects_non_callable() -> None:
    registry = TransportRegistry()

    with pytest.raises(ValueError):
        registry.register("mysql+tcp", "not callable")  # type: ignore[arg-type]


def test_unregister() -> None:
    registry = TransportRegistry()
    registry.register("mysql+tcp", _dial_a)

    assert registry.unregister("mysql+tcp") is True
    assert registry.unregister("mysql+tcp") is False
    assert "mysql+tcp" not in registry


def test_registries_are_independent() -> None:
    first = TransportRegistry()
    second = TransportRegistry()
    first.register("mysql+tcp", _dial_a)

    assert "mysql+tcp" not in second
