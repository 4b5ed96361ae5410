"""Command-line entry point: query a MySQL server through an SSH bastion."""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Sequence

from . import __version__
from .config import AppConfig, default_config_path, load_config
from .database import TunneledDatabase
from .errors import MysqlSshError, PhaseError, QueryError
from .query import ScanResult, format_record, scan_records, select_records_statement
from .transports import TransportRegistry
from .tunnel import SecureTunnel

LOG = logging.getLogger(__name__)

TRANSPORT_NAME = "mysql+tcp"


@contextmanager
def _phase(name: str) -> Iterator[None]:
    try:
        yield
    except PhaseError:
        raise
    except MysqlSshError as exc:
        raise PhaseError(name, exc) from exc


def run(
    config: AppConfig,
    *,
    registry: TransportRegistry | None = None,
    out: Callable[[str], object] = print,
) -> ScanResult:
    """Open the tunnel, then the database, run the query and print each record.

    The database is always released before the tunnel, on success and on
    every failure path.

    Raises:
        PhaseError: Wrapping the error of the phase that failed.
    """

    registry = registry if registry is not None else TransportRegistry()
    with _phase("open tunnel"):
        tunnel = SecureTunnel.open(config.tunnel)
    with tunnel:
        registry.register(TRANSPORT_NAME, tunnel.dial)
        with _phase("open database"):
            database = TunneledDatabase.from_config(config.database, TRANSPORT_NAME, registry)
        with database, _phase("query"):
            # TODO: accept the statement from the command line instead of the fixed table read.
            result = database.execute(select_records_statement(config.database.table))
            scanned = scan_records(result)
            for record in scanned.records:
                out(format_record(record))
            for error in scanned.errors:
                LOG.warning("Skipped undecodable row: %s", error, extra={"row": error.index})
            if scanned.errors:
                raise QueryError(f"{len(scanned.errors)} of {len(result.rows)} row(s) could not be decoded")
    return scanned


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mysql-via-ssh",
        description="Connect to a MySQL database through an SSH bastion host.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help=f"configuration file (default: {default_config_path()})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="increase log verbosity (-v info, -vv debug)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("paramiko").setLevel(logging.DEBUG if verbosity >= 3 else logging.WARNING)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI; returns the process exit code."""

    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        with _phase("load config"):
            config = load_config(args.config)
        run(config)
    except MysqlSshError as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
