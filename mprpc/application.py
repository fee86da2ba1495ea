"""Framework start-up: command-line parsing and the shared configuration."""

from __future__ import annotations

import getopt
import sys
from typing import Sequence

from mprpc.config import RpcConfig

USAGE = "format: command -i <configfile>"

_config = RpcConfig()


class UsageError(Exception):
    """Raised when the command line does not name a configuration file."""

    def __init__(self, message: str = USAGE) -> None:
        super().__init__(message)


def parse_args(argv: Sequence[str]) -> str:
    """Return the configuration file named by ``-i <configfile>`` in ``argv``."""
    if not argv:
        raise UsageError()
    try:
        options, _ = getopt.getopt(list(argv), "i:")
    except getopt.GetoptError as exc:
        raise UsageError() from exc
    if not options:
        raise UsageError()
    _, value = options[0]
    return value


def init(argv: Sequence[str] | None = None) -> RpcConfig:
    """Parse ``argv`` (default: the process arguments) and load the named file."""
    if argv is None:
        argv = sys.argv[1:]
    _config.load_file(parse_args(argv))
    return _config


def get_config() -> RpcConfig:
    """Return the configuration shared by the whole process."""
    return _config