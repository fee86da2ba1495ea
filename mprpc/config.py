"""Loading of ``key = value`` configuration files for RPC nodes."""

from __future__ import annotations

import os


class ConfigError(Exception):
    """Raised when a configuration file cannot be read."""


class RpcConfig:
    """Configuration entries such as ``rpcserverip`` or ``zookeeperport``.

    Lines are ``key = value``; blank lines and lines starting with ``#`` are
    ignored, as are lines without ``=``. Only spaces around keys and values
    are trimmed. When a key appears more than once, the first value wins.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def load_file(self, path: str | os.PathLike[str]) -> None:
        """Read entries from ``path``; raise ConfigError if it cannot be opened."""
        try:
            with open(path, encoding="utf-8") as handle:
                lines = handle.readlines()
        except OSError as exc:
            raise ConfigError(f"{os.fspath(path)} is not exist!") from exc
        for line in lines:
            self._parse_line(line)

    def _parse_line(self, line: str) -> None:
        text = line.strip(" ")
        if not text or text.startswith("#"):
            return
        key, sep, rest = text.partition("=")
        if not sep:
            return
        value = rest.split("\n", 1)[0]
        self._entries.setdefault(key.strip(" "), value.strip(" "))

    def load(self, key: str) -> str:
        """Return the value stored for ``key``, or an empty string."""
        return self._entries.get(key, "")

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)