"""Choosing a service node by consistent hashing of the local host address."""

from __future__ import annotations

import abc
import bisect
import enum
import socket
from typing import Sequence

from mprpc.logger import log_err

_MASK = (1 << 64) - 1
_MUL = (0xC6A4A793 << 32) + 0x5BD1E995
_SEED = 0xC70F6907
_VIRTUAL_NODES = 3


class Strategy(enum.Enum):
    RANDOM = "random"
    POLLING = "polling"
    HASH_IP = "hash_ip"


def _shift_mix(value: int) -> int:
    return value ^ (value >> 47)


def hash_string(text: str) -> int:
    """64-bit Murmur-style hash of the UTF-8 bytes of ``text``."""
    data = text.encode("utf-8")
    length = len(data)
    aligned = length & ~7
    result = (_SEED ^ (length * _MUL)) & _MASK
    for start in range(0, aligned, 8):
        chunk = int.from_bytes(data[start : start + 8], "little")
        chunk = (_shift_mix((chunk * _MUL) & _MASK) * _MUL) & _MASK
        result = ((result ^ chunk) * _MUL) & _MASK
    if length & 7:
        tail = int.from_bytes(data[aligned:], "little")
        result = ((result ^ tail) * _MUL) & _MASK
    result = (_shift_mix(result) * _MUL) & _MASK
    return _shift_mix(result)


def local_host() -> str:
    """IPv4 address of this host (the last one resolved), or ``""`` on failure."""
    try:
        name = socket.gethostname()
    except OSError:
        log_err("gethostname error!")
        return ""
    try:
        answers = socket.getaddrinfo(name, None, socket.AF_INET, socket.SOCK_STREAM)
    except OSError:
        log_err("getaddrinfo error!")
        return ""
    address = ""
    for *_, sockaddr in answers:
        address = sockaddr[0]
    return address


class RouteStrategy(abc.ABC):
    """Picks one node name out of a list."""

    @abc.abstractmethod
    def select(self, nodes: Sequence[str]) -> str: ...


class HashIPRouteStrategy(RouteStrategy):
    """Consistent hashing with three virtual nodes per real node."""

    def __init__(self, host: str | None = None) -> None:
        self._host = host
        self._virtual_map: dict[str, list[str]] = {}
        self._virtual_nodes: list[str] = []

    @property
    def host(self) -> str:
        if self._host is None:
            self._host = local_host()
        return self._host

    def _update_virtual_nodes(self, nodes: Sequence[str]) -> None:
        self._virtual_map = {}
        self._virtual_nodes = []
        for node in nodes:
            for index in range(_VIRTUAL_NODES):
                vhash = str(hash_string(f"{node}_{index}"))
                self._virtual_map.setdefault(node, []).append(vhash)
                self._virtual_nodes.append(vhash)

    def select(self, nodes: Sequence[str]) -> str:
        """Return the node for this host, or ``""`` if there is none."""
        self._update_virtual_nodes(nodes)
        host = self.host
        if not host:
            log_err("GetLocalHost error!")
        if not self._virtual_nodes:
            return ""
        # Binary search over the list in insertion order, as the virtual nodes are kept.
        index = bisect.bisect_right(self._virtual_nodes, str(hash_string(host)))
        if index == len(self._virtual_nodes):
            index = 0
        target = self._virtual_nodes[index]
        for node, vhashes in self._virtual_map.items():
            if target in vhashes:
                return node
        return ""


_hash_ip_strategy = HashIPRouteStrategy()


def query_strategy(strategy: Strategy) -> RouteStrategy:
    """Return the routing strategy; only hashing by IP exists, others log an error."""
    strategy = Strategy(strategy)
    if strategy is Strategy.RANDOM:
        log_err("Random error!")
    if strategy in (Strategy.RANDOM, Strategy.POLLING):
        log_err("Polling error!")
    return _hash_ip_strategy