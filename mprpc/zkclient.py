"""A small ZooKeeper client speaking the server's binary protocol.

It covers what RPC nodes need: creating service znodes, reading node data
and children, and keeping the session alive so ephemeral nodes persist.
"""

from __future__ import annotations

import socket
import struct
import threading

from mprpc.application import get_config
from mprpc.config import RpcConfig
from mprpc.logger import log_info
from mprpc.routing import Strategy, query_strategy

ZOK = 0
ZNONODE = -101
ZNODEEXISTS = -110

_OP_CREATE = 1
_OP_EXISTS = 3
_OP_GET_DATA = 4
_OP_GET_CHILDREN = 8
_OP_PING = 11
_OP_CLOSE_SESSION = -11

_PING_XID = -2
_FLAG_EPHEMERAL = 1
_PERM_ALL = 31
_OPEN_ACL_UNSAFE = ((_PERM_ALL, "world", "anyone"),)


class ZkError(Exception):
    """Raised when the ZooKeeper server cannot be reached or refuses a request."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


def _int(value: int) -> bytes:
    return struct.pack(">i", value)


def _buffer(data: bytes | None) -> bytes:
    return _int(-1) if data is None else _int(len(data)) + data


def _string(text: str) -> bytes:
    return _buffer(text.encode("utf-8"))


def _bool(flag: bool) -> bytes:
    return struct.pack(">?", bool(flag))


def _frame(body: bytes) -> bytes:
    return _int(len(body)) + body


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = sock.recv(size - len(chunks))
        if not chunk:
            raise ZkError("connection closed by zookeeper server")
        chunks += chunk
    return bytes(chunks)


def _read_frame(sock: socket.socket) -> bytes:
    (size,) = struct.unpack(">i", _recv_exact(sock, 4))
    if size < 0:
        raise ZkError("invalid frame length")
    return _recv_exact(sock, size)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def _take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise ZkError("truncated reply from zookeeper server")
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def read_int(self) -> int:
        return struct.unpack(">i", self._take(4))[0]

    def read_long(self) -> int:
        return struct.unpack(">q", self._take(8))[0]

    def read_buffer(self) -> bytes | None:
        size = self.read_int()
        return None if size < 0 else self._take(size)

    def read_string(self) -> str:
        data = self.read_buffer()
        return "" if data is None else data.decode("utf-8", "replace")


class ZkClient:
    """Connection to the ZooKeeper server named by ``zookeeperip``/``zookeeperport``."""

    def __init__(
        self,
        config: RpcConfig | None = None,
        *,
        session_timeout: float = 30.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self._config = config
        self.session_timeout = session_timeout
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._lock = threading.Lock()
        self._xid = 0
        self._stop = threading.Event()
        self._pinger: threading.Thread | None = None
        self.session_id = 0

    def __enter__(self) -> ZkClient:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        """Connect and open a session; raise ZkError if that fails."""
        if self._sock is not None:
            return
        config = self._config if self._config is not None else get_config()
        host = config.load("zookeeperip")
        port_text = config.load("zookeeperport")
        try:
            port = int(port_text)
        except ValueError as exc:
            raise ZkError(f"zookeeper_init error! invalid address {host}:{port_text}") from exc
        try:
            sock = socket.create_connection((host, port), timeout=self._connect_timeout)
        except OSError as exc:
            raise ZkError(f"zookeeper_init error! {exc}") from exc
        request = (
            struct.pack(">iqiq", 0, 0, int(self.session_timeout * 1000), 0)
            + _buffer(bytes(16))
            + _bool(False)
        )
        try:
            sock.sendall(_frame(request))
            reply = _Reader(_read_frame(sock))
            reply.read_int()
            negotiated = reply.read_int()
            session_id = reply.read_long()
        except (OSError, ZkError) as exc:
            sock.close()
            raise ZkError(f"zookeeper_init error! {exc}") from exc
        if negotiated <= 0:
            sock.close()
            raise ZkError("zookeeper_init error! session expired")
        sock.settimeout(max(negotiated / 1000, self._connect_timeout))
        self._sock = sock
        self.session_id = session_id
        self._stop = threading.Event()
        self._pinger = threading.Thread(
            target=self._ping_loop, args=(negotiated / 3000,), name="mprpc-zk-ping", daemon=True
        )
        self._pinger.start()
        print("zookeeper_init success!")

    def close(self) -> None:
        """End the session and release the connection."""
        self._stop.set()
        if self._pinger is not None:
            self._pinger.join()
            self._pinger = None
        if self._sock is None:
            return
        try:
            self._call(_OP_CLOSE_SESSION, b"")
        except ZkError:
            pass
        finally:
            with self._lock:
                if self._sock is not None:
                    self._sock.close()
                    self._sock = None

    def _ping_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self._call(_OP_PING, b"", xid=_PING_XID)
            except ZkError:
                return

    def _call(self, op: int, body: bytes, xid: int | None = None) -> tuple[int, _Reader]:
        with self._lock:
            if self._sock is None:
                raise ZkError("zookeeper client is not connected")
            if xid is None:
                self._xid += 1
                xid = self._xid
            try:
                self._sock.sendall(_frame(struct.pack(">ii", xid, op) + body))
                while True:
                    reply = _Reader(_read_frame(self._sock))
                    reply_xid = reply.read_int()
                    reply.read_long()
                    err = reply.read_int()
                    if reply_xid == xid:
                        return err, reply
            except OSError as exc:
                raise ZkError(f"connection to zookeeper lost: {exc}") from exc

    def _exists_code(self, path: str) -> int:
        err, _ = self._call(_OP_EXISTS, _string(path) + _bool(False))
        return err

    def exists(self, path: str) -> bool:
        """Whether the znode at ``path`` exists."""
        err = self._exists_code(path)
        if err == ZOK:
            return True
        if err == ZNONODE:
            return False
        raise ZkError(f"exists error... path:{path}", err)

    def create(self, path: str, data: str | bytes | None = None, ephemeral: bool = False) -> None:
        """Create the znode at ``path`` unless it already exists."""
        if self._exists_code(path) != ZNONODE:
            return
        payload = data.encode("utf-8") if isinstance(data, str) else data
        acl = _int(len(_OPEN_ACL_UNSAFE)) + b"".join(
            _int(perms) + _string(scheme) + _string(ident)
            for perms, scheme, ident in _OPEN_ACL_UNSAFE
        )
        flags = _FLAG_EPHEMERAL if ephemeral else 0
        err, _ = self._call(_OP_CREATE, _string(path) + _buffer(payload) + acl + _int(flags))
        if err != ZOK:
            raise ZkError(f"znode create error... path:{path}", err)
        print(f"znode create success... path:{path}")

    def get_data(self, path: str) -> str:
        """Data stored at ``path``, or ``""`` if it cannot be read."""
        err, reply = self._call(_OP_GET_DATA, _string(path) + _bool(False))
        if err != ZOK:
            print(f"get znode error... path:{path}")
            return ""
        data = reply.read_buffer()
        return "" if data is None else data.decode("utf-8", "replace")

    def get_children(self, path: str) -> list[str]:
        """Names of the children of ``path``; empty if it cannot be read."""
        err, reply = self._call(_OP_GET_CHILDREN, _string(path) + _bool(False))
        if err != ZOK:
            return []
        count = reply.read_int()
        return [reply.read_string() for _ in range(max(count, 0))]

    def get_node(self, path: str) -> str:
        """Data of the child of ``path`` chosen by hashing the local address."""
        children = self.get_children(path)
        strategy = query_strategy(Strategy.HASH_IP)
        log_info("Hash!")
        node = strategy.select(children)
        return self.get_data(f"{path}/{node}")