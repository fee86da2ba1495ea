import socket
import struct
import threading
import time

import pytest

import mprpc.logger as logger_module
from mprpc.config import RpcConfig
from mprpc.logger import Logger
from mprpc.zkclient import ZNONODE, ZkClient, ZkError

STAT = bytes(68)


def pack_buffer(data):
    return struct.pack(">i", len(data)) + data


def pack_string(text):
    return pack_buffer(text.encode("utf-8"))


def read_exact(conn, size):
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            return None
        data += chunk
    return data


def read_frame(conn):
    head = read_exact(conn, 4)
    if head is None:
        return None
    return read_exact(conn, struct.unpack(">i", head)[0])


def send_frame(conn, body):
    conn.sendall(struct.pack(">i", len(body)) + body)


class Reader:
    def __init__(self, data):
        self.data = data
        self.pos = 0

    def take(self, size):
        chunk = self.data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def int(self):
        return struct.unpack(">i", self.take(4))[0]

    def long(self):
        return struct.unpack(">q", self.take(8))[0]

    def buffer(self):
        size = self.int()
        return None if size < 0 else self.take(size)

    def string(self):
        return self.buffer().decode("utf-8")


class FakeZooKeeper:
    def __init__(self):
        self.nodes = {"/": b""}
        self.acls = {}
        self.ephemeral = {}
        self.pings = 0
        self.lock = threading.Lock()
        self._next_session = 1
        self._listener = socket.create_server(("127.0.0.1", 0))
        self.port = self._listener.getsockname()[1]
        threading.Thread(target=self._accept, daemon=True).start()

    def close(self):
        self._listener.close()

    def _accept(self):
        while True:
            try:
                conn, _ = self._listener.accept()
            except OSError:
                return
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _drop_session(self, session):
        with self.lock:
            for path in [p for p, s in self.ephemeral.items() if s == session]:
                del self.ephemeral[path]
                self.nodes.pop(path, None)

    def _serve(self, conn):
        with self.lock:
            session = self._next_session
            self._next_session += 1
        try:
            with conn:
                request = Reader(read_frame(conn))
                request.int()
                request.long()
                timeout = request.int()
                send_frame(
                    conn,
                    struct.pack(">iiq", 0, timeout, session) + pack_buffer(bytes(16)) + b"\x00",
                )
                while True:
                    body = read_frame(conn)
                    if body is None:
                        break
                    request = Reader(body)
                    xid, op = request.int(), request.int()
                    err, payload = self._handle(op, request, session)
                    send_frame(conn, struct.pack(">iqi", xid, 0, err) + payload)
                    if op == -11:
                        break
        except OSError:
            pass
        finally:
            self._drop_session(session)

    def _handle(self, op, request, session):
        if op == 11:
            self.pings += 1
            return 0, b""
        if op == -11:
            self._drop_session(session)
            return 0, b""
        path = request.string()
        with self.lock:
            if op == 3:
                return (0, STAT) if path in self.nodes else (-101, b"")
            if op == 4:
                if path not in self.nodes:
                    return -101, b""
                return 0, pack_buffer(self.nodes[path]) + STAT
            if op == 8:
                if path not in self.nodes:
                    return -101, b""
                prefix = path.rstrip("/") + "/"
                kids = [
                    p[len(prefix) :]
                    for p in self.nodes
                    if p != path and p.startswith(prefix) and "/" not in p[len(prefix) :]
                ]
                return 0, struct.pack(">i", len(kids)) + b"".join(pack_string(k) for k in kids)
            if op == 1:
                data = request.buffer()
                count = request.int()
                acl = [(request.int(), request.string(), request.string()) for _ in range(count)]
                flags = request.int()
                if path in self.nodes:
                    return -110, b""
                parent = path.rsplit("/", 1)[0] or "/"
                if parent not in self.nodes:
                    return -101, b""
                self.nodes[path] = data or b""
                self.acls[path] = acl
                if flags & 1:
                    self.ephemeral[path] = session
                return 0, pack_string(path)
        return -6, b""


@pytest.fixture
def server():
    fake = FakeZooKeeper()
    yield fake
    fake.close()


def make_config(tmp_path, port, ip="127.0.0.1"):
    path = tmp_path / "zk.conf"
    path.write_text(f"zookeeperip={ip}\nzookeeperport={port}\n", encoding="utf-8")
    config = RpcConfig()
    config.load_file(path)
    return config


def free_port():
    with socket.create_server(("127.0.0.1", 0)) as sock:
        return sock.getsockname()[1]


@pytest.fixture
def config(tmp_path, server):
    return make_config(tmp_path, server.port)


@pytest.fixture
def quiet_log(tmp_path, monkeypatch):
    monkeypatch.setattr(logger_module, "_instance", Logger(tmp_path, start=False))


def test_create_persistent_node(config, server):
    with ZkClient(config) as zk:
        zk.create("/FriendServiceRpc")
        assert zk.exists("/FriendServiceRpc") is True
    assert server.nodes["/FriendServiceRpc"] == b""
    assert "/FriendServiceRpc" not in server.ephemeral


def test_exists_is_false_for_missing_node(config):
    with ZkClient(config) as zk:
        assert zk.exists("/missing") is False


def test_create_stores_data_with_open_acl(config, server):
    with ZkClient(config) as zk:
        zk.create("/UserServiceRpc")
        zk.create("/UserServiceRpc/Login", "127.0.0.1:8000", ephemeral=True)
        assert zk.get_data("/UserServiceRpc/Login") == "127.0.0.1:8000"
        assert server.acls["/UserServiceRpc/Login"] == [(31, "world", "anyone")]


def test_create_existing_node_is_left_alone(config):
    with ZkClient(config) as zk:
        zk.create("/Svc", "first")
        zk.create("/Svc", "second")
        assert zk.get_data("/Svc") == "first"


def test_create_without_parent_raises(config):
    with ZkClient(config) as zk:
        with pytest.raises(ZkError) as info:
            zk.create("/no/parent")
    assert info.value.code == ZNONODE


def test_get_data_of_missing_node_is_empty(config):
    with ZkClient(config) as zk:
        assert zk.get_data("/missing") == ""


def test_get_children(config):
    with ZkClient(config) as zk:
        zk.create("/Svc")
        zk.create("/Svc/Alpha")
        zk.create("/Svc/Beta")
        zk.create("/Svc/Alpha/Node0")
        assert sorted(zk.get_children("/Svc")) == ["Alpha", "Beta"]
        assert zk.get_children("/missing") == []


def test_ephemeral_nodes_vanish_when_session_closes(config):
    first = ZkClient(config)
    first.start()
    first.create("/Svc")
    first.create("/Svc/Node0", "127.0.0.1:9000", ephemeral=True)
    first.close()
    with ZkClient(config) as second:
        assert second.exists("/Svc/Node0") is False
        assert second.exists("/Svc") is True


def test_get_node_with_single_child(config, quiet_log):
    with ZkClient(config) as zk:
        zk.create("/Svc")
        zk.create("/Svc/Login")
        zk.create("/Svc/Login/Node0", "127.0.0.1:8000")
        assert zk.get_node("/Svc/Login") == "127.0.0.1:8000"


def test_get_node_picks_one_of_many_consistently(config, quiet_log):
    addresses = {"Node0": "127.0.0.1:8000", "Node1": "127.0.0.1:8001", "Node2": "127.0.0.1:8002"}
    with ZkClient(config) as zk:
        zk.create("/Svc")
        zk.create("/Svc/Login")
        for name, address in addresses.items():
            zk.create(f"/Svc/Login/{name}", address)
        chosen = zk.get_node("/Svc/Login")
        assert chosen in addresses.values()
        assert zk.get_node("/Svc/Login") == chosen


def test_get_node_without_children_is_empty(config, quiet_log):
    with ZkClient(config) as zk:
        zk.create("/Svc")
        assert zk.get_node("/Svc") == ""


def test_operations_before_start_raise(config):
    with pytest.raises(ZkError):
        ZkClient(config).exists("/")


def test_start_unreachable_server_raises(tmp_path):
    client = ZkClient(make_config(tmp_path, free_port()), connect_timeout=2.0)
    with pytest.raises(ZkError):
        client.start()


def test_start_with_invalid_port_raises(tmp_path):
    with pytest.raises(ZkError):
        ZkClient(make_config(tmp_path, "abc")).start()


def test_session_is_kept_alive_with_pings(config, server):
    with ZkClient(config, session_timeout=0.3) as zk:
        for _ in range(200):
            if server.pings >= 2:
                break
            time.sleep(0.01)
        assert server.pings >= 2
        assert zk.exists("/") is True