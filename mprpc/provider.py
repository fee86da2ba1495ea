"""Server side of RPC: publishing services, dispatching requests, registration."""

from __future__ import annotations

import socket
import socketserver
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Callable

from mprpc.application import get_config
from mprpc.channel import parse_address
from mprpc.config import RpcConfig
from mprpc.logger import log_err, log_info
from mprpc.protocol import DecodeError, Message, RpcHeader, decode_request
from mprpc.service import Method, Service
from mprpc.zkclient import ZkClient

_RECV_CHUNK = 4096


@dataclass
class _ServiceInfo:
    service: Service
    methods: dict[str, Method] = field(default_factory=dict)


def _request_complete(data: bytes) -> bool:
    if len(data) < 4:
        return False
    header_size = int.from_bytes(data[:4], "little")
    if len(data) < 4 + header_size:
        return False
    try:
        header = RpcHeader.parse(data[4 : 4 + header_size])
    except DecodeError:
        return True
    return len(data) >= 4 + header_size + header.args_size


def _read_request(sock: socket.socket) -> bytes:
    data = bytearray()
    while not _request_complete(bytes(data)):
        chunk = sock.recv(_RECV_CHUNK)
        if not chunk:
            break
        data += chunk
    return bytes(data)


class _RequestHandler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        data = _read_request(self.request)
        reply = self.server.provider.handle_request(data)
        if reply is not None:
            self.request.sendall(reply)
        with suppress(OSError):
            self.request.shutdown(socket.SHUT_RDWR)


class _Server(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, address: tuple[str, int], provider: RpcProvider) -> None:
        self.provider = provider
        super().__init__(address, _RequestHandler)


class RpcProvider:
    """Publishes service objects and answers the RPC requests sent to them."""

    def __init__(
        self,
        config: RpcConfig | None = None,
        *,
        zk_factory: Callable[[RpcConfig], Any] = ZkClient,
    ) -> None:
        self._config = config
        self._zk_factory = zk_factory
        self._services: dict[str, _ServiceInfo] = {}
        self.server_name = ""

    @property
    def services(self) -> dict[str, Service]:
        """Published service objects by service name."""
        return {name: info.service for name, info in self._services.items()}

    def notify_service(self, service: Service) -> None:
        """Publish ``service``; a service name already published keeps its first object."""
        service_name = service.service_name()
        log_info("service_name:%s", service_name)
        methods = type(service).methods()
        for method_name in methods:
            log_info("method_name:%s", method_name)
        self._services.setdefault(service_name, _ServiceInfo(service, methods))

    def set_server_name(self, name: str) -> None:
        """Name under which this node registers each method."""
        self.server_name = name

    def handle_request(self, data: bytes) -> bytes | None:
        """Answer one framed request; return the serialized response, or None."""
        data = bytes(data)
        try:
            header, args = decode_request(data)
        except DecodeError:
            size = int.from_bytes(data[:4], "little")
            text = data[4 : 4 + size].decode("utf-8", "replace")
            log_err("rec_header_str:%sparse error!", text)
            return None

        info = self._services.get(header.service_name)
        if info is None:
            log_err("%sis not exist", header.service_name)
            return None
        method = info.methods.get(header.method_name)
        if method is None:
            log_err("%s:%sis not exist", header.service_name, header.method_name)
            return None

        try:
            request = method.request_type.parse(args)
        except DecodeError:
            log_err("request parse error! content:%s", args.decode("utf-8", "replace"))
            return None

        replies: list[bytes] = []

        def send_response(response: Message) -> None:
            try:
                replies.append(response.serialize())
            except (TypeError, ValueError, AttributeError):
                log_err("serialize response_str error!")

        info.service.call_method(method, None, request, send_response)
        return replies[0] if replies else None

    def register(self, zk: Any, ip: str, port: int) -> None:
        """Create ``/service/method/server_name`` znodes holding ``ip:port``."""
        for service_name, info in self._services.items():
            service_path = f"/{service_name}"
            zk.create(service_path, None, False)
            for method_name in info.methods:
                method_path = f"{service_path}/{method_name}"
                zk.create(method_path, None, False)
                zk.create(f"{method_path}/{self.server_name}", f"{ip}:{port}", True)

    def run(self) -> None:
        """Serve RPC requests on ``rpcserverip:rpcserverport`` until the process ends."""
        config = self._config if self._config is not None else get_config()
        ip, port = parse_address(f"{config.load('rpcserverip')}:{config.load('rpcserverport')}")
        with _Server((ip, port), self) as server:
            port = server.server_address[1]
            with self._zk_factory(config) as zk:
                self.register(zk, ip, port)
                log_info("RpcProvider start service at ip::%s port:%d", ip, port)
                server.serve_forever()