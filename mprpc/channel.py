"""Client side of an RPC call: framing, service discovery and transport."""

from __future__ import annotations

import re
import socket
from typing import Callable

from mprpc.application import get_config
from mprpc.config import RpcConfig
from mprpc.controller import RpcController
from mprpc.protocol import DecodeError, Message, RpcHeader, encode_request
from mprpc.service import Method
from mprpc.zkclient import ZkClient

_RECV_SIZE = 1024
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_address(host_data: str) -> tuple[str, int]:
    """Split ``ip:port`` node data; a port that is not a number reads as 0."""
    ip, sep, rest = host_data.partition(":")
    if not sep:
        raise ValueError(f"address is invalid: {host_data!r}")
    match = _LEADING_INT.match(rest)
    port = int(match.group(1)) if match else 0
    return ip, port & 0xFFFF


class RpcChannel:
    """Sends calls to the node that ZooKeeper lists for the method.

    ``locate`` maps a method path such as ``/Service/Method`` to ``ip:port``;
    by default it asks ZooKeeper using the given or the shared configuration.
    """

    def __init__(
        self,
        config: RpcConfig | None = None,
        *,
        locate: Callable[[str], str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._config = config
        self._locate = locate if locate is not None else self._locate_with_zookeeper
        self.timeout = timeout

    def _locate_with_zookeeper(self, method_path: str) -> str:
        config = self._config if self._config is not None else get_config()
        with ZkClient(config) as zk:
            return zk.get_node(method_path)

    def call_method(
        self,
        method: Method,
        controller: RpcController,
        request: Message,
        response: Message,
    ) -> None:
        """Send ``request`` and fill ``response``; failures go to ``controller``."""
        try:
            args = request.serialize()
        except (TypeError, ValueError, AttributeError):
            controller.set_failed("serialize request error!")
            return

        try:
            header = RpcHeader(
                service_name=method.service_name, method_name=method.name, args_size=len(args)
            )
            frame = encode_request(header, args)
        except (TypeError, ValueError, AttributeError):
            controller.set_failed("serialize rpc header error!")
            return

        method_path = f"/{method.service_name}/{method.name}"
        host_data = self._locate(method_path)
        if not host_data:
            controller.set_failed(method_path + "is not exist!")
            return
        try:
            ip, port = parse_address(host_data)
        except ValueError:
            controller.set_failed(method_path + "address is invalid!")
            return

        try:
            sock = socket.create_connection((ip, port), timeout=self.timeout)
        except OSError as exc:
            controller.set_failed(f"connect error! error:{exc.errno or 0}")
            return
        with sock:
            try:
                sock.sendall(frame)
            except OSError as exc:
                controller.set_failed(f"send error! errno:{exc.errno or 0}")
                return
            try:
                data = sock.recv(_RECV_SIZE)
            except OSError as exc:
                controller.set_failed(f"recv error! error:{exc.errno or 0}")
                return

        try:
            parsed = type(response).parse(data)
        except DecodeError:
            text = data.decode("utf-8", "replace")
            controller.set_failed(f"parse error! response_str{text}")
            return
        vars(response).update(vars(parsed))