"""Declaring RPC services and calling them through a channel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Protocol

from mprpc.controller import RpcController
from mprpc.protocol import Message


@dataclass(frozen=True)
class Method:
    """Description of one RPC method of a service."""

    name: str
    service_name: str
    request_type: type[Message]
    response_type: type[Message]
    attribute: str


def _camel(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def rpc_method(
    request_type: type[Message], response_type: type[Message]
) -> Callable[[Callable], Callable]:
    """Mark a handler ``(self, controller, request, response, done)`` as an RPC method.

    The RPC name is the handler name in CamelCase.
    """

    def mark(func: Callable) -> Callable:
        func.__rpc_method__ = (_camel(func.__name__), request_type, response_type)
        return func

    return mark


class Service:
    """Base class for services; ``rpc_name`` overrides the class name on the wire."""

    rpc_name: ClassVar[str | None] = None

    @classmethod
    def service_name(cls) -> str:
        return cls.rpc_name or cls.__name__

    @classmethod
    def methods(cls) -> dict[str, Method]:
        """RPC methods by name, in definition order."""
        found: dict[str, Method] = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                spec = getattr(value, "__rpc_method__", None)
                if spec is None:
                    continue
                rpc, req, resp = spec
                found[rpc] = Method(rpc, cls.service_name(), req, resp, attr)
        return found

    def call_method(
        self,
        method: Method,
        controller: RpcController | None,
        request: Message,
        done: Callable[[Message], Any] | None = None,
    ) -> Message:
        """Run the handler for ``method`` and return its response.

        The handler receives a no-argument ``done`` that passes the response
        to the given ``done`` callback.
        """
        response = method.response_type()

        def finish() -> None:
            if done is not None:
                done(response)

        getattr(self, method.attribute)(controller, request, response, finish)
        return response


class Channel(Protocol):
    def call_method(
        self, method: Method, controller: RpcController, request: Message, response: Message
    ) -> None: ...


class Stub:
    """Client-side proxy that sends calls to a service through a channel."""

    def __init__(self, channel: Channel, service: type[Service]) -> None:
        self.channel = channel
        self.service = service

    def call(
        self, method_name: str, request: Message, controller: RpcController | None = None
    ) -> Message:
        """Call ``method_name`` with ``request`` and return the response."""
        methods = self.service.methods()
        if method_name not in methods:
            raise KeyError(f"{self.service.service_name()} has no method {method_name}")
        method = methods[method_name]
        response = method.response_type()
        self.channel.call_method(
            method, controller if controller is not None else RpcController(), request, response
        )
        return response