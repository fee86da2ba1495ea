"""Example services: a friend list service and a user login service."""

from __future__ import annotations

import sys
from typing import Sequence

from mprpc.application import USAGE, UsageError, init
from mprpc.config import ConfigError
from mprpc.logger import log_err, log_info
from mprpc.protocol import Field, Message
from mprpc.provider import RpcProvider
from mprpc.service import Service, rpc_method
from mprpc.zkclient import ZkError

_STRING = "string"


class ResultCode(Message):
    errcode = Field(1, "int32")
    errmsg = Field(2, _STRING)


class GetFriendsListRequest(Message):
    userid = Field(1, "uint32")


class GetFriendsListResponse(Message):
    result = Field(1, "message", message=ResultCode)
    friends = Field(2, _STRING, repeated=True)


class LoginRequest(Message):
    name = Field(1, _STRING)
    pwd = Field(2, _STRING)


class LoginResponse(Message):
    result = Field(1, "message", message=ResultCode)
    success = Field(2, "bool")


class RegisterRequest(Message):
    id = Field(1, "uint32")
    name = Field(2, _STRING)
    pwd = Field(3, _STRING)


class RegisterResponse(Message):
    result = Field(1, "message", message=ResultCode)
    success = Field(2, "bool")


class FriendService(Service):
    """Returns a fixed friend list for any user."""

    rpc_name = "FriendServiceRpc"

    def _friends_of(self, userid: int) -> list[str]:
        print(f"do GetFriendsList serivce! userid:{userid}")
        return ["du feng", "yi jian lian", "yao ming"]

    @rpc_method(GetFriendsListRequest, GetFriendsListResponse)
    def get_friends_list(self, controller, request, response, done):
        response.result.errcode = 0
        response.result.errmsg = ""
        response.friends.extend(self._friends_of(request.userid))
        done()


class UserService(Service):
    """Accepts every login and registration."""

    rpc_name = "UserServiceRpc"

    def _login(self, name: str, pwd: str) -> bool:
        print("doing local service: Login")
        print(f"name:{name}pwd:{pwd}")
        return True

    def _register(self, user_id: int, name: str, pwd: str) -> bool:
        print("doing local service: Register")
        print(f"id:{user_id}name:{name}pwd:{pwd}")
        return True

    @rpc_method(LoginRequest, LoginResponse)
    def login(self, controller, request, response, done):
        response.result.errcode = 0
        response.result.errmsg = ""
        response.success = self._login(request.name, request.pwd)
        done()

    @rpc_method(RegisterRequest, RegisterResponse)
    def register(self, controller, request, response, done):
        response.result.errcode = 0
        response.result.errmsg = ""
        response.success = self._register(request.id, request.name, request.pwd)
        done()


def provider_main(argv: Sequence[str] | None = None) -> int:
    """Publish FriendService as node ``Node0``: ``provider -i <configfile>``."""
    log_info("first log message!")
    log_err("%s:%s", __file__, "provider_main")
    try:
        init(argv)
    except UsageError:
        print(USAGE)
        return 1
    except ConfigError as exc:
        print(exc)
        return 1
    provider = RpcProvider()
    provider.notify_service(FriendService())
    provider.set_server_name("Node0")
    try:
        provider.run()
    except (ZkError, OSError) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0