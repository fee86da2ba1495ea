"""Example clients calling the friend and user services."""

from __future__ import annotations

from typing import Sequence

from mprpc.application import USAGE, UsageError, init
from mprpc.channel import RpcChannel
from mprpc.config import ConfigError
from mprpc.controller import RpcController
from mprpc.examples import (
    FriendService,
    GetFriendsListRequest,
    GetFriendsListResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    UserService,
)
from mprpc.service import Channel, Stub


def call_friend_service(channel: Channel) -> GetFriendsListResponse | None:
    """Ask for the friends of user 1000 and print them; None if the call failed."""
    stub = Stub(channel, FriendService)
    controller = RpcController()
    response = stub.call("GetFriendsList", GetFriendsListRequest(userid=1000), controller)
    if controller.failed:
        print(controller.error_text)
        return None
    if response.result.errcode == 0:
        print("rpc GetFriendsList sucess!")
        for index, name in enumerate(response.friends, 1):
            print(f"index:{index}name:{name}")
    else:
        print(f"rpc GetFriendsList response:{response.result.errmsg}")
    return response


def _report(response: LoginResponse | RegisterResponse) -> None:
    if response.result.errcode == 0:
        print(f"rpc login response:{int(response.success)}")
    else:
        print(f"rpc login response:{response.result.errmsg}")


def call_user_service(channel: Channel) -> tuple[LoginResponse, RegisterResponse]:
    """Log in and register a user, printing both results."""
    stub = Stub(channel, UserService)
    pwd = "password"
    login = stub.call("Login", LoginRequest(name="zhang san", pwd=pwd))
    _report(login)
    registered = stub.call("Register", RegisterRequest(id=2000, name="MPRPC", pwd=pwd))
    _report(registered)
    return login, registered


def main(argv: Sequence[str] | None = None) -> int:
    """``consumer -i <configfile>``: call the friend service once."""
    try:
        init(argv)
    except UsageError:
        print(USAGE)
        return 1
    except ConfigError as exc:
        print(exc)
        return 1
    call_friend_service(RpcChannel())
    return 0