import pytest

from mprpc.protocol import (
    DecodeError,
    Field,
    Message,
    RpcHeader,
    decode_request,
    decode_varint,
    encode_request,
    encode_varint,
)

STRING = "string"


class Resultcode(Message):
    errcode = Field(1, "int32")
    errmsg = Field(2, "bytes")


class User(Message):
    MAN = 0
    WOMAN = 1
    name = Field(1, "bytes")
    age = Field(2, "uint32")
    sex = Field(3, "enum")


class GetFriendListsResponse(Message):
    result = Field(1, "message", message=Resultcode)
    users = Field(2, "message", repeated=True, message=User)


class LoginRequest(Message):
    name = Field(1, STRING)
    pwd = Field(2, STRING)


def test_friend_list_response_has_three_users():
    rsp = GetFriendListsResponse()
    rsp.result.errcode = 0
    rsp.users.append(User(name=b"zhang san", age=20, sex=User.MAN))
    rsp.users.append(User(name=b"li si", age=22, sex=User.MAN))
    rsp.users.append(User(name=b"li si", age=22, sex=User.MAN))
    assert len(rsp.users) == 3
    payload = rsp.serialize()
    header = RpcHeader(
        service_name="FriendServiceRpc", method_name="GetFriendsList", args_size=len(payload)
    )
    _, args = decode_request(encode_request(header, payload))
    assert args == payload
    parsed = GetFriendListsResponse.parse(args)
    assert len(parsed.users) == 3
    assert parsed == rsp


def test_login_request_round_trip():
    password = "password"
    req = LoginRequest(name="wang wu", pwd=password)
    data = req.serialize()
    assert decode_varint(data, 0) == (0x0A, 1)
    assert decode_varint(data, 1) == (len("wang wu"), 2)
    reqb = LoginRequest.parse(data)
    assert reqb.name == "wang wu"
    assert reqb.pwd == password


def test_varint_known_encoding():
    assert encode_varint(300) == b"\xac\x02"
    assert decode_varint(b"\xac\x02", 0) == (300, 2)


def test_varint_errors():
    with pytest.raises(ValueError):
        encode_varint(-1)
    with pytest.raises(DecodeError):
        decode_varint(b"\x80", 0)


def test_header_wire_bytes():
    assert RpcHeader(service_name="A").serialize() == b"\x0a\x01A"


def test_negative_int32_round_trip():
    data = Resultcode(errcode=-5).serialize()
    assert decode_varint(data, 0) == (0x08, 1)
    value, end = decode_varint(data, 1)
    assert end == len(data)
    assert value >= 1 << 31
    assert Resultcode.parse(data).errcode == -5


def test_request_round_trip():
    args = LoginRequest(name="zhang san").serialize()
    header = RpcHeader(service_name="UserServiceRpc", method_name="Login", args_size=len(args))
    data = encode_request(header, args)
    assert int.from_bytes(data[:4], "little") == len(header.serialize())
    got_header, got_args = decode_request(data)
    assert got_header == header
    assert got_args == args


def test_decode_request_too_short():
    with pytest.raises(DecodeError):
        decode_request(b"\x01\x00")


def test_truncated_message_raises():
    with pytest.raises(DecodeError):
        RpcHeader.parse(b"\x0a\x05ab")


def test_unknown_keyword_rejected():
    with pytest.raises(TypeError):
        RpcHeader(bogus=1)