"""Wire format of RPC requests and a small protobuf-compatible message layer.

A request on the wire is ``header_size`` (4 bytes, little endian), followed by
the serialized :class:`RpcHeader`, followed by the serialized arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

_UINT64_MASK = (1 << 64) - 1
_UINT32_MASK = (1 << 32) - 1
_VARINT_KINDS = frozenset({"uint32", "uint64", "int32", "int64", "bool", "enum"})
_LENGTH_KINDS = frozenset({"string", "bytes", "message"})

M = TypeVar("M", bound="Message")


class DecodeError(ValueError):
    """Raised when bytes cannot be decoded into a message or request."""


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as a base-128 varint."""
    if value < 0:
        raise ValueError("varint value must not be negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    """Decode a varint at ``pos``; return the value and the position after it."""
    result = 0
    shift = 0
    for count in range(10):
        if pos >= len(data):
            raise DecodeError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _UINT64_MASK, pos
        shift += 7
    raise DecodeError("varint too long")


@dataclass(frozen=True)
class Field:
    """Declaration of one message field: tag number, kind and cardinality."""

    number: int
    kind: str
    repeated: bool = False
    message: type[Message] | None = None

    def __post_init__(self) -> None:
        if self.kind not in _VARINT_KINDS | _LENGTH_KINDS:
            raise ValueError(f"unknown field kind: {self.kind}")
        if (self.kind == "message") != (self.message is not None):
            raise ValueError("message fields need a message type, others must not have one")

    def default(self) -> Any:
        if self.repeated:
            return []
        if self.kind == "message":
            return self.message()
        if self.kind == "string":
            return ""
        if self.kind == "bytes":
            return b""
        if self.kind == "bool":
            return False
        return 0

    @property
    def wire_type(self) -> int:
        return 0 if self.kind in _VARINT_KINDS else 2

    def _to_varint(self, value: Any) -> int:
        if self.kind == "bool":
            return 1 if value else 0
        return int(value) & _UINT64_MASK

    def _from_varint(self, raw: int) -> Any:
        if self.kind == "bool":
            return bool(raw)
        if self.kind == "uint32":
            return raw & _UINT32_MASK
        if self.kind in ("int32", "enum"):
            raw &= _UINT32_MASK
            return raw - (1 << 32) if raw >= 1 << 31 else raw
        if self.kind == "int64":
            return raw - (1 << 64) if raw >= 1 << 63 else raw
        return raw

    def _encode_payload(self, value: Any) -> bytes:
        if self.kind == "string":
            return value.encode("utf-8")
        if self.kind == "bytes":
            return bytes(value)
        return value.serialize()

    def _decode_payload(self, payload: bytes) -> Any:
        if self.kind == "string":
            try:
                return payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError("invalid UTF-8 in string field") from exc
        if self.kind == "bytes":
            return payload
        return self.message.parse(payload)

    def encode(self, value: Any) -> bytes:
        """Encode ``value`` with its key; default scalars encode to nothing."""
        key = encode_varint(self.number << 3 | self.wire_type)
        if self.repeated:
            if not value:
                return b""
            if self.kind in _VARINT_KINDS:
                packed = b"".join(encode_varint(self._to_varint(v)) for v in value)
                return encode_varint(self.number << 3 | 2) + encode_varint(len(packed)) + packed
            return b"".join(
                key + encode_varint(len(p)) + p for p in map(self._encode_payload, value)
            )
        if self.kind in _VARINT_KINDS:
            raw = self._to_varint(value)
            return key + encode_varint(raw) if raw else b""
        payload = self._encode_payload(value)
        return key + encode_varint(len(payload)) + payload if payload else b""


class Message:
    """Base class for messages; subclasses declare :class:`Field` attributes."""

    _fields: ClassVar[dict[str, Field]] = {}
    _by_number: ClassVar[dict[int, tuple[str, Field]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        fields = dict(cls._fields)
        for name, value in list(vars(cls).items()):
            if isinstance(value, Field):
                fields[name] = value
                delattr(cls, name)
        cls._fields = fields
        cls._by_number = {f.number: (n, f) for n, f in fields.items()}

    def __init__(self, **values: Any) -> None:
        for name, field in self._fields.items():
            setattr(self, name, field.default())
        for name, value in values.items():
            if name not in self._fields:
                raise TypeError(f"{type(self).__name__} has no field {name!r}")
            setattr(self, name, list(value) if self._fields[name].repeated else value)

    def serialize(self) -> bytes:
        """Encode the message in protobuf wire format, fields in tag order."""
        ordered = sorted(self._fields.items(), key=lambda item: item[1].number)
        return b"".join(field.encode(getattr(self, name)) for name, field in ordered)

    @classmethod
    def parse(cls: type[M], data: bytes) -> M:
        """Decode ``data``; unknown fields are skipped."""
        data = bytes(data)
        message = cls()
        pos = 0
        while pos < len(data):
            key, pos = decode_varint(data, pos)
            number, wire = key >> 3, key & 7
            if wire == 0:
                raw, pos = decode_varint(data, pos)
                payload = None
            elif wire == 2:
                size, pos = decode_varint(data, pos)
                if pos + size > len(data):
                    raise DecodeError("truncated length-delimited field")
                payload, pos = data[pos : pos + size], pos + size
            elif wire in (1, 5):
                width = 8 if wire == 1 else 4
                if pos + width > len(data):
                    raise DecodeError("truncated fixed-width field")
                pos += width
                payload = None
            else:
                raise DecodeError(f"unsupported wire type {wire}")
            entry = cls._by_number.get(number)
            if entry is None:
                continue
            name, field = entry
            message._assign(name, field, wire, raw if wire == 0 else None, payload)
        return message

    def _assign(self, name: str, field: Field, wire: int, raw: int | None, payload: bytes | None) -> None:
        if field.kind in _VARINT_KINDS:
            if wire == 0:
                values = [field._from_varint(raw)]
            elif wire == 2 and field.repeated:
                values = []
                pos = 0
                while pos < len(payload):
                    item, pos = decode_varint(payload, pos)
                    values.append(field._from_varint(item))
            else:
                raise DecodeError(f"wrong wire type for field {name}")
        else:
            if wire != 2:
                raise DecodeError(f"wrong wire type for field {name}")
            values = [field._decode_payload(payload)]
        if field.repeated:
            getattr(self, name).extend(values)
        else:
            setattr(self, name, values[-1])

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return all(getattr(self, n) == getattr(other, n) for n in self._fields)

    def __repr__(self) -> str:
        body = ", ".join(f"{n}={getattr(self, n)!r}" for n in self._fields)
        return f"{type(self).__name__}({body})"


class RpcHeader(Message):
    """Routing header sent in front of every request's arguments."""

    service_name = Field(1, "string")
    method_name = Field(2, "string")
    args_size = Field(3, "uint32")


def encode_request(header: RpcHeader, args: bytes) -> bytes:
    """Frame ``header`` and ``args`` as ``header_size + header + args``."""
    header_bytes = header.serialize()
    return len(header_bytes).to_bytes(4, "little") + header_bytes + bytes(args)


def decode_request(data: bytes) -> tuple[RpcHeader, bytes]:
    """Split a framed request into its header and argument bytes."""
    data = bytes(data)
    if len(data) < 4:
        raise DecodeError("request shorter than its size prefix")
    header_size = int.from_bytes(data[:4], "little")
    header = RpcHeader.parse(data[4 : 4 + header_size])
    start = 4 + header_size
    return header, data[start : start + header.args_size]