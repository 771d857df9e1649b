"""Wire format of the proxy protocol: auth headers, TCP frames and UDP messages."""

from __future__ import annotations

import io
import random
import string
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, MutableMapping

URL_HOST = "hysteria"
URL_PATH = "/auth"

REQUEST_HEADER_AUTH = "Hysteria-Auth"
RESPONSE_HEADER_UDP_ENABLED = "Hysteria-UDP"
COMMON_HEADER_CC_RX = "Hysteria-CC-RX"
COMMON_HEADER_PADDING = "Hysteria-Padding"

STATUS_AUTH_OK = 233

FRAME_TYPE_TCP_REQUEST = 0x401

# Length limits guard against denial-of-service attempts.
MAX_ADDRESS_LENGTH = 2048
MAX_MESSAGE_LENGTH = 2048
MAX_PADDING_LENGTH = 4096

MAX_UDP_SIZE = 4096

MAX_VARINT_1 = 63
MAX_VARINT_2 = 16383
MAX_VARINT_4 = 1073741823
MAX_VARINT_8 = 4611686018427387903

_MAX_UINT64 = (1 << 64) - 1

PADDING_CHARS = string.ascii_lowercase + string.ascii_uppercase + string.digits

_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_STRINGS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ProtocolError(Exception):
    """Raised when data on the wire violates the protocol."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"protocol error: {self.message}"


@dataclass(frozen=True)
class Padding:
    """Random padding whose length lies in the half-open range [min_length, max_length)."""

    min_length: int
    max_length: int

    def generate(self) -> str:
        """Return a random alphanumeric string of a random length within the range."""
        length = random.randrange(self.min_length, self.max_length)
        return "".join(random.choices(PADDING_CHARS, k=length))


AUTH_REQUEST_PADDING = Padding(256, 2048)
AUTH_RESPONSE_PADDING = Padding(256, 2048)
TCP_REQUEST_PADDING = Padding(64, 512)
TCP_RESPONSE_PADDING = Padding(128, 1024)


@dataclass
class AuthRequest:
    """What the client sends to the server for authentication.

    ``rx`` of 0 means unknown: the client asks the server to detect bandwidth.
    """

    auth: str = ""
    rx: int = 0


@dataclass
class AuthResponse:
    """What the server sends back once authentication has passed.

    ``rx`` of 0 means unlimited; ``rx_auto`` asks the client to detect bandwidth.
    """

    udp_enabled: bool = False
    rx: int = 0
    rx_auto: bool = False


def _get_header(headers: MutableMapping[str, str], name: str) -> str:
    if name in headers:
        return headers[name]
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return ""


def _set_header(headers: MutableMapping[str, str], name: str, value: str) -> None:
    lowered = name.lower()
    for key in [k for k in headers if k.lower() == lowered and k != name]:
        del headers[key]
    headers[name] = value


def _parse_uint(text: str) -> int:
    if not text or not text.isascii() or not text.isdigit():
        return 0
    return min(int(text), _MAX_UINT64)


def _parse_bool(text: str) -> bool:
    return text in _TRUE_STRINGS


def auth_request_from_header(headers: MutableMapping[str, str]) -> AuthRequest:
    """Build an AuthRequest from HTTP headers."""
    return AuthRequest(
        auth=_get_header(headers, REQUEST_HEADER_AUTH),
        rx=_parse_uint(_get_header(headers, COMMON_HEADER_CC_RX)),
    )


def auth_request_to_header(headers: MutableMapping[str, str], request: AuthRequest) -> None:
    """Write an AuthRequest into HTTP headers, with random padding."""
    _set_header(headers, REQUEST_HEADER_AUTH, request.auth)
    _set_header(headers, COMMON_HEADER_CC_RX, str(request.rx))
    _set_header(headers, COMMON_HEADER_PADDING, AUTH_REQUEST_PADDING.generate())


def auth_response_from_header(headers: MutableMapping[str, str]) -> AuthResponse:
    """Build an AuthResponse from HTTP headers."""
    response = AuthResponse(udp_enabled=_parse_bool(_get_header(headers, RESPONSE_HEADER_UDP_ENABLED)))
    rx_text = _get_header(headers, COMMON_HEADER_CC_RX)
    if rx_text == "auto":
        response.rx_auto = True
    else:
        response.rx = _parse_uint(rx_text)
    return response


def auth_response_to_header(headers: MutableMapping[str, str], response: AuthResponse) -> None:
    """Write an AuthResponse into HTTP headers, with random padding."""
    _set_header(headers, RESPONSE_HEADER_UDP_ENABLED, str(bool(response.udp_enabled)).lower())
    _set_header(headers, COMMON_HEADER_CC_RX, "auto" if response.rx_auto else str(response.rx))
    _set_header(headers, COMMON_HEADER_PADDING, AUTH_RESPONSE_PADDING.generate())


def varint_len(value: int) -> int:
    """Number of bytes the QUIC variable-length encoding of ``value`` takes."""
    if value < 0:
        raise ValueError(f"{value} is negative")
    if value <= MAX_VARINT_1:
        return 1
    if value <= MAX_VARINT_2:
        return 2
    if value <= MAX_VARINT_4:
        return 4
    if value <= MAX_VARINT_8:
        return 8
    raise ValueError(f"{value:#x} doesn't fit into 62 bits")


_VARINT_PREFIX = {1: 0x00, 2: 0x40, 4: 0x80, 8: 0xC0}


def varint_encode(value: int) -> bytes:
    """Encode ``value`` as a QUIC variable-length integer."""
    length = varint_len(value)
    raw = value.to_bytes(length, "big")
    return bytes([raw[0] | _VARINT_PREFIX[length]]) + raw[1:]


def _read_exact(stream: BinaryIO, count: int) -> bytes:
    chunks = []
    remaining = count
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise EOFError(f"expected {count} bytes, got {count - remaining}")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_varint(stream: BinaryIO) -> int:
    """Read one QUIC variable-length integer from a binary stream."""
    first = _read_exact(stream, 1)[0]
    length = 1 << (first >> 6)
    value = first & 0x3F
    if length > 1:
        rest = _read_exact(stream, length - 1)
        value = (value << (8 * (length - 1))) | int.from_bytes(rest, "big")
    return value


def _encode_text(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _decode_text(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def _skip_padding(stream: BinaryIO) -> None:
    padding_len = read_varint(stream)
    if padding_len > MAX_PADDING_LENGTH:
        raise ProtocolError("invalid padding length")
    if padding_len > 0:
        _read_exact(stream, padding_len)


def read_tcp_request(stream: BinaryIO) -> str:
    """Read a TCP request whose frame type has already been consumed; return the address."""
    addr_len = read_varint(stream)
    if addr_len == 0 or addr_len > MAX_ADDRESS_LENGTH:
        raise ProtocolError("invalid address length")
    addr = _read_exact(stream, addr_len)
    _skip_padding(stream)
    return _decode_text(addr)


def write_tcp_request(stream: BinaryIO, addr: str) -> None:
    """Write a complete TCP request frame, frame type included."""
    addr_bytes = _encode_text(addr)
    padding = TCP_REQUEST_PADDING.generate().encode("ascii")
    stream.write(
        varint_encode(FRAME_TYPE_TCP_REQUEST)
        + varint_encode(len(addr_bytes))
        + addr_bytes
        + varint_encode(len(padding))
        + padding
    )


def read_tcp_response(stream: BinaryIO) -> tuple[bool, str]:
    """Read a TCP response; return (ok, message)."""
    status = _read_exact(stream, 1)[0]
    msg_len = read_varint(stream)
    if msg_len > MAX_MESSAGE_LENGTH:
        raise ProtocolError("invalid message length")
    msg = _read_exact(stream, msg_len) if msg_len > 0 else b""
    _skip_padding(stream)
    return status == 0, _decode_text(msg)


def write_tcp_response(stream: BinaryIO, ok: bool, msg: str) -> None:
    """Write a TCP response with status, message and random padding."""
    msg_bytes = _encode_text(msg)
    padding = TCP_RESPONSE_PADDING.generate().encode("ascii")
    stream.write(
        bytes([0 if ok else 1])
        + varint_encode(len(msg_bytes))
        + msg_bytes
        + varint_encode(len(padding))
        + padding
    )


_UDP_FIXED_HEADER = struct.Struct(">IHBB")


@dataclass
class UDPMessage:
    """A UDP message, possibly one fragment of a larger packet."""

    session_id: int = 0
    packet_id: int = 0
    frag_id: int = 0
    frag_count: int = 0
    addr: str = ""
    data: bytes = field(default=b"")

    def header_size(self) -> int:
        addr_len = len(_encode_text(self.addr))
        return _UDP_FIXED_HEADER.size + varint_len(addr_len) + addr_len

    def size(self) -> int:
        return self.header_size() + len(self.data)

    def serialize(self) -> bytes:
        """Return the wire form of this message."""
        addr_bytes = _encode_text(self.addr)
        return (
            _UDP_FIXED_HEADER.pack(self.session_id, self.packet_id, self.frag_id, self.frag_count)
            + varint_encode(len(addr_bytes))
            + addr_bytes
            + bytes(self.data)
        )


def parse_udp_message(data: bytes) -> UDPMessage:
    """Parse the wire form of a UDP message."""
    stream = io.BytesIO(bytes(data))
    session_id, packet_id, frag_id, frag_count = _UDP_FIXED_HEADER.unpack(
        _read_exact(stream, _UDP_FIXED_HEADER.size)
    )
    addr_len = read_varint(stream)
    if addr_len == 0 or addr_len > MAX_MESSAGE_LENGTH:
        raise ProtocolError("invalid address length")
    rest = stream.read()
    # At least one byte of data must follow the address.
    if len(rest) <= addr_len:
        raise ProtocolError("invalid message length")
    return UDPMessage(
        session_id=session_id,
        packet_id=packet_id,
        frag_id=frag_id,
        frag_count=frag_count,
        addr=_decode_text(rest[:addr_len]),
        data=rest[addr_len:],
    )