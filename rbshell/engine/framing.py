"""
Message Framing.

Two ways of finding message boundaries on a byte stream.

HeuristicFraming is what the server speaks today: a message ends with the
first read that returns fewer bytes than the buffer holds. A message whose
last chunk exactly fills the buffer looks like "more to come", and the
read then blocks until the peer writes again or closes. The buffer must be
at least as large as the server's write buffer for this to hold in practice.

LengthPrefixedFraming puts a 4-byte big-endian length before each message:

    ┌──────────┬────────────────────────┐
    │ len (4B) │        payload         │
    │ u32 BE   │                        │
    └──────────┴────────────────────────┘
"""

import asyncio
import struct
from typing import Protocol

from rbshell.core.exceptions import ConnectionClosedError, ProtocolError

LENGTH_PREFIX_SIZE: int = 4


class ByteReader(Protocol):
    """The part of asyncio.StreamReader that framing depends on."""

    async def read(self, n: int = -1) -> bytes: ...

    async def readexactly(self, n: int) -> bytes: ...


class Framing(Protocol):
    def encode(self, payload: bytes) -> bytes: ...

    async def read_message(self, reader: ByteReader) -> bytes: ...


class HeuristicFraming:
    """Read-until-short-read framing."""

    def __init__(self, buffer_size: int = 8192) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.buffer_size = buffer_size

    def encode(self, payload: bytes) -> bytes:
        return payload

    async def read_message(self, reader: ByteReader) -> bytes:
        """
        Accumulate chunks until a short read.

        Raises:
            ConnectionClosedError: On a zero-byte read. Bytes accumulated so
                far are attached as ``partial`` and are never a message.
        """
        message = bytearray()
        while True:
            chunk = await reader.read(self.buffer_size)
            if not chunk:
                raise ConnectionClosedError(partial=bytes(message))
            message.extend(chunk)
            if len(chunk) < self.buffer_size:
                return bytes(message)


class LengthPrefixedFraming:
    """u32 big-endian length prefix framing."""

    def __init__(self, max_frame_size: int = 16 * 1024 * 1024) -> None:
        self.max_frame_size = max_frame_size

    def encode(self, payload: bytes) -> bytes:
        if len(payload) > self.max_frame_size:
            raise ProtocolError(f"Frame too large: {len(payload)} > {self.max_frame_size}")
        return struct.pack(">I", len(payload)) + payload

    async def read_message(self, reader: ByteReader) -> bytes:
        try:
            prefix = await reader.readexactly(LENGTH_PREFIX_SIZE)
        except asyncio.IncompleteReadError as e:
            raise ConnectionClosedError(partial=e.partial) from e

        (length,) = struct.unpack(">I", prefix)
        if length > self.max_frame_size:
            raise ProtocolError(f"Frame too large: {length} > {self.max_frame_size}")

        try:
            return await reader.readexactly(length)
        except asyncio.IncompleteReadError as e:
            raise ConnectionClosedError(partial=e.partial) from e


def make_framing(kind: str, buffer_size: int, max_frame_size: int) -> Framing:
    if kind == "heuristic":
        return HeuristicFraming(buffer_size)
    if kind == "length_prefixed":
        return LengthPrefixedFraming(max_frame_size)
    raise ValueError(f"Unknown framing: {kind}")
