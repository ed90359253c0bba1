"""Length-prefixed JSON framing shared by yomi and the conversion engine.

Every message, in both directions, is a 4-byte big-endian unsigned length
followed by exactly that many bytes of UTF-8 JSON. There is no other
envelope and no checksum.
"""

from __future__ import annotations

import json
import struct

from ..errors import ProtocolError

HEADER = struct.Struct(">I")
HEADER_SIZE = HEADER.size

# The engine refuses anything larger than this
MAX_MESSAGE_SIZE = 4 * 1024 * 1024


def encode_frame(payload: bytes) -> bytes:
    """Prefix ``payload`` with its length."""
    if len(payload) > MAX_MESSAGE_SIZE:
        raise ProtocolError(f"Message too large: {len(payload)} bytes")
    return HEADER.pack(len(payload)) + payload


def encode_message(message: dict) -> bytes:
    """Serialize a message dict into one complete frame."""
    try:
        payload = json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Message is not JSON serializable: {e}") from e
    return encode_frame(payload)


def decode_message(payload: bytes) -> dict:
    """Parse one frame payload into a JSON object.

    Raises:
        ProtocolError: If the payload is not UTF-8, not JSON, or not an object.
    """
    try:
        message = json.loads(payload.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Invalid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(message, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(message).__name__}")
    return message


class FrameTooLargeError(ProtocolError):
    """A header declared more than ``MAX_MESSAGE_SIZE`` bytes.

    The stream cannot be resynchronized after this. ``frames`` holds the
    complete payloads that preceded the bad header.
    """

    def __init__(self, length: int, frames: list[bytes]):
        super().__init__(f"Incoming frame too large: {length} bytes")
        self.length = length
        self.frames = frames


class FrameDecoder:
    """Incremental frame splitter for a byte stream.

    Holds zero or more complete frames plus at most one partial tail. A
    bad payload never affects the offsets of later frames because the
    length prefix has already delimited it.

    Example:
        decoder = FrameDecoder()
        for payload in decoder.feed(chunk):
            handle(decode_message(payload))
    """

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Append ``data`` and return every complete payload now available.

        Raises:
            FrameTooLargeError: If a header declares an oversized frame. The
                buffer is discarded.
        """
        self._buffer.extend(data)

        frames = []
        offset = 0
        available = len(self._buffer)
        while available - offset >= HEADER_SIZE:
            (length,) = HEADER.unpack_from(self._buffer, offset)
            if length > MAX_MESSAGE_SIZE:
                self._buffer.clear()
                raise FrameTooLargeError(length, frames)
            end = offset + HEADER_SIZE + length
            if end > available:
                break
            frames.append(bytes(self._buffer[offset + HEADER_SIZE:end]))
            offset = end

        if offset:
            del self._buffer[:offset]
        return frames

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete frame."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
