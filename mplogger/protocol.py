"""
Wire protocol for shipping log records over a local stream socket.

Each record travels as one self-delimiting frame. All integers are
big-endian:

    process_id:u32 thread_id:u32 level:u8 sequence:u64
    target_len:u32 target_bytes message_len:u32 message_bytes

Text fields are UTF-8 and length-prefixed, so newlines and any other
separators inside them are safe. There is no handshake, acknowledgement
or close message: a new connection is a fresh client and EOF ends it.
"""

import struct
from typing import BinaryIO, Optional, Tuple

from .exceptions import FrameError, IncompleteFrame
from .models import LogLevel, LogRecord

HEADER = struct.Struct("!IIBQI")
LENGTH = struct.Struct("!I")

DEFAULT_MAX_FIELD_LENGTH = 1024 * 1024

_MAX_LEVEL = max(LogLevel)


def encode_frame(record: LogRecord) -> bytes:
    """
    Encode a record into a single frame.

    Args:
        record: The record to encode

    Returns:
        bytes: The complete frame, ready for one sendall()
    """
    target = record.target.encode("utf-8", errors="replace")
    message = record.message.encode("utf-8", errors="replace")
    return b"".join((
        HEADER.pack(
            record.process_id,
            record.thread_id,
            int(record.level),
            record.sequence,
            len(target),
        ),
        target,
        LENGTH.pack(len(message)),
        message,
    ))


def truncate_field(text: str, max_field_length: int = DEFAULT_MAX_FIELD_LENGTH) -> str:
    """
    Cut text so its UTF-8 encoding fits in max_field_length bytes.

    The cut never splits a multi-byte character.
    """
    encoded = text.encode("utf-8", errors="replace")
    if len(encoded) <= max_field_length:
        return text
    return encoded[:max_field_length].decode("utf-8", errors="ignore")


def _check_length(name: str, length: int, max_field_length: int) -> None:
    if length > max_field_length:
        raise FrameError(f"{name} length {length} exceeds limit of {max_field_length} bytes")


def _check_level(level: int) -> LogLevel:
    if level > _MAX_LEVEL:
        raise FrameError(f"Invalid level byte: {level}")
    return LogLevel(level)


def _build_record(pid: int, tid: int, level: int, seq: int, target: bytes, message: bytes) -> LogRecord:
    return LogRecord(
        process_id=pid,
        thread_id=tid,
        level=_check_level(level),
        sequence=seq,
        target=target.decode("utf-8", errors="replace"),
        message=message.decode("utf-8", errors="replace"),
    )


def decode_frame(buffer: bytes, max_field_length: int = DEFAULT_MAX_FIELD_LENGTH) -> Tuple[LogRecord, int]:
    """
    Decode the first frame held in a buffer.

    Args:
        buffer: Bytes that start at a frame boundary
        max_field_length: Largest accepted target/message length

    Returns:
        Tuple[LogRecord, int]: The record and the number of bytes consumed

    Raises:
        IncompleteFrame: If the buffer ends before the frame does
        FrameError: If the frame is malformed
    """
    view = memoryview(buffer)
    if len(view) < HEADER.size:
        raise IncompleteFrame("Buffer shorter than frame header")

    pid, tid, level, seq, target_len = HEADER.unpack_from(view, 0)
    _check_level(level)
    _check_length("target", target_len, max_field_length)

    pos = HEADER.size
    if len(view) < pos + target_len + LENGTH.size:
        raise IncompleteFrame("Buffer ends inside target")
    target = bytes(view[pos:pos + target_len])
    pos += target_len

    (message_len,) = LENGTH.unpack_from(view, pos)
    _check_length("message", message_len, max_field_length)
    pos += LENGTH.size
    if len(view) < pos + message_len:
        raise IncompleteFrame("Buffer ends inside message")
    message = bytes(view[pos:pos + message_len])
    pos += message_len

    return _build_record(pid, tid, level, seq, target, message), pos


class FrameReader:
    """
    Read whole frames from a blocking binary stream.

    A short read blocks until the rest of the frame arrives or the stream
    ends. EOF exactly at a frame boundary is a clean end of stream; EOF
    anywhere else means the frame was truncated.

    Example:
        >>> reader = FrameReader(conn.makefile("rb"))
        >>> while (record := reader.read_frame()) is not None:
        ...     store.ingest(record)
    """

    def __init__(self, stream: BinaryIO, max_field_length: int = DEFAULT_MAX_FIELD_LENGTH):
        self._stream = stream
        self._max_field_length = max_field_length

    def _read_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self._stream.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _read_field(self, name: str, size: int) -> bytes:
        data = self._read_exact(size)
        if len(data) < size:
            raise FrameError(f"Connection closed inside {name} ({len(data)}/{size} bytes)")
        return data

    def read_frame(self) -> Optional[LogRecord]:
        """
        Read the next frame.

        Returns:
            Optional[LogRecord]: The decoded record, or None on clean EOF

        Raises:
            FrameError: If the frame is malformed or truncated
        """
        header = self._read_exact(HEADER.size)
        if not header:
            return None
        if len(header) < HEADER.size:
            raise FrameError(f"Connection closed inside header ({len(header)}/{HEADER.size} bytes)")

        pid, tid, level, seq, target_len = HEADER.unpack(header)
        _check_level(level)
        _check_length("target", target_len, self._max_field_length)
        target = self._read_field("target", target_len)

        (message_len,) = LENGTH.unpack(self._read_field("message length", LENGTH.size))
        _check_length("message", message_len, self._max_field_length)
        message = self._read_field("message", message_len)

        return _build_record(pid, tid, level, seq, target, message)
