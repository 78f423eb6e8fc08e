# src/hubmirror/demux.py
"""
Demultiplexing of the engine's combined log stream.

For containers created without a TTY the engine interleaves stdout and
stderr in one byte stream. Each frame starts with an 8-byte header:

    [stream type: 1 byte][padding: 3 bytes][payload size: uint32 big-endian]

followed by ``size`` bytes of payload. Frames can be split across transport
chunks at any byte, so the decoder keeps a buffer between chunks.
"""

import logging
import struct
from collections.abc import Iterable, Iterator
from typing import BinaryIO

from .exceptions import EngineStreamError, StreamFormatError

logger = logging.getLogger(__name__)

STDIN = 0
STDOUT = 1
STDERR = 2
SYSTEMERR = 3

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxL")


class FrameDecoder:
    """Incremental decoder turning raw chunks into ``(stream, payload)`` frames."""

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> Iterator[tuple[int, bytes]]:
        """Add a chunk and yield every frame that is now complete."""
        self._buffer.extend(chunk)
        while len(self._buffer) >= HEADER_SIZE:
            stream, size = _HEADER.unpack_from(self._buffer)
            if stream not in (STDIN, STDOUT, STDERR, SYSTEMERR):
                raise StreamFormatError(
                    f"Unknown stream type {stream} in log frame header",
                    details={"header": bytes(self._buffer[:HEADER_SIZE]).hex()},
                )
            end = HEADER_SIZE + size
            if len(self._buffer) < end:
                return
            payload = bytes(self._buffer[HEADER_SIZE:end])
            del self._buffer[:end]
            yield stream, payload

    def close(self) -> None:
        """Signal end of stream; leftover bytes mean a truncated frame."""
        if self._buffer:
            pending = len(self._buffer)
            self._buffer.clear()
            raise StreamFormatError(
                "Log stream ended inside a frame", details={"pending_bytes": pending}
            )


def iter_frames(chunks: Iterable[bytes]) -> Iterator[tuple[int, bytes]]:
    """Yield ``(stream, payload)`` frames from an iterable of raw chunks."""
    decoder = FrameDecoder()
    for chunk in chunks:
        if chunk:
            yield from decoder.feed(chunk)
    decoder.close()


def copy_streams(chunks: Iterable[bytes], stdout: BinaryIO, stderr: BinaryIO) -> tuple[int, int]:
    """
    Write demultiplexed frames to the matching sink until the stream ends.

    Stdin frames, which only appear for attached containers, go to stdout.
    A system-error frame means the engine failed while producing the logs.

    Args:
        chunks: Raw multiplexed byte chunks
        stdout: Binary sink for stdout payloads
        stderr: Binary sink for stderr payloads

    Returns:
        Number of bytes written to stdout and to stderr

    Raises:
        EngineStreamError: The engine reported a system error in the stream
        StreamFormatError: The stream is not validly framed
    """
    written_out = 0
    written_err = 0
    for stream, payload in iter_frames(chunks):
        if stream == SYSTEMERR:
            raise EngineStreamError(
                f"Engine reported an error in the log stream: "
                f"{payload.decode('utf-8', errors='replace').strip()}"
            )
        if stream == STDERR:
            stderr.write(payload)
            written_err += len(payload)
        else:
            stdout.write(payload)
            written_out += len(payload)

    for sink in (stdout, stderr):
        flush = getattr(sink, "flush", None)
        if flush is not None:
            flush()

    logger.debug(f"Demultiplexed logs: {written_out} bytes stdout, {written_err} bytes stderr")
    return written_out, written_err
