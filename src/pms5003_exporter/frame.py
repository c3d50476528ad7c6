"""
PMS5003 frame codec.

The sensor streams fixed-size, big-endian frames:

    0x42 0x4D | length (2) | 13 x u16 data | checksum (2)

The checksum is the 16-bit sum of every byte before it. The decoder is driven
against a growing buffer and never assumes frames line up with serial reads.
"""
import struct

from dataclasses import dataclass, fields, astuple
from typing import Optional, Tuple


START = b"\x42\x4D"  # start of frame marker
FRAME_LENGTH = 28  # bytes after the length field, checksum included
HEADER_SIZE = 4  # marker + length field
MAX_BUFFER_SIZE = 4096

# 12 reported values followed by one reserved word
DATA_FORMAT = ">13H"
WORD_FORMAT = ">H"


class FrameError(ValueError):
    """A frame was found but cannot be used. `consumed` bytes must be dropped."""

    def __init__(self, message, consumed):
        super().__init__(message)
        self.consumed = consumed


class ChecksumMismatch(FrameError):
    def __init__(self, expected, received, consumed):
        super().__init__(
            f"Checksum mismatch: computed 0x{expected:04X}, frame carries 0x{received:04X}",
            consumed)
        self.expected = expected
        self.received = received


class UnsupportedFrameLength(FrameError):
    def __init__(self, length, consumed):
        super().__init__(f"Unsupported frame length: {length} (expected {FRAME_LENGTH})", consumed)
        self.length = length


@dataclass(frozen=True)
class SensorFrame:
    """One reading. Concentrations in ug/m3, particle counts per 0.1 L of air."""
    pm1_0_standard: int
    pm2_5_standard: int
    pm10_standard: int
    pm1_0_atmospheric: int
    pm2_5_atmospheric: int
    pm10_atmospheric: int
    particles_gt_0_3um: int
    particles_gt_0_5um: int
    particles_gt_1_0um: int
    particles_gt_2_5um: int
    particles_gt_5_0um: int
    particles_gt_10um: int

    @classmethod
    def from_bytes(cls, data):
        """Build a frame from the 26 data bytes following the length field."""
        values = struct.unpack(DATA_FORMAT, data[:FRAME_LENGTH - 2])
        # Last word is reserved
        return cls(*values[:len(FIELDS)])

    def as_dict(self):
        return dict(zip(FIELDS, astuple(self)))


FIELDS = tuple(f.name for f in fields(SensorFrame))


def checksum(data) -> int:
    return sum(data) & 0xFFFF


def decode_frame(buffer) -> Tuple[Optional[SensorFrame], int]:
    """
    Decode the next frame from the start of `buffer`.

    Args:
        buffer (bytes): Bytes accumulated from the serial stream. Not modified.
    Returns:
        A tuple of (frame, consumed). frame is None when more input is needed,
        in which case consumed is 0.
    Raises:
        ChecksumMismatch, UnsupportedFrameLength: the marker just found does not
        start a usable frame. The error's `consumed` covers the bytes up to and
        including that marker, so the next scan starts right after it.
    """
    start = buffer.find(START)

    if start < 0:
        return None, 0

    if len(buffer) < start + HEADER_SIZE:
        return None, 0

    length = struct.unpack_from(WORD_FORMAT, buffer, start + 2)[0]

    if length != FRAME_LENGTH:
        raise UnsupportedFrameLength(length, start + len(START))

    end = start + HEADER_SIZE + length

    if len(buffer) < end:
        return None, 0

    body = bytes(buffer[start:end - 2])
    received = struct.unpack_from(WORD_FORMAT, buffer, end - 2)[0]
    expected = checksum(body)

    if expected != received:
        raise ChecksumMismatch(expected, received, start + len(START))

    return SensorFrame.from_bytes(body[HEADER_SIZE:]), end


class FrameDecoder:
    """Streaming decoder keeping the bytes received so far."""

    def __init__(self, max_buffer_size=MAX_BUFFER_SIZE):
        self.buffer = bytearray()
        self.max_buffer_size = max_buffer_size

    def feed(self, data):
        self.buffer.extend(data)

    def clear(self):
        self.buffer.clear()

    def decode(self) -> Optional[SensorFrame]:
        """
        Return the next complete frame, or None if more bytes are needed.
        FrameError is raised after the offending bytes are dropped, so calling
        decode() again resumes with the rest of the buffer.
        """
        try:
            frame, consumed = decode_frame(self.buffer)
        except FrameError as e:
            del self.buffer[:e.consumed]
            raise

        if consumed:
            del self.buffer[:consumed]
        elif len(self.buffer) > self.max_buffer_size and START not in self.buffer:
            # Nothing but noise. Keep the last byte, it may be half a marker
            del self.buffer[:-1]

        return frame

