import struct
import threading
import time

import pytest
import serial


EXAMPLE_VALUES = (150, 200, 250, 150, 200, 250, 10, 20, 30, 40, 50, 60)


def build_frame(values=EXAMPLE_VALUES, reserved=0, length=28, checksum=None):
    data = b"\x42\x4D" + struct.pack(">H", length) + struct.pack(">13H", *values, reserved)
    if checksum is None:
        checksum = sum(data) & 0xFFFF
    return data + struct.pack(">H", checksum)


@pytest.fixture
def make_frame():
    return build_frame


class FakeSerial:
    """
    Stands in for serial.Serial. Each read returns the next scripted chunk;
    an exception in the script is raised instead. Once the script is used up
    the device behaves as unplugged.
    """

    def __init__(self, chunks, idle=False):
        self.chunks = list(chunks)
        self.idle = idle
        self.is_open = True
        self.reads = 0

    @property
    def in_waiting(self):
        return len(self.chunks[0]) if self.chunks and isinstance(self.chunks[0], bytes) else 0

    def read(self, size=1):
        self.reads += 1
        if not self.chunks:
            if self.idle:
                time.sleep(0.01)
                return b""
            raise serial.SerialException("device reports readiness to read but returned no data")
        chunk = self.chunks.pop(0)
        if isinstance(chunk, Exception):
            raise chunk
        return chunk

    def close(self):
        self.is_open = False


class SerialFactory:
    """Hands out the scripted ports in order, then fails to open."""

    def __init__(self, *ports):
        self.ports = list(ports)
        self.calls = []
        self.opened = []

    def __call__(self, device, **kwargs):
        self.calls.append((device, kwargs))
        if not self.ports:
            raise serial.SerialException(f"could not open port {device}: No such file or directory")
        port = self.ports.pop(0)
        self.opened.append(port)
        return port


class RecordingEvent(threading.Event):
    """Stop event that records backoff waits instead of sleeping, and fires after `stop_after` of them."""

    def __init__(self, stop_after):
        super().__init__()
        self.stop_after = stop_after
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if len(self.waits) >= self.stop_after:
            self.set()
        return self.is_set()


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
