#
# pms5003_exporter - Serial acquisition loop
# Owns the serial port: opens it, feeds the bytes to the frame decoder and
# publishes every good frame to the metrics store. Any I/O failure closes the
# port and the loop reopens it after an exponential backoff, until stopped.
import logging
import threading

from enum import Enum, auto
from typing import Optional

import serial

from .backoff import ExponentialBackoff
from .frame import FrameDecoder, FrameError

logger = logging.getLogger(__name__)

BAUD_RATE = 9600  # sensor-mandated, 8N1
POLL_INTERVAL = 0.5  # serial read timeout, bounds the reaction time to stop()


class State(Enum):
    DISCONNECTED = auto()
    OPENING = auto()
    STREAMING = auto()


class DeviceUnavailable(Exception):
    pass


class StreamInterrupted(Exception):
    pass


class Reader:
    def __init__(self, device, store, stop_event: Optional[threading.Event] = None,
                 serial_factory=serial.Serial, backoff: Optional[ExponentialBackoff] = None):
        self.device = device
        self.store = store
        self.serial = None
        self.state = State.DISCONNECTED
        self.decoder = FrameDecoder()
        self.backoff = backoff or ExponentialBackoff()
        self._serial_factory = serial_factory
        self._stop_event = stop_event or threading.Event()

        # Diagnostics
        self.bad_data = False
        self.frames_decoded = 0
        self.frame_errors = 0
        self.reconnects = 0

    def run(self):
        """Read until stopped. Every failure is retried, none is fatal."""
        first_attempt = True

        while not self._stop_event.is_set():
            if not first_attempt:
                interval = self.backoff.next_interval()
                logger.info("Reopening %s in %.1fs", self.device, interval)
                if self._stop_event.wait(interval):
                    break
                self.reconnects += 1
            first_attempt = False

            try:
                self._open()
                self._stream()
            except (DeviceUnavailable, StreamInterrupted) as e:
                logger.warning("%s", e)
            finally:
                self._close()

        logger.info("Serial reader stopped")

    def stop(self):
        self._stop_event.set()

    def _open(self):
        self.state = State.OPENING
        logger.info("Opening serial port %s", self.device)

        try:
            self.serial = self._serial_factory(
                self.device,
                baudrate=BAUD_RATE,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=POLL_INTERVAL,
                xonxoff=False,
                rtscts=False
            )
        except (serial.SerialException, OSError, ValueError) as e:
            raise DeviceUnavailable(f"Failed to open serial port {self.device}: {e}") from e

        # Leftovers from a previous connection cannot complete a frame
        self.decoder.clear()
        self.bad_data = False
        self.state = State.STREAMING
        logger.info("Port open")

    def _stream(self):
        """Decode frames from the open port. Returns only when stopped."""
        got_frame = False

        while not self._stop_event.is_set():
            try:
                data = self.serial.read(max(1, self.serial.in_waiting))
            except (serial.SerialException, OSError) as e:
                raise StreamInterrupted(f"Serial read stream ended: {e}") from e

            if not data:
                continue  # timeout

            self.decoder.feed(data)

            while True:
                try:
                    frame = self.decoder.decode()
                except FrameError as e:
                    self._bad_frame(e)
                    continue

                if frame is None:
                    break

                logger.debug("Frame received: %s", frame)
                self.store.update(frame)
                self.frames_decoded += 1
                self.bad_data = False

                if not got_frame:
                    # The link works end to end, next failure starts from the shortest delay
                    got_frame = True
                    self.backoff.reset()

    def _bad_frame(self, error):
        self.frame_errors += 1
        if not self.bad_data:
            logger.warning("Error reading frame: %s", error)
            self.bad_data = True
        else:
            logger.debug("Error reading frame: %s", error)

    def _close(self):
        if self.serial is not None:
            try:
                self.serial.close()
            except (serial.SerialException, OSError) as e:
                logger.debug("Error closing %s: %s", self.device, e)
            self.serial = None
        self.state = State.DISCONNECTED
