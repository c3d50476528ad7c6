"""Latest-reading store and its Prometheus text exposition."""
import threading
import time

from typing import NamedTuple, Optional

from .frame import FIELDS, SensorFrame


METRICS_TTL = 10.0  # seconds a reading stays servable
METRIC_PREFIX = "pms5003"

HELP = {
    "pm1_0_standard": "PM1.0 concentration, standard particles (CF=1), ug/m3",
    "pm2_5_standard": "PM2.5 concentration, standard particles (CF=1), ug/m3",
    "pm10_standard": "PM10 concentration, standard particles (CF=1), ug/m3",
    "pm1_0_atmospheric": "PM1.0 concentration, atmospheric environment, ug/m3",
    "pm2_5_atmospheric": "PM2.5 concentration, atmospheric environment, ug/m3",
    "pm10_atmospheric": "PM10 concentration, atmospheric environment, ug/m3",
    "particles_gt_0_3um": "Particles with diameter beyond 0.3 um in 0.1 L of air",
    "particles_gt_0_5um": "Particles with diameter beyond 0.5 um in 0.1 L of air",
    "particles_gt_1_0um": "Particles with diameter beyond 1.0 um in 0.1 L of air",
    "particles_gt_2_5um": "Particles with diameter beyond 2.5 um in 0.1 L of air",
    "particles_gt_5_0um": "Particles with diameter beyond 5.0 um in 0.1 L of air",
    "particles_gt_10um": "Particles with diameter beyond 10 um in 0.1 L of air",
}


class EncodingError(Exception):
    pass


class Snapshot(NamedTuple):
    frame: Optional[SensorFrame]
    observed_at: float


def metric_name(field):
    return f"{METRIC_PREFIX}_{field}"


def encode(frame: SensorFrame) -> str:
    """
    Render a frame as Prometheus text exposition, one gauge per field.

    Raises:
        EncodingError: a field does not hold an unsigned 16-bit integer.
    """
    lines = []
    try:
        for field in FIELDS:
            value = getattr(frame, field)
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"{field}={value} out of range")
            name = metric_name(field)
            lines.append(f"# HELP {name} {HELP[field]}")
            lines.append(f"# TYPE {name} gauge")
            lines.append(f"{name} {value:d}")
    except (ValueError, TypeError, KeyError) as e:
        raise EncodingError(f"Cannot encode frame: {e}") from e

    return "\n".join(lines) + "\n"


class MetricsStore:
    """
    Holds the most recent frame and when it arrived.

    The snapshot is replaced whole on every update, so a reader only needs the
    lock long enough to grab the current reference. Freshness is checked on
    read: the store has no timer and a silent producer simply ages out.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = Snapshot(None, clock())

    def update(self, frame: SensorFrame):
        snapshot = Snapshot(frame, self._clock())
        with self._lock:
            self._snapshot = snapshot

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def render(self, ttl=METRICS_TTL) -> str:
        """Return the exposition text, or an empty string when there is no fresh reading."""
        snapshot = self.snapshot()

        if snapshot.frame is None:
            return ""

        if self._clock() - snapshot.observed_at > ttl:
            return ""

        return encode(snapshot.frame)
