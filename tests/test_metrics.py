import threading

import pytest
from prometheus_client.parser import text_string_to_metric_families

from pms5003_exporter.frame import FIELDS, SensorFrame
from pms5003_exporter.metrics import METRICS_TTL, EncodingError, MetricsStore, encode


def frame_of(value):
    return SensorFrame(*([value] * len(FIELDS)))


def parse(text):
    return {
        sample.name: sample.value
        for family in text_string_to_metric_families(text)
        for sample in family.samples
    }


def test_render_before_any_update_is_empty(clock):
    store = MetricsStore(clock=clock)
    assert store.render() == ""
    assert store.snapshot().frame is None


def test_render_fresh_reading(clock):
    store = MetricsStore(clock=clock)
    store.update(SensorFrame(150, 200, 250, 150, 200, 250, 10, 20, 30, 40, 50, 60))
    clock.advance(1)

    text = store.render()

    assert "pms5003_pm2_5_standard 200\n" in text
    assert "pms5003_particles_gt_10um 60\n" in text
    assert parse(text)["pms5003_pm10_atmospheric"] == 250


def test_render_stale_reading_is_empty(clock):
    store = MetricsStore(clock=clock)
    store.update(frame_of(5))

    clock.advance(METRICS_TTL)
    assert store.render() != ""

    clock.advance(0.001)
    assert store.render() == ""
    assert store.snapshot().frame == frame_of(5)


def test_update_refreshes_staleness(clock):
    store = MetricsStore(clock=clock)
    store.update(frame_of(1))
    clock.advance(60)
    store.update(frame_of(2))

    assert parse(store.render())["pms5003_pm1_0_standard"] == 2


def test_custom_ttl(clock):
    store = MetricsStore(clock=clock)
    store.update(frame_of(1))
    clock.advance(2)

    assert store.render(ttl=1) == ""
    assert store.render(ttl=3) != ""


def test_encode_one_gauge_per_field():
    lines = encode(frame_of(42)).splitlines()
    samples = [line for line in lines if not line.startswith("#")]

    assert samples == [f"pms5003_{field} 42" for field in FIELDS]
    assert "# TYPE pms5003_pm1_0_standard gauge" in lines


@pytest.mark.parametrize("value", [-1, 0x10000, 1.5, None])
def test_encode_rejects_values_outside_u16(value):
    with pytest.raises(EncodingError):
        encode(frame_of(value))


def test_concurrent_readers_never_see_mixed_frames():
    store = MetricsStore()
    store.update(frame_of(0))
    stop = threading.Event()
    torn = []

    def writer():
        value = 0
        while not stop.is_set():
            value = (value + 1) % 1000
            store.update(frame_of(value))

    def reader():
        for _ in range(300):
            values = set(parse(store.render()).values())
            if len(values) != 1:
                torn.append(values)

    writers = [threading.Thread(target=writer) for _ in range(2)]
    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in writers + readers:
        thread.start()
    for thread in readers:
        thread.join()
    stop.set()
    for thread in writers:
        thread.join()

    assert torn == []
