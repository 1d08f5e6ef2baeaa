import struct
import zlib
from datetime import timedelta

import pytest

from consolestate.histogram import (
    DurationHistogram,
    Histogram,
    HistogramError,
    deserialize_histogram,
    serialize_histogram,
)
from consolestate.wire import DurationHistogramMessage


def _sample():
    h = Histogram(1, 10**9, 2)
    for v in (1, 5, 100, 1000, 123456):
        h.record(v)
    h.record(7, 3)
    return h


def test_counts_and_extremes():
    h = _sample()
    assert h.total_count() == 8
    assert h.min() == 1
    assert h.max() >= 123456
    assert h.value_at_quantile(1.0) == h.max()
    assert h.value_at_quantile(0.0) == h.min()


def test_quantiles_are_monotonic():
    h = _sample()
    qs = [h.value_at_quantile(q / 10) for q in range(11)]
    assert qs == sorted(qs)


def test_round_trip():
    h = _sample()
    back = deserialize_histogram(serialize_histogram(h))
    assert back.total_count() == h.total_count()
    assert [back.value_at_quantile(q / 4) for q in range(5)] == [
        h.value_at_quantile(q / 4) for q in range(5)
    ]


def test_compressed_round_trip():
    h = _sample()
    inner = zlib.compress(serialize_histogram(h))
    data = struct.pack(">II", 0x1C849304, len(inner)) + inner
    assert deserialize_histogram(data).max() == h.max()


def test_bad_input_gives_none():
    assert deserialize_histogram(b"") is None
    assert deserialize_histogram(b"\x00\x00\x00\x00" * 12) is None


def test_out_of_range_and_bad_params():
    h = Histogram(1, 1000, 2)
    with pytest.raises(HistogramError):
        h.record(10**9)
    with pytest.raises(HistogramError):
        h.record(-1)
    with pytest.raises(HistogramError):
        Histogram(0, 100, 2)


def test_duration_histogram_from_proto_and_legacy():
    raw = serialize_histogram(_sample())
    dh = DurationHistogram.from_proto(
        DurationHistogramMessage(raw_histogram=raw, high_outliers=2, highest_outlier=5000)
    )
    assert dh.high_outliers == 2
    assert dh.highest_outlier == timedelta(microseconds=5)
    legacy = DurationHistogram.from_poll_durations(raw)
    assert legacy.high_outliers == 0
    assert legacy.highest_outlier is None
    assert legacy.histogram.total_count() == 8
    assert DurationHistogram.from_poll_durations(b"junk") is None