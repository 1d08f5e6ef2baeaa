"""High-dynamic-range histograms and their V2 wire encoding."""

from __future__ import annotations

import math
import struct
import zlib
from dataclasses import dataclass
from datetime import timedelta

from .wire import DurationHistogramMessage

__all__ = [
    "HistogramError",
    "Histogram",
    "DurationHistogram",
    "serialize_histogram",
    "deserialize_histogram",
]

V2_COOKIE = 0x1C849303
V2_COMPRESSED_COOKIE = 0x1C849304
_HEADER = struct.Struct(">IIIIQQd")
_U64_MAX = (1 << 64) - 1


class HistogramError(ValueError):
    """Raised for invalid histogram parameters, values or encodings."""


class Histogram:
    """A histogram recording integer values with bounded relative error."""

    def __init__(self, lowest: int = 1, highest: int = _U64_MAX, significant_figures: int = 3):
        if lowest < 1:
            raise HistogramError("lowest discernible value must be >= 1")
        if not 0 <= significant_figures <= 5:
            raise HistogramError("significant figures must be between 0 and 5")
        if highest < 2 * lowest:
            raise HistogramError("highest trackable value must be >= 2 * lowest")
        self.lowest = lowest
        self.highest = highest
        self.significant_figures = significant_figures

        single_unit = 2 * 10**significant_figures
        count_magnitude = math.ceil(math.log2(single_unit))
        self._half_mag = max(count_magnitude, 1) - 1
        self._unit_mag = lowest.bit_length() - 1
        self._sub_count = 1 << (self._half_mag + 1)
        self._half_count = self._sub_count // 2
        self._mask = (self._sub_count - 1) << self._unit_mag

        smallest_untrackable = self._sub_count << self._unit_mag
        buckets = 1
        while smallest_untrackable <= highest:
            if smallest_untrackable > _U64_MAX // 2:
                buckets += 1
                break
            smallest_untrackable <<= 1
            buckets += 1
        self._counts = [0] * ((buckets + 1) * self._half_count)
        self._total = 0

    def _bucket_of(self, value: int) -> tuple[int, int]:
        bucket = (value | self._mask).bit_length() - self._unit_mag - (self._half_mag + 1)
        return bucket, value >> (bucket + self._unit_mag)

    def _index_of(self, value: int) -> int:
        bucket, sub = self._bucket_of(value)
        return ((bucket + 1) << self._half_mag) + (sub - self._half_count)

    def _value_for(self, index: int) -> int:
        bucket = (index >> self._half_mag) - 1
        sub = (index & (self._half_count - 1)) + self._half_count
        if bucket < 0:
            sub -= self._half_count
            bucket = 0
        return sub << (bucket + self._unit_mag)

    def _lowest_equivalent(self, value: int) -> int:
        bucket, sub = self._bucket_of(value)
        return sub << (bucket + self._unit_mag)

    def _highest_equivalent(self, value: int) -> int:
        bucket, sub = self._bucket_of(value)
        if sub >= self._sub_count:
            bucket += 1
        size = 1 << (self._unit_mag + bucket)
        return self._lowest_equivalent(value) + size - 1

    def record(self, value: int, count: int = 1) -> None:
        """Record ``value`` ``count`` times."""
        if value < 0:
            raise HistogramError("cannot record a negative value")
        index = self._index_of(value)
        if index >= len(self._counts):
            raise HistogramError(f"value {value} is out of the histogram's range")
        self._counts[index] += count
        self._total += count

    def value_at_quantile(self, quantile: float) -> int:
        quantile = min(max(quantile, 0.0), 1.0)
        wanted = max(1, math.ceil(quantile * self._total))
        running = 0
        for index, count in enumerate(self._counts):
            running += count
            if count and running >= wanted:
                value = self._value_for(index)
                if quantile == 0.0:
                    return self._lowest_equivalent(value)
                return self._highest_equivalent(value)
        return 0

    def min(self) -> int:
        for index, count in enumerate(self._counts):
            if count:
                return self._lowest_equivalent(self._value_for(index))
        return 0

    def max(self) -> int:
        for index in reversed(range(len(self._counts))):
            if self._counts[index]:
                return self._highest_equivalent(self._value_for(index))
        return 0

    def total_count(self) -> int:
        return self._total


def _zigzag(n: int) -> int:
    return n << 1 if n >= 0 else ((-n) << 1) - 1


def _unzigzag(z: int) -> int:
    return z >> 1 if not z & 1 else -((z >> 1) + 1)


def _encode_varint(value: int, out: bytearray) -> None:
    for _ in range(8):
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return
    out.append(value & 0xFF)


def _decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    value = 0
    shift = 0
    for _ in range(8):
        if pos >= len(data):
            raise HistogramError("truncated varint")
        byte = data[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return value, pos
    if pos >= len(data):
        raise HistogramError("truncated varint")
    value |= data[pos] << 56
    return value, pos + 1


def serialize_histogram(histogram: Histogram) -> bytes:
    """Encode ``histogram`` in the uncompressed V2 format."""
    counts = histogram._counts
    last = max((i for i, c in enumerate(counts) if c), default=-1)
    payload = bytearray()
    index = 0
    while index <= last:
        count = counts[index]
        if count:
            _encode_varint(_zigzag(count), payload)
            index += 1
            continue
        zeros = 0
        while index <= last and counts[index] == 0:
            zeros += 1
            index += 1
        _encode_varint(_zigzag(-zeros if zeros > 1 else 0), payload)
    header = _HEADER.pack(
        V2_COOKIE,
        len(payload),
        0,
        histogram.significant_figures,
        histogram.lowest,
        histogram.highest,
        1.0,
    )
    return header + bytes(payload)


def _decode(data: bytes) -> Histogram:
    if len(data) < 4:
        raise HistogramError("truncated header")
    (cookie,) = struct.unpack_from(">I", data)
    if cookie == V2_COMPRESSED_COOKIE:
        if len(data) < 8:
            raise HistogramError("truncated header")
        (length,) = struct.unpack_from(">I", data, 4)
        try:
            inner = zlib.decompress(data[8 : 8 + length])
        except zlib.error as error:
            raise HistogramError("invalid compressed payload") from error
        return _decode(inner)
    if cookie != V2_COOKIE:
        raise HistogramError("unknown cookie")
    if len(data) < _HEADER.size:
        raise HistogramError("truncated header")
    _, length, _offset, sigfigs, lowest, highest, _ratio = _HEADER.unpack_from(data)
    payload = data[_HEADER.size : _HEADER.size + length]
    if len(payload) != length:
        raise HistogramError("truncated payload")
    histogram = Histogram(lowest, highest, sigfigs)
    pos = index = 0
    while pos < len(payload):
        raw, pos = _decode_varint(payload, pos)
        count = _unzigzag(raw)
        if count < 0:
            index += -count
            continue
        if index >= len(histogram._counts):
            raise HistogramError("payload has more counts than the histogram holds")
        histogram._counts[index] = count
        histogram._total += count
        index += 1
    return histogram


def deserialize_histogram(data: bytes) -> Histogram | None:
    """Decode a V2 (optionally compressed) histogram, or ``None`` if invalid."""
    try:
        return _decode(bytes(data))
    except HistogramError:
        return None


@dataclass
class DurationHistogram:
    """A histogram of durations in nanoseconds, with outlier information."""

    histogram: Histogram
    high_outliers: int = 0
    highest_outlier: timedelta | None = None

    @classmethod
    def from_proto(cls, proto: DurationHistogramMessage) -> "DurationHistogram | None":
        histogram = deserialize_histogram(proto.raw_histogram)
        if histogram is None:
            return None
        outlier = (
            None
            if proto.highest_outlier is None
            else timedelta(microseconds=proto.highest_outlier / 1000)
        )
        return cls(histogram, proto.high_outliers, outlier)

    @classmethod
    def from_poll_durations(
        cls, proto: "DurationHistogramMessage | bytes"
    ) -> "DurationHistogram | None":
        if isinstance(proto, (bytes, bytearray)):
            histogram = deserialize_histogram(proto)
            return None if histogram is None else cls(histogram)
        return cls.from_proto(proto)