import random
import time

from pyprobe.probe.clock import (
    TIMESTAMP_SIZE,
    bytes_to_time,
    now_ns,
    time_to_bytes,
)


def test_encode_is_big_endian_8_bytes():
    assert time_to_bytes(1) == b'\x00' * 7 + b'\x01'
    assert time_to_bytes(0x0102030405060708) == bytes(range(1, 9))
    assert TIMESTAMP_SIZE == len(time_to_bytes(now_ns()))


def test_random_timestamps_round_trip():
    rng = random.Random(20261019)
    for _ in range(1000):
        t = rng.randint(-(2 ** 63), 2 ** 63 - 1)
        assert t == bytes_to_time(time_to_bytes(t))


def test_current_time_round_trip_keeps_nanoseconds():
    t = time.time_ns()
    assert t == bytes_to_time(time_to_bytes(t))
