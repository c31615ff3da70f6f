import random

import numpy as np
import pytest

from pyprobe.probe import Accumulator, Statistics


def test_empty_snapshot_is_all_zeros():
    stats = Accumulator().snapshot()

    assert isinstance(stats, Statistics)
    assert 0 == stats.packets_sent
    assert 0 == stats.packets_recv
    assert 0.0 == stats.packet_loss
    assert [] == stats.rtts
    assert 0.0 == stats.min_rtt == stats.max_rtt == stats.avg_rtt
    assert 0.0 == stats.std_dev_rtt


def test_loss_is_100_when_nothing_received():
    acc = Accumulator()
    for _ in range(4):
        acc.record_sent()

    stats = acc.snapshot()
    assert 100.0 == stats.packet_loss
    assert 0.0 == stats.avg_rtt
    assert 0.0 == stats.std_dev_rtt


@pytest.mark.parametrize("sent, received", [(1, 1), (4, 3), (10, 1), (3, 0)])
def test_loss_percentage(sent, received):
    acc = Accumulator()
    for _ in range(sent):
        acc.record_sent()
    for _ in range(received):
        acc.record_reply(0.01)

    expected = (sent - received) / sent * 100
    assert pytest.approx(expected) == acc.snapshot().packet_loss


def test_rtt_aggregates_match_two_pass():
    rng = random.Random(7)
    samples = [rng.uniform(0.0005, 0.3) for _ in range(500)]
    acc = Accumulator()
    for rtt in samples:
        acc.record_sent()
        acc.record_reply(rtt)

    stats = acc.snapshot()
    assert samples == stats.rtts
    assert min(samples) == stats.min_rtt
    assert max(samples) == stats.max_rtt
    assert pytest.approx(sum(samples) / len(samples)) == stats.avg_rtt
    assert pytest.approx(float(np.std(samples))) == stats.std_dev_rtt
    assert stats.min_rtt <= stats.avg_rtt <= stats.max_rtt


def test_single_sample():
    acc = Accumulator()
    acc.record_sent()
    acc.record_reply(0.025)

    stats = acc.snapshot()
    assert 0.025 == stats.min_rtt == stats.max_rtt == stats.avg_rtt
    assert 0.0 == stats.std_dev_rtt
    assert 0.0 == stats.packet_loss


def test_snapshot_is_a_copy():
    acc = Accumulator()
    acc.record_sent()
    acc.record_reply(0.1)
    stats = acc.snapshot()

    acc.record_sent()
    acc.record_reply(0.2)

    assert [0.1] == stats.rtts
    assert 1 == stats.packets_recv
