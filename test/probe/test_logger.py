import pytest

from pyprobe.probe import Config, Pinger, ProbeLoggerConfig
from pyprobe.probe.logger import build_file_name


TARGET = '127.0.0.1'


@pytest.mark.parametrize('file_name, expected', [
    ('ping.log', 'ping_42.log'),
    ('ping.LOG', 'ping_42.LOG'),
    ('ping', 'ping_42'),
    ('ping.txt', 'ping.txt_42'),
    ('  ping.log ', 'ping_42.log'),
])
def test_build_file_name(file_name, expected):
    assert expected == build_file_name(file_name, 42)


def test_log_file_has_thread_and_exit_reason(make_factory, tmp_path):
    pinger = Pinger(
        TARGET,
        Config(count=2, interval=0.01, timeout=5.0, recv_timeout=0.02),
        conn_factory=make_factory(),
        logger_config=ProbeLoggerConfig(file_name=str(tmp_path / 'ping.log')),
    )
    pinger.run()

    log_file = tmp_path / f'ping_{pinger.logger.run_id}.log'
    lines = log_file.read_text().splitlines()

    assert any(f'R:{pinger.logger.run_id}' in line for line in lines)
    assert any('pyprobe-receiver' in line for line in lines)
    assert any('MainThread' in line for line in lines)

    start = next(line for line in lines if 'PING' in line)
    assert '[-]' in start
    finish = next(line for line in lines if 'finished' in line)
    assert '[COUNT_REACHED]' in finish
