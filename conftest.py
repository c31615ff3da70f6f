import queue
import threading
import time

import pytest

from pyprobe.probe.icmp import (
    ICMP_ECHO_REPLY,
    ICMP_HEADER,
    marshal_echo,
    parse_message,
)


TARGET = '127.0.0.1'


def ipv4_header(source: str = TARGET) -> bytes:
    """Минимальный IPv4-заголовок (IHL = 5) для пакетов сырого сокета."""
    src = bytes(int(x) for x in source.split('.'))
    return bytes([0x45, 0, 0, 0, 0, 0, 0, 0, 64, 1, 0, 0]) + src + src


def echo_reply_for(request: bytes) -> bytes:
    msg = parse_message(request)
    return marshal_echo(ICMP_ECHO_REPLY, msg.body.id, msg.body.seq,
                        msg.body.data)


class FakeConn:
    """
    Пакетное соединение в памяти.

    На каждый успешно записанный эхо-запрос (если reply=True) кладет во
    входящую очередь эхо-ответ - сразу или через reply_delay секунд.
    write_errors - список исключений (или None), которые выдаются на
    последовательные вызовы write_to().
    """
    def __init__(
        self,
        privileged=False,
        reply=True,
        reply_source=TARGET,
        reply_delay=0.0,
        write_errors=None,
        read_error=None,
    ):
        self.privileged = privileged
        self.reply = reply
        self.reply_source = reply_source
        self.reply_delay = reply_delay
        self.write_errors = list(write_errors or [])
        self.read_error = read_error
        self.sent = []
        self.sent_at = []
        self.write_calls = 0
        self.close_calls = 0
        self.read_timeout = None
        self._incoming = queue.Queue()

    def write_to(self, data, addr):
        self.write_calls += 1
        if self.write_errors:
            err = self.write_errors.pop(0)
            if err is not None:
                raise err
        self.sent.append((data, addr))
        self.sent_at.append(time.monotonic())
        if self.reply:
            reply = echo_reply_for(data)
            if self.reply_delay > 0:
                threading.Timer(
                    self.reply_delay, self.inject, (reply,)
                ).start()
            else:
                self.inject(reply)
        return len(data)

    def inject(self, icmp_bytes, source=None):
        source = source or self.reply_source
        data = icmp_bytes
        if self.privileged:
            data = ipv4_header(source) + icmp_bytes
        self._incoming.put((data, source))

    def read_from(self, bufsize):
        if self.read_error is not None:
            raise self.read_error
        try:
            data, source = self._incoming.get(timeout=self.read_timeout)
        except queue.Empty:
            raise TimeoutError("timed out")
        return data[:bufsize], source

    def set_read_timeout(self, timeout):
        self.read_timeout = timeout

    @property
    def closed(self):
        return self.close_calls > 0

    def close(self):
        self.close_calls += 1

    def sent_sequences(self):
        return [ICMP_HEADER.unpack_from(data)[4] for data, _ in self.sent]


class FakeConnFactory:
    """Замена open_packet_conn: запоминает созданные соединения."""
    def __init__(self, **conn_kwargs):
        self.conn_kwargs = conn_kwargs
        self.conns = []
        self.calls = []

    def __call__(self, privileged, source_addr=''):
        self.calls.append((privileged, source_addr))
        conn = FakeConn(privileged=privileged, **self.conn_kwargs)
        self.conns.append(conn)
        return conn

    @property
    def conn(self) -> FakeConn:
        return self.conns[-1]


@pytest.fixture
def make_factory():
    return FakeConnFactory


@pytest.fixture
def fake_conn():
    return FakeConn()
