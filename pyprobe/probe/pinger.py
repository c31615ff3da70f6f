from dataclasses import dataclass
from enum import Enum
import queue
import signal
import socket
import threading
import time
from typing import Callable

from pydantic import BaseModel, Field, confloat, conint

from pyprobe.probe.clock import TIMESTAMP_SIZE, bytes_to_time, now_ns
from pyprobe.probe.connection import PacketConn, open_packet_conn
from pyprobe.probe.icmp import ParseError, parse_message
from pyprobe.probe.kernel import ExecutionStats, ExitReason, Kernel
from pyprobe.probe.logger import ProbeLoggerConfig
from pyprobe.probe.receiver import ReceivedPacket, Receiver
from pyprobe.probe.sender import SendError, Sender
from pyprobe.probe.stats import Accumulator, Statistics


ENGINE_NAME = 'ping'

ConnFactory = Callable[[bool, str], PacketConn]


class AddressResolutionError(ValueError):
    """Имя хоста не удалось разрешить в IPv4-адрес."""
    ...


class EngineStateError(RuntimeError):
    """Операция недопустима в текущем состоянии движка."""
    ...


class EngineState(Enum):
    IDLE = 0
    RUNNING = 1
    TERMINATING = 2
    STOPPED = 3


class Config(BaseModel):
    """
    Параметры прогона. Задаются до run(), во время прогона не меняются.
    """
    count: int = Field(
        -1, description="Сколько ответов ждать; <= 0 - без ограничения"
    )
    interval: confloat(gt=0) = Field(
        1.0, description="Период отправки запросов, секунды"
    )
    timeout: confloat(gt=0) = Field(
        100000.0, description="Общий таймаут прогона, секунды"
    )
    privileged: bool = Field(
        False, description="Сырой ICMP-сокет (нужны права) вместо "
                           "датаграммного"
    )
    source_addr: str = Field(
        '', description="Локальный адрес для привязки сокета"
    )
    recv_timeout: confloat(gt=0) = Field(
        0.1, description="Таймаут одного чтения в приемнике, секунды"
    )
    inbox_size: conint(ge=1) = Field(
        5, description="Емкость очереди между приемником и циклом"
    )
    read_buffer_size: conint(ge=64) = Field(
        512, description="Размер буфера чтения, байты"
    )
    max_send_retries: conint(ge=1) = Field(
        1000, description="Сколько раз повторять отправку при "
                          "переполненном буфере"
    )
    handle_signals: bool = Field(
        True, description="Перехватывать SIGINT/SIGTERM (только в главном "
                          "потоке)"
    )


@dataclass
class Packet:
    """Сведения об одном полученном ответе (для обработчика on_recv)."""
    rtt: float
    ip_addr: str
    nbytes: int
    seq: int


def resolve_address(host: str) -> str:
    """
    Разрешить имя хоста или IPv4-литерал в адрес.

    Raises:
        AddressResolutionError: если разрешить не удалось
    """
    try:
        return socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as err:
        raise AddressResolutionError(f"cannot resolve {host!r}: {err}") from err


class Pinger:
    """
    Движок ping: цикл управления.

    Жизненный цикл: IDLE -> RUNNING -> TERMINATING -> STOPPED, повторный
    запуск не поддерживается.

    Во время прогона работают два потока: цикл управления (тот, кто вызвал
    run()) и приемник. Приемник только читает из соединения и передает
    эхо-ответы в очередь; цикл только пишет в соединение и единолично
    обновляет статистику. Все причины остановки (число ответов, таймаут,
    сигнал ОС, stop(), ошибка приемника) сводятся к одному однократному
    сигналу завершения.

    Пример:

        pinger = Pinger("example.com", Config(count=5))
        pinger.on_recv = lambda pkt: print(pkt.seq, pkt.rtt)
        stats = pinger.run()
    """
    def __init__(
        self,
        host: str,
        config: Config | None = None,
        conn_factory: ConnFactory | None = None,
        logger_config: ProbeLoggerConfig | None = None,
    ):
        self._addr = host
        self._ip_addr = resolve_address(host)
        self.config = config or Config()
        self._conn_factory = conn_factory or open_packet_conn

        self.on_recv: Callable[[Packet], None] | None = None
        self.on_finish: Callable[[Statistics], None] | None = None

        self._kernel = Kernel(
            ENGINE_NAME, poll_interval=self.config.recv_timeout
        )
        self._kernel.logger.setup(logger_config)
        self._stats = Accumulator()
        self._sender = Sender(
            self._ip_addr,
            self._stats,
            self._kernel.logger,
            max_retries=self.config.max_send_retries,
            termination=self._kernel.termination,
        )
        self._state = EngineState.IDLE
        self._conn: PacketConn | None = None
        self._exec_stats: ExecutionStats | None = None
        self._final: Statistics | None = None

    @property
    def addr(self) -> str:
        return self._addr

    @property
    def ip_addr(self) -> str:
        return self._ip_addr

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def logger(self):
        return self._kernel.logger

    @property
    def exit_reason(self) -> ExitReason | None:
        return self._kernel.termination.reason

    @property
    def execution_stats(self) -> ExecutionStats | None:
        return self._exec_stats

    @property
    def sequence(self) -> int:
        return self._sender.sequence

    def statistics(self) -> Statistics:
        """Итоговая статистика после прогона, до него - текущий срез."""
        if self._final is not None:
            return self._final
        return self._stats.snapshot()

    def stop(self) -> None:
        """Запросить остановку (из любого потока)."""
        self._kernel.stop(ExitReason.INTERRUPTED, "stop() called")

    def run(self) -> Statistics:
        """
        Выполнить прогон и вернуть итоговую статистику.

        Raises:
            EngineStateError: если движок уже запускался
            ConnectionOpenError: если не удалось открыть соединение
                (движок остается в состоянии IDLE)
        """
        if self._state is not EngineState.IDLE:
            raise EngineStateError(f"engine is {self._state.name}, not IDLE")

        cfg = self.config
        logger = self._kernel.logger
        self._conn = self._conn_factory(cfg.privileged, cfg.source_addr)
        self._state = EngineState.RUNNING
        logger.info(
            "PING %s (%s), count=%d interval=%.3fs timeout=%.3fs "
            "privileged=%s",
            self._addr, self._ip_addr, cfg.count, cfg.interval,
            cfg.timeout, cfg.privileged
        )

        inbox: queue.Queue[ReceivedPacket] = queue.Queue(
            maxsize=cfg.inbox_size
        )
        receiver = Receiver(
            self._conn,
            inbox,
            self._kernel.termination,
            logger,
            read_timeout=cfg.recv_timeout,
            bufsize=cfg.read_buffer_size,
        )
        previous_handlers = self._install_signal_handlers()
        try:
            receiver.start()
            self._send()
            self._kernel.schedule(cfg.interval, self.handle_interval)
            self._kernel.schedule(
                cfg.timeout, self.handle_deadline, msg="deadline"
            )
            self._exec_stats = self._kernel.run(inbox, self.handle_packet)
        finally:
            # В том числе при исключении в on_recv
            self._state = EngineState.TERMINATING
            self._kernel.stop(ExitReason.INTERRUPTED, "engine shutdown")
            if receiver.ident is not None:
                receiver.join()
            self._restore_signal_handlers(previous_handlers)
            self._finish()
        return self._final

    def handle_interval(self) -> None:
        """
        Отправить очередной запрос и запланировать следующий тик.

        Следующий тик ставится на сетку t0 + k * interval. Если цикл
        простоял дольше интервала (медленный on_recv, SIGSTOP, сон
        машины), прошедшие тики пропускаются, а не отправляются пачкой.
        """
        self._send()
        interval = self.config.interval
        due = self._kernel.now()
        lag = time.monotonic() - due
        missed = int(lag // interval)
        if missed > 0:
            self.logger.info(
                "loop stalled for %.3fs, skipped %d ticks", lag, missed
            )
        self._kernel.schedule((missed + 1) * interval, self.handle_interval)

    def handle_deadline(self) -> None:
        self.logger.info("timeout %.3fs elapsed", self.config.timeout)
        self._kernel.stop(ExitReason.TIMEOUT)

    def handle_packet(self, packet: ReceivedPacket) -> None:
        """
        Обработать эхо-ответ: RTT по метке времени из нагрузки,
        обновление статистики, вызов on_recv, проверка числа ответов.

        Пакет, из которого не удалось достать метку времени, отбрасывается.
        """
        try:
            message = parse_message(packet.data)
        except ParseError as err:
            self.logger.debug("dropped undecodable reply: %s", err)
            return
        if not message.is_echo_reply:
            return
        payload = message.body.data
        if len(payload) < TIMESTAMP_SIZE:
            self.logger.debug(
                "dropped reply seq=%d: payload %d bytes < %d",
                message.body.seq, len(payload), TIMESTAMP_SIZE
            )
            return
        if packet.source != self._ip_addr:
            self.logger.debug("dropped reply from %s", packet.source)
            return

        sent_at = bytes_to_time(payload[:TIMESTAMP_SIZE])
        rtt = (now_ns() - sent_at) / 1e9
        self._stats.record_reply(rtt)
        self.logger.debug(
            "reply seq=%d from %s rtt=%.6fs",
            message.body.seq, packet.source, rtt
        )

        if self.on_recv is not None:
            self.on_recv(Packet(
                rtt=rtt,
                ip_addr=packet.source,
                nbytes=packet.nbytes,
                seq=message.body.seq,
            ))

        count = self.config.count
        if count > 0 and self._stats.packets_recv >= count:
            self.logger.info("received %d replies, stopping", count)
            self._kernel.stop(ExitReason.COUNT_REACHED)

    def _send(self) -> None:
        try:
            self._sender.send(self._conn)
        except SendError as err:
            self.logger.warning("%s", err)

    def _finish(self) -> None:
        self._final = self._stats.snapshot()
        self._conn.close()
        self._state = EngineState.STOPPED
        self.logger.info(
            "finished (%s): sent=%d recv=%d loss=%.1f%%",
            self.exit_reason.name if self.exit_reason else None,
            self._final.packets_sent, self._final.packets_recv,
            self._final.packet_loss
        )
        if self.on_finish is not None:
            self.on_finish(self._final)

    def _install_signal_handlers(self) -> dict:
        # signal.signal() разрешен только в главном потоке
        if not self.config.handle_signals:
            return {}
        if threading.current_thread() is not threading.main_thread():
            return {}

        def on_signal(signum, frame):
            self._kernel.stop(
                ExitReason.INTERRUPTED, signal.Signals(signum).name
            )

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, on_signal)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None
                          else signal.SIG_DFL)
