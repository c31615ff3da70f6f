from dataclasses import dataclass
import queue
import threading

from pyprobe.probe.connection import PacketConn
from pyprobe.probe.icmp import ParseError, ipv4_payload, parse_message
from pyprobe.probe.kernel import ExitReason, TerminationSignal
from pyprobe.probe.logger import ProbeLogger


@dataclass(frozen=True)
class ReceivedPacket:
    """Принятый эхо-ответ: ICMP-сообщение целиком, без IP-заголовка."""
    data: bytes
    nbytes: int
    source: str


class Receiver(threading.Thread):
    """
    Поток-приемник.

    Читает соединение короткими порциями (таймаут чтения ~100 мс), чтобы
    часто проверять сигнал завершения. Эхо-ответы передаются циклу
    управления через ограниченную очередь; статистику приемник не трогает.

    Мусорные пакеты (не ICMP, не эхо-ответ, обрезанные) молча отбрасываются.
    Любая ошибка сокета, кроме таймаута, фатальна: поток взводит сигнал
    завершения и выходит.
    """
    def __init__(
        self,
        conn: PacketConn,
        inbox: queue.Queue,
        termination: TerminationSignal,
        logger: ProbeLogger,
        read_timeout: float = 0.1,
        bufsize: int = 512,
    ):
        super().__init__(name="pyprobe-receiver", daemon=True)
        self.conn = conn
        self.inbox = inbox
        self.termination = termination
        self.logger = logger
        self.read_timeout = read_timeout
        self.bufsize = bufsize
        self.num_dropped = 0

    def run(self) -> None:
        self.conn.set_read_timeout(self.read_timeout)
        while not self.termination.is_set():
            try:
                data, source = self.conn.read_from(self.bufsize)
            except TimeoutError:
                continue
            except OSError as err:
                self.logger.error("receive failed: %s", err)
                self.termination.fire(ExitReason.RECEIVE_ERROR, str(err))
                return

            packet = self.unwrap(data, source)
            if packet is None:
                self.num_dropped += 1
                continue
            self.forward(packet)
        self.logger.debug("receiver exits")

    def unwrap(self, data: bytes, source: str) -> ReceivedPacket | None:
        """Снять IP-заголовок и оставить только эхо-ответы."""
        if self.conn.privileged:
            data = ipv4_payload(data)
        try:
            message = parse_message(data)
        except ParseError as err:
            self.logger.debug("dropped packet from %s: %s", source, err)
            return None
        if not message.is_echo_reply:
            self.logger.debug(
                "dropped ICMP type=%d code=%d from %s",
                message.type, message.code, source
            )
            return None
        return ReceivedPacket(data=bytes(data), nbytes=len(data), source=source)

    def forward(self, packet: ReceivedPacket) -> None:
        # Очередь маленькая: если цикл занят, ждем, но продолжаем
        # проверять сигнал завершения
        while not self.termination.is_set():
            try:
                self.inbox.put(packet, timeout=self.read_timeout)
                return
            except queue.Full:
                continue
