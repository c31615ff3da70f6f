import random

from pyprobe.probe.clock import now_ns, time_to_bytes
from pyprobe.probe.connection import PacketConn, is_transient_send_error
from pyprobe.probe.icmp import marshal_echo_request
from pyprobe.probe.kernel import TerminationSignal
from pyprobe.probe.logger import ProbeLogger
from pyprobe.probe.stats import Accumulator


class SendError(OSError):
    """Эхо-запрос не удалось отправить."""
    ...


class Sender:
    """
    Отправитель эхо-запросов.

    Вызывается только из цикла управления. Счетчик последовательности
    увеличивается ровно на 1 за каждую успешную отправку, независимо от
    того, сколько повторов потребовалось.
    """
    def __init__(
        self,
        ip_addr: str,
        stats: Accumulator,
        logger: ProbeLogger,
        max_retries: int = 1000,
        termination: TerminationSignal | None = None,
    ):
        self.ip_addr = ip_addr
        self.stats = stats
        self.logger = logger
        self.max_retries = max_retries
        self.termination = termination
        self.sequence = 0

    def send(self, conn: PacketConn) -> int:
        """
        Собрать и отправить один эхо-запрос.

        При переполнении буфера отправки (ENOBUFS, EAGAIN, таймаут) запрос
        сразу отправляется повторно, без пауз. Повторы прекращаются после
        max_retries попыток или если сработал сигнал завершения.

        Returns:
            int: номер последовательности отправленного запроса

        Raises:
            SendError: при нетранзиентной ошибке или исчерпании повторов
        """
        packet = marshal_echo_request(
            identifier=random.randint(0, 0xFFFF),
            sequence=self.sequence,
            data=time_to_bytes(now_ns()),
        )
        attempts = 0
        while True:
            attempts += 1
            try:
                conn.write_to(packet, self.ip_addr)
                break
            except OSError as err:
                if not is_transient_send_error(err):
                    raise SendError(
                        err.errno, f"send seq={self.sequence} failed: {err}"
                    ) from err
                if attempts >= self.max_retries:
                    raise SendError(
                        err.errno,
                        f"send seq={self.sequence} gave up after "
                        f"{attempts} attempts: {err}"
                    ) from err
                if self.termination is not None and self.termination.is_set():
                    raise SendError(
                        err.errno,
                        f"send seq={self.sequence} abandoned on shutdown"
                    ) from err
                self.logger.debug(
                    "send buffer full, retrying seq=%d", self.sequence
                )

        seq = self.sequence
        self.sequence += 1
        self.stats.record_sent()
        self.logger.debug("sent echo request seq=%d to %s", seq, self.ip_addr)
        return seq
