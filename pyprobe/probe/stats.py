import math

from pydantic import BaseModel, Field


class Statistics(BaseModel):
    """Итоговая статистика прогона. Все длительности - в секундах."""
    packets_sent: int = Field(0, description="Отправлено эхо-запросов")
    packets_recv: int = Field(0, description="Получено эхо-ответов")
    packet_loss: float = Field(0.0, description="Потери, проценты")
    rtts: list[float] = Field(
        default_factory=list, description="RTT каждого ответа по порядку"
    )
    min_rtt: float = Field(0.0, description="Минимальный RTT")
    max_rtt: float = Field(0.0, description="Максимальный RTT")
    avg_rtt: float = Field(0.0, description="Средний RTT")
    std_dev_rtt: float = Field(
        0.0, description="Стандартное отклонение RTT (по генеральной "
                         "совокупности)"
    )


class Accumulator:
    """
    Накопитель статистики.

    Среднее и сумма квадратов отклонений ведутся по алгоритму Уэлфорда,
    так что stddev совпадает с двухпроходным вычислением.

    Писатель ровно один - цикл управления, поэтому блокировок нет.
    """
    def __init__(self):
        self.packets_sent = 0
        self.packets_recv = 0
        self.rtts: list[float] = []
        self.min_rtt = 0.0
        self.max_rtt = 0.0
        self._mean = 0.0
        self._m2 = 0.0

    def record_sent(self) -> None:
        self.packets_sent += 1

    def record_reply(self, rtt: float) -> None:
        self.packets_recv += 1
        self.rtts.append(rtt)
        n = len(self.rtts)
        if n == 1 or rtt < self.min_rtt:
            self.min_rtt = rtt
        if n == 1 or rtt > self.max_rtt:
            self.max_rtt = rtt
        delta = rtt - self._mean
        self._mean += delta / n
        self._m2 += delta * (rtt - self._mean)

    @property
    def packet_loss(self) -> float:
        if self.packets_sent == 0:
            return 0.0
        lost = self.packets_sent - self.packets_recv
        return lost / self.packets_sent * 100

    @property
    def std_dev_rtt(self) -> float:
        if not self.rtts:
            return 0.0
        return math.sqrt(self._m2 / len(self.rtts))

    def snapshot(self) -> Statistics:
        """Снять копию статистики (потери и stddev считаются здесь)."""
        return Statistics(
            packets_sent=self.packets_sent,
            packets_recv=self.packets_recv,
            packet_loss=self.packet_loss,
            rtts=list(self.rtts),
            min_rtt=self.min_rtt,
            max_rtt=self.max_rtt,
            avg_rtt=self._mean if self.rtts else 0.0,
            std_dev_rtt=self.std_dev_rtt,
        )
