from dataclasses import dataclass
from enum import Enum
import heapq
import itertools
import queue
import threading
import time
from typing import Any, Callable, Iterable

from pyprobe.probe.logger import ProbeLogger


# Обработчик таймера вызывается с аргументами, переданными в schedule()
Handler = Callable[..., None]


class ExitReason(Enum):
    COUNT_REACHED = 0    # получено заданное число ответов
    TIMEOUT = 1          # истек общий таймаут прогона
    INTERRUPTED = 2      # сигнал ОС или внешний вызов stop()
    RECEIVE_ERROR = 3    # фатальная ошибка сокета в приемнике


@dataclass
class ExecutionStats:
    '''
    Результаты исполнения цикла ядра.
    Some args:
        num_events_processed - сколько таймеров и входящих пакетов обработано
        time_elapsed - длительность прогона в секундах
    '''
    num_events_processed: int
    time_elapsed: float
    exit_reason: ExitReason | None
    stop_message: str = ""


class EventQueue:
    '''
    Очередь таймеров, реализованная с помощью
    струкртуры данных "приоритетная куча (heapq)".
    Время события - момент по time.monotonic(). События с одинаковым
    временем извлекаются в порядке добавления.
    '''
    def __init__(self):
        self._event_list = []
        self._next_id = itertools.count()

    def push(self, time, task):
        '''
        Добавление нового события по правилам кучи

        Args:
        time - момент наступления события (приоритет)
        task - произвольный объект, который вернет pop()
        '''
        heapq.heappush(self._event_list, (time, next(self._next_id), task))

    def pop(self):
        '''
        Returns:
            (time, task) ближайшего события

        :raises:
            - KeyError: если очередь пуста
        '''
        if self.empty:
            raise KeyError("Pop из пустой очереди событий!")
        time, _, task = heapq.heappop(self._event_list)
        return time, task

    def peek_time(self):
        '''Время ближайшего события или None, если очередь пуста.'''
        if not self._event_list:
            return None
        return self._event_list[0][0]

    def __len__(self):
        return len(self._event_list)

    def clear(self):
        self._event_list.clear()

    @property
    def empty(self):
        return not self._event_list


class TerminationSignal:
    """
    Однократный сигнал завершения.

    Срабатывает один раз: первый вызов fire() запоминает причину и
    возвращает True, все последующие ничего не меняют и возвращают False.
    Можно вызывать из любого потока и из обработчика сигнала ОС.
    """
    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason: ExitReason | None = None
        self.message: str = ""

    def fire(self, reason: ExitReason, message: str = "") -> bool:
        # Обработчик сигнала ОС выполняется в главном потоке между
        # байткодами, поэтому блокировку берем без ожидания
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if self._event.is_set():
                return False
            self.reason = reason
            self.message = message
            self._event.set()
            return True
        finally:
            self._lock.release()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class Kernel:
    '''
    Ядро цикла управления в реальном времени.

    Мультиплексирует два источника событий: таймеры из EventQueue и
    входящие элементы из ограниченной очереди (inbox), которую заполняет
    поток-приемник. Цикл идет, пока не сработает сигнал завершения.

    Some args:
        _clock - текущее время ядра: момент срабатывания таймера внутри
            его обработчика, иначе time.monotonic()
        _poll_interval - максимальная длительность одного ожидания inbox,
            ограничивает задержку реакции на сигнал завершения
    '''
    def __init__(
            self,
            name: str,
            termination: TerminationSignal | None = None,
            poll_interval: float = 0.1,
    ):
        self._name = name
        self._queue = EventQueue()
        self._termination = termination or TerminationSignal()
        self._logger = ProbeLogger(
            self._name,
            elapsed_getter=self.get_elapsed_time,
            exit_reason_getter=lambda: self._termination.reason,
        )
        self._poll_interval = poll_interval

        self._clock: float | None = None
        self._t_start: float | None = None
        self._num_events_served = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def logger(self) -> ProbeLogger:
        return self._logger

    @property
    def termination(self) -> TerminationSignal:
        return self._termination

    @property
    def stopped(self) -> bool:
        return self._termination.is_set()

    def now(self) -> float:
        return self._clock if self._clock is not None else time.monotonic()

    def get_elapsed_time(self) -> float:
        if self._t_start is None:
            return 0.0
        return time.monotonic() - self._t_start

    def schedule(
            self,
            delay: float,
            handler: Handler,
            args: Iterable[Any] = (),
            msg: str = ""
    ) -> None:
        """Запланировать таймер.

        Внутри обработчика таймера задержка отсчитывается от момента его
        срабатывания, поэтому периодический таймер, который перепланирует
        сам себя, не накапливает дрейф.

        Args:
            delay (float): интервал до срабатывания, секунды
            handler (Handler): обработчик
            args (tuple[Any, ...], optional): аргументы для обработчика
            msg (str, optional): комментарий для журнала
        """
        self._queue.push(self.now() + delay, (handler, tuple(args), msg))

    def stop(self, reason: ExitReason, msg: str = "") -> bool:
        """Остановить цикл. Повторные вызовы ничего не делают."""
        fired = self._termination.fire(reason, msg)
        if fired:
            self._logger.debug("stop requested: %s %s", reason.name, msg)
        return fired

    def _fire_due_events(self) -> None:
        now = time.monotonic()
        while not self.stopped:
            t = self._queue.peek_time()
            if t is None or t > now:
                break
            t, item = self._queue.pop()
            handler, args, msg = item
            if msg:
                self._logger.debug("timer: %s", msg)
            self._clock = t
            try:
                handler(*args)
            finally:
                self._clock = None
            self._num_events_served += 1

    def _next_wait(self) -> float:
        wait = self._poll_interval
        t = self._queue.peek_time()
        if t is not None:
            wait = min(wait, max(0.0, t - time.monotonic()))
        return wait

    def run(
            self,
            inbox: queue.Queue,
            on_item: Callable[[Any], None],
    ) -> ExecutionStats:
        """
        Крутить цикл до срабатывания сигнала завершения.

        На каждой итерации сначала выполняются наступившие таймеры, затем
        ожидается элемент из inbox - не дольше, чем до ближайшего таймера
        и не дольше poll_interval. Элементы, оставшиеся в inbox после
        остановки, не обрабатываются.

        Returns:
            ExecutionStats: статистика исполнения цикла
        """
        self._t_start = time.monotonic()
        self._logger.debug("kernel started")

        while not self.stopped:
            self._fire_due_events()
            if self.stopped:
                break
            try:
                item = inbox.get(timeout=self._next_wait())
            except queue.Empty:
                continue
            on_item(item)
            self._num_events_served += 1

        self._queue.clear()
        self._logger.debug(
            "kernel stopped after %d events", self._num_events_served
        )
        return ExecutionStats(
            num_events_processed=self._num_events_served,
            time_elapsed=self.get_elapsed_time(),
            exit_reason=self._termination.reason,
            stop_message=self._termination.message,
        )
