"""
Журнал прогона.

К стандартным полям записи logging добавляются поля прогона:

- elapsed: сколько секунд прошло с начала цикла управления
- runId: идентификатор прогона, он же суффикс имени лог-файла
- exitReason: причина остановки или "-", пока прогон идет

Имя потока ({threadName}) - стандартное поле logging. Движок пишет в
журнал из двух потоков: цикла управления (MainThread или поток, вызвавший
run()) и приемника (pyprobe-receiver).
"""
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable
import uuid

import colorama


# Пример строки в журнале:
# 0001.204518 [DEBUG   ] ping R:972274 pyprobe-receiver
#     (receiver.py:run) [-] - receiver exits
PROBE_LOGGER_FORMAT = (
    "{elapsed:011.06f} [{levelname:8s}] {name} R:{runId} {threadName} "
    "({filename}:{funcName}) [{exitReason}] - {message}"
)


class ColoredFormatter(logging.Formatter):
    """
    Форматтер для консоли: цвет строки зависит от уровня.

    Основа кода взята отсюда:
    https://alexandra-zaharia.github.io/posts/make-your-own-custom-color-formatter-with-python-logging
    """
    COLORS = {
        logging.DEBUG: colorama.Fore.LIGHTBLACK_EX,
        logging.INFO: colorama.Fore.GREEN,
        logging.WARNING: colorama.Fore.YELLOW,
        logging.ERROR: colorama.Fore.RED + colorama.Style.BRIGHT,
        logging.CRITICAL:
            colorama.Back.RED + colorama.Fore.WHITE + colorama.Style.BRIGHT,
    }

    def format(self, record):
        color = self.COLORS.get(record.levelno, '')
        return color + super().format(record) + colorama.Style.RESET_ALL


@dataclass
class ProbeLoggerConfig:
    """Настройки журнала: консоль (-v) и файл (--log-file)."""
    fmt: str = PROBE_LOGGER_FORMAT
    level: int = logging.DEBUG

    use_console: bool = False
    colored_console: bool = True
    # Уровень консоли, 0 - использовать level
    console_level: int = 0

    # Имя лог-файла, к нему добавляется runId. None - без файла.
    file_name: str | None = None


class ProbeLogger(logging.LoggerAdapter):
    """
    Логгер прогона: добавляет в каждую запись поля elapsed, runId и
    exitReason.

    Сообщения передаются через формат-строку (`debug("sent seq=%d", seq)`),
    тогда строка собирается только при реальной записи в журнал.
    """
    def __init__(
        self,
        name: str = '',
        elapsed_getter: Callable[[], float] | None = None,
        exit_reason_getter: Callable[[], Enum | None] | None = None,
    ):
        super().__init__(logging.getLogger(name), {})
        self.elapsed_getter = elapsed_getter or (lambda: 0.0)
        self.exit_reason_getter = exit_reason_getter or (lambda: None)
        self.run_id: int = uuid.uuid4().int % 1_000_000
        self._setup_was_called = False

    def process(self, msg, kwargs):
        reason = self.exit_reason_getter()
        kwargs["extra"] = {
            **kwargs.get("extra", {}),
            "elapsed": self.elapsed_getter(),
            "runId": self.run_id,
            "exitReason": reason.name if reason is not None else "-",
        }
        return msg, kwargs

    def setup(self, config: ProbeLoggerConfig | None = None) -> None:
        """
        Настроить обработчики. Выполняется один раз, повторные вызовы
        ничего не меняют.

        Без консоли и файла ставится NullHandler, иначе записи ушли бы в
        logging.lastResort.
        """
        if self._setup_was_called:
            return
        config = config or ProbeLoggerConfig()
        logger = self.logger

        # Имя логгера общее для всех прогонов в процессе
        for handler in logger.handlers:
            handler.close()
        logger.handlers = []

        if config.use_console:
            formatter_cls = (ColoredFormatter if config.colored_console
                             else logging.Formatter)
            s_handler = logging.StreamHandler()
            s_handler.setLevel(config.console_level or config.level)
            s_handler.setFormatter(formatter_cls(config.fmt, style='{'))
            logger.addHandler(s_handler)

        if config.file_name is not None:
            f_handler = logging.FileHandler(
                build_file_name(config.file_name, self.run_id), mode='w'
            )
            f_handler.setFormatter(logging.Formatter(config.fmt, style='{'))
            logger.addHandler(f_handler)

        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        logger.propagate = False
        logger.setLevel(config.level)
        self._setup_was_called = True


def build_file_name(file_name: str, run_id: int) -> str:
    """
    "ping.log" -> "ping_123.log", "ping" -> "ping_123",
    "ping.txt" -> "ping.txt_123".
    """
    file_name = file_name.strip()
    stem, dot, ext = file_name.rpartition('.')
    if dot and ext.lower() == "log":
        return f"{stem}_{run_id}.{ext}"
    return f"{file_name}_{run_id}"
