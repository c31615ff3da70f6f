import logging
import re

import click

from pyprobe.probe import (
    AddressResolutionError,
    Config,
    ConnectionOpenError,
    Pinger,
    ProbeLoggerConfig,
)
from pyprobe.tools.ping.processing import (
    format_reply,
    format_summary,
    save_results_to_file,
)


TOOL_NAME = 'ping'
DEFAULT_COUNT = -1
DEFAULT_INTERVAL = '1s'
DEFAULT_TIMEOUT = '100000s'

_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')


def parse_duration(text: str) -> float:
    """
    Разобрать длительность в секунды.

    Понимает запись вида "500ms", "10s", "1m30s", "1.5h", а также просто
    число секунд ("0.2").

    Raises:
        ValueError: если строка не является длительностью
    """
    text = text.strip()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {text!r}")
    return total


class Duration(click.ParamType):
    name = 'duration'

    def convert(self, value, param, ctx):
        if isinstance(value, float):
            return value
        try:
            return parse_duration(str(value))
        except ValueError as err:
            self.fail(str(err), param, ctx)


@click.command()
@click.argument('host')
@click.option(
    '-c', '--count', default=DEFAULT_COUNT,
    help='Сколько ответов ждать (<= 0 - без ограничения)',
    show_default=True
)
@click.option(
    '-i', '--interval', type=Duration(), default=DEFAULT_INTERVAL,
    help='Интервал между запросами (например, 500ms)',
    show_default=True
)
@click.option(
    '-t', '--timeout', type=Duration(), default=DEFAULT_TIMEOUT,
    help='Общий таймаут прогона (например, 10s)',
    show_default=True
)
@click.option(
    '--privileged', is_flag=True, default=False,
    help='Использовать сырой ICMP-сокет (нужны права root)'
)
@click.option(
    '-v', '--verbose', is_flag=True, default=False,
    help='Подробный журнал в консоль'
)
@click.option(
    '--log-file', default=None, type=click.Path(dir_okay=False),
    help='Писать журнал в файл (к имени добавляется идентификатор прогона)'
)
@click.option(
    '-o', '--output', default=None, type=click.Path(dir_okay=False),
    help='Сохранить итоговую статистику в JSON-файл'
)
@click.pass_context
def cli_run(ctx, host, **kwargs):
    '''
    Отправлять эхо-запросы ICMP на HOST и выводить RTT.

    \b
    Примеры:
      probe run ping example.com
      probe run ping -c 5 -i 500ms example.com
      probe run ping -t 10s example.com
      sudo probe run ping --privileged example.com
    '''
    try:
        config = Config(
            count=kwargs['count'],
            interval=kwargs['interval'],
            timeout=kwargs['timeout'],
            privileged=kwargs['privileged'],
        )
    except ValueError as err:
        raise click.BadParameter(str(err))

    logger_config = ProbeLoggerConfig(
        use_console=True,
        console_level=logging.DEBUG if kwargs['verbose'] else logging.WARNING,
        file_name=kwargs['log_file'],
    )

    try:
        pinger = Pinger(host, config, logger_config=logger_config)
    except AddressResolutionError as err:
        click.echo(f"ERROR: {err}", err=True)
        ctx.exit(1)

    pinger.on_recv = lambda pkt: click.echo(format_reply(pkt))
    pinger.on_finish = lambda stats: click.echo(
        format_summary(pinger.addr, stats)
    )

    click.echo(f"PING {pinger.addr} ({pinger.ip_addr})")
    try:
        stats = pinger.run()
    except ConnectionOpenError as err:
        click.echo(f"ERROR: {err}", err=True)
        ctx.exit(1)

    exec_stats = pinger.execution_stats
    if exec_stats is not None:
        pinger.logger.debug(
            "exit reason %s, %d events in %.3fs",
            exec_stats.exit_reason, exec_stats.num_events_processed,
            exec_stats.time_elapsed
        )

    if kwargs['output'] is not None:
        save_results_to_file(kwargs['output'], {
            'host': host,
            'ip_addr': pinger.ip_addr,
            **config.model_dump(include={'count', 'interval', 'timeout',
                                         'privileged'}),
        }, stats)


if __name__ == '__main__':
    cli_run()
