import click
import importlib
import pkgutil


tools_list = []  # Заполняется в коде инициализации, в конце файла


# Создаёт корневую команду probe, к которой можно добавлять подкоманды.
@click.group
def cli():
    pass


@cli.command('list')
def list_tools():
    """Выводит список инструментов."""
    for tool_name in tools_list:
        print(f"* {tool_name}")


@cli.group('run')
def run():
    """Запустить инструмент."""
    pass


#############################################################################
# ИНИЦИАЛИЗАЦИЯ
#
# Просматриваем все подмодули в модуле tools. Для каждого подмодуля, в
# котором есть файл cli.py с click-командой `cli_run()`, добавляем эту
# команду в группу `run` под именем подмодуля.
#
# Например, модуль `tools.ping` с `cli.py` дает команду `probe run ping`:
#
# > probe run ping -c 3 example.com
#
# > probe list
# * ping
#############################################################################
def __initialize__():
    from pyprobe import tools  # type: ignore
    for submodule in pkgutil.iter_modules(tools.__path__):
        name = submodule.name
        try:
            module = importlib.import_module('.cli', f'pyprobe.tools.{name}')
        except ModuleNotFoundError:
            print(f"WARNING: tool {name} has no cli.py")
            continue
        cmd = getattr(module, "cli_run", None)
        if cmd is None:
            print(f"WARNING: no function 'cli_run(...)' found in {name}")
            continue
        if isinstance(cmd, click.Command):
            run.add_command(cmd, name)
            tools_list.append(name)
        else:
            print("WARNING: cli_run() must be a Click command or group")


__initialize__()


if __name__ == '__main__':
    cli()
