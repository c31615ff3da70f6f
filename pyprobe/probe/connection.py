"""
Пакетное соединение для ICMP.

В привилегированном режиме открывается сырой сокет (SOCK_RAW), входящие
пакеты приходят вместе с IPv4-заголовком. В непривилегированном режиме
используется датаграммный ICMP-сокет (SOCK_DGRAM + IPPROTO_ICMP, в Linux
разрешается через net.ipv4.ping_group_range), заголовка IP в нем нет.
"""
import errno
import socket


# Ошибки "буфер отправки переполнен", их можно повторять сразу
TRANSIENT_SEND_ERRNOS = frozenset({errno.ENOBUFS, errno.EAGAIN})


class ConnectionOpenError(OSError):
    """Не удалось открыть пакетное соединение."""
    ...


def is_transient_send_error(err: OSError) -> bool:
    # Таймаут чтения (settimeout) действует и на sendto: при полном буфере
    # отправки приходит TimeoutError без errno
    if isinstance(err, TimeoutError):
        return True
    return err.errno in TRANSIENT_SEND_ERRNOS


class PacketConn:
    """
    Обертка над сокетом: запись в адрес, чтение с таймаутом, закрытие.

    Пишет в соединение только цикл управления, читает - только приемник,
    поэтому синхронизация здесь не нужна.
    """
    def __init__(self, sock: socket.socket, privileged: bool):
        self._sock = sock
        self.privileged = privileged
        self._closed = False

    def write_to(self, data: bytes, addr: str) -> int:
        # Порт для ICMP не используется, но адрес AF_INET обязан быть парой
        return self._sock.sendto(data, (addr, 0))

    def read_from(self, bufsize: int) -> tuple[bytes, str]:
        """
        Прочитать один пакет.

        Raises:
            TimeoutError: если за время таймаута чтения ничего не пришло
            OSError: прочие ошибки сокета
        """
        data, addr = self._sock.recvfrom(bufsize)
        return data, addr[0]

    def set_read_timeout(self, timeout: float) -> None:
        self._sock.settimeout(timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._sock.close()


def open_packet_conn(privileged: bool, source_addr: str = '') -> PacketConn:
    """
    Открыть ICMP-соединение.

    Args:
        privileged: True - сырой сокет, False - датаграммный ICMP-сокет
        source_addr: локальный адрес для bind(), пустая строка - любой

    Raises:
        ConnectionOpenError: например, если нет прав на сырой сокет
    """
    sock_type = socket.SOCK_RAW if privileged else socket.SOCK_DGRAM
    try:
        sock = socket.socket(socket.AF_INET, sock_type, socket.IPPROTO_ICMP)
    except OSError as err:
        raise ConnectionOpenError(
            err.errno, f"cannot open ICMP socket: {err.strerror or err}"
        ) from err
    if source_addr:
        try:
            sock.bind((source_addr, 0))
        except OSError as err:
            sock.close()
            raise ConnectionOpenError(
                err.errno, f"cannot bind to {source_addr}: {err.strerror or err}"
            ) from err
    return PacketConn(sock, privileged)
