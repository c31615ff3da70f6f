"""
Разбор и сборка ICMP-сообщений (только то, что нужно для эхо-запросов).

Заголовок ICMP: type(1), code(1), checksum(2), id(2), seq(2) - сетевой
порядок байт, далее полезная нагрузка.
"""
from dataclasses import dataclass
import struct


ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8

ICMP_HEADER = struct.Struct('!BBHHH')
IPV4_HEADER_LEN = 20


class ParseError(ValueError):
    """Пакет не является корректным ICMP-сообщением."""
    ...


@dataclass
class Echo:
    id: int
    seq: int
    data: bytes


@dataclass
class Message:
    type: int
    code: int
    checksum: int
    body: Echo | bytes

    @property
    def is_echo_reply(self) -> bool:
        return self.type == ICMP_ECHO_REPLY and isinstance(self.body, Echo)


def checksum(data: bytes) -> int:
    """Контрольная сумма Интернета (RFC 1071) для заголовка и данных."""
    if len(data) % 2:
        data += b"\x00"

    total = 0
    for i in range(0, len(data), 2):
        total += (data[i] << 8) + data[i + 1]

    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return (~total) & 0xFFFF


def marshal_echo(
    icmp_type: int, identifier: int, sequence: int, data: bytes
) -> bytes:
    """
    Собрать эхо-сообщение. Идентификатор и номер последовательности в
    заголовке 16-битные, старшие разряды отбрасываются.
    """
    identifier &= 0xFFFF
    sequence &= 0xFFFF
    header = ICMP_HEADER.pack(icmp_type, 0, 0, identifier, sequence)
    csum = checksum(header + data)
    header = ICMP_HEADER.pack(icmp_type, 0, csum, identifier, sequence)
    return header + data


def marshal_echo_request(identifier: int, sequence: int, data: bytes) -> bytes:
    return marshal_echo(ICMP_ECHO_REQUEST, identifier, sequence, data)


def parse_message(data: bytes) -> Message:
    """
    Разобрать ICMP-сообщение.

    Для эхо-запросов и эхо-ответов тело разбирается в Echo, для остальных
    типов остается сырыми байтами.

    Raises:
        ParseError: если сообщение короче заголовка
    """
    if len(data) < ICMP_HEADER.size:
        raise ParseError(
            f"ICMP message too short: {len(data)} < {ICMP_HEADER.size}"
        )
    icmp_type, code, csum, ident, seq = ICMP_HEADER.unpack_from(data)
    payload = bytes(data[ICMP_HEADER.size:])
    if icmp_type in (ICMP_ECHO_REPLY, ICMP_ECHO_REQUEST):
        body = Echo(id=ident, seq=seq, data=payload)
    else:
        body = bytes(data[4:])
    return Message(type=icmp_type, code=code, checksum=csum, body=body)


def ipv4_payload(data: bytes) -> bytes:
    """Отрезать IPv4-заголовок (длина берется из поля IHL)."""
    if len(data) < IPV4_HEADER_LEN:
        return data
    header_len = (data[0] & 0x0F) << 2
    return data[header_len:]
