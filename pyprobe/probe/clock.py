"""
Кодирование момента отправки в полезную нагрузку эхо-запроса.

Время отправки едет внутри пакета и возвращается в эхо-ответе, поэтому
RTT вычисляется без таблицы соответствия запросов и ответов:
RTT = now - bytes_to_time(payload).
"""
import struct
import time


TIMESTAMP_SIZE = 8

# 8 байт, знаковое целое, сетевой (big-endian) порядок
_TIMESTAMP = struct.Struct('!q')


def time_to_bytes(nsec: int) -> bytes:
    """Закодировать время (наносекунды от эпохи) в 8 байт."""
    return _TIMESTAMP.pack(nsec)


def bytes_to_time(data: bytes) -> int:
    """
    Раскодировать 8 байт в наносекунды от эпохи.

    Длина `data` должна быть ровно TIMESTAMP_SIZE, проверка - на стороне
    вызывающего кода.
    """
    return _TIMESTAMP.unpack(data)[0]


def now_ns() -> int:
    return time.time_ns()
